"""Assemble the final overview report."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Sequence

from .classifier import status_key
from .models import (
    OverviewPendingStatusMetaData,
    OverviewStatus,
    OverviewStatusMetaData,
    StatusVerdict,
)

logger = logging.getLogger(__name__)


def assemble_overview(
    classified: Iterable[OverviewStatusMetaData],
    pending_configs: Mapping[str, OverviewPendingStatusMetaData],
    monitor_query_ids: Sequence[str] = (),
) -> OverviewStatus:
    """Combine classified and pending entries into an ``OverviewStatus``.

    Several monitor query ids may share a ConfigId, so keys can collide:
    down wins over up and either wins over pending. Maps are emitted in key
    order so identical inputs serialize identically.
    """
    up_configs: Dict[str, OverviewStatusMetaData] = {}
    down_configs: Dict[str, OverviewStatusMetaData] = {}
    for meta in classified:
        key = status_key(meta.config_id, meta.location)
        if meta.status == StatusVerdict.DOWN:
            up_configs.pop(key, None)
            down_configs[key] = meta
        elif meta.status == StatusVerdict.UP and key not in down_configs:
            up_configs[key] = meta

    pending: Dict[str, OverviewPendingStatusMetaData] = {}
    for key, meta in pending_configs.items():
        if key in up_configs or key in down_configs:
            logger.debug("overview.pending.shadowed", extra={"key": key})
            continue
        pending[key] = meta

    return OverviewStatus(
        up=len(up_configs),
        down=len(down_configs),
        pending=len(pending),
        up_configs=dict(sorted(up_configs.items())),
        down_configs=dict(sorted(down_configs.items())),
        pending_configs=dict(sorted(pending.items())),
        enabled_monitor_query_ids=list(monitor_query_ids),
    )
