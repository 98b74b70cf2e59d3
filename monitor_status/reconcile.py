"""Monitor status reconciliation entry points.

``query_monitor_status`` plans pages, fetches them through a bounded worker
pool, merges the responses in page order and reports every expected
(monitor, location) pair as up, down or pending.

The expected matrix and the ConfigId mapping are trusted inputs. They are not
validated; a monitor query id missing from the mapping is keyed by its raw id.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Mapping, Optional, Sequence

from .adapters import QueryBackend
from .config.models import EnvSettings
from .domain.aggregator import ResultAggregator
from .domain.models import Observation, OverviewStatus, TimeRange
from .domain.overview import assemble_overview
from .domain.pagination import plan_pages
from .domain.tracker import MissingDataTracker
from .utils.backpressure import RequestQueue
from .utils.correlation import get_request_id, new_request_id, reset_request_id
from .utils.page_results import gather_pages

logger = logging.getLogger(__name__)


async def query_monitor_status(
    backend: QueryBackend,
    time_range: TimeRange,
    allowed_locations: Sequence[str],
    monitor_query_ids: Sequence[str],
    expected_matrix: Mapping[str, Sequence[str]],
    config_id_map: Optional[Mapping[str, str]] = None,
    *,
    max_bucket_size: Optional[int] = None,
    max_concurrent_pages: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
    settings: Optional[EnvSettings] = None,
) -> OverviewStatus:
    """Reconcile backend results against the expected matrix.

    Parameters
    ----------
    backend: QueryBackend
        Executes one page query.
    time_range: TimeRange
        Query range passed to every page.
    allowed_locations: Sequence[str]
        Location allow-list; empty means no location filter.
    monitor_query_ids: Sequence[str]
        Monitor ids to query, split into pages.
    expected_matrix: Mapping[str, Sequence[str]]
        Monitor query id -> configured locations.
    config_id_map: Optional[Mapping[str, str]]
        Monitor query id -> stable ConfigId.
    max_bucket_size, max_concurrent_pages, timeout_seconds
        Override the matching ``EnvSettings`` values (bucket ceiling, worker
        pool size, deadline for all pages together).
    settings: Optional[EnvSettings]
        Settings to use instead of reading the environment.

    Returns
    -------
    OverviewStatus
        Every expected pair appears in exactly one of the three maps.

    Raises
    ------
    BackendError
        If any page fails or the deadline passes. No partial report is built.
    """
    settings = settings or EnvSettings()
    if max_bucket_size is None:
        max_bucket_size = settings.max_bucket_size
    if max_concurrent_pages is None:
        max_concurrent_pages = settings.max_concurrent_pages
    if timeout_seconds is None:
        timeout_seconds = settings.timeout_seconds
    token = new_request_id()
    try:
        started = time.monotonic()
        allowed = list(allowed_locations)
        plan = plan_pages(monitor_query_ids, len(allowed), max_bucket_size)
        logger.info(
            "reconcile.start",
            extra={
                "req_id": get_request_id(),
                "monitor_ids": len(monitor_query_ids),
                "locations": len(allowed),
                "ids_per_page": plan.ids_per_page,
                "pages": plan.page_count,
            },
        )

        # Snapshot the expected pairs before any page result is applied.
        tracker = MissingDataTracker(expected_matrix, allowed)
        queue = RequestQueue(max_concurrent=max_concurrent_pages)

        async def _fetch(index: int, page: List[str]) -> List[Observation]:
            observations = await queue.execute(
                backend.search, time_range, page, allowed or None
            )
            logger.debug(
                "reconcile.page.complete",
                extra={
                    "req_id": get_request_id(),
                    "page": index,
                    "monitor_ids": len(page),
                    "observations": len(observations),
                },
            )
            return observations

        operations = {
            f"page-{index}": _fetch(index, page) for index, page in enumerate(plan.pages)
        }
        page_results = await gather_pages(operations, timeout_seconds=timeout_seconds)

        aggregator = ResultAggregator(expected_matrix, allowed, tracker, config_id_map)
        for observations in page_results:
            aggregator.add_page(observations)

        report = assemble_overview(
            aggregator.classified(),
            tracker.pending_configs(config_id_map),
            monitor_query_ids,
        )
        logger.info(
            "reconcile.complete",
            extra={
                "req_id": get_request_id(),
                "up": report.up,
                "down": report.down,
                "pending": report.pending,
                "expected_pairs": tracker.expected_pairs,
                "discarded_observations": aggregator.discarded,
                "elapsed_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return report
    finally:
        reset_request_id(token)


def reconcile(
    backend: QueryBackend,
    time_range: TimeRange,
    allowed_locations: Sequence[str],
    monitor_query_ids: Sequence[str],
    expected_matrix: Mapping[str, Sequence[str]],
    config_id_map: Optional[Mapping[str, str]] = None,
    **options,
) -> OverviewStatus:
    """Blocking wrapper around :func:`query_monitor_status`.

    Must not be called from a running event loop. Accepts the same keyword
    options.
    """
    return asyncio.run(
        query_monitor_status(
            backend,
            time_range,
            allowed_locations,
            monitor_query_ids,
            expected_matrix,
            config_id_map,
            **options,
        )
    )

