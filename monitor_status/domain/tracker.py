"""Missing-data tracking.

The tracker starts from a copy of the expected matrix and loses a location
each time that pair resolves to up or down. Whatever is left once every page
has been merged is reported pending.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .classifier import status_key
from .models import OverviewPendingStatusMetaData, StatusVerdict

logger = logging.getLogger(__name__)


def restrict_locations(
    locations: Iterable[str], allowed_locations: Sequence[str]
) -> List[str]:
    """Intersect a monitor's locations with the allow-list.

    Keeps the monitor's order and drops duplicates. An empty allow-list
    means no location filter.
    """
    allowed = set(allowed_locations)
    seen: set[str] = set()
    result: List[str] = []
    for loc in locations or ():
        if loc in seen or (allowed and loc not in allowed):
            continue
        seen.add(loc)
        result.append(loc)
    return result


class MissingDataTracker:
    """Working set of (monitor query id, location) pairs not yet resolved.

    Parameters
    ----------
    expected_matrix: Mapping[str, Sequence[str]]
        Monitor query id -> configured locations. Copied; never mutated.
    allowed_locations: Sequence[str]
        Location allow-list (empty = no filter).
    """

    def __init__(
        self,
        expected_matrix: Mapping[str, Sequence[str]],
        allowed_locations: Sequence[str],
    ) -> None:
        self._remaining: Dict[str, List[str]] = {}
        for query_id, locations in expected_matrix.items():
            locs = restrict_locations(locations, allowed_locations)
            if locs:
                self._remaining[query_id] = locs
        self.expected_pairs = sum(len(locs) for locs in self._remaining.values())

    def resolve(self, monitor_query_id: str, location: str) -> bool:
        """Mark a pair as resolved. Returns False if it was not outstanding."""
        locs = self._remaining.get(monitor_query_id)
        if not locs or location not in locs:
            return False
        locs.remove(location)
        if not locs:
            del self._remaining[monitor_query_id]
        return True

    def is_outstanding(self, monitor_query_id: str, location: str) -> bool:
        return location in self._remaining.get(monitor_query_id, ())

    def remaining(self) -> List[Tuple[str, str]]:
        """Outstanding pairs in matrix order."""
        return [
            (query_id, loc)
            for query_id, locs in self._remaining.items()
            for loc in locs
        ]

    def __len__(self) -> int:
        return sum(len(locs) for locs in self._remaining.values())

    def pending_configs(
        self, config_id_map: Optional[Mapping[str, str]] = None
    ) -> Dict[str, OverviewPendingStatusMetaData]:
        """Emit a pending entry for every outstanding pair.

        A monitor query id without a ConfigId mapping is keyed by its raw id.
        """
        config_id_map = config_id_map or {}
        pending: Dict[str, OverviewPendingStatusMetaData] = {}
        unmapped: List[str] = []
        for query_id, loc in self.remaining():
            config_id = config_id_map.get(query_id)
            if config_id is None:
                config_id = query_id
                if query_id not in unmapped:
                    unmapped.append(query_id)
            pending[status_key(config_id, loc)] = OverviewPendingStatusMetaData(
                status=StatusVerdict.PENDING,
                config_id=str(config_id),
                monitor_query_id=query_id,
                location=loc,
            )
        if unmapped:
            logger.warning(
                "tracker.config_id.missing",
                extra={"monitor_query_ids": unmapped, "count": len(unmapped)},
            )
        return pending
