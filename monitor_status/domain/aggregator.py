"""Merge page responses into one observation map.

Pages target disjoint monitor id slices, so two pages never produce the same
(monitor query id, location) key. The aggregator is owned by a single merge
stage; it is not safe to feed from several threads at once.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .classifier import classify
from .models import Observation, OverviewStatusMetaData
from .tracker import MissingDataTracker, restrict_locations

logger = logging.getLogger(__name__)

PairKey = Tuple[str, str]


class ResultAggregator:
    """Collect observations for expected pairs and resolve them in the tracker.

    Parameters
    ----------
    expected_matrix: Mapping[str, Sequence[str]]
        Monitor query id -> configured locations.
    allowed_locations: Sequence[str]
        Location allow-list (empty = no filter).
    tracker: MissingDataTracker
        Working set updated as pairs resolve to up or down.
    config_id_map: Optional[Mapping[str, str]]
        Fallback ConfigId source for observations that carry none.
    """

    def __init__(
        self,
        expected_matrix: Mapping[str, Sequence[str]],
        allowed_locations: Sequence[str],
        tracker: MissingDataTracker,
        config_id_map: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._expected_matrix = expected_matrix
        self._allowed_locations = list(allowed_locations)
        self._tracker = tracker
        self._config_id_map = config_id_map or {}
        self._queried_locations: Dict[str, List[str]] = {}
        self.observed: Dict[PairKey, Observation] = {}
        self.discarded = 0
        self.pages_merged = 0

    def _locations_for(self, monitor_query_id: str) -> List[str]:
        locs = self._queried_locations.get(monitor_query_id)
        if locs is None:
            locs = restrict_locations(
                self._expected_matrix.get(monitor_query_id, ()),
                self._allowed_locations,
            )
            self._queried_locations[monitor_query_id] = locs
        return locs

    def add_page(self, observations: Iterable[Observation]) -> int:
        """Merge one page of observations; returns how many were kept.

        Observations for locations outside the monitor's expected locations
        or outside the allow-list are dropped silently.
        """
        kept = 0
        for obs in observations:
            if obs.location not in self._locations_for(obs.monitor_query_id):
                self.discarded += 1
                continue
            key = (obs.monitor_query_id, obs.location)
            if key in self.observed:
                # Overlapping pages; last write wins.
                logger.debug(
                    "aggregator.observation.overwritten",
                    extra={"monitor_query_id": key[0], "location": key[1]},
                )
            self.observed[key] = obs
            kept += 1
            if classify(obs) is not None:
                self._tracker.resolve(obs.monitor_query_id, obs.location)
        self.pages_merged += 1
        return kept

    def config_id_for(self, obs: Observation) -> str:
        if obs.config_id:
            return obs.config_id
        return self._config_id_map.get(obs.monitor_query_id, obs.monitor_query_id)

    def classified(self) -> List[OverviewStatusMetaData]:
        """Metadata for every observed pair with an up or down verdict."""
        results: List[OverviewStatusMetaData] = []
        for (query_id, location), obs in self.observed.items():
            verdict = classify(obs)
            if verdict is None:
                continue
            results.append(
                OverviewStatusMetaData(
                    status=verdict,
                    config_id=self.config_id_for(obs),
                    monitor_query_id=query_id,
                    location=location,
                    timestamp=obs.timestamp,
                    ping=obs.ping,
                )
            )
        return results
