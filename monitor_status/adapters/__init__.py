"""Query backend interface and factory."""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from ..config.models import BackendConfig
from ..domain.models import Observation, TimeRange


class QueryBackend(Protocol):
    """Protocol for search backends.

    ``search`` returns, for each monitor query id in the slice that has data,
    the single latest observation per location. No ordering is implied.
    """

    async def search(
        self,
        time_range: TimeRange,
        monitor_query_ids: Sequence[str],
        locations: Optional[Sequence[str]] = None,
    ) -> List[Observation]:
        """Run one paged aggregation query."""
        raise NotImplementedError


def build_backend(config: BackendConfig) -> QueryBackend:
    """Instantiate a backend from configuration."""
    if config.type in ("elasticsearch", "es"):
        from .elasticsearch import ElasticsearchBackend

        return ElasticsearchBackend(
            config.endpoint,
            index=config.index,
            api_key=config.api_key,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
            backoff_initial_ms=config.backoff_initial_ms,
            backoff_multiplier=config.backoff_multiplier,
            circuit_failure_threshold=config.circuit_failure_threshold,
        )
    raise ValueError(f"Unsupported backend type: {config.type!r}")
