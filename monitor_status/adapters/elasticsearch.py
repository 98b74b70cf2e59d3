"""Elasticsearch query backend.

Runs the latest-ping-per-location aggregation against a heartbeat/synthetics
index over the Elasticsearch HTTP API. One call covers one page of monitor
query ids:

- ``monitor.id`` terms -> one bucket per monitor
- ``observer.geo.name`` terms -> one bucket per location
- ``top_hits`` size 1 sorted by ``@timestamp`` desc -> latest summary ping
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..domain.models import Observation, TimeRange
from ..domain.pagination import location_bucket_size
from ..utils.backpressure import (
    CircuitBreaker,
    CircuitBreakerConfig,
    retry_after_seconds,
)
from ..utils.correlation import get_request_id

logger = logging.getLogger(__name__)

SUMMARY_FILTER: Dict[str, Any] = {"exists": {"field": "summary"}}

SOURCE_INCLUDES = [
    "@timestamp",
    "summary",
    "monitor",
    "observer",
    "config_id",
    "error",
    "agent",
    "url",
    "state",
]

_RETRY_STATUSES = (429, 502, 503, 504)


def build_status_query(
    time_range: TimeRange,
    monitor_query_ids: Sequence[str],
    locations: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    """Build the aggregation request body for one page.

    Parameters
    ----------
    time_range: TimeRange
        Inclusive ``@timestamp`` bounds.
    monitor_query_ids: Sequence[str]
        Monitor ids in this page; also the ``id`` terms size.
    locations: Optional[Sequence[str]]
        Location allow-list; no location filter when empty.
    """
    locations = list(locations or [])
    filters: List[Dict[str, Any]] = [
        SUMMARY_FILTER,
        {
            "range": {
                "@timestamp": {"gte": time_range.from_, "lte": time_range.to},
            }
        },
        {"terms": {"monitor.id": list(monitor_query_ids)}},
    ]
    if locations:
        filters.append({"terms": {"observer.geo.name": locations}})

    return {
        "size": 0,
        "query": {"bool": {"filter": filters}},
        "aggs": {
            "id": {
                "terms": {"field": "monitor.id", "size": max(len(monitor_query_ids), 1)},
                "aggs": {
                    "location": {
                        "terms": {
                            "field": "observer.geo.name",
                            "size": location_bucket_size(len(locations)),
                        },
                        "aggs": {
                            "status": {
                                "top_hits": {
                                    "size": 1,
                                    "sort": [{"@timestamp": {"order": "desc"}}],
                                    "_source": {"includes": SOURCE_INCLUDES},
                                }
                            }
                        },
                    }
                },
            }
        },
    }


def parse_status_response(data: Dict[str, Any]) -> List[Observation]:
    """Flatten ``id`` -> ``location`` -> ``status`` buckets into observations.

    Location buckets without a hit are skipped.
    """
    observations: List[Observation] = []
    id_buckets = ((data.get("aggregations") or {}).get("id") or {}).get("buckets", [])
    for id_bucket in id_buckets:
        query_id = str(id_bucket["key"])
        for loc_bucket in (id_bucket.get("location") or {}).get("buckets", []):
            hits = loc_bucket.get("status", {}).get("hits", {}).get("hits", [])
            if not hits:
                continue
            observations.append(
                Observation.from_ping(
                    str(loc_bucket["key"]),
                    hits[0].get("_source") or {},
                    monitor_query_id=query_id,
                )
            )
    return observations


class ElasticsearchBackend:
    """Query backend speaking to Elasticsearch over HTTP.

    Parameters
    ----------
    endpoint: str
        Base URL of the cluster (e.g., "http://localhost:9200").
    index: str
        Index pattern to search.
    api_key: Optional[str]
        Optional API key for the ``Authorization`` header.
    timeout: int
        Request timeout in seconds per page query.
    """

    def __init__(
        self,
        endpoint: str,
        index: str = "synthetics-*",
        api_key: Optional[str] = None,
        timeout: int = 30,
        *,
        max_retries: int = 1,
        backoff_initial_ms: int = 200,
        backoff_multiplier: float = 2.0,
        circuit_failure_threshold: int = 5,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=endpoint, timeout=timeout, headers=self._headers(api_key)
        )
        self._index = index
        self._max_retries = max(0, int(max_retries))
        self._backoff_initial_ms = max(0, int(backoff_initial_ms))
        self._backoff_multiplier = max(1.0, float(backoff_multiplier))
        self._timeout_seconds = timeout
        self._breaker = CircuitBreaker(
            "elasticsearch",
            CircuitBreakerConfig(failure_threshold=circuit_failure_threshold),
        )
        logger.info(
            "elasticsearch.backend.init",
            extra={"endpoint": endpoint, "index": index, "timeout_seconds": timeout},
        )

    def inject_http_client_for_testing(self, client: Any) -> None:
        """Replace underlying HTTP client (testing only)."""
        self._client = client

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search(
        self,
        time_range: TimeRange,
        monitor_query_ids: Sequence[str],
        locations: Optional[Sequence[str]] = None,
    ) -> List[Observation]:
        """Run the status aggregation for one page of monitor ids."""
        body = build_status_query(time_range, monitor_query_ids, locations)
        data = await self._breaker.call(
            self._post_json, f"/{self._index}/_search", body
        )
        if data.get("timed_out"):
            raise asyncio.TimeoutError(
                f"Elasticsearch reported timed_out for {len(monitor_query_ids)} ids"
            )
        observations = parse_status_response(data)
        logger.debug(
            "elasticsearch.search.parsed",
            extra={
                "req_id": get_request_id(),
                "monitor_ids": len(monitor_query_ids),
                "observations": len(observations),
            },
        )
        return observations

    def _backoff(self, attempt: int) -> float:
        return (self._backoff_initial_ms / 1000.0) * (
            self._backoff_multiplier**attempt
        )

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST JSON and return the parsed body, retrying transient failures.

        Raises
        ------
        httpx.HTTPError
            On transport errors or non-2xx responses once retries run out.
        """
        logger.debug(
            "elasticsearch.http.post",
            extra={"req_id": get_request_id(), "path": path},
        )
        attempt = 0
        while True:
            try:
                resp = await self._client.post(path, json=payload)
                resp.raise_for_status()
                break
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                if attempt >= self._max_retries:
                    logger.error(
                        "elasticsearch.http.transport_error",
                        extra={
                            "req_id": get_request_id(),
                            "path": path,
                            "attempts": attempt + 1,
                            "timeout_seconds": self._timeout_seconds,
                            "error": str(exc),
                        },
                    )
                    raise
                delay = self._backoff(attempt)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status not in _RETRY_STATUSES or attempt >= self._max_retries:
                    text = exc.response.text or ""
                    logger.error(
                        "elasticsearch.http.status_error",
                        extra={
                            "req_id": get_request_id(),
                            "path": path,
                            "status": status,
                            "body_preview": text[:500],
                        },
                    )
                    raise
                retry_after = retry_after_seconds(exc.response)
                delay = retry_after if retry_after is not None else self._backoff(attempt)
            logger.warning(
                "elasticsearch.http.retry",
                extra={"path": path, "attempt": attempt + 1, "delay_seconds": delay},
            )
            await asyncio.sleep(delay)
            attempt += 1

        data = resp.json()
        logger.debug(
            "elasticsearch.http.response",
            extra={
                "req_id": get_request_id(),
                "path": path,
                "status_code": resp.status_code,
                "took_ms": data.get("took"),
            },
        )
        return data

    @staticmethod
    def _headers(api_key: Optional[str]) -> dict:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"ApiKey {api_key}"
        return headers
