"""Elasticsearch backend tests with mocked HTTP.

These validate the aggregation request body and bucket parsing without a
live cluster.
"""

from __future__ import annotations

from typing import Any, Dict, List

import httpx
import pytest

from monitor_status.adapters import build_backend
from monitor_status.adapters.elasticsearch import (
    SOURCE_INCLUDES,
    ElasticsearchBackend,
    build_status_query,
    parse_status_response,
)
from monitor_status.config.models import BackendConfig
from monitor_status.domain.models import TimeRange
from monitor_status.utils.backpressure import CircuitState

RANGE = TimeRange.model_validate({"from": 1714557600000, "to": "now"})


def _bucket(monitor_id: str, locations: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "key": monitor_id,
        "doc_count": len(locations),
        "location": {
            "buckets": [
                {
                    "key": loc,
                    "doc_count": 1,
                    "status": {"hits": {"hits": [{"_source": ping}]}},
                }
                for loc, ping in locations.items()
            ]
        },
    }


class _MockClient:
    """Tiny mock of httpx.AsyncClient replaying queued responses."""

    def __init__(self, responses: List[httpx.Response]) -> None:
        self._responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    async def post(self, path: str, json: Dict[str, Any]) -> httpx.Response:
        self.requests.append({"path": path, "json": json})
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self) -> None:
        return None


def _response(status: int, payload: Dict[str, Any] = None, headers=None) -> httpx.Response:
    request = httpx.Request("POST", "http://es:9200/synthetics-*/_search")
    return httpx.Response(status, json=payload or {}, headers=headers, request=request)


def _backend(responses, **kwargs) -> tuple[ElasticsearchBackend, _MockClient]:
    backend = ElasticsearchBackend(
        "http://es:9200", index="synthetics-*", backoff_initial_ms=0, **kwargs
    )
    client = _MockClient(responses)
    backend.inject_http_client_for_testing(client)
    return backend, client


def test_build_status_query_with_locations() -> None:
    body = build_status_query(RANGE, ["m1", "m2"], ["us", "eu"])

    assert body["size"] == 0
    filters = body["query"]["bool"]["filter"]
    assert {"exists": {"field": "summary"}} in filters
    assert {"range": {"@timestamp": {"gte": 1714557600000, "lte": "now"}}} in filters
    assert {"terms": {"monitor.id": ["m1", "m2"]}} in filters
    assert {"terms": {"observer.geo.name": ["us", "eu"]}} in filters

    id_agg = body["aggs"]["id"]
    assert id_agg["terms"] == {"field": "monitor.id", "size": 2}
    loc_agg = id_agg["aggs"]["location"]
    assert loc_agg["terms"] == {"field": "observer.geo.name", "size": 2}
    top_hits = loc_agg["aggs"]["status"]["top_hits"]
    assert top_hits["size"] == 1
    assert top_hits["sort"] == [{"@timestamp": {"order": "desc"}}]
    assert top_hits["_source"]["includes"] == SOURCE_INCLUDES


def test_build_status_query_without_locations() -> None:
    body = build_status_query(RANGE, ["m1"], None)

    filters = body["query"]["bool"]["filter"]
    assert not any("observer.geo.name" in f.get("terms", {}) for f in filters)
    assert body["aggs"]["id"]["aggs"]["location"]["terms"]["size"] == 100


def test_parse_status_response(ping_factory) -> None:
    data = {
        "aggregations": {
            "id": {
                "buckets": [
                    _bucket("m1", {"us": ping_factory("m1", "us", up=1)}),
                    _bucket("m2", {"eu": ping_factory("m2", "eu", down=3)}),
                    {"key": "m3", "location": {"buckets": [{"key": "ap", "status": {"hits": {"hits": []}}}]}},
                ]
            }
        }
    }
    observations = parse_status_response(data)

    pairs = {(o.monitor_query_id, o.location): (o.up, o.down) for o in observations}
    assert pairs == {("m1", "us"): (1, 0), ("m2", "eu"): (0, 3)}


def test_parse_status_response_epoch_millis_timestamp() -> None:
    """Date fields may come back as epoch millis; they pass through untouched."""
    ping = {
        "@timestamp": 1714557600000,
        "summary": {"up": 1},
        "monitor": {"id": "m1"},
        "config_id": "c1",
    }
    data = {"aggregations": {"id": {"buckets": [_bucket("m1", {"us": ping})]}}}

    [obs] = parse_status_response(data)

    assert obs.timestamp == 1714557600000
    assert obs.up == 1


def test_parse_status_response_without_aggregations() -> None:
    assert parse_status_response({"hits": {"hits": []}}) == []


@pytest.mark.asyncio
async def test_search_posts_to_index_and_parses(ping_factory) -> None:
    payload = {
        "took": 4,
        "timed_out": False,
        "aggregations": {"id": {"buckets": [_bucket("m1", {"us": ping_factory("m1", "us", up=1)})]}},
    }
    backend, client = _backend([_response(200, payload)])

    observations = await backend.search(RANGE, ["m1"], ["us"])

    assert client.requests[0]["path"] == "/synthetics-*/_search"
    assert client.requests[0]["json"]["query"]["bool"]["filter"][2] == {
        "terms": {"monitor.id": ["m1"]}
    }
    assert [(o.monitor_query_id, o.location, o.up) for o in observations] == [("m1", "us", 1)]


@pytest.mark.asyncio
async def test_search_retries_on_503_then_succeeds() -> None:
    backend, client = _backend(
        [_response(503, headers={"Retry-After": "0"}), _response(200, {"aggregations": {}})],
        max_retries=1,
    )

    assert await backend.search(RANGE, ["m1"], None) == []
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_search_retries_connect_error() -> None:
    backend, client = _backend(
        [httpx.ConnectError("refused"), _response(200, {"aggregations": {}})],
        max_retries=2,
    )
    assert await backend.search(RANGE, ["m1"], None) == []
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_search_raises_after_retries_exhausted() -> None:
    backend, client = _backend([_response(503), _response(503)], max_retries=1)

    with pytest.raises(httpx.HTTPStatusError):
        await backend.search(RANGE, ["m1"], None)
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_search_does_not_retry_bad_request() -> None:
    backend, client = _backend([_response(400, {"error": "bad query"})], max_retries=3)

    with pytest.raises(httpx.HTTPStatusError):
        await backend.search(RANGE, ["m1"], None)
    assert len(client.requests) == 1
    assert backend.breaker.failure_count == 0


@pytest.mark.asyncio
async def test_search_timed_out_response_is_a_failure() -> None:
    backend, _ = _backend([_response(200, {"timed_out": True, "aggregations": {}})])

    with pytest.raises(TimeoutError, match="timed_out"):
        await backend.search(RANGE, ["m1"], None)


@pytest.mark.asyncio
async def test_repeated_failures_open_circuit() -> None:
    backend, _ = _backend(
        [_response(500), _response(500)], max_retries=0, circuit_failure_threshold=2
    )

    for _ in range(2):
        with pytest.raises(httpx.HTTPStatusError):
            await backend.search(RANGE, ["m1"], None)
    assert backend.breaker.state == CircuitState.OPEN


def test_build_backend_from_config() -> None:
    backend = build_backend(
        BackendConfig(endpoint="http://es:9200", index="heartbeat-*", api_key="k")
    )
    assert isinstance(backend, ElasticsearchBackend)


def test_build_backend_rejects_unknown_type() -> None:
    with pytest.raises(ValueError, match="Unsupported backend type"):
        build_backend(BackendConfig(endpoint="http://x", type="solr"))
