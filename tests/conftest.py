"""Pytest configuration for test suite.

Ensures the project root is on ``sys.path`` so ``import monitor_status``
resolves regardless of the working directory pytest chooses, and provides
an in-memory query backend plus a ping factory.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest


def _ensure_project_root_on_syspath() -> None:
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        # Prepend to prefer local sources over site-packages
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_syspath()


def make_ping(
    monitor_id: str,
    location: str,
    *,
    up: int = 0,
    down: int = 0,
    config_id: Optional[str] = None,
    timestamp: str = "2024-05-01T10:00:00.000Z",
) -> Dict[str, Any]:
    """Raw summary ping document as stored in the index."""
    return {
        "@timestamp": timestamp,
        "summary": {"up": up, "down": down},
        "monitor": {"id": monitor_id, "status": "down" if down else "up"},
        "observer": {"geo": {"name": location}},
        "config_id": config_id if config_id is not None else f"cfg-{monitor_id}",
    }


class FakeBackend:
    """In-memory backend returning the latest ping per (monitor, location).

    ``pings`` maps monitor id -> {location: ping}. Locations outside the
    requested allow-list are filtered like the real query would.
    """

    def __init__(
        self, pings: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
    ) -> None:
        self.pings = pings or {}
        self.calls: List[Dict[str, Any]] = []

    async def search(self, time_range, monitor_query_ids: Sequence[str], locations=None):
        from monitor_status.domain.models import Observation

        self.calls.append(
            {
                "time_range": time_range,
                "monitor_query_ids": list(monitor_query_ids),
                "locations": list(locations) if locations else None,
            }
        )
        results = []
        for monitor_id in monitor_query_ids:
            for location, ping in self.pings.get(monitor_id, {}).items():
                if locations and location not in locations:
                    continue
                results.append(
                    Observation.from_ping(location, ping, monitor_query_id=monitor_id)
                )
        # No ordering guarantee from real backends; reverse so tests can't rely on one
        return list(reversed(results))


@pytest.fixture
def ping_factory():
    return make_ping


@pytest.fixture
def fake_backend_cls():
    return FakeBackend

