"""Domain data model for monitor status reconciliation.

These Pydantic models describe what the query backend hands back (one
latest observation per monitor and location) and what the reconciliation
produces (an overview of up, down and pending pairs). All instances are
created fresh per reconciliation; nothing is shared across calls.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class StatusVerdict(str, Enum):
    """Status assigned to one (monitor, location) pair."""

    UP = "up"
    DOWN = "down"
    PENDING = "pending"  # No usable observation within the time range


class TimeRange(BaseModel):
    """Query time range.

    Attributes
    ----------
    from_: Union[str, int]
        Lower bound (inclusive); date-math string or epoch millis. Serialized
        as ``from``.
    to: str
        Upper bound (inclusive), e.g. ``"now"``.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_: Union[str, int] = Field(..., alias="from")
    to: str = "now"


class Observation(BaseModel):
    """Most recent ping for one (monitor query id, location) pair.

    Attributes
    ----------
    monitor_query_id: str
        Query-level monitor identifier the ping was bucketed under.
    location: str
        Observer location name.
    timestamp: Optional[Union[str, int]]
        ``@timestamp`` of the ping as returned by the backend; an ISO string
        or epoch millis, passed through untouched.
    up: int
        Summary up counter (0 when the ping has no summary).
    down: int
        Summary down counter (0 when the ping has no summary).
    config_id: Optional[str]
        Stable monitor identity carried by the ping, if any.
    ping: Dict[str, Any]
        Raw source document, passed through untouched.
    """

    monitor_query_id: str
    location: str
    timestamp: Optional[Union[str, int]] = None
    up: int = 0
    down: int = 0
    config_id: Optional[str] = None
    ping: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_ping(
        cls,
        location: str,
        ping: Dict[str, Any],
        monitor_query_id: Optional[str] = None,
    ) -> "Observation":
        """Build an observation from a raw ping document.

        ``monitor_query_id`` defaults to ``ping["monitor"]["id"]``; callers
        that know the bucket key should pass it explicitly.
        """
        summary = ping.get("summary") or {}
        monitor = ping.get("monitor") or {}
        query_id = monitor_query_id or monitor.get("id")
        if not query_id:
            raise ValueError("ping has no monitor.id and no monitor_query_id given")
        config_id = ping.get("config_id")
        return cls(
            monitor_query_id=str(query_id),
            location=location,
            timestamp=ping.get("@timestamp"),
            up=int(summary.get("up") or 0),
            down=int(summary.get("down") or 0),
            config_id=str(config_id) if config_id is not None else None,
            ping=ping,
        )


class OverviewStatusMetaData(BaseModel):
    """Metadata for a pair classified up or down."""

    status: StatusVerdict
    config_id: str
    monitor_query_id: str
    location: str
    timestamp: Optional[Union[str, int]] = None
    ping: Dict[str, Any] = Field(default_factory=dict)


class OverviewPendingStatusMetaData(BaseModel):
    """Metadata for a pair with no usable observation."""

    status: StatusVerdict = StatusVerdict.PENDING
    config_id: str
    monitor_query_id: str
    location: str


class OverviewStatus(BaseModel):
    """Final reconciliation report.

    Attributes
    ----------
    up, down, pending: int
        Counts; each equals the size of the matching ``*_configs`` map.
    up_configs, down_configs, pending_configs: Dict[str, ...]
        Metadata keyed by ``"{config_id}-{location}"``. A key appears in
        exactly one of the three maps.
    enabled_monitor_query_ids: List[str]
        Monitor query ids the reconciliation was asked about.
    """

    up: int = 0
    down: int = 0
    pending: int = 0
    up_configs: Dict[str, OverviewStatusMetaData] = Field(default_factory=dict)
    down_configs: Dict[str, OverviewStatusMetaData] = Field(default_factory=dict)
    pending_configs: Dict[str, OverviewPendingStatusMetaData] = Field(
        default_factory=dict
    )
    enabled_monitor_query_ids: List[str] = Field(default_factory=list)
