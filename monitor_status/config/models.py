"""Config models and loader.

This module defines Pydantic models for file- and environment-based
configuration. JSON parsing prefers `orjson` when available, falling back to
the standard library's `json` module.
"""

from __future__ import annotations

import json as _json
from pathlib import Path
from typing import Any, Callable, Optional

try:
    import orjson as _orjson_mod  # type: ignore[assignment]
except ImportError:  # pragma: no cover - optional dependency
    _orjson_mod = None  # type: ignore[assignment]
    _loads_orjson: Optional[Callable[[bytes], Any]] = None
else:

    def _loads_orjson(buf: bytes) -> Any:
        loader = getattr(_orjson_mod, "loads")  # type: ignore[assignment]
        return loader(buf)


from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_BUCKET_SIZE = 10000


class BackendConfig(BaseModel):
    """Connection settings for the search backend.

    Attributes
    ----------
    endpoint: str
        Base URL of the Elasticsearch HTTP API.
    index: str
        Index pattern holding the heartbeat/synthetics pings.
    api_key: Optional[str]
        Optional API key sent as ``Authorization: ApiKey <key>``.
    type: str
        Backend type identifier (only "elasticsearch" today).
    timeout_seconds: int
        HTTP request timeout in seconds for each page query.
    """

    endpoint: str = Field(..., description="Search backend base URL")
    index: str = Field("synthetics-*", description="Index pattern to query")
    api_key: Optional[str] = Field(None, description="Authentication token")
    type: str = Field("elasticsearch", description="Backend type identifier")
    timeout_seconds: int = Field(30, ge=1)
    max_retries: int = Field(1, ge=0, description="Number of retry attempts")
    backoff_initial_ms: int = Field(
        200, ge=0, description="Initial backoff in milliseconds"
    )
    backoff_multiplier: float = Field(
        2.0, ge=1.0, description="Backoff multiplier per attempt"
    )
    circuit_failure_threshold: int = Field(
        5, ge=1, description="Consecutive failures before the circuit opens"
    )


class AppConfig(BaseModel):
    """Top-level application configuration.

    Attributes
    ----------
    backend: BackendConfig
        Search backend connection settings.
    allowed_locations: list[str]
        Default location allow-list; empty means no location filter.
    """

    backend: BackendConfig
    allowed_locations: list[str] = Field(default_factory=list)

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load application config from a JSON file."""
        raw = path.read_bytes()
        if _loads_orjson is not None:
            data = _loads_orjson(raw)
        else:
            data = _json.loads(raw.decode("utf-8"))
        return AppConfig.model_validate(data)


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO"; read by
        ``observability.setup_logging`` when no level is passed.
    max_bucket_size: int
        Backend ceiling on buckets per aggregation query; drives paging.
    max_concurrent_pages: int
        Maximum page queries in flight at once.
    timeout_seconds: float
        Overall deadline for one reconciliation, all pages included.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="MONITOR_STATUS_")

    log_level: str = Field("INFO")
    max_bucket_size: int = Field(
        DEFAULT_MAX_BUCKET_SIZE,
        ge=1,
        description="Maximum buckets the backend returns for one query",
    )
    max_concurrent_pages: int = Field(
        10,
        ge=1,
        le=100,
        description="Maximum number of page queries dispatched concurrently",
    )
    timeout_seconds: float = Field(
        30.0,
        gt=0,
        description="Overall reconciliation timeout in seconds",
    )
