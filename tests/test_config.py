"""
Tests for configuration loading and logging setup.
"""

import json
import logging

import pytest
from pydantic import ValidationError

from monitor_status.config.models import AppConfig, BackendConfig, EnvSettings
from monitor_status.observability import setup_logging


def test_app_config_load(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "backend": {
                    "endpoint": "http://es:9200",
                    "index": "heartbeat-*",
                    "timeout_seconds": 10,
                },
                "allowed_locations": ["us", "eu"],
            }
        )
    )
    cfg = AppConfig.load(path)

    assert cfg.backend.endpoint == "http://es:9200"
    assert cfg.backend.index == "heartbeat-*"
    assert cfg.backend.timeout_seconds == 10
    assert cfg.backend.type == "elasticsearch"
    assert cfg.allowed_locations == ["us", "eu"]


def test_backend_config_validates_bounds():
    with pytest.raises(ValidationError):
        BackendConfig(endpoint="http://es", timeout_seconds=0)


def test_env_settings_defaults(monkeypatch):
    for name in (
        "MONITOR_STATUS_MAX_BUCKET_SIZE",
        "MONITOR_STATUS_MAX_CONCURRENT_PAGES",
        "MONITOR_STATUS_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = EnvSettings(_env_file=None)
    assert settings.max_bucket_size == 10000
    assert settings.max_concurrent_pages == 10
    assert settings.timeout_seconds == 30.0


def test_env_settings_from_environment(monkeypatch):
    monkeypatch.setenv("MONITOR_STATUS_MAX_BUCKET_SIZE", "500")
    monkeypatch.setenv("MONITOR_STATUS_LOG_LEVEL", "DEBUG")
    settings = EnvSettings(_env_file=None)
    assert settings.max_bucket_size == 500
    assert settings.log_level == "DEBUG"


def test_setup_logging_quiets_transport_loggers():
    setup_logging("INFO")
    assert logging.getLogger("httpx").level == logging.WARNING
    setup_logging("DEBUG")
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_setup_logging_defaults_to_env_log_level(monkeypatch):
    monkeypatch.setenv("MONITOR_STATUS_LOG_LEVEL", "DEBUG")
    setup_logging()
    assert logging.getLogger("httpx").level == logging.DEBUG

    monkeypatch.setenv("MONITOR_STATUS_LOG_LEVEL", "ERROR")
    setup_logging()
    assert logging.getLogger("httpx").level == logging.WARNING
