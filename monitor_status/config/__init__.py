"""Configuration models and loaders."""

from .models import AppConfig, BackendConfig, EnvSettings

__all__ = ["AppConfig", "BackendConfig", "EnvSettings"]
