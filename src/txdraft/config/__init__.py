"""Configuration (pydantic-settings + YAML)."""

from txdraft.config.settings import AppConfig, configure_logging

__all__ = ["AppConfig", "configure_logging"]
