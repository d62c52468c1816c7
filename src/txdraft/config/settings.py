"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``TXDRAFT_``, nested via ``__``)
2. YAML config file (``TXDRAFT_CONFIG_PATH`` env var or :meth:`AppConfig.from_yaml`)
3. Defaults defined here
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class SighashType(enum.StrEnum):
    """Signature-hash scopes understood by the remote ledger."""

    ALL = "SIGHASH_ALL"
    NONE = "SIGHASH_NONE"
    SINGLE = "SIGHASH_SINGLE"


class LogLevel(enum.StrEnum):
    """Accepted log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class LedgerConfig(BaseSettings):
    """Remote ledger JSON-RPC endpoint settings."""

    model_config = SettingsConfigDict(
        env_prefix="TXDRAFT_LEDGER__",
        case_sensitive=False,
    )

    url: str = "http://localhost:8545"
    token: str = ""
    timeout: float = 30.0
    chain_id: str = ""


class FeeConfig(BaseSettings):
    """Proportional fee rate: ``fee = amount * rate_numerator // rate_denominator``."""

    model_config = SettingsConfigDict(
        env_prefix="TXDRAFT_FEE__",
        case_sensitive=False,
    )

    rate_numerator: int = Field(default=3, ge=0)
    rate_denominator: int = Field(default=10_000, gt=0)


class SigningConfig(BaseSettings):
    """Signature protocol settings."""

    model_config = SettingsConfigDict(
        env_prefix="TXDRAFT_SIGNING__",
        case_sensitive=False,
    )

    sighash_type: SighashType = SighashType.ALL
    parallel: bool = Field(
        default=False,
        description="Sign the inputs of a multi-input draft concurrently",
    )


class BatchConfig(BaseSettings):
    """Bounded fan-out settings for independent lookups."""

    model_config = SettingsConfigDict(
        env_prefix="TXDRAFT_BATCH__",
        case_sensitive=False,
    )

    batch_size: int = Field(default=50, gt=0)
    concurrency: int = Field(default=5, gt=0)


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="TXDRAFT_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level configuration.

    Loads settings from environment variables (``TXDRAFT_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="TXDRAFT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    config_path: str = ""

    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    fee: FeeConfig = Field(default_factory=FeeConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))


def configure_logging(config: AppConfig) -> None:
    """Configure the ``txdraft`` logger hierarchy from *config*.

    ``debug=True`` forces DEBUG regardless of ``log_level``.
    """
    level = logging.DEBUG if config.debug else getattr(logging, config.log_level.value)
    logger = logging.getLogger("txdraft")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(handler)
