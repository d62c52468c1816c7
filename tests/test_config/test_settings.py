"""Tests for the configuration system."""

from __future__ import annotations

import logging
import textwrap
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from txdraft.config.settings import (
    AppConfig,
    BatchConfig,
    FeeConfig,
    LedgerConfig,
    LogLevel,
    SighashType,
    SigningConfig,
    _load_yaml,
    configure_logging,
)

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    """Verify all default values are correct."""

    def test_ledger_defaults(self) -> None:
        cfg = LedgerConfig()
        assert cfg.url == "http://localhost:8545"
        assert cfg.token == ""
        assert cfg.timeout == 30.0

    def test_fee_defaults(self) -> None:
        cfg = FeeConfig()
        assert cfg.rate_numerator == 3
        assert cfg.rate_denominator == 10_000

    def test_signing_defaults(self) -> None:
        cfg = SigningConfig()
        assert cfg.sighash_type == SighashType.ALL
        assert cfg.parallel is False

    def test_batch_defaults(self) -> None:
        cfg = BatchConfig()
        assert cfg.batch_size == 50
        assert cfg.concurrency == 5

    def test_app_config_defaults(self) -> None:
        cfg = AppConfig()
        assert cfg.debug is False
        assert cfg.log_level == LogLevel.INFO
        assert cfg.metrics.enabled is True


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_zero_denominator(self) -> None:
        with pytest.raises(ValidationError):
            FeeConfig(rate_denominator=0)

    def test_invalid_sighash(self) -> None:
        with pytest.raises(ValidationError):
            SigningConfig(sighash_type="SIGHASH_EVERYTHING")

    def test_zero_concurrency(self) -> None:
        with pytest.raises(ValidationError):
            BatchConfig(concurrency=0)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


class TestEnvOverride:
    def test_top_level_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXDRAFT_DEBUG", "true")
        monkeypatch.setenv("TXDRAFT_LOG_LEVEL", "WARNING")
        cfg = AppConfig()
        assert cfg.debug is True
        assert cfg.log_level == LogLevel.WARNING

    def test_nested_env_via_delimiter(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXDRAFT_LEDGER__URL", "https://ledger.example.com")
        monkeypatch.setenv("TXDRAFT_FEE__RATE_NUMERATOR", "5")
        cfg = AppConfig()
        assert cfg.ledger.url == "https://ledger.example.com"
        assert cfg.fee.rate_numerator == 5

    def test_signing_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TXDRAFT_SIGNING__SIGHASH_TYPE", "SIGHASH_SINGLE")
        monkeypatch.setenv("TXDRAFT_SIGNING__PARALLEL", "true")
        cfg = AppConfig()
        assert cfg.signing.sighash_type == SighashType.SINGLE
        assert cfg.signing.parallel is True


# ---------------------------------------------------------------------------
# YAML config file
# ---------------------------------------------------------------------------


class TestYAML:
    """YAML config file loading."""

    def test_load_yaml_nonexistent(self, tmp_path: Path) -> None:
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_load_yaml_non_dict(self, tmp_path: Path) -> None:
        f = tmp_path / "list.yaml"
        f.write_text("- item1\n- item2\n")
        assert _load_yaml(f) == {}

    def test_from_yaml(self, tmp_path: Path) -> None:
        f = tmp_path / "app.yaml"
        f.write_text(
            textwrap.dedent("""\
                debug: true
                ledger:
                  url: https://yaml-ledger.test
                  timeout: 12.5
                batch:
                  batch_size: 20
            """)
        )
        cfg = AppConfig.from_yaml(f)
        assert cfg.debug is True
        assert cfg.ledger.url == "https://yaml-ledger.test"
        assert cfg.ledger.timeout == 12.5
        assert cfg.batch.batch_size == 20

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Env vars have higher priority than YAML values."""
        f = tmp_path / "app.yaml"
        f.write_text("log_level: DEBUG\n")
        monkeypatch.setenv("TXDRAFT_LOG_LEVEL", "ERROR")
        cfg = AppConfig.from_yaml(f)
        assert cfg.log_level == LogLevel.ERROR


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def _restore_logger(self):
        logger = logging.getLogger("txdraft")
        level, handlers = logger.level, list(logger.handlers)
        yield
        logger.setLevel(level)
        logger.handlers[:] = handlers

    def test_level_from_config(self) -> None:
        configure_logging(AppConfig(log_level=LogLevel.WARNING))
        assert logging.getLogger("txdraft").level == logging.WARNING

    def test_debug_forces_debug(self) -> None:
        configure_logging(AppConfig(debug=True, log_level=LogLevel.ERROR))
        logger = logging.getLogger("txdraft")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
