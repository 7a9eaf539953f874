"""Tests for settings and logging setup."""

import logging

import pytest
from pydantic import ValidationError

from proctop.config import PACKAGE_LOGGER, Settings, configure_logging


def test_defaults(monkeypatch):
    """Test default settings."""
    monkeypatch.delenv("PROCTOP_REFRESH_INTERVAL", raising=False)
    settings = Settings()

    assert settings.refresh_interval == 1.0
    assert settings.source == "psutil"
    assert settings.proc_root == "/proc"
    assert settings.max_failures == 5
    assert settings.sort == "cpu"
    assert settings.filter == ""
    assert settings.log_file is None


def test_environment_overrides(monkeypatch):
    """Test PROCTOP_* variables are picked up."""
    monkeypatch.setenv("PROCTOP_REFRESH_INTERVAL", "2.5")
    monkeypatch.setenv("PROCTOP_SOURCE", "procfs")
    monkeypatch.setenv("PROCTOP_FILTER", "chrom")

    settings = Settings()

    assert settings.refresh_interval == 2.5
    assert settings.source == "procfs"
    assert settings.filter == "chrom"


def test_explicit_values_win(monkeypatch):
    """Test constructor arguments override the environment."""
    monkeypatch.setenv("PROCTOP_SORT", "mem")

    assert Settings(sort="cpu").sort == "cpu"


@pytest.mark.parametrize(
    "field,value",
    [
        ("refresh_interval", 0.0),
        ("refresh_interval", 60.0),
        ("source", "sysctl"),
        ("max_failures", 0),
        ("sort", "pid"),
    ],
)
def test_invalid_values_rejected(field, value):
    """Test out-of-range and unknown values fail validation."""
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_configure_logging_to_file(tmp_path):
    """Test log records reach the configured file."""
    log_file = tmp_path / "proctop.log"
    logger = configure_logging(Settings(log_file=str(log_file), log_level="debug"))
    try:
        logging.getLogger(f"{PACKAGE_LOGGER}.monitor").debug("cycle skipped")
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert "cycle skipped" in log_file.read_text()
    finally:
        configure_logging(Settings())


def test_configure_logging_idempotent():
    """Test repeated setup does not stack handlers."""
    configure_logging(Settings())
    logger = configure_logging(Settings())

    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.NullHandler)
