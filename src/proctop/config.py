"""Configuration settings and logging setup for proctop.

Settings load from environment variables (PROCTOP_*) and an optional .env
file; command-line flags override them.

Usage:
    from proctop.config import Settings, configure_logging

    settings = Settings(refresh_interval=2.0)
    configure_logging(settings)
"""

import logging
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_LOGGER = "proctop"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Runtime configuration.

    Attributes:
        refresh_interval: Seconds between sampling cycles.
        source: Counter source backend ("psutil" or "procfs").
        proc_root: Root of the proc tree for the procfs backend.
        max_failures: Consecutive unavailable cycles before giving up.
        kill_timeout: Seconds to wait for a terminated process to exit.
        sort: Initial sort key ("cpu" or "mem").
        filter: Initial label filter; empty shows every process.
        log_level: Level name for the proctop logger.
        log_file: Log destination. The terminal belongs to the UI, so
            nothing is logged when this is unset.

    Environment Variables:
        PROCTOP_REFRESH_INTERVAL
        PROCTOP_SOURCE
        PROCTOP_PROC_ROOT
        PROCTOP_MAX_FAILURES
        PROCTOP_KILL_TIMEOUT
        PROCTOP_SORT
        PROCTOP_FILTER
        PROCTOP_LOG_LEVEL
        PROCTOP_LOG_FILE
    """

    model_config = SettingsConfigDict(
        env_prefix="PROCTOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    refresh_interval: float = Field(default=1.0, ge=0.1, le=10.0)
    source: Literal["psutil", "procfs"] = "psutil"
    proc_root: str = "/proc"
    max_failures: int = Field(default=5, ge=1)
    kill_timeout: float = Field(default=2.0, ge=0.0, le=10.0)
    sort: Literal["cpu", "mem"] = "cpu"
    filter: str = ""
    log_level: str = "WARNING"
    log_file: str | None = None


def configure_logging(settings: Settings) -> logging.Logger:
    """
    Attach handlers to the proctop package logger.

    Safe to call more than once; previously attached handlers are replaced.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(settings.log_level.upper())
    if settings.log_file:
        handler: logging.Handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler = logging.NullHandler()
    logger.addHandler(handler)
    return logger
