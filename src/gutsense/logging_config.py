"""
Logging setup for the gutsense CLI.

The analysis engine logs one DEBUG line per candidate event and veto
decision, which drowns out everything else on a long recording. Those
records stay out of the main log unless asked for: ``-v`` shows them on the
console, and ``[logging] trace_events = true`` writes them to a separate
rotating analysis-trace.log.
"""

import logging
import logging.config
import os
import sys

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gutsense.constants import (
    ANALYSIS_LOGGER,
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_MAX_BYTES,
    DEFAULT_TRACE_LOG_FILE,
    LOG_LEVELS,
)

_logging_configured = False

_FULL_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_TRACE_FORMAT = "%(asctime)s - %(name)s - %(message)s"


class LoggingSettings(BaseModel):
    """
    The [logging] table of config.toml.

    Example:
        >>> LoggingSettings.model_validate({"level": "warning"}).level
        'WARNING'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(default=True, description="Write the rotating gutsense.log")
    level: str = Field(default="DEBUG", description="Level of the main log file")
    max_size_mb: float = Field(default=DEFAULT_LOG_MAX_BYTES / (1024 * 1024), gt=0)
    backup_count: int = Field(default=DEFAULT_LOG_BACKUP_COUNT, ge=0)
    trace_events: bool = Field(
        default=False, description="Write per-event analysis decisions to analysis-trace.log"
    )

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def max_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)


def get_log_dir() -> Path:
    """
    Get log directory path, creating if needed.

    Returns:
        Path to log directory
    """
    log_dir = DEFAULT_LOG_DIR
    os.makedirs(log_dir, mode=0o700, exist_ok=True)
    return log_dir


def get_log_path() -> Path:
    return get_log_dir() / DEFAULT_LOG_FILE


def get_trace_log_path() -> Path:
    return get_log_dir() / DEFAULT_TRACE_LOG_FILE


def _get_user_logging_settings() -> LoggingSettings:
    """
    Read [logging] from the user config.

    An invalid table is reported on stderr and replaced by the defaults so a
    typo in config.toml never stops an analysis from running.
    """
    from gutsense.config import load_config

    table = load_config().get("logging", {})
    try:
        return LoggingSettings.model_validate(table if isinstance(table, dict) else {})
    except ValidationError as e:
        sys.stderr.write(f"WARNING: Ignoring invalid [logging] settings: {e}\n")
        return LoggingSettings()


def _rotating_handler(
    filename: Path, level: str, formatter: str, settings: LoggingSettings
) -> dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filename": str(filename),
        "maxBytes": settings.max_bytes,
        "backupCount": settings.backup_count,
        "encoding": "utf-8",
    }


def _build_logging_config(
    verbose: bool = False,
    console_format: str | None = None,
) -> dict[str, Any]:
    """
    Build the dictConfig configuration dictionary.

    Args:
        verbose: If True, console and analysis engine log at DEBUG
        console_format: Override console format string

    Returns:
        Dictionary suitable for logging.config.dictConfig()
    """
    settings = _get_user_logging_settings()

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": console_format or _FULL_FORMAT},
            "file": {"format": _FULL_FORMAT},
            "trace": {"format": _TRACE_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG" if verbose else "INFO",
                "formatter": "console",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            ANALYSIS_LOGGER: {
                "level": "DEBUG" if verbose or settings.trace_events else "INFO",
                "handlers": [],
            },
        },
        "root": {
            "level": "DEBUG",
            "handlers": ["console"],
        },
    }

    if settings.enabled:
        config["handlers"]["file"] = _rotating_handler(
            get_log_path(), settings.level, "file", settings
        )
        config["root"]["handlers"].append("file")

    if settings.trace_events:
        config["handlers"]["trace"] = _rotating_handler(
            get_trace_log_path(), "DEBUG", "trace", settings
        )
        config["loggers"][ANALYSIS_LOGGER]["handlers"].append("trace")

    return config


def setup_logging(
    *,
    verbose: bool = False,
    console_format: str | None = None,
) -> None:
    """
    Configure logging for the gutsense application.

    Library code only creates module loggers; handlers are attached here,
    once, by the CLI entry point.

    Args:
        verbose: If True, set console to DEBUG level
        console_format: Override console format string. If None, uses full format.
    """
    global _logging_configured

    if _logging_configured:
        return

    try:
        config = _build_logging_config(verbose=verbose, console_format=console_format)
        logging.config.dictConfig(config)
    except (OSError, ValueError, TypeError) as e:
        sys.stderr.write(f"WARNING: Failed to configure logging: {e}\n")
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=console_format or "%(levelname)s: %(message)s",
        )

    _logging_configured = True


def reset_logging() -> None:
    """Allow setup_logging() to run again (used by tests)."""
    global _logging_configured
    _logging_configured = False
