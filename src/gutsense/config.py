"""
User configuration for gutsense.

Settings live in ~/.gutsense/config.toml. Two tables matter to the
application: [analysis.<section>] overrides detection thresholds, and
[logging] controls the log files. Both are validated before anything is
written, so a bad value is rejected at `gutsense config set` time instead of
failing the next analysis.
"""

import logging
import os
import tomllib

from pathlib import Path
from typing import Any

import tomli_w

from pydantic import ValidationError

from gutsense.analysis.config import DetectionConfig, build_detection_config
from gutsense.constants import DEFAULT_CONFIG_DIR
from gutsense.logging_config import LoggingSettings

logger = logging.getLogger(__name__)

ConfigValue = str | int | float | bool


def get_config_path() -> Path:
    """
    Get the path to the configuration file.

    Returns:
        Path to ~/.gutsense/config.toml
    """
    return DEFAULT_CONFIG_DIR / "config.toml"


def load_config() -> dict[str, Any]:
    """
    Load configuration from TOML file.

    Returns:
        Configuration dictionary. Returns empty dict if file doesn't exist
        or is corrupted.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return {}

    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        logger.warning("Treating config as empty. Fix or delete the file to resolve.")
        return {}


def validate_config(config: dict[str, Any]) -> None:
    """
    Check the [analysis] and [logging] tables.

    Other top-level tables are left alone.

    Raises:
        ValueError: If either table is not a table or holds unknown or
            out-of-range values
    """
    for name in ("analysis", "logging"):
        if name in config and not isinstance(config[name], dict):
            raise ValueError(f"[{name}] must be a table")

    build_detection_config(config.get("analysis"))
    try:
        LoggingSettings.model_validate(config.get("logging", {}))
    except ValidationError as e:
        raise ValueError(f"Invalid logging configuration: {e}") from e


def save_config(config: dict[str, Any]) -> None:
    """
    Validate, then write config.toml atomically (temp file + rename).

    Args:
        config: Configuration dictionary to save

    Raises:
        ValueError: If the configuration does not validate; nothing is written
        PermissionError: If directory cannot be created or file cannot be written
    """
    validate_config(config)
    config_path = get_config_path()

    config_dir = config_path.parent
    try:
        os.makedirs(config_dir, exist_ok=True)
    except PermissionError as e:
        raise PermissionError(f"Cannot create config directory {config_dir}: {e}") from e

    temp_path = config_path.with_suffix(".toml.tmp")

    try:
        with open(temp_path, "wb") as f:
            tomli_w.dump(config, f)

        os.replace(temp_path, config_path)

    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


# ============================================================================
# Detection Thresholds
# ============================================================================


def get_analysis_overrides() -> dict[str, Any]:
    """
    Get the [analysis] tables from config.

    Returns:
        Mapping of DetectionConfig section name to field overrides
    """
    overrides = load_config().get("analysis", {})
    return overrides if isinstance(overrides, dict) else {}


def load_detection_config() -> DetectionConfig:
    """
    Build the detection thresholds from the defaults plus user overrides.

    Raises:
        ValueError: If the [analysis] tables contain unknown or invalid values
    """
    return build_detection_config(get_analysis_overrides())


def effective_analysis_settings() -> list[tuple[str, Any, bool]]:
    """
    Every detection threshold with the value an analysis would use.

    Returns:
        (dotted key, value, overridden) per field, in section order, where
        overridden means config.toml sets the value

    Raises:
        ValueError: If the [analysis] tables contain unknown or invalid values
    """
    overrides = get_analysis_overrides()
    detection = build_detection_config(overrides)

    rows = []
    for section_name in DetectionConfig.model_fields:
        section = getattr(detection, section_name)
        configured = overrides.get(section_name, {})
        for field_name in type(section).model_fields:
            rows.append(
                (
                    f"analysis.{section_name}.{field_name}",
                    getattr(section, field_name),
                    field_name in configured,
                )
            )
    return rows


# ============================================================================
# Dotted Keys
# ============================================================================


def parse_config_value(raw: str) -> ConfigValue:
    """
    Interpret a command-line value the way TOML would.

    Example:
        >>> parse_config_value("1200")
        1200
        >>> parse_config_value("false")
        False
        >>> parse_config_value("INFO")
        'INFO'
    """
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def _split_key(key: str) -> list[str]:
    parts = [p for p in key.split(".") if p]
    if len(parts) < 2:
        raise ValueError(f"Config key must look like 'section.name', got {key!r}")
    return parts


def set_config_value(key: str, value: ConfigValue) -> None:
    """
    Set a dotted key such as "analysis.burst.max_duration_ms".

    Raises:
        ValueError: If the key is malformed or the resulting [analysis] or
            [logging] table is invalid; the file is left unchanged
    """
    parts = _split_key(key)
    config = load_config()

    table = config
    for part in parts[:-1]:
        child = table.setdefault(part, {})
        if not isinstance(child, dict):
            raise ValueError(f"Config key {part!r} is a value, not a table")
        table = child
    table[parts[-1]] = value

    save_config(config)
    logger.debug(f"Config set {key} = {value!r}")


def unset_config_value(key: str) -> bool:
    """
    Remove a dotted key from config.

    Empty tables left behind are removed. If config becomes empty, the
    config file is deleted.

    Returns:
        True if the key existed
    """
    parts = _split_key(key)
    config = load_config()

    tables = [config]
    for part in parts[:-1]:
        child = tables[-1].get(part)
        if not isinstance(child, dict):
            return False
        tables.append(child)

    if parts[-1] not in tables[-1]:
        return False
    del tables[-1][parts[-1]]

    for depth in range(len(parts) - 1, 0, -1):
        if not tables[depth]:
            del tables[depth - 1][parts[depth - 1]]

    if not config:
        config_path = get_config_path()
        if config_path.exists():
            config_path.unlink()
    else:
        save_config(config)
    return True
