"""
Tests for the user config file.
"""

import pytest

from gutsense.config import (
    effective_analysis_settings,
    get_analysis_overrides,
    get_config_path,
    load_config,
    load_detection_config,
    parse_config_value,
    save_config,
    set_config_value,
    unset_config_value,
)


class TestConfigFile:
    """Test loading and saving ~/.gutsense/config.toml."""

    def test_path_is_isolated(self, isolated_home):
        assert get_config_path() == isolated_home / "config.toml"

    def test_missing_file_is_empty(self):
        assert load_config() == {}

    def test_save_and_load(self):
        save_config({"logging": {"level": "INFO"}})
        assert load_config() == {"logging": {"level": "INFO"}}
        assert not get_config_path().with_suffix(".toml.tmp").exists()

    def test_corrupted_file_is_treated_as_empty(self, isolated_home):
        isolated_home.mkdir(parents=True)
        get_config_path().write_text("this is not [toml")
        assert load_config() == {}

    def test_save_rejects_invalid_tables(self):
        with pytest.raises(ValueError, match="Invalid analysis configuration"):
            save_config({"analysis": {"burst": {"max_duration_ms": -1}}})
        with pytest.raises(ValueError, match="must be a table"):
            save_config({"logging": "verbose"})
        assert not get_config_path().exists()


class TestParseValue:
    """Test command-line value interpretation."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1200", 1200),
            ("0.25", 0.25),
            ("true", True),
            ("False", False),
            ("INFO", "INFO"),
        ],
    )
    def test_parse(self, raw, expected):
        value = parse_config_value(raw)
        assert value == expected
        assert type(value) is type(expected)


class TestSetUnset:
    """Test dotted-key updates."""

    def test_set_creates_tables(self):
        set_config_value("analysis.burst.max_duration_ms", 1200)
        assert load_config() == {"analysis": {"burst": {"max_duration_ms": 1200}}}
        assert get_analysis_overrides() == {"burst": {"max_duration_ms": 1200}}
        assert load_detection_config().burst.max_duration_ms == 1200.0

    def test_set_rejects_invalid_analysis_value(self):
        with pytest.raises(ValueError):
            set_config_value("analysis.burst.max_duration_ms", -5)
        assert not get_config_path().exists()

    def test_set_rejects_unknown_analysis_field(self):
        with pytest.raises(ValueError):
            set_config_value("analysis.burst.nonsense", 1)

    def test_logging_keys_are_validated(self):
        set_config_value("logging.level", "WARNING")
        assert load_config()["logging"]["level"] == "WARNING"
        with pytest.raises(ValueError, match="Invalid logging configuration"):
            set_config_value("logging.level", "LOUD")
        with pytest.raises(ValueError, match="Invalid logging configuration"):
            set_config_value("logging.rotate", True)
        assert load_config() == {"logging": {"level": "WARNING"}}

    def test_other_tables_are_not_validated(self):
        set_config_value("display.color", False)
        assert load_config() == {"display": {"color": False}}

    def test_malformed_key(self):
        with pytest.raises(ValueError, match="section.name"):
            set_config_value("level", "INFO")

    def test_value_is_not_a_table(self):
        set_config_value("logging.level", "INFO")
        with pytest.raises(ValueError, match="not a table"):
            set_config_value("logging.level.sub", 1)

    def test_unset_prunes_empty_tables(self):
        set_config_value("analysis.burst.max_duration_ms", 1200)
        set_config_value("logging.level", "INFO")
        assert unset_config_value("analysis.burst.max_duration_ms")
        assert load_config() == {"logging": {"level": "INFO"}}

    def test_unset_last_key_deletes_file(self):
        set_config_value("logging.level", "INFO")
        assert unset_config_value("logging.level")
        assert not get_config_path().exists()

    def test_unset_missing_key(self):
        assert not unset_config_value("logging.level")
        set_config_value("logging.level", "INFO")
        assert not unset_config_value("logging.enabled")
        assert not unset_config_value("analysis.burst.max_duration_ms")


class TestEffectiveThresholds:
    """Test the listing of thresholds an analysis would use."""

    def test_defaults_only(self):
        rows = effective_analysis_settings()
        keys = [key for key, _, _ in rows]
        assert "analysis.burst.max_duration_ms" in keys
        assert "analysis.heart.min_beats_for_bpm" in keys
        assert len(keys) == len(set(keys))
        assert not any(overridden for _, _, overridden in rows)

    def test_overrides_are_marked(self):
        set_config_value("analysis.burst.max_duration_ms", 1200)
        rows = {key: (value, overridden) for key, value, overridden in effective_analysis_settings()}
        assert rows["analysis.burst.max_duration_ms"] == (1200.0, True)
        assert rows["analysis.burst.min_duration_ms"][1] is False
