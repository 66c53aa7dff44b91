"""
Tests for portfolio_config -- YAML loading, validation and tracing.
"""

from datetime import date
from decimal import Decimal

import pytest
import yaml

from portfolio_config import compute_checksum, get_default_config, load_config
from portfolio_config.loader import parse_engine_config
from portfolio_config.schema import EngineConfig
from portfolio_kernel.domain.values import Axis
from portfolio_kernel.exceptions import ConfigurationError, InvalidThresholdError


def write_yaml(tmp_path, data):
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_shipped_defaults_match_schema_defaults(self):
        assert get_default_config() == EngineConfig()

    def test_default_schedule(self):
        scheduler = get_default_config().scheduler
        assert scheduler.startup_delay_seconds == 2.0
        assert scheduler.interval_seconds == 3600.0

    def test_loading_is_traced(self, captured_logs):
        config = get_default_config()

        [trace] = [r for r in captured_logs() if r["message"] == "PORTFOLIO_CONFIG_TRACE"]
        assert trace["config_id"] == config.config_id
        assert trace["checksum"] == compute_checksum(config)
        assert trace["source"].endswith("defaults.yaml")


class TestOverrides:

    def test_omitted_keys_keep_defaults(self, tmp_path):
        path = write_yaml(tmp_path, {
            "config_id": "site-a",
            "risk": {"critical_from": 15},
            "sync": {"critical_above": "25", "mobilization_axes": ["axe1_rh", "axe5_marketing"]},
            "project": {"start": "2025-01-01", "end": "2026-06-30"},
        })

        config = load_config(path)

        assert config.config_id == "site-a"
        assert config.risk.critical_from == 15
        assert config.risk.major_from == 9
        assert config.sync.critical_above == Decimal("25")
        assert config.sync.mobilization_axes == (Axis.HR, Axis.MARKETING)
        assert config.project.start == date(2025, 1, 1)
        assert config.alerts == EngineConfig().alerts

    def test_decimal_values_stay_exact(self):
        config = parse_engine_config({"performance": {"ahead_above": 1.1}})
        assert config.performance.ahead_above == Decimal("1.1")

    def test_empty_document_is_the_default(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == EngineConfig()


class TestRejections:

    def test_unknown_section(self):
        with pytest.raises(ConfigurationError, match="Unknown section"):
            parse_engine_config({"reporting": {}})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="critical_at"):
            parse_engine_config({"risk": {"critical_at": 12}})

    def test_non_boolean_flag(self):
        with pytest.raises(ConfigurationError):
            parse_engine_config({"actions": {"in_progress_on_start": "yes"}})

    @pytest.mark.parametrize("section, values", [
        ("risk", {"major_from": 3}),
        ("sync", {"in_phase_max": "20", "critical_above": "10"}),
        ("sync", {"mobilization_axes": ["axe3_technique"]}),
        ("milestones", {"danger_days": 40}),
        ("performance", {"behind_below": "1.2"}),
        ("project", {"start": "2026-01-01", "end": "2025-01-01"}),
        ("scheduler", {"interval_seconds": 0}),
    ])
    def test_inconsistent_thresholds(self, section, values):
        with pytest.raises(InvalidThresholdError):
            parse_engine_config({section: values})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestChecksum:

    def test_stable_for_equal_configs(self):
        assert compute_checksum(EngineConfig()) == compute_checksum(get_default_config())

    def test_changes_with_any_value(self):
        changed = parse_engine_config({"alerts": {"action_low_days": 10}})
        assert compute_checksum(changed) != compute_checksum(EngineConfig())
