"""
Configuration Loader (``portfolio_config.loader``).

Responsibility
--------------
Loads YAML configuration documents and parses them into the typed
``portfolio_config.schema`` dataclasses, then validates the ordering of
every band.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Omitted keys take the schema default; unknown keys are rejected.
* Bands are strictly ordered and day windows are non-negative.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ConfigurationError``.
* Inconsistent thresholds  -> ``InvalidThresholdError``.
"""

from __future__ import annotations

from dataclasses import asdict, fields
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from portfolio_config.schema import (
    ActionStatusPolicy,
    AlertThresholds,
    EngineConfig,
    HealthPolicy,
    MilestoneThresholds,
    PerformanceBands,
    ProjectWindow,
    RiskBands,
    SchedulerSettings,
    SyncSettings,
)
from portfolio_kernel.domain.values import Axis
from portfolio_kernel.exceptions import ConfigurationError, InvalidThresholdError
from portfolio_kernel.utils.hashing import hash_payload

_SECTIONS: dict[str, type] = {
    "milestones": MilestoneThresholds,
    "actions": ActionStatusPolicy,
    "health": HealthPolicy,
    "performance": PerformanceBands,
    "sync": SyncSettings,
    "project": ProjectWindow,
    "risk": RiskBands,
    "alerts": AlertThresholds,
    "scheduler": SchedulerSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date | None:
    """Parse a date from YAML (string or date object)."""
    if value is None or isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def _coerce(section: str, name: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigurationError(f"{section}.{name} must be a boolean, got {value!r}")
        return value
    if isinstance(default, Decimal):
        # via str so that 1.05 in YAML stays exactly 1.05
        return Decimal(str(value))
    if isinstance(default, float):
        return float(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, Axis):
        return Axis(value)
    if isinstance(default, tuple):
        return tuple(Axis(v) for v in value)
    if section == "project":
        return parse_date(value)
    return value


def parse_section(section: str, data: dict[str, Any] | None) -> Any:
    """Parse one top-level section into its schema dataclass."""
    cls = _SECTIONS[section]
    defaults = cls()
    data = data or {}

    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in section '{section}': {', '.join(sorted(unknown))}"
        )

    kwargs = {
        name: _coerce(section, name, value, getattr(defaults, name))
        for name, value in data.items()
    }
    return cls(**kwargs)


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse a complete ``EngineConfig`` from a dict and validate it.

    Raises:
        ConfigurationError: unknown section or key.
        InvalidThresholdError: inconsistent thresholds.
    """
    allowed = set(_SECTIONS) | {"config_id", "version"}
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown section(s): {', '.join(sorted(unknown))}")

    config = EngineConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        **{section: parse_section(section, data.get(section)) for section in _SECTIONS},
    )
    validate_config(config)
    return config


def load_config(path: Path) -> EngineConfig:
    """Load and validate an ``EngineConfig`` from a YAML file."""
    return parse_engine_config(load_yaml_file(path))


def _require(condition: bool, name: str, reason: str) -> None:
    if not condition:
        raise InvalidThresholdError(name, reason)


def validate_config(config: EngineConfig) -> None:
    """
    Check that every threshold is usable.

    Raises:
        InvalidThresholdError: on the first inconsistent value.
    """
    m = config.milestones
    _require(m.danger_days >= 0, "milestones.danger_days", "must be >= 0")
    _require(
        m.danger_days <= m.approach_days,
        "milestones.danger_days",
        "must not exceed approach_days",
    )

    _require(config.actions.to_do_window_days >= 0, "actions.to_do_window_days", "must be >= 0")

    h = config.health
    _require(0 <= h.warning_days <= h.watch_days, "health.warning_days",
             "must be within [0, watch_days]")
    _require(0 <= h.watch_progress <= 100, "health.watch_progress", "must be within [0, 100]")

    p = config.performance
    _require(p.behind_below > 0, "performance.behind_below", "must be > 0")
    _require(
        p.behind_below <= p.ahead_above,
        "performance.behind_below",
        "must not exceed ahead_above",
    )

    s = config.sync
    _require(s.in_phase_max >= 0, "sync.in_phase_max", "must be >= 0")
    _require(
        s.in_phase_max < s.critical_above,
        "sync.in_phase_max",
        "must be below critical_above",
    )
    _require(s.trend_noise >= 0, "sync.trend_noise", "must be >= 0")
    _require(s.snapshot_min_age_days >= 1, "sync.snapshot_min_age_days", "must be >= 1")
    _require(
        s.technical_axis not in s.mobilization_axes,
        "sync.mobilization_axes",
        "must not contain the technical axis",
    )
    _require(len(s.mobilization_axes) > 0, "sync.mobilization_axes", "must not be empty")

    w = config.project
    if w.start is not None and w.end is not None:
        _require(w.start < w.end, "project.start", "must be before project.end")

    r = config.risk
    _require(
        1 <= r.moderate_from < r.major_from < r.critical_from <= 25,
        "risk",
        "bands must satisfy 1 <= moderate_from < major_from < critical_from <= 25",
    )

    a = config.alerts
    _require(
        0 <= a.action_high_days <= a.action_medium_days <= a.action_low_days,
        "alerts.action_*_days",
        "must satisfy 0 <= high <= medium <= low",
    )
    _require(
        0 <= a.milestone_critical_days <= a.milestone_high_days <= a.milestone_approach_days,
        "alerts.milestone_*_days",
        "must satisfy 0 <= critical <= high <= approach",
    )
    _require(
        0 <= a.budget_overrun_pct <= a.budget_overrun_critical_pct,
        "alerts.budget_overrun_pct",
        "must be within [0, budget_overrun_critical_pct]",
    )

    sc = config.scheduler
    _require(sc.startup_delay_seconds >= 0, "scheduler.startup_delay_seconds", "must be >= 0")
    _require(sc.interval_seconds > 0, "scheduler.interval_seconds", "must be > 0")
    _require(sc.max_recursion_depth >= 1, "scheduler.max_recursion_depth", "must be >= 1")


def config_to_dict(config: EngineConfig) -> dict[str, Any]:
    """Plain-data view of a configuration (enums as values)."""

    def _plain(value: Any) -> Any:
        if isinstance(value, Axis):
            return value.value
        if isinstance(value, (list, tuple)):
            return [_plain(v) for v in value]
        if isinstance(value, dict):
            return {k: _plain(v) for k, v in value.items()}
        return value

    return _plain(asdict(config))


def compute_checksum(data: dict[str, Any] | EngineConfig) -> str:
    """
    SHA-256 of the canonical JSON of the configuration.

    Identical configurations always produce identical checksums.
    """
    if isinstance(data, EngineConfig):
        data = config_to_dict(data)
    return hash_payload(data)
