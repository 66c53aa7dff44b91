"""
portfolio_config -- typed engine configuration.

Responsibility:
    Provides the engine configuration as a frozen ``EngineConfig``.
    Thresholds, bands, track axes and scheduling intervals are never read
    from module-level constants by engines or services; a configuration
    object is passed explicitly into every computation.

Architecture position:
    Configuration -- sits above ``portfolio_kernel`` and below
    ``portfolio_engines`` / ``portfolio_services``.  The kernel MUST NEVER
    import from ``portfolio_config``.

Audit relevance:
    Every ``get_default_config()`` / ``load_config()`` call through this
    entrypoint emits a ``PORTFOLIO_CONFIG_TRACE`` log entry carrying the
    config_id, version and checksum, tying each recalculation pass to the
    configuration that governed it.
"""

from __future__ import annotations

from pathlib import Path

from portfolio_config import loader
from portfolio_config.loader import compute_checksum, parse_engine_config, validate_config
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
from portfolio_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def _trace(config: EngineConfig, source: str) -> None:
    _logger.info(
        "PORTFOLIO_CONFIG_TRACE",
        extra={
            "trace_type": "PORTFOLIO_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": compute_checksum(config),
            "source": source,
        },
    )


def load_config(path: Path | str) -> EngineConfig:
    """Load, validate and trace a configuration from a YAML file."""
    config = loader.load_config(Path(path))
    _trace(config, str(path))
    return config


def get_default_config() -> EngineConfig:
    """Return the shipped default configuration."""
    return load_config(DEFAULTS_PATH)


__all__ = [
    "ActionStatusPolicy",
    "AlertThresholds",
    "EngineConfig",
    "HealthPolicy",
    "MilestoneThresholds",
    "PerformanceBands",
    "ProjectWindow",
    "RiskBands",
    "SchedulerSettings",
    "SyncSettings",
    "compute_checksum",
    "get_default_config",
    "load_config",
    "parse_engine_config",
    "validate_config",
]
