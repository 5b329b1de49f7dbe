"""
fleet_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain the reserve
    minimum, alert threshold, reference rates and the other tunables.
    Nothing else reads configuration files.

Architecture position:
    Configuration -- sits above fleet_kernel and fleet_engines, below
    fleet_services. Engines never import from here; services pass the
    values they need into engine constructors.

Failure modes:
    - FileNotFoundError: the requested file does not exist.
    - ConfigurationError: a value is out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits FLEET_CONFIG_TRACE
    with the config id, version and checksum, tying every reserve status
    and yield projection to the configuration that produced it.
"""

from __future__ import annotations

from pathlib import Path

from fleet_kernel.logging_config import get_logger
from fleet_config.loader import load_config
from fleet_config.schema import (
    DashboardSettings,
    FinanceEngineConfig,
    RateioSettings,
    ReserveSettings,
    TBOSettings,
)

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> FinanceEngineConfig:
    """The public configuration entrypoint.

    Args:
        path: YAML file to load. Defaults to the packaged defaults.yaml.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_config(config_path)

    _logger.info(
        "FLEET_CONFIG_TRACE",
        extra={
            "trace_type": "FLEET_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "currency": config.currency,
            "required_minimum": str(config.reserve.required_minimum),
            "alert_threshold_percent": str(config.reserve.alert_threshold_percent),
            "source": str(config_path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DashboardSettings",
    "FinanceEngineConfig",
    "RateioSettings",
    "ReserveSettings",
    "TBOSettings",
    "get_active_config",
]
