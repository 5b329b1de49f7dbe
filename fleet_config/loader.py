"""
Configuration Loader (``fleet_config.loader``).

Responsibility
--------------
Reads a YAML configuration file and parses it into the frozen
``fleet_config.schema`` dataclasses. Runtime callers go through
``fleet_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ConfigurationError`` naming the field.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fleet_kernel.exceptions import ConfigurationError
from fleet_engines.yield_calculator import ReferenceRates
from fleet_config.schema import (
    DashboardSettings,
    FinanceEngineConfig,
    RateioSettings,
    ReserveSettings,
    TBOSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file gives an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(name: str, value: Any) -> Decimal:
    """YAML numbers come in as int, float or str; all become exact Decimals."""
    if isinstance(value, bool):
        raise ConfigurationError(name, value, "expected a number")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(name, value, "expected a number") from exc


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(key, section, "expected a mapping")
    return section


def _decimals(prefix: str, section: dict[str, Any], names: tuple[str, ...]) -> dict[str, Decimal]:
    return {
        name: parse_decimal(f"{prefix}.{name}", section[name])
        for name in names
        if name in section
    }


def parse_config(data: dict[str, Any]) -> FinanceEngineConfig:
    """Build a FinanceEngineConfig from a parsed YAML mapping."""
    reserve = _section(data, "reserve")
    reserve_kwargs: dict[str, Any] = _decimals(
        "reserve",
        reserve,
        ("required_minimum", "alert_threshold_percent", "critical_deficit", "seed_balance"),
    )
    if "report_window_days" in reserve:
        reserve_kwargs["report_window_days"] = int(reserve["report_window_days"])

    dashboard = _section(data, "dashboard")
    dashboard_kwargs = {}
    if "expense_average_months" in dashboard:
        dashboard_kwargs["expense_average_months"] = int(dashboard["expense_average_months"])

    rates = _section(data, "reference_rates")
    try:
        reference_rates = ReferenceRates(
            **_decimals(
                "reference_rates",
                rates,
                ("cdi_annual", "selic_annual", "ipca_annual", "tr_monthly", "savings_selic_floor"),
            )
        )
    except ValueError as exc:
        raise ConfigurationError("reference_rates", rates, str(exc)) from exc

    effective_from = data.get("effective_from")
    return FinanceEngineConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        currency=str(data.get("currency", "BRL")),
        effective_from=parse_date(effective_from) if effective_from else None,
        reserve=ReserveSettings(**reserve_kwargs),
        rateio=RateioSettings(
            **_decimals("rateio", _section(data, "rateio"), ("manual_split_tolerance",))
        ),
        dashboard=DashboardSettings(**dashboard_kwargs),
        tbo=TBOSettings(**_decimals("tbo", _section(data, "tbo"), ("rate_per_hour",))),
        reference_rates=reference_rates,
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> FinanceEngineConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
