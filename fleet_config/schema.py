"""
Fleet finance engine configuration schema.

Frozen dataclasses parsed from YAML by ``fleet_config.loader``. Each
section validates its own ranges on construction and raises
ConfigurationError naming the offending field.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal

from fleet_kernel.domain.values import Currency, Money
from fleet_kernel.exceptions import ConfigurationError
from fleet_engines.yield_calculator import ReferenceRates


def _require(condition: bool, name: str, value, reason: str) -> None:
    if not condition:
        raise ConfigurationError(name, value, reason)


@dataclass(frozen=True)
class ReserveSettings:
    """Margin reserve policy: minimum, comfort threshold and alerting."""

    required_minimum: Decimal = Decimal("200000")
    alert_threshold_percent: Decimal = Decimal("110")
    critical_deficit: Decimal = Decimal("50000")
    seed_balance: Decimal = Decimal("0")
    report_window_days: int = 30

    def __post_init__(self) -> None:
        _require(self.required_minimum > 0, "reserve.required_minimum",
                 self.required_minimum, "must be positive")
        _require(self.alert_threshold_percent >= 100, "reserve.alert_threshold_percent",
                 self.alert_threshold_percent, "must be at least 100")
        _require(self.critical_deficit >= 0, "reserve.critical_deficit",
                 self.critical_deficit, "cannot be negative")
        _require(self.report_window_days > 0, "reserve.report_window_days",
                 self.report_window_days, "must be positive")


@dataclass(frozen=True)
class RateioSettings:
    manual_split_tolerance: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        _require(self.manual_split_tolerance >= 0, "rateio.manual_split_tolerance",
                 self.manual_split_tolerance, "cannot be negative")


@dataclass(frozen=True)
class DashboardSettings:
    expense_average_months: int = 3

    def __post_init__(self) -> None:
        _require(self.expense_average_months > 0, "dashboard.expense_average_months",
                 self.expense_average_months, "must be positive")


@dataclass(frozen=True)
class TBOSettings:
    rate_per_hour: Decimal = Decimal("2800")

    def __post_init__(self) -> None:
        _require(self.rate_per_hour >= 0, "tbo.rate_per_hour",
                 self.rate_per_hour, "cannot be negative")


@dataclass(frozen=True)
class FinanceEngineConfig:
    """
    Effective configuration of the financial engine.

    ``checksum`` is the SHA-256 of the canonical source values and is
    what FLEET_CONFIG_TRACE records.
    """

    config_id: str
    version: int
    currency: str = "BRL"
    effective_from: date | None = None
    reserve: ReserveSettings = field(default_factory=ReserveSettings)
    rateio: RateioSettings = field(default_factory=RateioSettings)
    dashboard: DashboardSettings = field(default_factory=DashboardSettings)
    tbo: TBOSettings = field(default_factory=TBOSettings)
    reference_rates: ReferenceRates = field(default_factory=ReferenceRates)
    checksum: str = ""

    def __post_init__(self) -> None:
        try:
            Currency(self.currency)
        except ValueError as exc:
            raise ConfigurationError("currency", self.currency, str(exc)) from exc

    def money(self, amount: Decimal) -> Money:
        """Wrap a configured amount in the configured currency."""
        return Money.of(amount, self.currency)

    @property
    def required_minimum(self) -> Money:
        return self.money(self.reserve.required_minimum)

    @property
    def critical_deficit(self) -> Money:
        return self.money(self.reserve.critical_deficit)

    @property
    def tbo_rate_per_hour(self) -> Money:
        return self.money(self.tbo.rate_per_hour)

    def with_reference_rates(self, **rates) -> FinanceEngineConfig:
        """Copy with refreshed market rates (e.g. after a COPOM meeting)."""
        return replace(self, reference_rates=self.reference_rates.updated(**rates))
