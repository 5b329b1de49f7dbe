"""
Module: fleet_engines.yield_calculator
Responsibility:
    Project the yield of a cash application under Brazilian fixed-income
    conventions: CDI- and SELIC-indexed, pre-fixed, post-fixed, CDB, LCI,
    LCA, IPCA+ and the savings account rule, each with a 252/365 day-count
    base and daily or monthly capitalization.

Architecture position:
    Engines -- pure calculation layer, zero I/O. Reference rates are
    supplied by the caller (normally from fleet_config).

Invariants enforced:
    - Decimal-only arithmetic. Fractional powers are evaluated in a local
      decimal context with extra precision and rounded once, at the end,
      to the currency's precision (ROUND_HALF_UP).
    - Pure: identical inputs give identical results.
    - For non-negative rates the final value never decreases as the end
      date moves later.

Conventions:
    - CDI/SELIC indexed: effective annual rate = reference * percent / 100.
      Base 252 compounds over estimated business days; base 365 is simple
      proration over calendar days.
    - Fixed types and IPCA+: (1 + annual)^(units / base).
    - Monthly capitalization: monthly rate (1 + annual)^(1/12) - 1,
      compounded over whole calendar months; a partial final month is
      prorated linearly.
    - Savings: 0.5% a.m. + TR while SELIC is above the floor (8.5% a.a.),
      otherwise 70% of SELIC / 12 + TR. Credited on monthly anniversaries
      only; a partial month earns nothing.
    - Annual equivalent: geometric, ((1 + period) ^ (base / units) - 1).

Failure modes:
    - InvalidRangeError: end_date <= start_date.
    - NonPositivePrincipalError: principal <= 0.
    - MissingParameterError: raised earlier, when the position is built.

Usage:
    from fleet_engines.yield_calculator import YieldEngine

    result = YieldEngine().calculate(position)
    result.final_value  # Money
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Sequence

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import NonPositivePrincipalError
from fleet_kernel.logging_config import get_logger
from fleet_engines.day_count import DayCountBase, DayCountCalculator
from fleet_engines.investment import (
    CapitalizationMode,
    FixedRate,
    IndexedRate,
    InflationLinkedRate,
    InvestmentPosition,
    InvestmentType,
    SavingsRule,
)
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.yield")

_HUNDRED = Decimal("100")
_ONE = Decimal("1")
_PERCENT_QUANTUM = Decimal("0.000001")
_WORKING_PRECISION = 40

_SAVINGS_FIXED_MONTHLY = Decimal("0.5")
_SAVINGS_SELIC_SHARE = Decimal("0.7")

_FIXED_TYPES = frozenset(
    {
        InvestmentType.PRE_FIXED,
        InvestmentType.POST_FIXED,
        InvestmentType.CDB,
        InvestmentType.LCI,
        InvestmentType.LCA,
    }
)


@dataclass(frozen=True)
class ReferenceRates:
    """
    Market reference rates in percent.

    cdi_annual and selic_annual drive indexed positions, ipca_annual is
    the default expectation offered to IPCA+ simulations, tr_monthly and
    savings_selic_floor drive the savings rule.
    """

    cdi_annual: Decimal = Decimal("13.25")
    selic_annual: Decimal = Decimal("13.25")
    ipca_annual: Decimal = Decimal("4.62")
    tr_monthly: Decimal = Decimal("0")
    savings_selic_floor: Decimal = Decimal("8.5")

    def __post_init__(self) -> None:
        for name in ("cdi_annual", "selic_annual", "ipca_annual", "tr_monthly", "savings_selic_floor"):
            value = getattr(self, name)
            if isinstance(value, float):
                raise TypeError(f"{name} must be Decimal, str or int, not float")
            value = Decimal(str(value))
            if value < 0:
                raise ValueError(f"{name} cannot be negative, got {value}")
            object.__setattr__(self, name, value)

    def updated(self, **rates) -> ReferenceRates:
        """Return a copy with the given rates replaced."""
        return replace(self, **rates)


@dataclass(frozen=True)
class YieldResult:
    """
    Outcome of one yield projection.

    Contract:
        final_value and interest_earned are rounded to currency precision.
        Percentages are in percent (12.5 means 12.5%) with six decimals.
        units_used, day_count_base and effective_annual_rate record how the
        figure was produced.
    """

    principal: Money
    final_value: Money
    interest_earned: Money
    period_return_percent: Decimal
    annual_equivalent_return_percent: Decimal
    days_elapsed: int
    business_days_estimated: int
    units_used: int
    day_count_base: DayCountBase
    effective_annual_rate: Decimal
    investment_type: InvestmentType


class YieldEngine:
    """
    Pure yield calculator.

    Contract:
        ``calculate`` is a function of the position and the reference
        rates given at construction. It holds no other state, so one
        instance can be shared across threads.
    """

    def __init__(
        self,
        reference_rates: ReferenceRates | None = None,
        day_count: DayCountCalculator | None = None,
    ):
        self._rates = reference_rates or ReferenceRates()
        self._day_count = day_count or DayCountCalculator()

    @property
    def reference_rates(self) -> ReferenceRates:
        return self._rates

    @traced_engine("yield", "1.0", fingerprint_fields=("position",))
    def calculate(self, position: InvestmentPosition) -> YieldResult:
        """
        Project final value, interest and returns for ``position``.

        Raises:
            InvalidRangeError: end_date is not after start_date.
            NonPositivePrincipalError: principal <= 0.
        """
        principal = position.principal
        calendar_days = self._day_count.calendar_days(position.start_date, position.end_date)
        business_days = self._day_count.estimate_business_days(
            position.start_date, position.end_date
        )
        if not principal.is_positive:
            logger.warning(
                "yield_non_positive_principal",
                extra={"principal": str(principal.amount), "currency": principal.currency.code},
            )
            raise NonPositivePrincipalError(principal.amount, principal.currency.code)

        logger.info(
            "yield_calculation_started",
            extra={
                "investment_type": position.investment_type.value,
                "day_count_base": int(position.day_count_base),
                "capitalization": position.capitalization.value,
                "calendar_days": calendar_days,
            },
        )

        with localcontext() as ctx:
            ctx.prec = _WORKING_PRECISION
            if position.investment_type is InvestmentType.SAVINGS:
                factor, annual_rate, units, base = self._savings(position)
            else:
                factor, annual_rate, units, base = self._compound(
                    position, calendar_days, business_days
                )

            final_value = (principal * factor).round()
            interest = final_value - principal
            period_return = interest.amount / principal.amount * _HUNDRED
            annual_equivalent = self._annualize(period_return, units, base)

        result = YieldResult(
            principal=principal,
            final_value=final_value,
            interest_earned=interest,
            period_return_percent=period_return.quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP),
            annual_equivalent_return_percent=annual_equivalent.quantize(
                _PERCENT_QUANTUM, rounding=ROUND_HALF_UP
            ),
            days_elapsed=calendar_days,
            business_days_estimated=business_days,
            units_used=units,
            day_count_base=base,
            effective_annual_rate=annual_rate.quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP),
            investment_type=position.investment_type,
        )

        logger.info(
            "yield_calculation_completed",
            extra={
                "investment_type": position.investment_type.value,
                "final_value": str(result.final_value.amount),
                "period_return_percent": str(result.period_return_percent),
            },
        )
        return result

    def simulate_grid(
        self,
        position: InvestmentPosition,
        end_dates: Sequence[date],
    ) -> tuple[tuple[date, YieldResult], ...]:
        """Evaluate the same application at several end dates (projection chart)."""
        return tuple(
            (end, self.calculate(replace(position, end_date=end)))
            for end in sorted(end_dates)
        )

    # ------------------------------------------------------------------
    # Formulas
    # ------------------------------------------------------------------

    def _annual_rate(self, position: InvestmentPosition) -> Decimal:
        """Effective annual rate in percent for non-savings positions."""
        params = position.rate_parameters
        if isinstance(params, IndexedRate):
            reference = (
                self._rates.cdi_annual
                if position.investment_type is InvestmentType.CDI
                else self._rates.selic_annual
            )
            return reference * params.percent_of_index / _HUNDRED
        if isinstance(params, FixedRate):
            return params.annual_rate
        if isinstance(params, InflationLinkedRate):
            annual_factor = (_ONE + params.ipca_in_effect / _HUNDRED) * (
                _ONE + params.spread / _HUNDRED
            )
            return (annual_factor - _ONE) * _HUNDRED
        raise TypeError(f"Unsupported rate parameters: {type(params).__name__}")

    def _compound(
        self,
        position: InvestmentPosition,
        calendar_days: int,
        business_days: int,
    ) -> tuple[Decimal, Decimal, int, DayCountBase]:
        annual_rate = self._annual_rate(position)
        base = position.day_count_base
        units = business_days if base is DayCountBase.BUSINESS_252 else calendar_days
        rate = annual_rate / _HUNDRED

        if position.capitalization is CapitalizationMode.MONTHLY:
            factor = self._monthly_factor(rate, position.start_date, position.end_date)
        elif (
            position.investment_type in (InvestmentType.CDI, InvestmentType.SELIC)
            and base is DayCountBase.CALENDAR_365
        ):
            # Indexed on a calendar base: simple proration
            factor = _ONE + rate * Decimal(units) / Decimal(int(base))
        else:
            factor = (_ONE + rate) ** (Decimal(units) / Decimal(int(base)))
        return factor, annual_rate, units, base

    def _monthly_factor(self, annual_rate: Decimal, start: date, end: date) -> Decimal:
        monthly_rate = (_ONE + annual_rate) ** (_ONE / Decimal(12)) - _ONE
        months, fraction = self._day_count.month_fraction(start, end)
        return (_ONE + monthly_rate) ** months * (_ONE + monthly_rate * fraction)

    def savings_monthly_rate(self, rule: SavingsRule | None = None) -> Decimal:
        """Monthly savings rate in percent under the current SELIC."""
        tr = rule.tr_monthly if rule and rule.tr_monthly is not None else self._rates.tr_monthly
        if self._rates.selic_annual > self._rates.savings_selic_floor:
            return _SAVINGS_FIXED_MONTHLY + tr
        return self._rates.selic_annual * _SAVINGS_SELIC_SHARE / Decimal(12) + tr

    def _savings(self, position: InvestmentPosition) -> tuple[Decimal, Decimal, int, DayCountBase]:
        monthly = self.savings_monthly_rate(position.rate_parameters) / _HUNDRED
        months = self._day_count.whole_months(position.start_date, position.end_date)
        factor = (_ONE + monthly) ** months
        annual_rate = ((_ONE + monthly) ** 12 - _ONE) * _HUNDRED
        units = (position.end_date - position.start_date).days
        return factor, annual_rate, units, DayCountBase.CALENDAR_365

    def _annualize(self, period_return: Decimal, units: int, base: DayCountBase) -> Decimal:
        if units <= 0:
            return Decimal("0")
        growth = _ONE + period_return / _HUNDRED
        return (growth ** (Decimal(int(base)) / Decimal(units)) - _ONE) * _HUNDRED
