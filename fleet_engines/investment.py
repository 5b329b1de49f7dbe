"""
Module: fleet_engines.investment
Responsibility:
    The value types for one cash application: investment type, rate
    parameters (one variant per formula), capitalization mode and the
    InvestmentPosition with its SIMULATED -> ACTIVE -> REDEEMED/CANCELED
    lifecycle.

Architecture position:
    Engines -- pure value layer, zero I/O. Consumed by the yield calculator
    and persisted by fleet_services.investment_service.

Invariants enforced:
    - Rate parameters are checked when the position is built, not when it
      is calculated: a CDI position always carries an IndexedRate, an
      IPCA+ position always carries an InflationLinkedRate, and so on.
    - REDEEMED and CANCELED positions never change again.
    - A simulation is never counted as invested cash.

Failure modes:
    - MissingParameterError for absent or mismatched rate parameters.
    - ValueError for out-of-range rate values (negative percent of index).
    - InvestmentImmutableError / InvalidInvestmentTransitionError from the
      lifecycle methods.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Union
from uuid import UUID

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import (
    InvalidInvestmentTransitionError,
    InvestmentImmutableError,
    MissingParameterError,
)
from fleet_engines.day_count import DayCountBase


class InvestmentType(str, Enum):
    CDI = "cdi"
    SELIC = "selic"
    POST_FIXED = "post_fixed"
    PRE_FIXED = "pre_fixed"
    CDB = "cdb"
    LCI = "lci"
    LCA = "lca"
    IPCA_PLUS = "ipca_plus"
    SAVINGS = "savings"


class CapitalizationMode(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


class InvestmentStatus(str, Enum):
    SIMULATED = "simulated"
    ACTIVE = "active"
    REDEEMED = "redeemed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (InvestmentStatus.REDEEMED, InvestmentStatus.CANCELED)


def _percent(owner: str, name: str, value, *, allow_zero: bool = True) -> Decimal:
    if value is None:
        raise MissingParameterError(owner, name)
    if isinstance(value, float):
        raise TypeError(f"{owner}.{name} must be Decimal, str or int, not float")
    value = Decimal(str(value)) if not isinstance(value, Decimal) else value
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{owner}.{name} must be {'>=' if allow_zero else '>'} 0, got {value}")
    return value


@dataclass(frozen=True)
class IndexedRate:
    """Percent of a floating reference rate (CDI or SELIC), e.g. 110 for 110% of CDI."""

    percent_of_index: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "percent_of_index",
            _percent("IndexedRate", "percent_of_index", self.percent_of_index, allow_zero=False),
        )


@dataclass(frozen=True)
class FixedRate:
    """Flat nominal annual rate in percent (12 means 12% a.a.)."""

    annual_rate: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "annual_rate", _percent("FixedRate", "annual_rate", self.annual_rate)
        )


@dataclass(frozen=True)
class InflationLinkedRate:
    """
    IPCA plus a real spread, both annual percentages.

    ``ipca_realized``, once known, replaces the expectation in the
    compound factor.
    """

    ipca_expected: Decimal
    spread: Decimal
    ipca_realized: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "ipca_expected",
            _percent("InflationLinkedRate", "ipca_expected", self.ipca_expected),
        )
        object.__setattr__(
            self, "spread", _percent("InflationLinkedRate", "spread", self.spread)
        )
        if self.ipca_realized is not None:
            object.__setattr__(
                self,
                "ipca_realized",
                _percent("InflationLinkedRate", "ipca_realized", self.ipca_realized),
            )

    @property
    def ipca_in_effect(self) -> Decimal:
        return self.ipca_realized if self.ipca_realized is not None else self.ipca_expected


@dataclass(frozen=True)
class SavingsRule:
    """Savings account legal rule. ``tr_monthly`` overrides the reference TR."""

    tr_monthly: Decimal | None = None

    def __post_init__(self) -> None:
        if self.tr_monthly is not None:
            object.__setattr__(
                self, "tr_monthly", _percent("SavingsRule", "tr_monthly", self.tr_monthly)
            )


RateParameters = Union[IndexedRate, FixedRate, InflationLinkedRate, SavingsRule]

# Variant required by each type, and the parameter named when it is missing.
_REQUIRED_VARIANT: dict[InvestmentType, tuple[type, str]] = {
    InvestmentType.CDI: (IndexedRate, "percent_of_index"),
    InvestmentType.SELIC: (IndexedRate, "percent_of_index"),
    InvestmentType.POST_FIXED: (FixedRate, "annual_rate"),
    InvestmentType.PRE_FIXED: (FixedRate, "annual_rate"),
    InvestmentType.CDB: (FixedRate, "annual_rate"),
    InvestmentType.LCI: (FixedRate, "annual_rate"),
    InvestmentType.LCA: (FixedRate, "annual_rate"),
    InvestmentType.IPCA_PLUS: (InflationLinkedRate, "ipca_expected"),
    InvestmentType.SAVINGS: (SavingsRule, "tr_monthly"),
}

# Types that fall back to a default variant when none is given.
_DEFAULT_VARIANT: dict[InvestmentType, RateParameters] = {
    InvestmentType.SELIC: IndexedRate(Decimal("100")),
    InvestmentType.SAVINGS: SavingsRule(),
}


@dataclass(frozen=True)
class InvestmentPosition:
    """
    One cash application, simulated or real.

    Contract:
        Immutable. Lifecycle methods return a new position. The date
        range and principal are checked by the yield calculator, so an
        invalid simulation can still be built and reported back to the
        user with the exact error.

    Guarantees:
        - rate_parameters is always the variant its investment_type needs.
        - is_simulation is True exactly while status is SIMULATED.
    """

    principal: Money
    start_date: date
    end_date: date
    investment_type: InvestmentType
    rate_parameters: RateParameters | None = None
    day_count_base: DayCountBase = DayCountBase.BUSINESS_252
    capitalization: CapitalizationMode = CapitalizationMode.DAILY
    status: InvestmentStatus = InvestmentStatus.SIMULATED
    estimated_final_value: Money | None = None
    realized_final_value: Money | None = None
    cash_account_id: str | None = None
    redeemed_on: date | None = None
    position_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "investment_type", InvestmentType(self.investment_type))
        object.__setattr__(self, "day_count_base", DayCountBase(self.day_count_base))
        object.__setattr__(self, "capitalization", CapitalizationMode(self.capitalization))
        object.__setattr__(self, "status", InvestmentStatus(self.status))

        expected, parameter = _REQUIRED_VARIANT[self.investment_type]
        params = self.rate_parameters
        if params is None:
            params = _DEFAULT_VARIANT.get(self.investment_type)
            if params is None:
                raise MissingParameterError(self.investment_type.value, parameter)
            object.__setattr__(self, "rate_parameters", params)
        if not isinstance(params, expected):
            raise MissingParameterError(
                self.investment_type.value,
                parameter,
                f"expected {expected.__name__}, got {type(params).__name__}",
            )

    @property
    def is_simulation(self) -> bool:
        """A simulation never affects cash balances."""
        return self.status is InvestmentStatus.SIMULATED

    @property
    def counts_as_invested(self) -> bool:
        return self.status is InvestmentStatus.ACTIVE

    def _guard(self, target: InvestmentStatus, allowed_from: InvestmentStatus) -> None:
        ident = str(self.position_id) if self.position_id else "<unsaved>"
        if self.status.is_terminal:
            raise InvestmentImmutableError(ident, self.status.value)
        if self.status is not allowed_from:
            raise InvalidInvestmentTransitionError(ident, self.status.value, target.value)

    def with_estimate(self, estimated_final_value: Money) -> InvestmentPosition:
        """Cache a projection on a simulated or active position."""
        if self.status.is_terminal:
            ident = str(self.position_id) if self.position_id else "<unsaved>"
            raise InvestmentImmutableError(ident, self.status.value)
        return replace(self, estimated_final_value=estimated_final_value)

    def commit(
        self,
        cash_account_id: str,
        estimated_final_value: Money | None = None,
    ) -> InvestmentPosition:
        """Turn a simulation into a real application against a cash account."""
        self._guard(InvestmentStatus.ACTIVE, InvestmentStatus.SIMULATED)
        if not cash_account_id:
            raise ValueError("A committed application needs a cash account")
        return replace(
            self,
            status=InvestmentStatus.ACTIVE,
            cash_account_id=cash_account_id,
            estimated_final_value=estimated_final_value or self.estimated_final_value,
        )

    def redeem(self, realized_final_value: Money, redeemed_on: date) -> InvestmentPosition:
        """Close an active application with the amount actually received."""
        self._guard(InvestmentStatus.REDEEMED, InvestmentStatus.ACTIVE)
        if realized_final_value.currency != self.principal.currency:
            raise ValueError(
                f"Currency mismatch: realized value in {realized_final_value.currency}, "
                f"principal in {self.principal.currency}"
            )
        if realized_final_value.is_negative:
            raise ValueError("Realized value cannot be negative")
        return replace(
            self,
            status=InvestmentStatus.REDEEMED,
            realized_final_value=realized_final_value,
            redeemed_on=redeemed_on,
        )

    def cancel(self) -> InvestmentPosition:
        """Cancel a simulation or an active application."""
        ident = str(self.position_id) if self.position_id else "<unsaved>"
        if self.status.is_terminal:
            raise InvestmentImmutableError(ident, self.status.value)
        return replace(self, status=InvestmentStatus.CANCELED)
