"""
Module: fleet_engines.dashboard
Responsibility:
    Compose cash flows, the margin reserve, invested cash and the aircraft
    asset book into the figures of the financial dashboard: operating
    cash, reserve, total cash, total equity and the liquidity indicators.

Architecture position:
    Engines -- thin composition layer over the reserve state machine and
    the rateio engine. Pure; inputs arrive by value.

Definitions:
    operating cash      = settled receipts - expenses
    total cash          = operating cash + reserve balance
    invested cash       = principal of ACTIVE applications (simulations and
                          closed applications never count)
    total equity        = total cash + invested cash + asset book value
    immediate liquidity = operating cash / average monthly expense over the
                          trailing window (0 when there were no expenses)
    margin coverage     = reserve balance / required minimum * 100
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from fleet_kernel.domain.values import Currency, Money, sum_money
from fleet_kernel.logging_config import get_logger
from fleet_engines.day_count import add_months
from fleet_engines.investment import InvestmentPosition
from fleet_engines.liquidity_reserve import (
    LiquidityReserveStateMachine,
    MarginReserve,
    ReserveStatus,
)
from fleet_engines.rateio import MemberShare, RateioEngine, RateioSplit
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.dashboard")

_INDICATOR_QUANTUM = Decimal("0.01")


class CashFlowKind(str, Enum):
    EXPENSE = "expense"
    RECEIPT = "receipt"


class AssetStatus(str, Enum):
    UNDER_CONSTRUCTION = "under_construction"
    COMPLETED = "completed"
    OTHER = "other"


@dataclass(frozen=True)
class CashFlowEntry:
    """An expense or a member payment. Unsettled receipts are ignored."""

    kind: CashFlowKind
    amount: Money
    entry_date: date
    settled: bool = True


@dataclass(frozen=True)
class AssetBookEntry:
    asset_id: str
    book_value: Money
    status: AssetStatus = AssetStatus.COMPLETED


@dataclass(frozen=True)
class ReserveSummary:
    balance: Money
    required_minimum: Money
    surplus: Money
    percent_fill: Decimal
    status: ReserveStatus


@dataclass(frozen=True)
class AssetSummary:
    total: Money
    under_construction: Money
    completed: Money


@dataclass(frozen=True)
class DashboardIndicators:
    immediate_liquidity: Decimal
    margin_coverage_percent: Decimal
    total_equity: Money


@dataclass(frozen=True)
class FinancialDashboard:
    aircraft_id: str
    as_of: date
    operating_cash: Money
    reserve: ReserveSummary
    invested_cash: Money
    assets: AssetSummary
    total_cash: Money
    average_monthly_expense: Money
    indicators: DashboardIndicators


class FinancialDashboardAggregator:
    """
    Build a FinancialDashboard for one aircraft.

    Contract:
        Every input must be in the aggregator's currency. A missing
        reserve is reported as an empty reserve at the default minimum,
        which is LIQUIDITY_RISK.
    """

    def __init__(
        self,
        currency: str | Currency = "BRL",
        default_required_minimum: Money | None = None,
        expense_average_months: int = 3,
        state_machine: LiquidityReserveStateMachine | None = None,
    ):
        if expense_average_months <= 0:
            raise ValueError("expense_average_months must be positive")
        self._currency = Currency(currency) if isinstance(currency, str) else currency
        self._default_minimum = default_required_minimum or Money.of("200000", self._currency)
        self._months = expense_average_months
        self._reserves = state_machine or LiquidityReserveStateMachine()

    @traced_engine("dashboard", "1.0", fingerprint_fields=("aircraft_id", "as_of"))
    def aggregate(
        self,
        aircraft_id: str,
        as_of: date,
        cash_flows: Sequence[CashFlowEntry] = (),
        reserve: MarginReserve | None = None,
        assets: Sequence[AssetBookEntry] = (),
        investments: Sequence[InvestmentPosition] = (),
    ) -> FinancialDashboard:
        currency = self._currency
        expenses = [c for c in cash_flows if c.kind is CashFlowKind.EXPENSE]
        receipts = [c for c in cash_flows if c.kind is CashFlowKind.RECEIPT and c.settled]

        operating = sum_money((r.amount for r in receipts), currency) - sum_money(
            (e.amount for e in expenses), currency
        )

        if reserve is None:
            reserve = MarginReserve.open(aircraft_id, self._default_minimum)
        reserve_summary = ReserveSummary(
            balance=reserve.current_balance,
            required_minimum=reserve.required_minimum,
            surplus=reserve.surplus,
            percent_fill=reserve.percent_fill,
            status=self._reserves.derive_status(reserve),
        )

        invested = sum_money(
            (p.principal for p in investments if p.counts_as_invested), currency
        )

        asset_summary = AssetSummary(
            total=sum_money((a.book_value for a in assets), currency),
            under_construction=sum_money(
                (a.book_value for a in assets if a.status is AssetStatus.UNDER_CONSTRUCTION),
                currency,
            ),
            completed=sum_money(
                (a.book_value for a in assets if a.status is AssetStatus.COMPLETED),
                currency,
            ),
        )

        total_cash = operating + reserve.current_balance

        window_start = add_months(as_of, -self._months)
        recent = [e.amount for e in expenses if window_start < e.entry_date <= as_of]
        average_expense = (sum_money(recent, currency) / self._months).round()

        if average_expense.is_positive:
            liquidity = operating.ratio_to(average_expense).quantize(
                _INDICATOR_QUANTUM, rounding=ROUND_HALF_UP
            )
        else:
            liquidity = Decimal("0.00")

        dashboard = FinancialDashboard(
            aircraft_id=aircraft_id,
            as_of=as_of,
            operating_cash=operating,
            reserve=reserve_summary,
            invested_cash=invested,
            assets=asset_summary,
            total_cash=total_cash,
            average_monthly_expense=average_expense,
            indicators=DashboardIndicators(
                immediate_liquidity=liquidity,
                margin_coverage_percent=reserve.percent_fill,
                total_equity=total_cash + invested + asset_summary.total,
            ),
        )

        logger.info(
            "dashboard_aggregated",
            extra={
                "aircraft_id": aircraft_id,
                "operating_cash": str(operating.amount),
                "total_cash": str(total_cash.amount),
                "total_equity": str(dashboard.indicators.total_equity.amount),
                "reserve_status": reserve_summary.status.value,
            },
        )
        return dashboard

    def equity_by_member(
        self,
        dashboard: FinancialDashboard,
        shares: Sequence[MemberShare],
        rateio: RateioEngine | None = None,
    ) -> RateioSplit:
        """Each member's slice of total equity, by ownership share."""
        equity = dashboard.indicators.total_equity
        if equity.is_negative:
            raise ValueError(f"Cannot apportion negative equity: {equity}")
        return (rateio or RateioEngine()).split_automatic(equity.round(), shares)
