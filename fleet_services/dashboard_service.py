"""
FinancialDashboardService -- read-only composition of the dashboard.

Gathers the persisted reserve and active applications of one aircraft,
asks the surrounding application for its cash flows and asset book, and
hands everything to FinancialDashboardAggregator. Writes nothing.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol

from sqlalchemy.orm import Session

from fleet_config import get_active_config
from fleet_config.schema import FinanceEngineConfig
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.logging_config import get_logger
from fleet_engines.dashboard import (
    AssetBookEntry,
    CashFlowEntry,
    FinancialDashboard,
    FinancialDashboardAggregator,
)
from fleet_engines.rateio import RateioEngine, RateioSplit
from fleet_services.investment_service import InvestmentService
from fleet_services.margin_reserve_service import MarginReserveService
from fleet_services.rateio_service import ShareProvider

logger = get_logger("services.dashboard")


class CashFlowProvider(Protocol):
    """Expenses and member payments of an aircraft up to a date."""

    def get_cash_flows(self, aircraft_id: str, as_of: date) -> Sequence[CashFlowEntry]:
        ...


class AssetBookProvider(Protocol):
    def get_assets(self, aircraft_id: str) -> Sequence[AssetBookEntry]:
        ...


class FinancialDashboardService:
    def __init__(
        self,
        session: Session,
        cash_flows: CashFlowProvider,
        assets: AssetBookProvider | None = None,
        config: FinanceEngineConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._cash_flows = cash_flows
        self._assets = assets
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._reserves = MarginReserveService(session, config=self._config, clock=self._clock)
        self._investments = InvestmentService(session, config=self._config, clock=self._clock)
        self._aggregator = FinancialDashboardAggregator(
            currency=self._config.currency,
            default_required_minimum=self._config.required_minimum,
            expense_average_months=self._config.dashboard.expense_average_months,
        )

    def build(self, aircraft_id: str, as_of: date | None = None) -> FinancialDashboard:
        """
        Dashboard of ``aircraft_id`` as of ``as_of`` (today by default).

        An aircraft without a reserve is shown with an empty one at the
        configured minimum; no reserve is opened by reading.
        """
        as_of = as_of or self._clock.today()
        assets = self._assets.get_assets(aircraft_id) if self._assets is not None else ()
        return self._aggregator.aggregate(
            aircraft_id,
            as_of,
            cash_flows=self._cash_flows.get_cash_flows(aircraft_id, as_of),
            reserve=self._reserves.find_reserve(aircraft_id),
            assets=assets,
            investments=self._investments.list_active(aircraft_id),
        )

    def equity_by_member(
        self,
        aircraft_id: str,
        share_provider: ShareProvider,
        as_of: date | None = None,
    ) -> RateioSplit:
        """Each member's slice of the aircraft's total equity."""
        as_of = as_of or self._clock.today()
        dashboard = self.build(aircraft_id, as_of)
        shares = share_provider.get_active_shares(aircraft_id, as_of)
        split = self._aggregator.equity_by_member(
            dashboard,
            shares,
            RateioEngine(self._config.rateio.manual_split_tolerance),
        )
        logger.info(
            "equity_by_member_computed",
            extra={
                "aircraft_id": aircraft_id,
                "total_equity": str(dashboard.indicators.total_equity.amount),
                "member_count": split.member_count,
            },
        )
        return split
