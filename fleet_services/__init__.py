"""
fleet_services -- persistence and orchestration around the pure engines.

Services receive a SQLAlchemy Session from the caller, flush within it
and leave commit/rollback to the caller. The one exception is
``apply_movement_serialized``, which owns its transaction so it can hold
the per-aircraft lock across the commit.
"""

from fleet_services.dashboard_service import (
    AssetBookProvider,
    CashFlowProvider,
    FinancialDashboardService,
)
from fleet_services.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fleet_services.investment_service import InvestmentService
from fleet_services.margin_reserve_service import (
    MarginReserveService,
    ReserveLockRegistry,
    apply_movement_serialized,
)
from fleet_services.rateio_service import RateioService, ShareProvider

__all__ = [
    "AssetBookProvider",
    "CashFlowProvider",
    "FinancialDashboardService",
    "InvestmentService",
    "MarginReserveService",
    "RateioService",
    "ReserveLockRegistry",
    "ShareProvider",
    "apply_movement_serialized",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
]
