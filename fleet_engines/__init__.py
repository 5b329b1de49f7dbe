"""
Module: fleet_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: day
    count, yield, rateio, margin reserve, TBO provision and dashboard.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import fleet_kernel domain, exceptions and logging only.
    MUST NOT import fleet_services or fleet_config.

Invariants enforced:
    - Engines never read the clock; dates arrive as parameters.
    - Decimal-only arithmetic.
    - Identical inputs always produce identical outputs.

Usage:
    from fleet_engines import YieldEngine, RateioEngine, LiquidityReserveStateMachine
"""

from fleet_engines.dashboard import (
    AssetBookEntry,
    AssetStatus,
    CashFlowEntry,
    CashFlowKind,
    FinancialDashboard,
    FinancialDashboardAggregator,
)
from fleet_engines.day_count import DayCountBase, DayCountCalculator, add_months
from fleet_engines.investment import (
    CapitalizationMode,
    FixedRate,
    IndexedRate,
    InflationLinkedRate,
    InvestmentPosition,
    InvestmentStatus,
    InvestmentType,
    SavingsRule,
)
from fleet_engines.liquidity_reserve import (
    AlertSeverity,
    AlertType,
    LiquidityAlert,
    LiquidityReport,
    LiquidityReserveStateMachine,
    MarginReserve,
    MovementType,
    RecordedMovement,
    ReserveMovement,
    ReserveStatus,
)
from fleet_engines.rateio import (
    MemberAllocation,
    MemberShare,
    RateioEngine,
    RateioSplit,
    SplitMode,
    TransactionKind,
)
from fleet_engines.tbo import TBOProvision, TBOProvisionCalculator
from fleet_engines.yield_calculator import ReferenceRates, YieldEngine, YieldResult

__all__ = [
    "AlertSeverity",
    "AlertType",
    "AssetBookEntry",
    "AssetStatus",
    "CapitalizationMode",
    "CashFlowEntry",
    "CashFlowKind",
    "DayCountBase",
    "DayCountCalculator",
    "FinancialDashboard",
    "FinancialDashboardAggregator",
    "FixedRate",
    "IndexedRate",
    "InflationLinkedRate",
    "InvestmentPosition",
    "InvestmentStatus",
    "InvestmentType",
    "LiquidityAlert",
    "LiquidityReport",
    "LiquidityReserveStateMachine",
    "MarginReserve",
    "MemberAllocation",
    "MemberShare",
    "MovementType",
    "RateioEngine",
    "RateioSplit",
    "RecordedMovement",
    "ReferenceRates",
    "ReserveMovement",
    "ReserveStatus",
    "SavingsRule",
    "SplitMode",
    "TBOProvision",
    "TBOProvisionCalculator",
    "TransactionKind",
    "YieldEngine",
    "YieldResult",
    "add_months",
]
