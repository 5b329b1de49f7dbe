"""
Module: fleet_engines.liquidity_reserve
Responsibility:
    The margin reserve of one aircraft: a segregated minimum-balance
    account with an append-only movement ledger. Derives the liquidity
    status, applies movements, raises liquidity alerts and summarizes
    recent activity into a liquidity report.

Architecture position:
    Engines -- pure calculation layer, zero I/O. The reserve is passed
    in and a new snapshot is returned; nothing here holds a "current"
    reserve. fleet_services.margin_reserve_service loads, serializes and
    persists snapshots.

Invariants enforced:
    - Status is derived on every read, never stored:
        balance <  minimum                         -> LIQUIDITY_RISK
        minimum <= balance < minimum * threshold%  -> ATTENTION
        balance >= minimum * threshold%            -> NORMAL
    - balance_after = balance_before + amount for every recorded movement,
      and each movement's balance_before is the previous balance_after.
    - An EMERGENCY_USE must carry a non-blank justification. No movement
      type is blocked from producing a deficit; risk is reported, the
      business action is not prevented.

Failure modes:
    - MissingJustificationError: blank emergency-use justification.
    - ValueError: threshold below 100, non-positive minimum, mixed
      currencies.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import MissingJustificationError
from fleet_kernel.logging_config import get_logger
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.liquidity_reserve")

DEFAULT_REQUIRED_MINIMUM = Decimal("200000")
DEFAULT_ALERT_THRESHOLD_PERCENT = Decimal("110")
DEFAULT_CRITICAL_DEFICIT = Decimal("50000")
DEFAULT_REPORT_WINDOW_DAYS = 30

_HUNDRED = Decimal("100")
_PERCENT_QUANTUM = Decimal("0.01")


class ReserveStatus(str, Enum):
    NORMAL = "normal"
    ATTENTION = "attention"
    LIQUIDITY_RISK = "liquidity_risk"


class MovementType(str, Enum):
    CONTRIBUTION = "contribution"
    EMERGENCY_USE = "emergency_use"
    ADJUSTMENT = "adjustment"
    YIELD = "yield"


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(str, Enum):
    RESERVE_LOW = "reserve_low"
    RESERVE_CRITICAL = "reserve_critical"


@dataclass(frozen=True)
class ReserveMovement:
    """
    A movement waiting to be applied.

    ``amount`` is signed: positive raises the balance, negative lowers it.
    The sign follows the type for every type but ADJUSTMENT: emergency
    use is always a debit, contributions and yields always credits.
    """

    movement_type: MovementType
    amount: Money
    movement_date: date
    justification: str | None = None
    member_id: str | None = None
    approved_by: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "movement_type", MovementType(self.movement_type))
        if self.movement_type is MovementType.EMERGENCY_USE:
            object.__setattr__(self, "amount", -abs(self.amount))
        elif self.movement_type in (MovementType.CONTRIBUTION, MovementType.YIELD):
            object.__setattr__(self, "amount", abs(self.amount))

    @property
    def has_justification(self) -> bool:
        return bool(self.justification and self.justification.strip())

    @classmethod
    def contribution(
        cls,
        amount: Money,
        movement_date: date,
        member_id: str | None = None,
        notes: str | None = None,
    ) -> ReserveMovement:
        """A member paying into the reserve. Always credited as positive."""
        return cls(
            MovementType.CONTRIBUTION,
            abs(amount),
            movement_date,
            member_id=member_id,
            notes=notes,
        )

    @classmethod
    def emergency_use(
        cls,
        amount: Money,
        movement_date: date,
        justification: str | None,
        approved_by: str | None = None,
        notes: str | None = None,
    ) -> ReserveMovement:
        """A withdrawal for an emergency. Always debited as negative."""
        return cls(
            MovementType.EMERGENCY_USE,
            -abs(amount),
            movement_date,
            justification=justification,
            approved_by=approved_by,
            notes=notes,
        )

    @classmethod
    def adjustment(
        cls,
        amount: Money,
        movement_date: date,
        justification: str | None = None,
        notes: str | None = None,
    ) -> ReserveMovement:
        """A signed correction of the balance."""
        return cls(
            MovementType.ADJUSTMENT,
            amount,
            movement_date,
            justification=justification,
            notes=notes,
        )

    @classmethod
    def yield_credit(cls, amount: Money, movement_date: date, notes: str | None = None) -> ReserveMovement:
        """Interest earned by the reserve's own application."""
        return cls(MovementType.YIELD, abs(amount), movement_date, notes=notes)


@dataclass(frozen=True)
class RecordedMovement:
    """A movement after application. Never mutated or deleted."""

    sequence: int
    movement_type: MovementType
    amount: Money
    movement_date: date
    balance_before: Money
    balance_after: Money
    justification: str | None = None
    member_id: str | None = None
    approved_by: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class MarginReserve:
    """
    Snapshot of one aircraft's margin reserve.

    Contract:
        Immutable. ``LiquidityReserveStateMachine.apply_movement`` returns
        the next snapshot with ``version`` incremented, which is what the
        persistence layer checks for lost updates.
    """

    aircraft_id: str
    current_balance: Money
    required_minimum: Money
    alert_threshold_percent: Decimal = DEFAULT_ALERT_THRESHOLD_PERCENT
    movements: tuple[RecordedMovement, ...] = ()
    version: int = 0

    def __post_init__(self) -> None:
        threshold = Decimal(str(self.alert_threshold_percent))
        if threshold < _HUNDRED:
            raise ValueError(
                f"alert_threshold_percent must be at least 100, got {threshold}"
            )
        object.__setattr__(self, "alert_threshold_percent", threshold)
        if not self.required_minimum.is_positive:
            raise ValueError(f"required_minimum must be positive, got {self.required_minimum}")
        if self.current_balance.currency != self.required_minimum.currency:
            raise ValueError(
                f"Currency mismatch: balance in {self.current_balance.currency}, "
                f"minimum in {self.required_minimum.currency}"
            )

    @classmethod
    def open(
        cls,
        aircraft_id: str,
        required_minimum: Money | None = None,
        alert_threshold_percent: Decimal = DEFAULT_ALERT_THRESHOLD_PERCENT,
        seed_balance: Money | None = None,
    ) -> MarginReserve:
        """A fresh reserve, empty unless a seed balance is configured."""
        minimum = required_minimum or Money.of(DEFAULT_REQUIRED_MINIMUM)
        return cls(
            aircraft_id=aircraft_id,
            current_balance=seed_balance or Money.zero(minimum.currency),
            required_minimum=minimum,
            alert_threshold_percent=alert_threshold_percent,
        )

    @property
    def currency(self):
        return self.required_minimum.currency

    @property
    def attention_floor(self) -> Money:
        """Balance below which the reserve is no longer NORMAL."""
        return self.required_minimum * (self.alert_threshold_percent / _HUNDRED)

    @property
    def surplus(self) -> Money:
        """Balance minus minimum. Negative when the reserve is short."""
        return self.current_balance - self.required_minimum

    @property
    def percent_fill(self) -> Decimal:
        ratio = self.current_balance.ratio_to(self.required_minimum) * _HUNDRED
        return ratio.quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)

    @property
    def last_sequence(self) -> int:
        return self.movements[-1].sequence if self.movements else 0


@dataclass(frozen=True)
class LiquidityAlert:
    aircraft_id: str
    alert_type: AlertType
    severity: AlertSeverity
    balance: Money
    required_minimum: Money
    deficit: Money
    message: str


@dataclass(frozen=True)
class LiquidityReport:
    """Liquidity summary of one reserve over a trailing window."""

    aircraft_id: str
    as_of: date
    window_days: int
    status: ReserveStatus
    current_balance: Money
    required_minimum: Money
    surplus: Money
    percent_fill: Decimal
    average_balance: Money
    movement_count: int
    movements_below_minimum: int
    last_contribution: RecordedMovement | None
    last_emergency_use: RecordedMovement | None


class LiquidityReserveStateMachine:
    """
    Status derivation and movement application for margin reserves.

    Contract:
        Stateless. ``derive_status`` is a pure read; ``apply_movement``
        returns a new snapshot. Callers are responsible for serializing
        ``apply_movement`` per reserve.
    """

    def derive_status(self, reserve: MarginReserve) -> ReserveStatus:
        """Recompute the liquidity status from balance, minimum and threshold."""
        balance = reserve.current_balance
        if balance < reserve.required_minimum:
            return ReserveStatus.LIQUIDITY_RISK
        if balance < reserve.attention_floor:
            return ReserveStatus.ATTENTION
        return ReserveStatus.NORMAL

    def check_movement(self, aircraft_id: str, movement: ReserveMovement) -> None:
        """Reject a movement that no reserve may accept."""
        if movement.movement_type is MovementType.EMERGENCY_USE and not movement.has_justification:
            logger.warning(
                "reserve_emergency_use_rejected",
                extra={
                    "aircraft_id": aircraft_id,
                    "amount": str(movement.amount.amount),
                },
            )
            raise MissingJustificationError(aircraft_id, movement.amount.amount)

    @traced_engine("liquidity_reserve", "1.0", fingerprint_fields=("reserve", "movement"))
    def apply_movement(self, reserve: MarginReserve, movement: ReserveMovement) -> MarginReserve:
        """
        Apply ``movement`` and return the next snapshot.

        Raises:
            MissingJustificationError: EMERGENCY_USE with a blank justification.
            ValueError: movement currency differs from the reserve's.
        """
        self.check_movement(reserve.aircraft_id, movement)

        before = reserve.current_balance
        after = before + movement.amount
        recorded = RecordedMovement(
            sequence=reserve.last_sequence + 1,
            movement_type=movement.movement_type,
            amount=movement.amount,
            movement_date=movement.movement_date,
            balance_before=before,
            balance_after=after,
            justification=movement.justification,
            member_id=movement.member_id,
            approved_by=movement.approved_by,
            notes=movement.notes,
        )
        updated = replace(
            reserve,
            current_balance=after,
            movements=reserve.movements + (recorded,),
            version=reserve.version + 1,
        )
        status = self.derive_status(updated)

        logger.info(
            "reserve_movement_applied",
            extra={
                "aircraft_id": reserve.aircraft_id,
                "movement_type": movement.movement_type.value,
                "amount": str(movement.amount.amount),
                "balance_before": str(before.amount),
                "balance_after": str(after.amount),
                "status": status.value,
                "version": updated.version,
            },
        )
        if movement.movement_type is MovementType.EMERGENCY_USE:
            logger.warning(
                "reserve_emergency_use",
                extra={
                    "aircraft_id": reserve.aircraft_id,
                    "amount": str(movement.amount.amount),
                    "justification": movement.justification,
                    "approved_by": movement.approved_by,
                    "status": status.value,
                },
            )
        return updated

    def evaluate_alert(
        self,
        reserve: MarginReserve,
        critical_deficit: Money | None = None,
    ) -> LiquidityAlert | None:
        """
        Alert to raise for the current snapshot, if any.

        Only LIQUIDITY_RISK raises an alert. A deficit larger than
        ``critical_deficit`` makes it CRITICAL, otherwise WARNING.
        """
        if self.derive_status(reserve) is not ReserveStatus.LIQUIDITY_RISK:
            return None
        threshold = critical_deficit or Money(DEFAULT_CRITICAL_DEFICIT, reserve.currency)
        deficit = -reserve.surplus
        if deficit > threshold:
            alert_type, severity = AlertType.RESERVE_CRITICAL, AlertSeverity.CRITICAL
            message = (
                f"Margin reserve critically low: {reserve.current_balance} against a "
                f"minimum of {reserve.required_minimum} (deficit {deficit})"
            )
        else:
            alert_type, severity = AlertType.RESERVE_LOW, AlertSeverity.WARNING
            message = (
                f"Margin reserve below minimum: {reserve.current_balance} against "
                f"{reserve.required_minimum}"
            )
        return LiquidityAlert(
            aircraft_id=reserve.aircraft_id,
            alert_type=alert_type,
            severity=severity,
            balance=reserve.current_balance,
            required_minimum=reserve.required_minimum,
            deficit=deficit,
            message=message,
        )

    def build_liquidity_report(
        self,
        reserve: MarginReserve,
        as_of: date,
        window_days: int = DEFAULT_REPORT_WINDOW_DAYS,
    ) -> LiquidityReport:
        """Summarize the movements dated within ``window_days`` before ``as_of``."""
        if window_days <= 0:
            raise ValueError(f"window_days must be positive, got {window_days}")
        window_start = as_of - timedelta(days=window_days)
        recent = [
            m for m in reserve.movements if window_start <= m.movement_date <= as_of
        ]

        if recent:
            total = sum((m.balance_after.amount for m in recent), Decimal("0"))
            average = Money(total / len(recent), reserve.currency).round()
        else:
            average = reserve.current_balance

        below = sum(1 for m in recent if m.balance_after < reserve.required_minimum)

        def _last(kind: MovementType) -> RecordedMovement | None:
            matches = [m for m in reserve.movements if m.movement_type is kind]
            return max(matches, key=lambda m: (m.movement_date, m.sequence)) if matches else None

        return LiquidityReport(
            aircraft_id=reserve.aircraft_id,
            as_of=as_of,
            window_days=window_days,
            status=self.derive_status(reserve),
            current_balance=reserve.current_balance,
            required_minimum=reserve.required_minimum,
            surplus=reserve.surplus,
            percent_fill=reserve.percent_fill,
            average_balance=average,
            movement_count=len(recent),
            movements_below_minimum=below,
            last_contribution=_last(MovementType.CONTRIBUTION),
            last_emergency_use=_last(MovementType.EMERGENCY_USE),
        )
