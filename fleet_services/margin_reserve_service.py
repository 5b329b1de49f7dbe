"""
MarginReserveService -- the only writer of margin reserve state.

Responsibility:
    Opens reserves, applies movements through the pure
    LiquidityReserveStateMachine, persists the movement ledger, keeps
    liquidity alerts current and serves liquidity reports.

Architecture position:
    Services -- imperative shell. The state machine decides, this module
    loads and persists. Flushes only; the caller owns commit/rollback,
    except for ``apply_movement_serialized`` which runs its own
    transaction.

Invariants enforced:
    - One writer per aircraft reserve at a time:
        1. ReserveLockRegistry serializes writers inside the process;
        2. SELECT ... FOR UPDATE serializes them in PostgreSQL;
        3. the version counter rejects any write made from a stale read.
    - The persisted balance always equals the last movement's
      balance_after.
    - At most one active liquidity alert per reserve.

Failure modes:
    - ReserveNotFoundError: read of an aircraft without a reserve.
    - MissingJustificationError: emergency use without justification.
    - OptimisticLockError: expected_version mismatch or stale flush.

Audit relevance:
    Every applied movement is a ledger row with before/after balances and
    the acting user. Emergency uses are additionally logged at WARNING.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from fleet_config import get_active_config
from fleet_config.schema import FinanceEngineConfig
from fleet_kernel.db.engine import session_scope
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import OptimisticLockError, ReserveNotFoundError
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_engines.liquidity_reserve import (
    LiquidityAlert,
    LiquidityReport,
    LiquidityReserveStateMachine,
    MarginReserve,
    ReserveMovement,
    ReserveStatus,
)
from fleet_services.orm import (
    LiquidityAlertModel,
    MarginReserveModel,
    MarginReserveMovementModel,
)

logger = get_logger("services.margin_reserve")


class ReserveLockRegistry:
    """
    One lock per aircraft, created on first use.

    Writers for different aircraft never wait on each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, aircraft_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(aircraft_id)
            if lock is None:
                lock = self._locks[aircraft_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, aircraft_id: str) -> Iterator[None]:
        with self.lock_for(aircraft_id):
            yield

    def __len__(self) -> int:
        return len(self._locks)


_default_registry = ReserveLockRegistry()


class MarginReserveService:
    """
    Persistence shell around LiquidityReserveStateMachine.

    Contract:
        Methods flush within the caller's transaction and never commit.
        The clock is injected; ``date.today()`` is never called directly.
    """

    def __init__(
        self,
        session: Session,
        config: FinanceEngineConfig | None = None,
        clock: Clock | None = None,
        state_machine: LiquidityReserveStateMachine | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._machine = state_machine or LiquidityReserveStateMachine()

    # =========================================================================
    # Reads
    # =========================================================================

    def _find(self, aircraft_id: str, for_update: bool = False) -> MarginReserveModel | None:
        stmt = select(MarginReserveModel).where(MarginReserveModel.aircraft_id == aircraft_id)
        if for_update:
            # Row-level lock; populate_existing discards any stale identity-map copy
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def get_reserve(self, aircraft_id: str) -> MarginReserve:
        """
        Raises:
            ReserveNotFoundError: no reserve has been opened for the aircraft.
        """
        model = self._find(aircraft_id)
        if model is None:
            raise ReserveNotFoundError(aircraft_id)
        return model.to_dto()

    def find_reserve(self, aircraft_id: str) -> MarginReserve | None:
        model = self._find(aircraft_id)
        return model.to_dto() if model is not None else None

    def derive_status(self, aircraft_id: str) -> ReserveStatus:
        return self._machine.derive_status(self.get_reserve(aircraft_id))

    def active_alerts(self, aircraft_id: str) -> list[LiquidityAlert]:
        rows = self._session.execute(
            select(LiquidityAlertModel)
            .where(LiquidityAlertModel.aircraft_id == aircraft_id)
            .where(LiquidityAlertModel.is_active.is_(True))
            .order_by(LiquidityAlertModel.raised_at)
        ).scalars()
        return [row.to_dto() for row in rows]

    def liquidity_report(self, aircraft_id: str, as_of: date | None = None) -> LiquidityReport:
        return self._machine.build_liquidity_report(
            self.get_reserve(aircraft_id),
            as_of or self._clock.today(),
            self._config.reserve.report_window_days,
        )

    # =========================================================================
    # Writes
    # =========================================================================

    def get_or_create_reserve(self, aircraft_id: str, actor_id: UUID) -> MarginReserve:
        """
        Return the aircraft's reserve, opening it with the configured
        policy on first use.
        """
        return self._get_or_create_model(aircraft_id, actor_id).to_dto()

    def _get_or_create_model(self, aircraft_id: str, actor_id: UUID) -> MarginReserveModel:
        model = self._find(aircraft_id, for_update=True)
        if model is not None:
            return model

        reserve_cfg = self._config.reserve
        opened = MarginReserve.open(
            aircraft_id,
            required_minimum=self._config.required_minimum,
            alert_threshold_percent=reserve_cfg.alert_threshold_percent,
            seed_balance=self._config.money(reserve_cfg.seed_balance),
        )

        # Another writer may open the same reserve concurrently; the unique
        # constraint on aircraft_id decides, and the loser re-reads.
        savepoint = self._session.begin_nested()
        try:
            model = MarginReserveModel.from_dto(opened, created_by_id=actor_id)
            self._session.add(model)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("reserve_open_race_lost", extra={"aircraft_id": aircraft_id})
            model = self._find(aircraft_id, for_update=True)
            if model is None:
                raise
            return model

        logger.info(
            "reserve_opened",
            extra={
                "aircraft_id": aircraft_id,
                "required_minimum": str(opened.required_minimum.amount),
                "alert_threshold_percent": str(opened.alert_threshold_percent),
                "seed_balance": str(opened.current_balance.amount),
                "status": self._machine.derive_status(opened).value,
            },
        )
        self._refresh_alerts(model, opened, actor_id)
        self._session.flush()
        return model

    def apply_movement(
        self,
        aircraft_id: str,
        movement: ReserveMovement,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> MarginReserve:
        """
        Apply one movement and persist it.

        Args:
            expected_version: version the caller last read. When given, a
                reserve that has moved on since is rejected instead of
                being silently overwritten.

        Raises:
            MissingJustificationError: emergency use without justification.
            OptimisticLockError: the reserve changed since ``expected_version``
                or since it was loaded.
        """
        with LogContext.bind(aircraft_id=aircraft_id, actor_id=str(actor_id)):
            # A rejected movement must not open a reserve as a side effect
            self._machine.check_movement(aircraft_id, movement)
            model = self._get_or_create_model(aircraft_id, actor_id)

            if expected_version is not None and model.version != expected_version:
                logger.warning(
                    "reserve_version_conflict",
                    extra={
                        "expected_version": expected_version,
                        "actual_version": model.version,
                    },
                )
                raise OptimisticLockError(
                    "MarginReserve", aircraft_id, expected_version, model.version
                )

            snapshot = model.to_dto()
            updated = self._machine.apply_movement(snapshot, movement)
            recorded = updated.movements[-1]

            model.current_balance = updated.current_balance.amount
            # Always UPDATE the row so the version counter moves, even for a zero amount
            flag_modified(model, "current_balance")
            model.updated_by_id = actor_id
            model.movements.append(
                MarginReserveMovementModel.from_dto(recorded, created_by_id=actor_id)
            )
            try:
                # The alert query autoflushes the reserve row
                self._refresh_alerts(model, updated, actor_id)
                self._session.flush()
            except StaleDataError as exc:
                logger.warning(
                    "reserve_stale_write",
                    extra={"expected_version": snapshot.version},
                )
                raise OptimisticLockError(
                    "MarginReserve", aircraft_id, snapshot.version
                ) from exc

            # INVARIANT: the row's version counter tracks the snapshot version
            assert model.version == updated.version, (
                f"Version drift on reserve {aircraft_id}: "
                f"row {model.version}, snapshot {updated.version}"
            )
            return updated

    def register_contribution(
        self,
        aircraft_id: str,
        amount: Money,
        actor_id: UUID,
        movement_date: date | None = None,
        member_id: str | None = None,
        notes: str | None = None,
    ) -> MarginReserve:
        movement = ReserveMovement.contribution(
            amount, movement_date or self._clock.today(), member_id=member_id, notes=notes
        )
        return self.apply_movement(aircraft_id, movement, actor_id)

    def register_emergency_use(
        self,
        aircraft_id: str,
        amount: Money,
        justification: str | None,
        actor_id: UUID,
        movement_date: date | None = None,
        approved_by: str | None = None,
        notes: str | None = None,
    ) -> MarginReserve:
        movement = ReserveMovement.emergency_use(
            amount,
            movement_date or self._clock.today(),
            justification,
            approved_by=approved_by,
            notes=notes,
        )
        return self.apply_movement(aircraft_id, movement, actor_id)

    def register_adjustment(
        self,
        aircraft_id: str,
        amount: Money,
        actor_id: UUID,
        justification: str | None = None,
        movement_date: date | None = None,
    ) -> MarginReserve:
        movement = ReserveMovement.adjustment(
            amount, movement_date or self._clock.today(), justification=justification
        )
        return self.apply_movement(aircraft_id, movement, actor_id)

    def register_yield(
        self,
        aircraft_id: str,
        amount: Money,
        actor_id: UUID,
        movement_date: date | None = None,
    ) -> MarginReserve:
        movement = ReserveMovement.yield_credit(amount, movement_date or self._clock.today())
        return self.apply_movement(aircraft_id, movement, actor_id)

    # =========================================================================
    # Alerts
    # =========================================================================

    def _refresh_alerts(
        self,
        model: MarginReserveModel,
        reserve: MarginReserve,
        actor_id: UUID,
    ) -> None:
        """Resolve the active alert and raise a new one if still at risk."""
        now = self._clock.now_utc()
        active = self._session.execute(
            select(LiquidityAlertModel)
            .where(LiquidityAlertModel.reserve_id == model.id)
            .where(LiquidityAlertModel.is_active.is_(True))
        ).scalars().all()
        for row in active:
            row.is_active = False
            row.resolved_at = now
            row.updated_by_id = actor_id
            logger.info(
                "liquidity_alert_resolved",
                extra={"aircraft_id": reserve.aircraft_id, "alert_id": str(row.id)},
            )

        alert = self._machine.evaluate_alert(reserve, self._config.critical_deficit)
        if alert is None:
            return
        self._session.add(
            LiquidityAlertModel.from_dto(alert, model.id, raised_at=now, created_by_id=actor_id)
        )
        logger.warning(
            "liquidity_alert_raised",
            extra={
                "aircraft_id": reserve.aircraft_id,
                "alert_type": alert.alert_type.value,
                "severity": alert.severity.value,
                "balance": str(alert.balance.amount),
                "deficit": str(alert.deficit.amount),
            },
        )


def apply_movement_serialized(
    session_factory: Callable[[], Session],
    aircraft_id: str,
    movement: ReserveMovement,
    actor_id: UUID,
    config: FinanceEngineConfig | None = None,
    clock: Clock | None = None,
    registry: ReserveLockRegistry | None = None,
    expected_version: int | None = None,
) -> MarginReserve:
    """
    Apply ``movement`` in its own transaction while holding the aircraft lock.

    The lock covers load, apply, flush and commit, so two writers for the
    same aircraft can never interleave inside this process. On any error
    the transaction is rolled back and the error re-raised.
    """
    registry = registry or _default_registry
    with registry.hold(aircraft_id):
        with session_scope(session_factory) as session:
            service = MarginReserveService(session, config=config, clock=clock)
            return service.apply_movement(
                aircraft_id, movement, actor_id, expected_version=expected_version
            )
