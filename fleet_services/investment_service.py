"""
InvestmentService -- simulations and real cash applications.

Responsibility:
    Runs yield projections, stores simulations, commits a simulation into
    a real application, redeems and cancels applications. Lifecycle rules
    live in InvestmentPosition; projections come from YieldEngine.

Architecture position:
    Services -- imperative shell over fleet_engines.investment and
    fleet_engines.yield_calculator. Flushes only; the caller commits.

Invariants enforced:
    - A simulation never counts as invested cash (only ACTIVE does).
    - REDEEMED and CANCELED positions never change again (lifecycle
      methods plus the ORM listeners in fleet_services.immutability).
    - Reference rates come from the active configuration.

Failure modes:
    - InvestmentNotFoundError: unknown position id.
    - InvestmentImmutableError / InvalidInvestmentTransitionError.
    - CalculationError subclasses from the yield engine.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_config import get_active_config
from fleet_config.schema import FinanceEngineConfig
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import InvestmentNotFoundError
from fleet_kernel.logging_config import get_logger
from fleet_engines.investment import InvestmentPosition, InvestmentStatus
from fleet_engines.yield_calculator import YieldEngine, YieldResult
from fleet_services.orm import InvestmentPositionModel

logger = get_logger("services.investment")


class InvestmentService:
    """
    Persisted lifecycle of investment positions.

    Contract:
        Every write goes through an InvestmentPosition lifecycle method
        first, so an illegal transition is rejected before any SQL runs.
    """

    def __init__(
        self,
        session: Session,
        config: FinanceEngineConfig | None = None,
        clock: Clock | None = None,
        yield_engine: YieldEngine | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._engine = yield_engine or YieldEngine(self._config.reference_rates)

    @property
    def yield_engine(self) -> YieldEngine:
        return self._engine

    def project(self, position: InvestmentPosition) -> YieldResult:
        """Pure projection. Nothing is stored."""
        return self._engine.calculate(position)

    def simulate(
        self,
        position: InvestmentPosition,
        actor_id: UUID,
        aircraft_id: str | None = None,
    ) -> tuple[InvestmentPosition, YieldResult]:
        """
        Project ``position`` and store it as a simulation.

        The position is forced to SIMULATED; a simulation is never cash.
        """
        if position.status is not InvestmentStatus.SIMULATED:
            raise ValueError(f"Only new positions can be simulated, got {position.status.value}")
        result = self._engine.calculate(position)
        simulated = position.with_estimate(result.final_value)

        model = InvestmentPositionModel.from_dto(
            simulated, created_by_id=actor_id, aircraft_id=aircraft_id
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "investment_simulated",
            extra={
                "position_id": str(model.id),
                "aircraft_id": aircraft_id,
                "investment_type": position.investment_type.value,
                "principal": str(position.principal.amount),
                "estimated_final_value": str(result.final_value.amount),
            },
        )
        return model.to_dto(), result

    def get(self, position_id: UUID) -> InvestmentPosition:
        return self._load(position_id).to_dto()

    def list_positions(
        self,
        aircraft_id: str | None = None,
        status: InvestmentStatus | None = None,
    ) -> list[InvestmentPosition]:
        stmt = select(InvestmentPositionModel).order_by(
            InvestmentPositionModel.start_date, InvestmentPositionModel.created_at
        )
        if aircraft_id is not None:
            stmt = stmt.where(InvestmentPositionModel.aircraft_id == aircraft_id)
        if status is not None:
            stmt = stmt.where(InvestmentPositionModel.status == InvestmentStatus(status).value)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def list_active(self, aircraft_id: str | None = None) -> list[InvestmentPosition]:
        """Applications that currently count as invested cash."""
        return self.list_positions(aircraft_id, InvestmentStatus.ACTIVE)

    def invested_cash(self, aircraft_id: str | None = None) -> Money:
        total = Money.zero(self._config.currency)
        for position in self.list_active(aircraft_id):
            total = total + position.principal
        return total

    def commit_application(
        self,
        position_id: UUID,
        cash_account_id: str,
        actor_id: UUID,
    ) -> InvestmentPosition:
        """
        Turn a stored simulation into a real application.

        The estimate is recomputed with today's reference rates.
        """
        model = self._load(position_id)
        current = model.to_dto()
        estimate = self._engine.calculate(current).final_value
        committed = current.commit(cash_account_id, estimated_final_value=estimate)
        self._save(model, committed, actor_id)

        logger.info(
            "investment_committed",
            extra={
                "position_id": str(position_id),
                "cash_account_id": cash_account_id,
                "principal": str(committed.principal.amount),
                "estimated_final_value": str(estimate.amount),
            },
        )
        return committed

    def redeem(
        self,
        position_id: UUID,
        realized_final_value: Money,
        actor_id: UUID,
        redeemed_on: date | None = None,
    ) -> InvestmentPosition:
        """Close an active application with the amount actually received."""
        model = self._load(position_id)
        redeemed = model.to_dto().redeem(realized_final_value, redeemed_on or self._clock.today())
        self._save(model, redeemed, actor_id)

        estimated = redeemed.estimated_final_value
        logger.info(
            "investment_redeemed",
            extra={
                "position_id": str(position_id),
                "realized_final_value": str(realized_final_value.amount),
                "estimated_final_value": str(estimated.amount) if estimated else None,
                "redeemed_on": redeemed.redeemed_on,
            },
        )
        return redeemed

    def cancel(self, position_id: UUID, actor_id: UUID) -> InvestmentPosition:
        model = self._load(position_id)
        previous = model.status
        canceled = model.to_dto().cancel()
        self._save(model, canceled, actor_id)
        logger.info(
            "investment_canceled",
            extra={"position_id": str(position_id), "previous_status": previous},
        )
        return canceled

    def discard_simulation(self, position_id: UUID) -> None:
        """Delete a stored simulation. Real applications are never deleted."""
        model = self._load(position_id)
        self._session.delete(model)
        self._session.flush()
        logger.info("investment_simulation_discarded", extra={"position_id": str(position_id)})

    # -------------------------------------------------------------------------

    def _load(self, position_id: UUID) -> InvestmentPositionModel:
        model = self._session.get(InvestmentPositionModel, position_id)
        if model is None:
            raise InvestmentNotFoundError(str(position_id))
        return model

    def _save(
        self,
        model: InvestmentPositionModel,
        position: InvestmentPosition,
        actor_id: UUID,
    ) -> None:
        model.apply_dto(position)
        model.updated_by_id = actor_id
        self._session.flush()
