"""
RateioService -- apportion and record expenses and revenues per member.

Responsibility:
    Resolves the ownership shares active on a transaction date through a
    ShareProvider, splits the total with RateioEngine (automatic) or
    validates a member-entered split (manual), and persists the result
    as a rateio allocation with one line per member.

Architecture position:
    Services -- imperative shell over fleet_engines.rateio. Membership
    data is owned by the surrounding application and reached only through
    the ShareProvider protocol. Flushes only; the caller commits.

Invariants enforced:
    - Persisted lines sum to the total: exactly for automatic splits,
      within the configured tolerance for manual ones.
    - One line per member per allocation.
    - Re-apportioning a transaction replaces its previous allocation.

Failure modes:
    - RateioError subclasses from the engine.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_config import get_active_config
from fleet_config.schema import FinanceEngineConfig
from fleet_kernel.domain.values import Money
from fleet_kernel.logging_config import get_logger
from fleet_engines.rateio import (
    MemberAllocation,
    MemberShare,
    RateioEngine,
    RateioSplit,
    TransactionKind,
)
from fleet_services.orm import RateioAllocationModel

logger = get_logger("services.rateio")


class ShareProvider(Protocol):
    """Ownership shares of an aircraft's members on a given date."""

    def get_active_shares(self, aircraft_id: str, as_of: date) -> Sequence[MemberShare]:
        ...


class RateioService:
    """
    Persisted rateio allocations.

    Contract:
        ``allocate_automatic`` and ``allocate_manual`` return the split that
        was stored. A member listed with a zero share takes part in the
        split with a zero line; a share table summing to zero is rejected.
    """

    def __init__(
        self,
        session: Session,
        share_provider: ShareProvider,
        config: FinanceEngineConfig | None = None,
        engine: RateioEngine | None = None,
    ):
        self._session = session
        self._shares = share_provider
        self._config = config or get_active_config()
        self._engine = engine or RateioEngine(self._config.rateio.manual_split_tolerance)

    def preview_automatic(self, aircraft_id: str, total: Money, transaction_date: date) -> RateioSplit:
        """Split without storing, e.g. to pre-fill a manual split form."""
        shares = self._shares.get_active_shares(aircraft_id, transaction_date)
        return self._engine.split_automatic(total, shares)

    def allocate_automatic(
        self,
        aircraft_id: str,
        transaction_id: str,
        transaction_kind: TransactionKind,
        total: Money,
        transaction_date: date,
        actor_id: UUID,
    ) -> RateioSplit:
        """Split ``total`` by the ownership shares active on ``transaction_date``."""
        split = self.preview_automatic(aircraft_id, total, transaction_date)
        self._store(aircraft_id, transaction_id, transaction_kind, transaction_date, split, actor_id)
        return split

    def allocate_manual(
        self,
        aircraft_id: str,
        transaction_id: str,
        transaction_kind: TransactionKind,
        total: Money,
        transaction_date: date,
        allocations: Sequence[MemberAllocation],
        actor_id: UUID,
    ) -> RateioSplit:
        """Validate and store a split entered by hand."""
        split = self._engine.validate_manual(total, allocations)
        self._store(aircraft_id, transaction_id, transaction_kind, transaction_date, split, actor_id)
        return split

    def get_allocation(self, transaction_id: str) -> RateioSplit | None:
        model = self._find(transaction_id)
        return model.to_dto() if model is not None else None

    def member_totals(
        self,
        aircraft_id: str,
        start_date: date,
        end_date: date,
        transaction_kind: TransactionKind = TransactionKind.EXPENSE,
    ) -> dict[str, Money]:
        """Sum of each member's lines over an inclusive date range."""
        rows = self._session.execute(
            select(RateioAllocationModel)
            .where(RateioAllocationModel.aircraft_id == aircraft_id)
            .where(RateioAllocationModel.transaction_kind == TransactionKind(transaction_kind).value)
            .where(RateioAllocationModel.transaction_date >= start_date)
            .where(RateioAllocationModel.transaction_date <= end_date)
        ).scalars()

        totals: dict[str, Money] = {}
        for allocation in rows:
            for line in allocation.lines:
                amount = Money(line.amount, line.currency)
                totals[line.member_id] = totals[line.member_id] + amount if line.member_id in totals else amount
        return totals

    # -------------------------------------------------------------------------

    def _find(self, transaction_id: str) -> RateioAllocationModel | None:
        return self._session.execute(
            select(RateioAllocationModel).where(
                RateioAllocationModel.transaction_id == transaction_id
            )
        ).scalar_one_or_none()

    def _store(
        self,
        aircraft_id: str,
        transaction_id: str,
        transaction_kind: TransactionKind,
        transaction_date: date,
        split: RateioSplit,
        actor_id: UUID,
    ) -> None:
        previous = self._find(transaction_id)
        if previous is not None:
            self._session.delete(previous)
            self._session.flush()
            logger.info(
                "rateio_allocation_replaced",
                extra={"transaction_id": transaction_id, "aircraft_id": aircraft_id},
            )

        model = RateioAllocationModel.from_dto(
            split,
            aircraft_id=aircraft_id,
            transaction_id=transaction_id,
            transaction_kind=transaction_kind,
            transaction_date=transaction_date,
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "rateio_allocation_persisted",
            extra={
                "allocation_id": str(model.id),
                "aircraft_id": aircraft_id,
                "transaction_id": transaction_id,
                "transaction_kind": TransactionKind(transaction_kind).value,
                "mode": split.mode.value,
                "total": str(split.total.amount),
                "member_count": split.member_count,
                "rounding_adjustment": str(split.rounding_adjustment.amount),
            },
        )
