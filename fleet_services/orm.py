"""
Module: fleet_services.orm
Responsibility:
    SQLAlchemy models for every fleet finance entity with a persisted
    lifecycle: margin reserves and their movement ledger, liquidity
    alerts, investment positions and rateio allocations. Each model
    converts to and from its frozen engine value.

Architecture position:
    Services > persistence. Imports engines for the domain values and
    fleet_kernel.db for the declarative base. Engines never import here.

Invariants enforced:
    - margin_reserves.version is the SQLAlchemy version counter. Every
      UPDATE carries ``WHERE version = :old`` and a stale write raises
      StaleDataError.
    - One reserve per aircraft (unique aircraft_id).
    - Movement sequence is unique per reserve.
    - One line per member per allocation.
    - Append-only and terminal-state rules live in
      fleet_services.immutability.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase
from fleet_kernel.db.types import Amount, CurrencyCode, ExternalId, LongText, Rate, ShortCode
from fleet_kernel.domain.values import Money
from fleet_engines.day_count import DayCountBase
from fleet_engines.investment import (
    CapitalizationMode,
    FixedRate,
    IndexedRate,
    InflationLinkedRate,
    InvestmentPosition,
    InvestmentStatus,
    InvestmentType,
    RateParameters,
    SavingsRule,
)
from fleet_engines.liquidity_reserve import (
    AlertSeverity,
    AlertType,
    LiquidityAlert,
    MarginReserve,
    MovementType,
    RecordedMovement,
)
from fleet_engines.rateio import (
    MemberAllocation,
    RateioSplit,
    SplitMode,
    TransactionKind,
)


class MarginReserveModel(TrackedBase):
    """One aircraft's margin reserve. Balance is denormalized from the ledger."""

    __tablename__ = "margin_reserves"

    __table_args__ = (
        UniqueConstraint("aircraft_id", name="uq_margin_reserve_aircraft"),
    )

    aircraft_id: Mapped[ExternalId]
    currency: Mapped[CurrencyCode]
    current_balance: Mapped[Amount]
    required_minimum: Mapped[Amount]
    alert_threshold_percent: Mapped[Rate]
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    movements: Mapped[list[MarginReserveMovementModel]] = relationship(
        back_populates="reserve",
        order_by="MarginReserveMovementModel.sequence",
        lazy="selectin",
    )
    alerts: Mapped[list[LiquidityAlertModel]] = relationship(
        back_populates="reserve",
        lazy="select",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> MarginReserve:
        return MarginReserve(
            aircraft_id=self.aircraft_id,
            current_balance=Money(self.current_balance, self.currency),
            required_minimum=Money(self.required_minimum, self.currency),
            alert_threshold_percent=self.alert_threshold_percent,
            movements=tuple(m.to_dto() for m in self.movements),
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: MarginReserve, created_by_id: UUID) -> MarginReserveModel:
        """New row for a freshly opened reserve. Movements are added separately."""
        return cls(
            aircraft_id=dto.aircraft_id,
            currency=dto.currency.code,
            current_balance=dto.current_balance.amount,
            required_minimum=dto.required_minimum.amount,
            alert_threshold_percent=dto.alert_threshold_percent,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<MarginReserve {self.aircraft_id}: {self.current_balance} {self.currency} "
            f"v{self.version}>"
        )


class MarginReserveMovementModel(TrackedBase):
    """Append-only ledger line of a margin reserve."""

    __tablename__ = "margin_reserve_movements"

    __table_args__ = (
        UniqueConstraint("reserve_id", "sequence", name="uq_reserve_movement_sequence"),
        Index("idx_reserve_movement_date", "reserve_id", "movement_date"),
    )

    reserve_id: Mapped[UUID] = mapped_column(ForeignKey("margin_reserves.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    movement_type: Mapped[ShortCode]
    amount: Mapped[Amount]
    currency: Mapped[CurrencyCode]
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)
    balance_before: Mapped[Amount]
    balance_after: Mapped[Amount]
    justification: Mapped[LongText | None]
    member_id: Mapped[ExternalId | None]
    approved_by: Mapped[ExternalId | None]
    notes: Mapped[LongText | None]

    reserve: Mapped[MarginReserveModel] = relationship(back_populates="movements")

    def to_dto(self) -> RecordedMovement:
        return RecordedMovement(
            sequence=self.sequence,
            movement_type=MovementType(self.movement_type),
            amount=Money(self.amount, self.currency),
            movement_date=self.movement_date,
            balance_before=Money(self.balance_before, self.currency),
            balance_after=Money(self.balance_after, self.currency),
            justification=self.justification,
            member_id=self.member_id,
            approved_by=self.approved_by,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: RecordedMovement, created_by_id: UUID) -> MarginReserveMovementModel:
        return cls(
            sequence=dto.sequence,
            movement_type=dto.movement_type.value,
            amount=dto.amount.amount,
            currency=dto.amount.currency.code,
            movement_date=dto.movement_date,
            balance_before=dto.balance_before.amount,
            balance_after=dto.balance_after.amount,
            justification=dto.justification,
            member_id=dto.member_id,
            approved_by=dto.approved_by,
            notes=dto.notes,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<ReserveMovement #{self.sequence} {self.movement_type} {self.amount}>"


class LiquidityAlertModel(TrackedBase):
    """
    A liquidity alert raised against a reserve.

    At most one alert per reserve is active; applying a movement resolves
    the active one and raises a new alert if the reserve is still at risk.
    """

    __tablename__ = "liquidity_alerts"

    __table_args__ = (
        Index("idx_liquidity_alert_active", "aircraft_id", "is_active"),
    )

    reserve_id: Mapped[UUID] = mapped_column(ForeignKey("margin_reserves.id"), nullable=False)
    aircraft_id: Mapped[ExternalId]
    alert_type: Mapped[ShortCode]
    severity: Mapped[ShortCode]
    currency: Mapped[CurrencyCode]
    balance: Mapped[Amount]
    required_minimum: Mapped[Amount]
    deficit: Mapped[Amount]
    message: Mapped[LongText]
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    raised_at: Mapped[datetime]
    resolved_at: Mapped[datetime | None]

    reserve: Mapped[MarginReserveModel] = relationship(back_populates="alerts")

    def to_dto(self) -> LiquidityAlert:
        return LiquidityAlert(
            aircraft_id=self.aircraft_id,
            alert_type=AlertType(self.alert_type),
            severity=AlertSeverity(self.severity),
            balance=Money(self.balance, self.currency),
            required_minimum=Money(self.required_minimum, self.currency),
            deficit=Money(self.deficit, self.currency),
            message=self.message,
        )

    @classmethod
    def from_dto(
        cls,
        dto: LiquidityAlert,
        reserve_id: UUID,
        raised_at: datetime,
        created_by_id: UUID,
    ) -> LiquidityAlertModel:
        return cls(
            reserve_id=reserve_id,
            aircraft_id=dto.aircraft_id,
            alert_type=dto.alert_type.value,
            severity=dto.severity.value,
            currency=dto.balance.currency.code,
            balance=dto.balance.amount,
            required_minimum=dto.required_minimum.amount,
            deficit=dto.deficit.amount,
            message=dto.message,
            is_active=True,
            raised_at=raised_at,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        state = "active" if self.is_active else "resolved"
        return f"<LiquidityAlert {self.aircraft_id} {self.severity} ({state})>"


class InvestmentPositionModel(TrackedBase):
    """
    A simulated or real cash application.

    Rate parameters are stored flat; the investment type decides which of
    the nullable rate columns are populated.
    """

    __tablename__ = "investment_positions"

    __table_args__ = (
        Index("idx_investment_aircraft_status", "aircraft_id", "status"),
    )

    aircraft_id: Mapped[ExternalId | None]
    investment_type: Mapped[ShortCode]
    status: Mapped[ShortCode]
    currency: Mapped[CurrencyCode]
    principal: Mapped[Amount]
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    day_count_base: Mapped[int] = mapped_column(Integer, nullable=False)
    capitalization: Mapped[ShortCode]

    percent_of_index: Mapped[Rate | None]
    annual_rate: Mapped[Rate | None]
    ipca_expected: Mapped[Rate | None]
    ipca_spread: Mapped[Rate | None]
    ipca_realized: Mapped[Rate | None]
    tr_monthly: Mapped[Rate | None]

    estimated_final_value: Mapped[Amount | None]
    realized_final_value: Mapped[Amount | None]
    cash_account_id: Mapped[ExternalId | None]
    redeemed_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    def _rate_parameters(self) -> RateParameters:
        kind = InvestmentType(self.investment_type)
        if kind in (InvestmentType.CDI, InvestmentType.SELIC):
            return IndexedRate(self.percent_of_index)
        if kind is InvestmentType.IPCA_PLUS:
            return InflationLinkedRate(self.ipca_expected, self.ipca_spread, self.ipca_realized)
        if kind is InvestmentType.SAVINGS:
            return SavingsRule(self.tr_monthly)
        return FixedRate(self.annual_rate)

    def _money(self, amount: Decimal | None) -> Money | None:
        return Money(amount, self.currency) if amount is not None else None

    def to_dto(self) -> InvestmentPosition:
        return InvestmentPosition(
            principal=Money(self.principal, self.currency),
            start_date=self.start_date,
            end_date=self.end_date,
            investment_type=InvestmentType(self.investment_type),
            rate_parameters=self._rate_parameters(),
            day_count_base=DayCountBase(self.day_count_base),
            capitalization=CapitalizationMode(self.capitalization),
            status=InvestmentStatus(self.status),
            estimated_final_value=self._money(self.estimated_final_value),
            realized_final_value=self._money(self.realized_final_value),
            cash_account_id=self.cash_account_id,
            redeemed_on=self.redeemed_on,
            position_id=self.id,
        )

    def apply_dto(self, dto: InvestmentPosition) -> None:
        """Copy the lifecycle fields of ``dto`` onto this row."""
        self.status = dto.status.value
        self.estimated_final_value = (
            dto.estimated_final_value.amount if dto.estimated_final_value else None
        )
        self.realized_final_value = (
            dto.realized_final_value.amount if dto.realized_final_value else None
        )
        self.cash_account_id = dto.cash_account_id
        self.redeemed_on = dto.redeemed_on

    @classmethod
    def from_dto(
        cls,
        dto: InvestmentPosition,
        created_by_id: UUID,
        aircraft_id: str | None = None,
    ) -> InvestmentPositionModel:
        params = dto.rate_parameters
        model = cls(
            aircraft_id=aircraft_id,
            investment_type=dto.investment_type.value,
            currency=dto.principal.currency.code,
            principal=dto.principal.amount,
            start_date=dto.start_date,
            end_date=dto.end_date,
            day_count_base=int(dto.day_count_base),
            capitalization=dto.capitalization.value,
            created_by_id=created_by_id,
        )
        if dto.position_id is not None:
            model.id = dto.position_id
        if isinstance(params, IndexedRate):
            model.percent_of_index = params.percent_of_index
        elif isinstance(params, FixedRate):
            model.annual_rate = params.annual_rate
        elif isinstance(params, InflationLinkedRate):
            model.ipca_expected = params.ipca_expected
            model.ipca_spread = params.spread
            model.ipca_realized = params.ipca_realized
        elif isinstance(params, SavingsRule):
            model.tr_monthly = params.tr_monthly
        model.apply_dto(dto)
        return model

    def __repr__(self) -> str:
        return f"<InvestmentPosition {self.investment_type} {self.principal} [{self.status}]>"


class RateioAllocationModel(TrackedBase):
    """The split of one expense or revenue across members."""

    __tablename__ = "rateio_allocations"

    __table_args__ = (
        Index("idx_rateio_aircraft_date", "aircraft_id", "transaction_date"),
    )

    aircraft_id: Mapped[ExternalId]
    transaction_id: Mapped[ExternalId]
    transaction_kind: Mapped[ShortCode]
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[CurrencyCode]
    total: Mapped[Amount]
    automatic: Mapped[bool] = mapped_column(Boolean, nullable=False)
    rounding_adjustment: Mapped[Amount]

    lines: Mapped[list[RateioAllocationLineModel]] = relationship(
        back_populates="allocation",
        cascade="all, delete-orphan",
        order_by="RateioAllocationLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self) -> RateioSplit:
        allocations = tuple(line.to_dto() for line in self.lines)
        allocated = sum((a.amount.amount for a in allocations), Decimal("0"))
        return RateioSplit(
            total=Money(self.total, self.currency),
            mode=SplitMode.AUTOMATIC if self.automatic else SplitMode.MANUAL,
            allocations=allocations,
            allocated=Money(allocated, self.currency),
            rounding_adjustment=Money(self.rounding_adjustment, self.currency),
        )

    @classmethod
    def from_dto(
        cls,
        dto: RateioSplit,
        aircraft_id: str,
        transaction_id: str,
        transaction_kind: TransactionKind,
        transaction_date: date,
        created_by_id: UUID,
    ) -> RateioAllocationModel:
        model = cls(
            aircraft_id=aircraft_id,
            transaction_id=transaction_id,
            transaction_kind=TransactionKind(transaction_kind).value,
            transaction_date=transaction_date,
            currency=dto.total.currency.code,
            total=dto.total.amount,
            automatic=dto.mode is SplitMode.AUTOMATIC,
            rounding_adjustment=dto.rounding_adjustment.amount,
            created_by_id=created_by_id,
        )
        model.lines = [
            RateioAllocationLineModel(
                line_number=i,
                member_id=a.member_id,
                amount=a.amount.amount,
                currency=a.amount.currency.code,
                share_percent=a.share_percent,
                created_by_id=created_by_id,
            )
            for i, a in enumerate(dto.allocations)
        ]
        return model

    def __repr__(self) -> str:
        return f"<RateioAllocation {self.transaction_kind} {self.total} {self.currency}>"


class RateioAllocationLineModel(TrackedBase):
    __tablename__ = "rateio_allocation_lines"

    __table_args__ = (
        UniqueConstraint("allocation_id", "member_id", name="uq_rateio_line_member"),
    )

    allocation_id: Mapped[UUID] = mapped_column(
        ForeignKey("rateio_allocations.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    member_id: Mapped[ExternalId]
    amount: Mapped[Amount]
    currency: Mapped[CurrencyCode]
    share_percent: Mapped[Rate | None]

    allocation: Mapped[RateioAllocationModel] = relationship(back_populates="lines")

    def to_dto(self) -> MemberAllocation:
        return MemberAllocation(
            member_id=self.member_id,
            amount=Money(self.amount, self.currency),
            share_percent=self.share_percent,
        )

    def __repr__(self) -> str:
        return f"<RateioLine {self.member_id}: {self.amount} {self.currency}>"
