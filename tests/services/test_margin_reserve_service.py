"""
Tests for MarginReserveService.

Covers:
- Opening a reserve on first movement with the configured policy
- Movement persistence and balance chaining in the ledger
- Emergency-use justification at the service boundary
- Liquidity alerts: at most one active, severity follows the deficit
- Version counter and expected_version conflicts
"""

import pytest
from datetime import date
from decimal import Decimal

from sqlalchemy import select, text
from sqlalchemy.orm.exc import StaleDataError

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import (
    MissingJustificationError,
    OptimisticLockError,
    ReserveNotFoundError,
)
from fleet_engines.liquidity_reserve import (
    AlertSeverity,
    MovementType,
    ReserveMovement,
    ReserveStatus,
)
from fleet_services.margin_reserve_service import MarginReserveService
from fleet_services.orm import LiquidityAlertModel, MarginReserveModel

AIRCRAFT = "PR-SVC"


@pytest.fixture
def service(session, deterministic_clock):
    deterministic_clock.set_date(date(2025, 3, 15))
    return MarginReserveService(session, clock=deterministic_clock)


class TestReads:
    def test_missing_reserve(self, service):
        with pytest.raises(ReserveNotFoundError) as exc_info:
            service.get_reserve("PR-NONE")
        assert exc_info.value.aircraft_id == "PR-NONE"

    def test_find_reserve_returns_none(self, service):
        assert service.find_reserve("PR-NONE") is None

    def test_get_or_create_uses_configured_policy(self, service, test_actor_id):
        reserve = service.get_or_create_reserve(AIRCRAFT, test_actor_id)
        assert reserve.current_balance == Money.zero()
        assert reserve.required_minimum == Money.of("200000")
        assert reserve.alert_threshold_percent == Decimal("110")
        assert reserve.version == 1

    def test_get_or_create_is_idempotent(self, service, session, test_actor_id):
        service.get_or_create_reserve(AIRCRAFT, test_actor_id)
        service.get_or_create_reserve(AIRCRAFT, test_actor_id)
        rows = session.execute(
            select(MarginReserveModel).where(MarginReserveModel.aircraft_id == AIRCRAFT)
        ).scalars().all()
        assert len(rows) == 1


class TestMovements:
    def test_first_contribution_opens_reserve(self, service, test_actor_id):
        updated = service.register_contribution(
            AIRCRAFT, Money.of("150000"), test_actor_id, member_id="M1"
        )
        assert updated.current_balance == Money.of("150000")
        assert updated.version == 2
        assert service.derive_status(AIRCRAFT) is ReserveStatus.LIQUIDITY_RISK

    def test_ledger_chains_balances(self, service, test_actor_id):
        service.register_contribution(AIRCRAFT, Money.of("150000"), test_actor_id)
        service.register_contribution(AIRCRAFT, Money.of("80000"), test_actor_id)
        service.register_emergency_use(
            AIRCRAFT, Money.of("50000"), "Propeller overhaul", test_actor_id, approved_by="M2"
        )
        service.register_yield(AIRCRAFT, Money.of("1234.56"), test_actor_id)
        service.register_adjustment(AIRCRAFT, Money.of("-0.56"), test_actor_id, "Rounding")

        reserve = service.get_reserve(AIRCRAFT)
        assert reserve.current_balance == Money.of("181234.00")
        assert [m.sequence for m in reserve.movements] == [1, 2, 3, 4, 5]
        assert [m.movement_type for m in reserve.movements] == [
            MovementType.CONTRIBUTION,
            MovementType.CONTRIBUTION,
            MovementType.EMERGENCY_USE,
            MovementType.YIELD,
            MovementType.ADJUSTMENT,
        ]
        for prev, nxt in zip(reserve.movements, reserve.movements[1:]):
            assert nxt.balance_before == prev.balance_after
        assert reserve.movements[-1].balance_after == reserve.current_balance
        assert reserve.movements[2].approved_by == "M2"

    def test_movement_date_defaults_to_clock(self, service, test_actor_id):
        service.register_contribution(AIRCRAFT, Money.of("1"), test_actor_id)
        assert service.get_reserve(AIRCRAFT).movements[0].movement_date == date(2025, 3, 15)

    def test_emergency_use_without_justification(self, service, test_actor_id):
        service.register_contribution(AIRCRAFT, Money.of("230000"), test_actor_id)
        with pytest.raises(MissingJustificationError):
            service.register_emergency_use(AIRCRAFT, Money.of("50000"), "  ", test_actor_id)
        assert service.get_reserve(AIRCRAFT).current_balance == Money.of("230000")

    def test_rejected_emergency_use_opens_nothing(self, service, session, test_actor_id):
        """No reserve row and no alert is left behind for a new aircraft."""
        with pytest.raises(MissingJustificationError):
            service.register_emergency_use("PR-NEW", Money.of("50000"), "", test_actor_id)
        assert service.find_reserve("PR-NEW") is None
        assert service.active_alerts("PR-NEW") == []
        assert session.execute(
            select(MarginReserveModel).where(MarginReserveModel.aircraft_id == "PR-NEW")
        ).first() is None

    def test_zero_adjustment_still_bumps_version(self, service, test_actor_id):
        first = service.register_contribution(AIRCRAFT, Money.of("10"), test_actor_id)
        second = service.register_adjustment(AIRCRAFT, Money.zero(), test_actor_id, "No-op")
        assert second.version == first.version + 1
        assert service.get_reserve(AIRCRAFT).version == second.version

    def test_emergency_use_logged(self, service, test_actor_id, captured_logs):
        service.register_contribution(AIRCRAFT, Money.of("230000"), test_actor_id)
        service.register_emergency_use(AIRCRAFT, Money.of("50000"), "AOG", test_actor_id)
        records = [r for r in captured_logs() if r["message"] == "reserve_emergency_use"]
        assert records[0]["aircraft_id"] == AIRCRAFT
        assert records[0]["actor_id"] == str(test_actor_id)


class TestAlerts:
    def test_new_empty_reserve_raises_critical(self, service, test_actor_id):
        service.get_or_create_reserve(AIRCRAFT, test_actor_id)
        alerts = service.active_alerts(AIRCRAFT)
        assert len(alerts) == 1
        assert alerts[0].severity is AlertSeverity.CRITICAL
        assert alerts[0].deficit == Money.of("200000")

    def test_single_active_alert_tracks_severity(self, service, session, test_actor_id):
        service.register_contribution(AIRCRAFT, Money.of("100000"), test_actor_id)
        assert [a.severity for a in service.active_alerts(AIRCRAFT)] == [AlertSeverity.CRITICAL]

        service.register_contribution(AIRCRAFT, Money.of("60000"), test_actor_id)
        alerts = service.active_alerts(AIRCRAFT)
        assert [a.severity for a in alerts] == [AlertSeverity.WARNING]
        assert alerts[0].deficit == Money.of("40000")

        resolved = session.execute(
            select(LiquidityAlertModel)
            .where(LiquidityAlertModel.aircraft_id == AIRCRAFT)
            .where(LiquidityAlertModel.is_active.is_(False))
        ).scalars().all()
        assert resolved and all(r.resolved_at is not None for r in resolved)

    def test_alerts_clear_when_back_above_minimum(self, service, test_actor_id):
        service.register_contribution(AIRCRAFT, Money.of("100000"), test_actor_id)
        service.register_contribution(AIRCRAFT, Money.of("130000"), test_actor_id)
        assert service.active_alerts(AIRCRAFT) == []
        assert service.derive_status(AIRCRAFT) is ReserveStatus.NORMAL

    def test_attention_raises_no_alert(self, service, test_actor_id):
        service.register_contribution(AIRCRAFT, Money.of("215000"), test_actor_id)
        assert service.derive_status(AIRCRAFT) is ReserveStatus.ATTENTION
        assert service.active_alerts(AIRCRAFT) == []

    def test_alert_raised_is_logged(self, service, test_actor_id, captured_logs):
        service.register_contribution(AIRCRAFT, Money.of("180000"), test_actor_id)
        raised = [r for r in captured_logs() if r["message"] == "liquidity_alert_raised"]
        assert raised[-1]["severity"] == "warning"
        assert raised[-1]["level"] == "WARNING"


class TestVersioning:
    def test_expected_version_mismatch(self, service, test_actor_id):
        service.register_contribution(AIRCRAFT, Money.of("1000"), test_actor_id)
        movement = ReserveMovement.contribution(Money.of("1"), date(2025, 3, 15))
        with pytest.raises(OptimisticLockError) as exc_info:
            service.apply_movement(AIRCRAFT, movement, test_actor_id, expected_version=1)
        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert service.get_reserve(AIRCRAFT).current_balance == Money.of("1000")

    def test_expected_version_match(self, service, test_actor_id):
        current = service.register_contribution(AIRCRAFT, Money.of("1000"), test_actor_id)
        movement = ReserveMovement.contribution(Money.of("1"), date(2025, 3, 15))
        updated = service.apply_movement(
            AIRCRAFT, movement, test_actor_id, expected_version=current.version
        )
        assert updated.version == current.version + 1

    def test_version_counter_rejects_stale_row(self, service, session, test_actor_id):
        """A write based on a row that changed underneath it is refused."""
        service.register_contribution(AIRCRAFT, Money.of("1000"), test_actor_id)
        model = session.execute(
            select(MarginReserveModel).where(MarginReserveModel.aircraft_id == AIRCRAFT)
        ).scalar_one()
        session.execute(
            text("UPDATE margin_reserves SET version = version + 1 WHERE id = :id"),
            {"id": str(model.id)},
        )
        model.current_balance = Decimal("5")
        with pytest.raises(StaleDataError):
            session.flush()


class TestLiquidityReport:
    def test_report_uses_configured_window(self, service, test_actor_id):
        service.register_contribution(
            AIRCRAFT, Money.of("250000"), test_actor_id, movement_date=date(2025, 1, 1)
        )
        service.register_emergency_use(
            AIRCRAFT,
            Money.of("60000"),
            "Landing gear",
            test_actor_id,
            movement_date=date(2025, 3, 1),
        )
        report = service.liquidity_report(AIRCRAFT)
        assert report.as_of == date(2025, 3, 15)
        assert report.window_days == 30
        assert report.movement_count == 1
        assert report.movements_below_minimum == 1
        assert report.status is ReserveStatus.LIQUIDITY_RISK
        assert report.last_emergency_use.justification == "Landing gear"
