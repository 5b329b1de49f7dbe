"""
Tests for InvestmentService: simulation, commit, redemption, cancelation.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidInvestmentTransitionError,
    InvestmentImmutableError,
    InvestmentNotFoundError,
)
from fleet_engines.investment import (
    FixedRate,
    IndexedRate,
    InflationLinkedRate,
    InvestmentPosition,
    InvestmentStatus,
    InvestmentType,
)
from fleet_services.investment_service import InvestmentService

AIRCRAFT = "PR-INV"


def cdb(principal="100000.00", rate="12"):
    return InvestmentPosition(
        principal=Money.of(principal),
        start_date=date(2023, 1, 1),
        end_date=date(2024, 1, 1),
        investment_type=InvestmentType.CDB,
        rate_parameters=FixedRate(Decimal(rate)),
    )


@pytest.fixture
def service(session, deterministic_clock):
    deterministic_clock.set_date(date(2024, 1, 2))
    return InvestmentService(session, clock=deterministic_clock)


class TestSimulate:
    def test_simulation_is_stored_with_estimate(self, service, test_actor_id):
        stored, result = service.simulate(cdb(), test_actor_id, aircraft_id=AIRCRAFT)
        assert stored.position_id is not None
        assert stored.is_simulation
        assert result.final_value == Money.of("112000.00")
        assert stored.estimated_final_value == Money.of("112000.00")
        assert service.get(stored.position_id).investment_type is InvestmentType.CDB

    def test_simulation_is_not_invested_cash(self, service, test_actor_id):
        service.simulate(cdb(), test_actor_id, aircraft_id=AIRCRAFT)
        assert service.invested_cash(AIRCRAFT) == Money.zero()
        assert service.list_active(AIRCRAFT) == []

    def test_only_new_positions_can_be_simulated(self, service, test_actor_id):
        active = cdb().commit("cash-1")
        with pytest.raises(ValueError):
            service.simulate(active, test_actor_id)

    def test_rate_parameters_round_trip(self, service, test_actor_id):
        position = InvestmentPosition(
            principal=Money.of("5000"),
            start_date=date(2023, 1, 1),
            end_date=date(2024, 1, 1),
            investment_type=InvestmentType.IPCA_PLUS,
            rate_parameters=InflationLinkedRate(Decimal("4.62"), Decimal("6")),
        )
        stored, _ = service.simulate(position, test_actor_id)
        assert stored.rate_parameters == InflationLinkedRate(Decimal("4.62"), Decimal("6"))

    def test_project_stores_nothing(self, service):
        service.project(cdb())
        assert service.list_positions() == []

    def test_reference_rates_from_config(self, session, finance_config, test_actor_id):
        config = finance_config.with_reference_rates(cdi_annual=Decimal("10"))
        service = InvestmentService(session, config=config)
        position = InvestmentPosition(
            principal=Money.of("100000"),
            start_date=date(2023, 1, 1),
            end_date=date(2024, 1, 1),
            investment_type=InvestmentType.CDI,
            rate_parameters=IndexedRate(Decimal("100")),
        )
        assert service.project(position).final_value == Money.of("110000.00")


class TestLifecycle:
    def test_commit_makes_position_invested(self, service, test_actor_id):
        stored, _ = service.simulate(cdb(), test_actor_id, aircraft_id=AIRCRAFT)
        active = service.commit_application(stored.position_id, "cash-001", test_actor_id)
        assert active.status is InvestmentStatus.ACTIVE
        assert active.cash_account_id == "cash-001"
        assert service.invested_cash(AIRCRAFT) == Money.of("100000.00")
        assert [p.position_id for p in service.list_active(AIRCRAFT)] == [stored.position_id]

    def test_redeem(self, service, test_actor_id):
        stored, _ = service.simulate(cdb(), test_actor_id, aircraft_id=AIRCRAFT)
        service.commit_application(stored.position_id, "cash-001", test_actor_id)
        redeemed = service.redeem(stored.position_id, Money.of("111850.00"), test_actor_id)
        assert redeemed.status is InvestmentStatus.REDEEMED
        assert redeemed.redeemed_on == date(2024, 1, 2)
        reloaded = service.get(stored.position_id)
        assert reloaded.realized_final_value == Money.of("111850.00")
        assert service.invested_cash(AIRCRAFT) == Money.zero()

    def test_redeem_simulation_rejected(self, service, test_actor_id):
        stored, _ = service.simulate(cdb(), test_actor_id)
        with pytest.raises(InvalidInvestmentTransitionError):
            service.redeem(stored.position_id, Money.of("1"), test_actor_id)

    def test_canceled_is_final(self, service, test_actor_id):
        stored, _ = service.simulate(cdb(), test_actor_id)
        service.cancel(stored.position_id, test_actor_id)
        with pytest.raises(InvestmentImmutableError):
            service.commit_application(stored.position_id, "cash-001", test_actor_id)
        with pytest.raises(InvestmentImmutableError):
            service.cancel(stored.position_id, test_actor_id)

    def test_list_filters_by_status(self, service, test_actor_id):
        a, _ = service.simulate(cdb(), test_actor_id, aircraft_id=AIRCRAFT)
        service.simulate(cdb("2000"), test_actor_id, aircraft_id=AIRCRAFT)
        service.commit_application(a.position_id, "cash-1", test_actor_id)
        simulated = service.list_positions(AIRCRAFT, InvestmentStatus.SIMULATED)
        assert [p.principal for p in simulated] == [Money.of("2000")]

    def test_unknown_position(self, service, test_actor_id):
        with pytest.raises(InvestmentNotFoundError):
            service.cancel(uuid4(), test_actor_id)

    def test_lifecycle_is_logged(self, service, test_actor_id, captured_logs):
        stored, _ = service.simulate(cdb(), test_actor_id)
        service.commit_application(stored.position_id, "cash-1", test_actor_id)
        names = [r["message"] for r in captured_logs()]
        assert "investment_simulated" in names
        assert "investment_committed" in names


class TestDiscard:
    def test_discard_simulation(self, service, test_actor_id):
        stored, _ = service.simulate(cdb(), test_actor_id)
        service.discard_simulation(stored.position_id)
        with pytest.raises(InvestmentNotFoundError):
            service.get(stored.position_id)

    def test_active_application_cannot_be_deleted(self, service, test_actor_id):
        stored, _ = service.simulate(cdb(), test_actor_id)
        service.commit_application(stored.position_id, "cash-1", test_actor_id)
        with pytest.raises(ImmutabilityViolationError):
            service.discard_simulation(stored.position_id)
