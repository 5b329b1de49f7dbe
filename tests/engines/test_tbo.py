"""
Tests for TBO (time between overhaul) provisioning.
"""

import pytest
from decimal import Decimal

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import RateioNoParticipantsError
from fleet_engines.tbo import TBOProvisionCalculator


class TestFlightProvision:
    def setup_method(self):
        self.calc = TBOProvisionCalculator()

    def test_default_rate(self):
        assert self.calc.rate_per_hour == Money.of("2800")

    def test_ninety_minutes_two_groups(self):
        """1.5 h * 2800 = 4200, split 2100 / 2100."""
        split = self.calc.provision_for_flight(90, ["G1", "G2"])
        assert split.total == Money.of("4200.00")
        assert split.amount_for("G1") == Money.of("2100.00")
        assert split.amount_for("G2") == Money.of("2100.00")

    def test_uneven_split_reconciles(self):
        """50 min -> 2333.33; the first group absorbs the cent."""
        split = self.calc.provision_for_flight(50, ["G1", "G2", "G3"])
        assert split.total == Money.of("2333.33")
        assert [a.amount for a in split.allocations] == [
            Money.of("777.77"),
            Money.of("777.78"),
            Money.of("777.78"),
        ]
        assert split.allocated == split.total

    def test_no_groups_on_board(self):
        with pytest.raises(RateioNoParticipantsError):
            self.calc.provision_for_flight(60, [])

    def test_negative_flight_time(self):
        with pytest.raises(ValueError):
            self.calc.flight_hours(-1)

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            TBOProvisionCalculator(rate_per_hour=Money.of("-1"))


class TestAccumulation:
    def setup_method(self):
        self.calc = TBOProvisionCalculator(rate_per_hour=Money.of("3000"))

    def test_running_totals(self):
        provision = self.calc.open("PR-ABC")
        for minutes in (60, 120, 30):
            split = self.calc.provision_for_flight(minutes, ["G1"])
            provision = self.calc.accumulate(provision, minutes, split.total)
        assert provision.accumulated_hours == Decimal("3.5")
        assert provision.accumulated_provision == Money.of("10500.00")
        assert provision.difference_to_real_cost is None

    def test_difference_to_real_cost(self):
        provision = self.calc.accumulate(self.calc.open("PR-ABC"), 600, Money.of("30000"))
        provision = self.calc.record_overhaul_cost(provision, Money.of("42000"))
        assert provision.difference_to_real_cost == Money.of("-12000")
