"""
Module: fleet_engines.tbo
Responsibility:
    Time-between-overhaul provisioning. Every flight hour accrues a fixed
    amount (2,800 BRL by default) toward the next engine overhaul; the
    provision of a flight is shared equally by the member groups on board,
    and the aircraft's running provision is compared with the real
    overhaul cost once it is known.

Architecture position:
    Engines -- pure calculation layer, zero I/O. Splits go through the
    RateioEngine so the per-group amounts always add up to the provision.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from fleet_kernel.domain.values import Money
from fleet_kernel.logging_config import get_logger
from fleet_engines.rateio import RateioEngine, RateioSplit

logger = get_logger("engines.tbo")

DEFAULT_RATE_PER_HOUR = Decimal("2800")
_MINUTES_PER_HOUR = Decimal("60")


@dataclass(frozen=True)
class TBOProvision:
    """Accumulated overhaul provision of one aircraft."""

    aircraft_id: str
    rate_per_hour: Money
    accumulated_hours: Decimal = Decimal("0")
    accumulated_provision: Money | None = None
    real_overhaul_cost: Money | None = None

    def __post_init__(self) -> None:
        if self.accumulated_provision is None:
            object.__setattr__(
                self, "accumulated_provision", Money.zero(self.rate_per_hour.currency)
            )

    @property
    def difference_to_real_cost(self) -> Money | None:
        """Provisioned minus real cost; negative means under-provisioned."""
        if self.real_overhaul_cost is None:
            return None
        return self.accumulated_provision - self.real_overhaul_cost


class TBOProvisionCalculator:
    """Per-flight provision and running accumulation."""

    def __init__(self, rate_per_hour: Money | None = None, rateio: RateioEngine | None = None):
        self._rate = rate_per_hour or Money.of(DEFAULT_RATE_PER_HOUR)
        if self._rate.is_negative:
            raise ValueError(f"TBO rate per hour cannot be negative: {self._rate}")
        self._rateio = rateio or RateioEngine()

    @property
    def rate_per_hour(self) -> Money:
        return self._rate

    def flight_hours(self, flight_minutes: int) -> Decimal:
        if flight_minutes < 0:
            raise ValueError(f"Flight time cannot be negative: {flight_minutes} min")
        return Decimal(flight_minutes) / _MINUTES_PER_HOUR

    def provision_for_flight(self, flight_minutes: int, groups: Sequence[str]) -> RateioSplit:
        """Provision for one flight, split equally across the groups on board."""
        provision = (self._rate * self.flight_hours(flight_minutes)).round()
        split = self._rateio.split_equal(provision, groups)
        logger.info(
            "tbo_flight_provisioned",
            extra={
                "flight_minutes": flight_minutes,
                "provision": str(provision.amount),
                "group_count": len(groups),
            },
        )
        return split

    def open(self, aircraft_id: str) -> TBOProvision:
        return TBOProvision(aircraft_id=aircraft_id, rate_per_hour=self._rate)

    def accumulate(self, provision: TBOProvision, flight_minutes: int, provisioned: Money) -> TBOProvision:
        """Add one flight's hours and provisioned amount to the running totals."""
        return replace(
            provision,
            accumulated_hours=provision.accumulated_hours + self.flight_hours(flight_minutes),
            accumulated_provision=provision.accumulated_provision + provisioned,
        )

    def record_overhaul_cost(self, provision: TBOProvision, cost: Money) -> TBOProvision:
        updated = replace(provision, real_overhaul_cost=cost)
        logger.info(
            "tbo_overhaul_cost_recorded",
            extra={
                "aircraft_id": provision.aircraft_id,
                "real_cost": str(cost.amount),
                "difference": str(updated.difference_to_real_cost.amount),
            },
        )
        return updated
