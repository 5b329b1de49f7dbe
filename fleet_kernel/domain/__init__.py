"""
Pure domain layer.

Value objects and clocks with no dependency on the ORM, the database
or I/O. Everything here is immutable and deterministic.
"""

from fleet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fleet_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from fleet_kernel.domain.values import Currency, Money

__all__ = [
    "Clock",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "Money",
    "SystemClock",
]
