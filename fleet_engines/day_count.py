"""
Module: fleet_engines.day_count
Responsibility:
    Measure the time between two dates in the unit an investment
    convention needs: calendar days under a 365-day year, or estimated
    business days under a 252-day year. Also counts whole monthly
    anniversaries, which drive monthly capitalization and savings yield.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Business-day approximation:
    There is no holiday or weekend calendar here. The 252-day count is
    ESTIMATED as ``round(calendar_days * 252 / 365)`` with half-up
    rounding. A full year of 365 calendar days therefore maps to exactly
    252 units. Short spans across long holidays will be overstated, and
    callers that need the exact B3/ANBIMA count must supply their own
    calendar.

Failure modes:
    - InvalidRangeError when end_date <= start_date.

Usage:
    from fleet_engines.day_count import DayCountBase, DayCountCalculator

    calc = DayCountCalculator()
    calc.elapsed_units(date(2024, 1, 1), date(2024, 12, 31), DayCountBase.BUSINESS_252)
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import IntEnum

from fleet_kernel.exceptions import InvalidRangeError
from fleet_kernel.logging_config import get_logger

logger = get_logger("engines.day_count")

BUSINESS_DAYS_PER_YEAR = 252
CALENDAR_DAYS_PER_YEAR = 365


class DayCountBase(IntEnum):
    """Annualization base: business days (252) or calendar days (365)."""

    BUSINESS_252 = 252
    CALENDAR_365 = 365


def add_months(start: date, months: int) -> date:
    """Return the monthly anniversary ``months`` after ``start``.

    The day is clamped to the end of the target month, so the first
    anniversary of 31 January is 29 February in a leap year.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class DayCountCalculator:
    """
    Elapsed-time calculator for fixed-income conventions.

    Contract:
        Stateless. Every method validates the range the same way and
        raises InvalidRangeError for empty or reversed spans.
    """

    def _check_range(self, start_date: date, end_date: date) -> None:
        if end_date <= start_date:
            logger.warning(
                "day_count_invalid_range",
                extra={
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
            )
            raise InvalidRangeError(start_date, end_date)

    def calendar_days(self, start_date: date, end_date: date) -> int:
        """Calendar days, inclusive of start and exclusive of end."""
        self._check_range(start_date, end_date)
        return (end_date - start_date).days

    def estimate_business_days(self, start_date: date, end_date: date) -> int:
        """Approximate business days as ``calendar_days * 252 / 365`` (half-up)."""
        days = self.calendar_days(start_date, end_date)
        estimate = (Decimal(days) * BUSINESS_DAYS_PER_YEAR / CALENDAR_DAYS_PER_YEAR)
        return int(estimate.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def elapsed_units(self, start_date: date, end_date: date, base: DayCountBase | int) -> int:
        """Elapsed periods under ``base``: estimated business days or calendar days.

        Raises:
            InvalidRangeError: end_date <= start_date.
            ValueError: base is not 252 or 365.
        """
        base = DayCountBase(base)
        if base is DayCountBase.BUSINESS_252:
            return self.estimate_business_days(start_date, end_date)
        return self.calendar_days(start_date, end_date)

    def whole_months(self, start_date: date, end_date: date) -> int:
        """Number of monthly anniversaries of start_date reached by end_date."""
        self._check_range(start_date, end_date)
        months = (end_date.year - start_date.year) * 12 + (end_date.month - start_date.month)
        # Step back while the estimated anniversary overshoots end_date.
        while months > 0 and add_months(start_date, months) > end_date:
            months -= 1
        return months

    def month_fraction(self, start_date: date, end_date: date) -> tuple[int, Decimal]:
        """Split a span into whole months plus the fraction of the running month.

        The fraction is leftover days divided by the length of the monthly
        period in progress, so it is always in [0, 1).
        """
        months = self.whole_months(start_date, end_date)
        last_anniversary = add_months(start_date, months)
        leftover = (end_date - last_anniversary).days
        if leftover == 0:
            return months, Decimal("0")
        period_days = (add_months(start_date, months + 1) - last_anniversary).days
        return months, Decimal(leftover) / Decimal(period_days)
