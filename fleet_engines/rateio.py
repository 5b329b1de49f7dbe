"""
Module: fleet_engines.rateio
Responsibility:
    Apportion an expense or a revenue across the members of an aircraft,
    either automatically by ownership share or from a manual per-member
    split that must reconcile to the transaction total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Shares arrive by value; fleet_services.rateio_service fetches them
    from the membership provider and persists the result.

Invariants enforced:
    - Automatic split: every amount is rounded half-up to the currency's
      precision and the FIRST member in iteration order absorbs the
      rounding residual, so the lines always add up to the total exactly.
      The first line never goes negative: when the other lines rounded
      half-up would exceed the total, they are rounded down instead.
    - Manual split: each amount strictly positive, each member at most
      once, and |sum - total| <= 0.01. Manual entries are never corrected,
      only accepted or rejected.

Failure modes:
    - RateioNoParticipantsError: no members, or all shares are zero.
    - RateioEmptyEntryError: a manual amount <= 0.
    - RateioDuplicateMemberError: a member appears twice.
    - RateioSumMismatchError: the manual split misses the total; carries
      total, allocated and difference.
    - ValueError: negative total or share, or mixed currencies.

Usage:
    from fleet_engines.rateio import RateioEngine, MemberShare

    split = RateioEngine().split_automatic(
        Money.of("1000.00"),
        [MemberShare("A", Decimal("50")), MemberShare("B", Decimal("50"))],
    )
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum

from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import (
    RateioDuplicateMemberError,
    RateioEmptyEntryError,
    RateioNoParticipantsError,
    RateioSumMismatchError,
)
from fleet_kernel.logging_config import get_logger
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.rateio")

MANUAL_SPLIT_TOLERANCE = Decimal("0.01")
_HUNDRED = Decimal("100")


class TransactionKind(str, Enum):
    EXPENSE = "expense"
    REVENUE = "revenue"


class SplitMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


@dataclass(frozen=True)
class MemberShare:
    """
    Ownership share of one member, in percent.

    Guarantees:
        - share_percent is a non-negative Decimal.
    """

    member_id: str
    share_percent: Decimal

    def __post_init__(self) -> None:
        if isinstance(self.share_percent, float):
            raise TypeError("share_percent must be Decimal, str or int, not float")
        share = Decimal(str(self.share_percent))
        if share < 0:
            raise ValueError(f"Share of member {self.member_id} cannot be negative: {share}")
        object.__setattr__(self, "share_percent", share)


@dataclass(frozen=True)
class MemberAllocation:
    """One line of a split: the amount charged to (or credited to) a member."""

    member_id: str
    amount: Money
    share_percent: Decimal | None = None


@dataclass(frozen=True)
class RateioSplit:
    """
    Complete apportionment of one transaction.

    Contract:
        ``allocations`` is in input order. For automatic splits
        ``allocated == total`` exactly and ``rounding_adjustment`` is what
        the first member absorbed. For manual splits ``difference`` is
        ``total - allocated`` and is within the tolerance.
    """

    total: Money
    mode: SplitMode
    allocations: tuple[MemberAllocation, ...]
    allocated: Money
    rounding_adjustment: Money

    @property
    def difference(self) -> Money:
        return self.total - self.allocated

    @property
    def member_count(self) -> int:
        return len(self.allocations)

    def amount_for(self, member_id: str) -> Money:
        for line in self.allocations:
            if line.member_id == member_id:
                return line.amount
        raise KeyError(member_id)


class RateioEngine:
    """
    Split transaction totals across members.

    Contract:
        Pure functions, no I/O. Shares need not sum to 100; they are
        treated as relative weights, which is exact ``share / 100`` when
        they do.
    """

    def __init__(self, tolerance: Decimal = MANUAL_SPLIT_TOLERANCE):
        self._tolerance = Decimal(str(tolerance))

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    @traced_engine("rateio", "1.0", fingerprint_fields=("total", "shares"))
    def split_automatic(self, total: Money, shares: Sequence[MemberShare]) -> RateioSplit:
        """
        Split ``total`` proportionally to ownership shares.

        Raises:
            RateioNoParticipantsError: empty share table or zero total share.
            RateioDuplicateMemberError: a member listed twice.
            ValueError: negative total.
        """
        self._check_total(total)
        logger.info(
            "rateio_automatic_started",
            extra={
                "total": str(total.amount),
                "currency": total.currency.code,
                "member_count": len(shares),
            },
        )
        if not shares:
            logger.warning("rateio_no_participants", extra={"total": str(total.amount)})
            raise RateioNoParticipantsError("no members with an active share")
        self._check_unique([s.member_id for s in shares])

        share_sum = sum((s.share_percent for s in shares), Decimal("0"))
        if share_sum == 0:
            logger.warning("rateio_zero_share_total", extra={"total": str(total.amount)})
            raise RateioNoParticipantsError("active shares sum to zero")

        return self._split_by_ratio(
            total,
            [s.member_id for s in shares],
            lambda i: shares[i].share_percent / share_sum,
            shares=[s.share_percent for s in shares],
        )

    def split_equal(self, total: Money, member_ids: Sequence[str]) -> RateioSplit:
        """Split evenly, for memberships that carry no explicit share."""
        self._check_total(total)
        if not member_ids:
            raise RateioNoParticipantsError("no members to split across")
        self._check_unique(member_ids)
        count = Decimal(len(member_ids))
        return self._split_by_ratio(
            total,
            list(member_ids),
            lambda i: Decimal("1") / count,
            shares=[_HUNDRED / count] * len(member_ids),
        )

    @traced_engine("rateio", "1.0", fingerprint_fields=("total", "allocations"))
    def validate_manual(
        self,
        total: Money,
        allocations: Sequence[MemberAllocation],
    ) -> RateioSplit:
        """
        Accept or reject a manual split. Accepted entries are returned unchanged.

        Raises:
            RateioEmptyEntryError: an amount <= 0.
            RateioDuplicateMemberError: a member listed twice.
            RateioSumMismatchError: |sum - total| above the tolerance.
        """
        self._check_total(total)
        seen: set[str] = set()
        allocated = Money.zero(total.currency)
        for entry in allocations:
            if entry.amount.currency != total.currency:
                raise ValueError(
                    f"Currency mismatch: {entry.amount.currency} vs {total.currency}"
                )
            if entry.amount.amount <= 0:
                logger.warning(
                    "rateio_empty_entry",
                    extra={"member_id": entry.member_id, "amount": str(entry.amount.amount)},
                )
                raise RateioEmptyEntryError(entry.member_id, entry.amount.amount)
            if entry.member_id in seen:
                logger.warning("rateio_duplicate_member", extra={"member_id": entry.member_id})
                raise RateioDuplicateMemberError(entry.member_id)
            seen.add(entry.member_id)
            allocated = allocated + entry.amount

        if abs(allocated.amount - total.amount) > self._tolerance:
            logger.warning(
                "rateio_sum_mismatch",
                extra={
                    "total": str(total.amount),
                    "allocated": str(allocated.amount),
                    "difference": str(total.amount - allocated.amount),
                },
            )
            raise RateioSumMismatchError(
                total.amount, allocated.amount, total.currency.code, self._tolerance
            )

        logger.info(
            "rateio_manual_validated",
            extra={"total": str(total.amount), "entry_count": len(allocations)},
        )
        return RateioSplit(
            total=total,
            mode=SplitMode.MANUAL,
            allocations=tuple(allocations),
            allocated=allocated,
            rounding_adjustment=Money.zero(total.currency),
        )

    # ------------------------------------------------------------------

    def _check_total(self, total: Money) -> None:
        if total.is_negative:
            raise ValueError(f"Transaction total cannot be negative: {total}")

    def _check_unique(self, member_ids: Sequence[str]) -> None:
        seen: set[str] = set()
        for member_id in member_ids:
            if member_id in seen:
                logger.warning("rateio_duplicate_member", extra={"member_id": member_id})
                raise RateioDuplicateMemberError(member_id)
            seen.add(member_id)

    def _split_by_ratio(
        self,
        total: Money,
        member_ids: list[str],
        get_ratio: Callable[[int], Decimal],
        shares: list[Decimal],
    ) -> RateioSplit:
        """Round every line but the first, then give the first the remainder."""
        currency = total.currency
        quantum = currency.quantum
        rounded = [
            (total.amount * get_ratio(i)).quantize(quantum, rounding=ROUND_HALF_UP)
            for i in range(len(member_ids))
        ]
        others = sum(rounded[1:], Decimal("0"))
        if others > total.amount:
            # Round-ups on the other lines overshoot; truncate them instead
            rounded[1:] = [
                (total.amount * get_ratio(i)).quantize(quantum, rounding=ROUND_DOWN)
                for i in range(1, len(member_ids))
            ]
            others = sum(rounded[1:], Decimal("0"))
            logger.info(
                "rateio_rounded_down",
                extra={"total": str(total.amount), "line_count": len(member_ids)},
            )
        first_amount = total.amount - others
        rounding_adjustment = first_amount - rounded[0]

        amounts = [first_amount, *rounded[1:]]
        allocations = tuple(
            MemberAllocation(member_id=m, amount=Money(amount, currency), share_percent=s)
            for m, amount, s in zip(member_ids, amounts, shares)
        )
        allocated = sum(amounts, Decimal("0"))

        assert allocated == total.amount, (
            f"Rateio conservation violated: {allocated} != {total.amount}"
        )

        logger.info(
            "rateio_automatic_completed",
            extra={
                "total": str(total.amount),
                "rounding_adjustment": str(rounding_adjustment),
                "line_count": len(allocations),
            },
        )
        return RateioSplit(
            total=total,
            mode=SplitMode.AUTOMATIC,
            allocations=allocations,
            allocated=Money(allocated, currency),
            rounding_adjustment=Money(rounding_adjustment, currency),
        )
