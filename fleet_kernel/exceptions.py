"""
Typed Exception Hierarchy for the Fleet Finance Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure in the engine is a deterministic validation failure that an
end user must be able to fix: a date range that runs backwards, a manual
split that is off by 100.00, an emergency withdrawal with no reason given.
Callers must be able to tell these apart without parsing messages, and the
user must see the exact figures that broke the rule.

So every error:
  1. Has its own class (catch by type, never by message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries the offending values as attributes (total, allocated,
     difference, movement type, ...)

Example:
    try:
        engine.validate_manual(total, split)
    except RateioSumMismatchError as e:
        api_response(code=e.code, difference=str(e.difference))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetFinanceError (base)
    |
    +-- CalculationError
    |   +-- InvalidRangeError
    |   +-- MissingParameterError
    |   +-- NonPositivePrincipalError
    |
    +-- RateioError
    |   +-- RateioSumMismatchError
    |   +-- RateioEmptyEntryError
    |   +-- RateioDuplicateMemberError
    |   +-- RateioNoParticipantsError
    |
    +-- ReserveError
    |   +-- MissingJustificationError
    |   +-- ReserveNotFoundError
    |
    +-- InvestmentError
    |   +-- InvestmentImmutableError
    |   +-- InvalidInvestmentTransitionError
    |   +-- InvestmentNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|----------------------------------
Calculation  | INVALID_DATE_RANGE            | end_date <= start_date
             | MISSING_RATE_PARAMETER        | Rate parameters absent or wrong
             | NON_POSITIVE_PRINCIPAL        | principal <= 0
-------------|-------------------------------|----------------------------------
Rateio       | RATEIO_SUM_MISMATCH           | Manual split off by more than 0.01
             | RATEIO_EMPTY_ENTRY            | Manual entry amount <= 0
             | RATEIO_DUPLICATE_MEMBER       | Member listed twice
             | RATEIO_NO_PARTICIPANTS        | Nobody to split across
-------------|-------------------------------|----------------------------------
Reserve      | MISSING_JUSTIFICATION         | Emergency use without a reason
             | RESERVE_NOT_FOUND             | No reserve for the aircraft
-------------|-------------------------------|----------------------------------
Investment   | INVESTMENT_IMMUTABLE          | Position is REDEEMED or CANCELED
             | INVALID_INVESTMENT_TRANSITION | Transition not allowed from status
             | INVESTMENT_NOT_FOUND          | Unknown position id
-------------|-------------------------------|----------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT      | Reserve changed under the writer
Immutability | IMMUTABILITY_VIOLATION        | Ledger row updated or deleted
Config       | INVALID_CONFIGURATION         | Bad configuration value

None of these is transient. There is no retry inside the engine; the
caller fixes the input and resubmits. OptimisticLockError is the single
case where the caller may simply reload and try again.
"""

from decimal import Decimal


class FleetFinanceError(Exception):
    """
    Base exception for all fleet finance errors.

    All subclasses must define a `code` class attribute.
    """

    code: str = "FLEET_FINANCE_ERROR"


# Calculation exceptions


class CalculationError(FleetFinanceError):
    """Base exception for yield and day-count failures."""

    code: str = "CALCULATION_ERROR"


class InvalidRangeError(CalculationError):
    """The end date is not strictly after the start date."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date, end_date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Invalid date range: end date {end_date} must be after "
            f"start date {start_date}"
        )


class MissingParameterError(CalculationError):
    """A rate parameter required by the investment type is absent."""

    code: str = "MISSING_RATE_PARAMETER"

    def __init__(self, investment_type: str, parameter: str, detail: str = ""):
        self.investment_type = investment_type
        self.parameter = parameter
        msg = f"{investment_type} requires rate parameter '{parameter}'"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class NonPositivePrincipalError(CalculationError):
    """Principal is zero or negative."""

    code: str = "NON_POSITIVE_PRINCIPAL"

    def __init__(self, principal: Decimal, currency: str):
        self.principal = principal
        self.currency = currency
        super().__init__(
            f"Principal must be positive, got {principal} {currency}"
        )


# Rateio exceptions


class RateioError(FleetFinanceError):
    """Base exception for apportionment failures."""

    code: str = "RATEIO_ERROR"


class RateioSumMismatchError(RateioError):
    """Manual split does not add up to the transaction total."""

    code: str = "RATEIO_SUM_MISMATCH"

    def __init__(
        self,
        total: Decimal,
        allocated: Decimal,
        currency: str,
        tolerance: Decimal,
    ):
        self.total = total
        self.allocated = allocated
        self.difference = total - allocated
        self.currency = currency
        self.tolerance = tolerance
        super().__init__(
            f"Manual split sums to {allocated} {currency} but the total is "
            f"{total} {currency} (difference {self.difference}, "
            f"tolerance {tolerance})"
        )


class RateioEmptyEntryError(RateioError):
    """A manual split entry has a zero or negative amount."""

    code: str = "RATEIO_EMPTY_ENTRY"

    def __init__(self, member_id: str, amount: Decimal):
        self.member_id = member_id
        self.amount = amount
        super().__init__(
            f"Split entry for member {member_id} must be positive, got {amount}"
        )


class RateioDuplicateMemberError(RateioError):
    """A member appears more than once in a split."""

    code: str = "RATEIO_DUPLICATE_MEMBER"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member {member_id} appears more than once in the split")


class RateioNoParticipantsError(RateioError):
    """An automatic split has no members or no ownership weight."""

    code: str = "RATEIO_NO_PARTICIPANTS"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot split automatically: {reason}")


# Reserve exceptions


class ReserveError(FleetFinanceError):
    """Base exception for margin reserve failures."""

    code: str = "RESERVE_ERROR"


class MissingJustificationError(ReserveError):
    """An emergency use was submitted without a justification."""

    code: str = "MISSING_JUSTIFICATION"

    def __init__(self, aircraft_id: str, amount: Decimal):
        self.aircraft_id = aircraft_id
        self.amount = amount
        super().__init__(
            f"Emergency use of {amount} from the reserve of aircraft "
            f"{aircraft_id} requires a justification"
        )


class ReserveNotFoundError(ReserveError):
    """No margin reserve exists for the aircraft."""

    code: str = "RESERVE_NOT_FOUND"

    def __init__(self, aircraft_id: str):
        self.aircraft_id = aircraft_id
        super().__init__(f"No margin reserve for aircraft {aircraft_id}")


# Investment exceptions


class InvestmentError(FleetFinanceError):
    """Base exception for investment position lifecycle failures."""

    code: str = "INVESTMENT_ERROR"


class InvestmentImmutableError(InvestmentError):
    """The position is REDEEMED or CANCELED and can no longer change."""

    code: str = "INVESTMENT_IMMUTABLE"

    def __init__(self, position_id: str, status: str):
        self.position_id = position_id
        self.status = status
        super().__init__(
            f"Investment position {position_id} is {status} and cannot be modified"
        )


class InvalidInvestmentTransitionError(InvestmentError):
    """The requested transition is not allowed from the current status."""

    code: str = "INVALID_INVESTMENT_TRANSITION"

    def __init__(self, position_id: str, from_status: str, to_status: str):
        self.position_id = position_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Investment position {position_id} cannot move from "
            f"{from_status} to {to_status}"
        )


class InvestmentNotFoundError(InvestmentError):
    """No investment position with the given id."""

    code: str = "INVESTMENT_NOT_FOUND"

    def __init__(self, position_id: str):
        self.position_id = position_id
        super().__init__(f"Investment position {position_id} not found")


# Concurrency exceptions


class ConcurrencyError(FleetFinanceError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """The row was changed by another writer since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = (
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
        if expected_version is not None:
            msg = f"{msg} (expected version {expected_version}, found {actual_version})"
        super().__init__(msg)


# Immutability exceptions


class ImmutabilityError(FleetFinanceError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(FleetFinanceError):
    """A configuration value is missing or out of range."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid configuration for {field}={value!r}: {reason}")
