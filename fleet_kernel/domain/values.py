"""
Values -- Immutable, self-validating monetary value objects.

Responsibility:
    Currency and Money, the only representation of an amount anywhere in
    the engines. Yield projections, rateio lines, reserve balances and
    dashboard figures are all Money.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Depends only on fleet_kernel.domain.currency.

Invariants enforced:
    - Amounts are Decimal, never float. Floats are rejected outright so a
      0.01 tolerance comparison can never be skewed by binary rounding.
    - A Money always carries a registered ISO 4217 Currency.
    - Arithmetic and comparisons never mix currencies.

Failure modes:
    - ValueError for unparseable amounts, unknown currencies, or mixed
      currencies in arithmetic.
    - TypeError for float amounts or non-scalar multipliers.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from fleet_kernel.domain.currency import CurrencyRegistry


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Guarantees:
        - code is uppercase, stripped and registered in CurrencyRegistry
        - immutable and hashable
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if isinstance(self.code, str) else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Invalid ISO 4217 currency code: {self.code!r}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def quantum(self) -> Decimal:
        """Smallest unit of the currency as a Decimal (0.01 for BRL)."""
        return CurrencyRegistry.get_quantum(self.code)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


def _to_decimal(value: Decimal | str | int) -> Decimal:
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; pass a str or Decimal")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency. Amounts may be signed;
        reserve balances and movements use the sign, everything else is
        expected to be non-negative and validated by its caller.

    Guarantees:
        - amount is always Decimal
        - no silent currency mixing
        - no implicit rounding; callers call ``round()`` when they need
          currency precision

    Non-goals:
        - Currency conversion
        - Display formatting
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _to_decimal(self.amount))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency = "BRL") -> Money:
        """Build Money from a Decimal, str or int amount. Defaults to BRL."""
        return cls(amount=_to_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency = "BRL") -> Money:
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Return a copy rounded to the currency's decimal places."""
        return Money(
            amount=self.amount.quantize(self.currency.quantum, rounding=rounding),
            currency=self.currency,
        )

    def _check_currency(self, other: Money, op: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount), currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        """Multiply by a scalar."""
        if isinstance(factor, Money) or isinstance(factor, float):
            return NotImplemented
        return Money(amount=self.amount * _to_decimal(factor), currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __truediv__(self, divisor: Decimal | int | str) -> Money:
        """Divide by a scalar."""
        if isinstance(divisor, Money) or isinstance(divisor, float):
            return NotImplemented
        return Money(amount=self.amount / _to_decimal(divisor), currency=self.currency)

    def ratio_to(self, other: Money) -> Decimal:
        """Return ``self / other`` as a plain Decimal (same currency only)."""
        self._check_currency(other, "divide")
        if other.amount == 0:
            raise ZeroDivisionError(f"Cannot take a ratio against zero {other.currency}")
        return self.amount / other.amount

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def sum_money(values, currency: str | Currency = "BRL") -> Money:
    """Sum an iterable of Money, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total
