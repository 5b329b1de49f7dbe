"""Currency precision table used to round Money amounts."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Code, minor-unit digits and display name of one currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable unit, e.g. Decimal('0.01') for BRL."""
        return Decimal(1).scaleb(-self.decimal_places)


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies the fleet books can hold."""

    # Aircraft are bought, maintained and flown across these markets.
    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "BRL": CurrencyInfo("BRL", 2, "Brazilian Real"),
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "ARS": CurrencyInfo("ARS", 2, "Argentine Peso"),
        "UYU": CurrencyInfo("UYU", 2, "Uruguayan Peso"),
        "PYG": CurrencyInfo("PYG", 0, "Paraguayan Guarani"),
        "CLP": CurrencyInfo("CLP", 0, "Chilean Peso"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is registered."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def get_quantum(cls, code: str) -> Decimal:
        """Quantize target for rounding amounts in ``code``."""
        return Decimal(1).scaleb(-cls.get_decimal_places(code))

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES.keys())
