"""
Module: fleet_kernel.db.types
Responsibility: Annotated column aliases shared by the fleet finance models,
    so every amount, rate and code column is declared with the same type.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount: 38 digits, 9 decimal places
Amount = Annotated[Decimal, Numeric(38, 9)]

# Annual rates, percentages and ownership shares
Rate = Annotated[Decimal, Numeric(20, 10)]

# ISO 4217 currency code
CurrencyCode = Annotated[str, String(3)]

# Enum values and short identifiers
ShortCode = Annotated[str, String(50)]

# External identifiers owned by collaborators (aircraft, members, accounts)
ExternalId = Annotated[str, String(64)]

# Justifications and notes
LongText = Annotated[str, String(4000)]
