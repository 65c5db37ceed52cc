"""
Module: market_kernel.db.types
Responsibility: Money column annotation and the Decimal helpers every
    monetary computation goes through.
Architecture position: Kernel > DB.  Imported by models, domain and services.

Invariants enforced:
    - Money is Decimal, stored as Numeric(38, 9).  Floats are rejected.
    - Percentages and results are rounded with ROUND_HALF_UP to the
      currency's minor unit (2 places by default).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric

Money = Annotated[Decimal, Numeric(38, 9)]

MONEY_DECIMAL_PLACES = 2
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round to the minor unit using ROUND_HALF_UP."""
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str or Decimal to a rounded money Decimal.

    Raises:
        TypeError: For floats and other unsupported types.
        ValueError: For unparseable or non-finite input.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money must not be built from {type(value).__name__}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        amount = money_from_str(value)
    else:
        raise TypeError(f"Unsupported money type: {type(value).__name__}")
    if not amount.is_finite():
        raise ValueError(f"Money must be finite: {value!r}")
    return round_money(amount)


def money_from_str(value: str) -> Decimal:
    try:
        amount = Decimal(value.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid money string: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Money must be finite: {value!r}")
    return amount


def percentage_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """``percentage`` percent of ``amount``, e.g. 2% cashback, half-up rounded."""
    return round_money(amount * percentage / HUNDRED)
