"""
Amount coercion and validation (kernel primitives).

Pure checks with no I/O.  Used at service boundaries so that every amount
entering the ledger is a Decimal rounded to ledger precision.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from collection_kernel.db.types import ZERO, round_money
from collection_kernel.exceptions import InvalidAmountError


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce user input into a Decimal amount.

    Accepts Decimal, int, or numeric strings (whitespace and thousands
    separators are tolerated).  Floats go through ``str()`` so that 0.1 stays
    0.1.  Booleans, NaN and infinities are rejected.

    Raises:
        InvalidAmountError: value is not a finite number.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(value, "not a number", field=field)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            raise InvalidAmountError(value, "empty", field=field)
        try:
            amount = Decimal(text)
        except InvalidOperation as exc:
            raise InvalidAmountError(value, "not a number", field=field) from exc
    else:
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}", field=field)

    if not amount.is_finite():
        raise InvalidAmountError(value, "not a finite number", field=field)
    try:
        return round_money(amount)
    except InvalidOperation as exc:
        raise InvalidAmountError(value, "out of range", field=field) from exc


def require_non_negative(value: Any, field: str = "amount") -> Decimal:
    """Parse and require ``amount >= 0``."""
    amount = parse_amount(value, field=field)
    if amount < ZERO:
        raise InvalidAmountError(value, "must not be negative", field=field)
    return amount


def require_positive(value: Any, field: str = "amount") -> Decimal:
    """Parse and require ``amount > 0``."""
    amount = parse_amount(value, field=field)
    if amount <= ZERO:
        raise InvalidAmountError(value, "must be greater than zero", field=field)
    return amount
