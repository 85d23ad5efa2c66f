"""
Module: collection_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money
    columns.  Centralizes precision and rounding so that every model and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - MONEY_DECIMAL_PLACES is the canonical precision for amounts and
      round_money() is the ONLY sanctioned rounding function.
    - No floats anywhere in the kernel.  All amounts use Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric

MONEY_DECIMAL_PLACES = 2

# Monetary amount: 18 digits total, 2 decimal places
Money = Annotated[Decimal, Numeric(18, MONEY_DECIMAL_PLACES)]

ZERO = Decimal("0")

_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def round_money(amount: Decimal) -> Decimal:
    """Round an amount to the ledger precision using ROUND_HALF_UP."""
    return amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)
