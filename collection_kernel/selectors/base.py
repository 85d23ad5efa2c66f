"""
Module: collection_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors are the read side of the kernel: dashboards, reports and
    reconciliation all go through them.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller but never
      call session.add(), session.delete(), session.commit(), or
      session.flush().
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - Totals read here never feed back into a stored cycle total.

Failure modes:
    - NotFoundError subclasses when a query is anchored on a missing row.
"""

from abc import ABC
from decimal import Decimal
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from collection_kernel.db.base import Base
from collection_kernel.db.types import ZERO, round_money

ModelType = TypeVar("ModelType", bound=Base)


def as_money(value) -> Decimal:
    """Normalize an aggregate result (None, float or Decimal) to money."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return round_money(value)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        """
        Initialize the selector.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
