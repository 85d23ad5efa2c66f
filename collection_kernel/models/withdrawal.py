"""
Module: collection_kernel.models.withdrawal
Responsibility: ORM persistence for settlements -- money taken out of a
    cycle, either the whole balance (closing the cycle) or part of it.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models only.

Invariants enforced:
    - Append-only: rows are never updated or deleted through the ORM
      (see db/immutability.py).  The destructive restore is the only path
      that removes withdrawals, and it does so with bulk SQL.
    - amount >= 0 (CHECK constraint).

Failure modes:
    - ImmutabilityViolationError on any ORM update or delete of a row.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from collection_kernel.db.base import Base, UUIDString, utcnow

if TYPE_CHECKING:
    from collection_kernel.models.cycle import Cycle
    from collection_kernel.models.person import Person


class WithdrawalKind(str, Enum):
    """Whether the withdrawal closed its cycle."""

    FULL = "full"
    PARTIAL = "partial"


class Withdrawal(Base):
    """
    Immutable record of funds removed from a cycle.

    Guarantees:
        - A FULL withdrawal's amount equals the cycle total at close.
        - A PARTIAL withdrawal leaves its cycle active.
    """

    __tablename__ = "withdrawals"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_withdrawal_amount_non_negative"),
        Index("idx_withdrawals_person", "person_id"),
        Index("idx_withdrawals_cycle", "cycle_id"),
    )

    person_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
    )

    cycle_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cycles.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    date: Mapped[dt.date] = mapped_column(nullable=False)

    kind: Mapped[WithdrawalKind] = mapped_column(
        String(10),
        nullable=False,
        default=WithdrawalKind.FULL,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Last collection day settled by a date-ranged partial withdrawal.
    till_date: Mapped[dt.date | None] = mapped_column(nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(default=utcnow, nullable=False)

    person: Mapped["Person"] = relationship(back_populates="withdrawals")

    cycle: Mapped["Cycle"] = relationship(back_populates="withdrawals")

    def __repr__(self) -> str:
        return f"<Withdrawal {self.kind} {self.amount} on {self.date}>"
