"""
Module: collection_kernel.models.cycle
Responsibility: ORM persistence for collection cycles -- the accounting
    period for one person between withdrawals, holding the running total.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models only.

Invariants enforced:
    - At most one active cycle per person: partial unique index
      ``uq_cycle_one_active_per_person`` on (person_id) WHERE is_active.
    - total_amount >= 0 (CHECK constraint; the ledger rejects negative deltas
      before they reach the database).
    - Closed cycles are terminal.  Their total_amount records what was
      withdrawn at close and is never changed by collection events.

Failure modes:
    - IntegrityError if a second active cycle is inserted for a person, or if
      a negative total is flushed.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from collection_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from collection_kernel.models.collection import Collection
    from collection_kernel.models.person import Person
    from collection_kernel.models.withdrawal import Withdrawal


class Cycle(Base):
    """
    Open or closed accounting period for one person.

    Guarantees:
        - A new cycle starts active with total_amount = 0.
        - Closing sets is_active=False, end_date and withdrawal_date together.
    """

    __tablename__ = "cycles"

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_cycle_total_non_negative"),
        Index("idx_cycles_person", "person_id"),
        Index("idx_cycles_active", "is_active"),
        Index(
            "uq_cycle_one_active_per_person",
            "person_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    person_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(nullable=False)

    end_date: Mapped[date | None] = mapped_column(nullable=True)

    # Running balance; mutated only through LedgerService / CycleService
    total_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    withdrawal_date: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    person: Mapped["Person"] = relationship(back_populates="cycles")

    collections: Mapped[list["Collection"]] = relationship(
        back_populates="cycle",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    withdrawals: Mapped[list["Withdrawal"]] = relationship(
        back_populates="cycle",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_closed(self) -> bool:
        return not self.is_active

    def __repr__(self) -> str:
        state = "active" if self.is_active else "closed"
        return f"<Cycle {self.id} {state} total={self.total_amount}>"
