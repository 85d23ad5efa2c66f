"""
Module: collection_kernel.models.collection
Responsibility: ORM persistence for daily collection outcomes -- one row per
    (person, calendar day), either a collected amount or a skip.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models only.

Invariants enforced:
    - Unique (person_id, date): re-recording a day replaces the row
      (``uq_collection_person_date``).
    - status is COLLECTED or SKIPPED.  PENDING exists only as a derived view
      value in selectors and is never stored (CHECK constraint).
    - A SKIPPED row has amount NULL.

Failure modes:
    - IntegrityError on a duplicate (person_id, date) insert or on a stored
      PENDING status.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from collection_kernel.db.base import Base, UUIDString, utcnow

if TYPE_CHECKING:
    from collection_kernel.models.cycle import Cycle
    from collection_kernel.models.person import Person


class CollectionStatus(str, Enum):
    """Outcome of one collection day."""

    COLLECTED = "collected"
    SKIPPED = "skipped"
    PENDING = "pending"  # Derived only, never persisted

    @property
    def is_stored(self) -> bool:
        return self is not CollectionStatus.PENDING


class Collection(Base):
    """
    One calendar day's outcome for a person.

    Guarantees:
        - Belongs to exactly one cycle (the cycle that was active when the
          day was recorded).
        - amount is set iff status is COLLECTED.
    """

    __tablename__ = "collections"

    __table_args__ = (
        UniqueConstraint("person_id", "date", name="uq_collection_person_date"),
        CheckConstraint(
            "status IN ('collected', 'skipped')",
            name="ck_collection_status_stored",
        ),
        Index("idx_collections_date", "date"),
        Index("idx_collections_person", "person_id"),
        Index("idx_collections_cycle", "cycle_id"),
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

    date: Mapped[dt.date] = mapped_column(nullable=False)

    amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[CollectionStatus] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(default=utcnow, nullable=False)

    person: Mapped["Person"] = relationship(back_populates="collections")

    cycle: Mapped["Cycle"] = relationship(back_populates="collections")

    @property
    def collected_amount(self) -> Decimal:
        """Amount counted toward the cycle total (0 for skips)."""
        if self.status == CollectionStatus.COLLECTED and self.amount is not None:
            return self.amount
        return Decimal("0")

    def __repr__(self) -> str:
        return f"<Collection {self.date} {self.status} {self.amount}>"
