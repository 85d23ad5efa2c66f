"""
Module: collection_kernel.models.person
Responsibility: ORM persistence for payers -- the people cash is collected
    from.  Person rows anchor every cycle, collection and withdrawal.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models only.  MUST NOT import from services/, selectors/,
    domain/, or outer layers.

Invariants enforced:
    - Soft delete only: deactivation flips ``is_active``; the ledger never
      issues DELETE for a person, so cycles, collections and withdrawals stay
      attached and reportable.
    - default_amount > 0 (CHECK constraint; validated earlier by PersonService).

Failure modes:
    - IntegrityError on a non-positive default_amount that bypassed the service.
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from collection_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from collection_kernel.models.collection import Collection
    from collection_kernel.models.cycle import Cycle
    from collection_kernel.models.withdrawal import Withdrawal


class PersonFrequency(str, Enum):
    """How often a person is expected to pay.

    Advisory only: the ledger never enforces a schedule.
    """

    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class Person(TrackedBase):
    """
    A payer profile.

    Guarantees:
        - name and default_amount are always present.
        - is_active defaults to True; False means soft-deleted.
        - Owned cycles, collections and withdrawals are cascade-deleted only
          when the person row itself is physically removed (restore).
    """

    __tablename__ = "people"

    __table_args__ = (
        CheckConstraint("default_amount > 0", name="ck_person_default_amount_positive"),
        Index("idx_people_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    photo_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Expected payment per collection day
    default_amount: Mapped[Decimal] = mapped_column(nullable=False)

    frequency: Mapped[PersonFrequency] = mapped_column(
        String(20),
        nullable=False,
        default=PersonFrequency.DAILY,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    cycles: Mapped[list["Cycle"]] = relationship(
        back_populates="person",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    collections: Mapped[list["Collection"]] = relationship(
        back_populates="person",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    withdrawals: Mapped[list["Withdrawal"]] = relationship(
        back_populates="person",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Person {self.name} ({self.default_amount}/{self.frequency})>"
