"""
Module: collection_kernel.models.setting
Responsibility: Key-value application settings (last backup date and
    similar bookkeeping).  Outside the ledger proper.
"""

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from collection_kernel.db.base import Base


class Setting(Base):
    """One application setting."""

    __tablename__ = "settings"

    __table_args__ = (
        UniqueConstraint("key", name="uq_setting_key"),
    )

    key: Mapped[str] = mapped_column(String(100), nullable=False)

    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Setting {self.key}={self.value!r}>"
