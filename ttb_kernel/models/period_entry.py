"""
Module: ttb_kernel.models.period_entry
Responsibility: Draft BROP line items for a period.  Each draft generation
    deletes and re-inserts the full set, so a draft is always one coherent
    computation.  Once the period is finalized the rows are frozen.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ttb_kernel.db.base import Base, UUIDString


class TTBPeriodEntry(Base):
    """One BROP line (category total) in a period's current draft."""

    __tablename__ = "ttb_period_entries"

    __table_args__ = (
        UniqueConstraint("period_id", "category", name="uq_ttb_entry_category"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ttb_periods.id"), nullable=False
    )

    line_code: Mapped[str] = mapped_column(String(4), nullable=False)

    category: Mapped[str] = mapped_column(String(40), nullable=False)

    quantity_bbl: Mapped[Decimal] = mapped_column(
        Numeric(18, 4, asdecimal=True), nullable=False
    )

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<TTBPeriodEntry {self.line_code} {self.category} {self.quantity_bbl}>"
