"""
Module: ttb_kernel.models.movement
Responsibility: The workspace-scoped volume movement log.  Batch completion,
    packaging runs, sales/removal ingestion, transfers in bond and manual
    inventory adjustments each append rows here; the ledger aggregator sums
    them per BROP category.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``category`` is one of the BROP movement categories (never opening or
      closing; balances are derived, not logged).
    - ``quantity_bbl`` is exact decimal.  Corrections are new rows dated in
      the open period, never edits to rows inside a finalized period.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ttb_kernel.db.base import TrackedBase, UUIDString


class VolumeMovement(TrackedBase):
    """One recorded movement of beer into or out of bonded inventory."""

    __tablename__ = "volume_movements"

    __table_args__ = (
        Index("idx_movement_workspace_date", "workspace_id", "occurred_on"),
        Index("idx_movement_category", "workspace_id", "category"),
    )

    workspace_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)

    category: Mapped[str] = mapped_column(String(40), nullable=False)

    quantity_bbl: Mapped[Decimal] = mapped_column(
        Numeric(18, 4, asdecimal=True), nullable=False
    )

    # batch | packaging | sales | transfer | adjustment
    source_type: Mapped[str] = mapped_column(String(30), nullable=False, default="adjustment")

    source_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Removal destination (distributor, taproom, export, ...)
    destination: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Volume estimate from a batch whose records are not complete yet
    is_provisional: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<VolumeMovement {self.occurred_on} {self.category} {self.quantity_bbl}>"
