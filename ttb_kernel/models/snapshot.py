"""
Module: ttb_kernel.models.snapshot
Responsibility: The frozen record of a finalized period -- ledger lines,
    reconciliation, excise bands -- stored as canonical JSON with its
    SHA-256 checksum.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one snapshot per period (uq_snapshot_period).  A second insert
      is how a concurrent double-finalize is detected.
    - Append-only: ORM listeners reject UPDATE and DELETE
      (db/immutability.py).

Audit relevance:
    Every read of a finalized period returns this payload, never a
    re-derivation from the live movement log.  Later corrections flow into
    the next open period.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ttb_kernel.db.base import TrackedBase, UUIDString


class PeriodSnapshotRecord(TrackedBase):
    """Immutable snapshot of a finalized period."""

    __tablename__ = "ttb_period_snapshots"

    __table_args__ = (
        UniqueConstraint("period_id", name="uq_snapshot_period"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ttb_periods.id"), nullable=False
    )

    report_kind: Mapped[str] = mapped_column(String(20), nullable=False)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    checksum: Mapped[str] = mapped_column(String(64), nullable=False)

    finalized_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    finalized_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<PeriodSnapshotRecord period={self.period_id} {self.checksum[:12]}>"
