"""
Module: ttb_kernel.models.ttb_period
Responsibility: ORM persistence for TTB reporting periods (BROP and excise)
    and the lifecycle status that governs whether a period can still be
    regenerated.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One period per (workspace, report kind, start date) (uq_ttb_period_start).
    - Status transitions OPEN -> DRAFT -> FINALIZED; FINALIZED is terminal.
    - ``version`` is the optimistic-lock column; every ORM UPDATE is guarded
      by ``WHERE version = :expected`` and finalization is a compare-and-swap
      on (status, version).

Failure modes:
    - StaleDataError from the ORM when a concurrent writer bumped ``version``
      (translated to OptimisticLockError by PeriodService).
    - ImmutabilityViolationError (db/immutability.py) on ORM update or delete
      of a finalized period.

Audit relevance:
    A finalized period is the anchor of the opening-balance chain: the next
    period's opening balance is read from its snapshot.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Date, DateTime, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ttb_kernel.db.base import TrackedBase, UUIDString


class TTBPeriod(TrackedBase):
    """
    A reporting period for one TTB filing in one workspace.

    Guarantees:
        - start_date <= end_date (enforced by PeriodService at creation).
        - finalized_at / finalized_by_id are set only by the finalize CAS.

    Non-goals:
        - Does NOT store reconciliation results; those are derived on
          request until the period is finalized, then frozen in
          PeriodSnapshotRecord.
    """

    __tablename__ = "ttb_periods"

    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "report_kind", "start_date", name="uq_ttb_period_start"
        ),
        Index("idx_ttb_period_dates", "workspace_id", "report_kind", "start_date", "end_date"),
        Index("idx_ttb_period_status", "status"),
    )

    workspace_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # "brop" or "excise"
    report_kind: Mapped[str] = mapped_column(String(20), nullable=False)

    # monthly | quarterly | semi_monthly | annual
    period_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Inclusive boundaries
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="open", nullable=False)

    # Explicit opening balance for a workspace's first period (or an
    # onboarding override); otherwise the prior finalized closing is used.
    opening_balance_bbl: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 4, asdecimal=True), nullable=True
    )

    # Physical on-hand count at period end, recorded with the draft.  None
    # means the closing line is the book balance.
    physical_count_bbl: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 4, asdecimal=True), nullable=True
    )

    # Excise only: year-to-date CBMA barrels supplied with the worksheet
    # instead of the counter derived from earlier finalized periods.
    cbma_ytd_override_bbl: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 4, asdecimal=True), nullable=True
    )

    version: Mapped[int] = mapped_column(BigInteger, default=1, nullable=False)

    generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    finalized_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<TTBPeriod {self.report_kind} {self.start_date}..{self.end_date}: "
            f"{self.status}>"
        )

    @property
    def is_finalized(self) -> bool:
        return self.status == "finalized"

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date
