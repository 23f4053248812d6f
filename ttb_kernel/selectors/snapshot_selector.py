"""
Module: ttb_kernel.selectors.snapshot_selector
Responsibility: Read-only access to finalized period snapshots.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Snapshots are returned as stored.  Nothing here re-derives a
      finalized period from the live movement log.
"""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ttb_kernel.models.snapshot import PeriodSnapshotRecord
from ttb_kernel.models.ttb_period import TTBPeriod
from ttb_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StoredSnapshot:
    """A snapshot row as read back from the store."""

    id: UUID
    period_id: UUID
    report_kind: str
    payload: dict
    checksum: str
    finalized_at: datetime
    finalized_by_id: UUID


class SnapshotSelector(BaseSelector[PeriodSnapshotRecord]):
    """Queries over ``ttb_period_snapshots``."""

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def _to_dto(record: PeriodSnapshotRecord) -> StoredSnapshot:
        return StoredSnapshot(
            id=record.id,
            period_id=record.period_id,
            report_kind=record.report_kind,
            payload=record.payload,
            checksum=record.checksum,
            finalized_at=record.finalized_at,
            finalized_by_id=record.finalized_by_id,
        )

    def get_for_period(self, period_id: UUID) -> StoredSnapshot | None:
        record = self.session.execute(
            select(PeriodSnapshotRecord).where(PeriodSnapshotRecord.period_id == period_id)
        ).scalar_one_or_none()
        return self._to_dto(record) if record is not None else None

    def finalized_in_year(
        self,
        workspace_id: UUID,
        report_kind: str,
        tax_year: int,
        before: date,
    ) -> list[StoredSnapshot]:
        """
        Snapshots of finalized periods of ``report_kind`` that start in
        ``tax_year`` and end before ``before``, ordered by period start.
        """
        rows = self.session.execute(
            select(PeriodSnapshotRecord)
            .join(TTBPeriod, TTBPeriod.id == PeriodSnapshotRecord.period_id)
            .where(
                TTBPeriod.workspace_id == workspace_id,
                TTBPeriod.report_kind == report_kind,
                TTBPeriod.status == "finalized",
                TTBPeriod.start_date >= date(tax_year, 1, 1),
                TTBPeriod.end_date < before,
            )
            .order_by(TTBPeriod.start_date)
        ).scalars()
        return [self._to_dto(r) for r in rows]
