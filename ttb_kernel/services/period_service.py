"""
PeriodService -- TTB reporting period lifecycle and the finalize lock.

Responsibility:
    Creates reporting periods, moves them through OPEN -> DRAFT (repeatable)
    -> FINALIZED, stores the current draft's BROP lines and performs the
    one-way finalize transition together with the snapshot insert.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the BROP and excise report services in ``ttb_services``.

Invariants enforced:
    - Periods of the same workspace and report kind never overlap.
    - FINALIZED is terminal.  Finalization is a compare-and-swap
      ``UPDATE ... WHERE status = 'draft' AND version = :expected``; zero
      affected rows means another writer got there first.
    - One snapshot per period (unique constraint); a duplicate insert is
      surfaced as AlreadyFinalizedError, never a silent overwrite.
    - Returns frozen ``TTBPeriodInfo`` DTOs, never ORM rows.
    - Flush-only: never commits.

Failure modes:
    - PeriodNotFoundError: unknown period id.
    - PeriodOverlapError: new period overlaps an existing one.
    - AlreadyFinalizedError: regenerate or finalize on a finalized period.
    - InvalidPeriodTransitionError: finalize on a period never drafted.
    - OptimisticLockError: the period changed since the caller read it.

Audit relevance:
    Creation, draft generation and finalization are logged with
    period_id, report_kind, actor_id and version.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ttb_kernel.domain.clock import Clock, SystemClock
from ttb_kernel.domain.dtos import (
    PeriodStatus,
    PeriodType,
    ReportKind,
    TTBPeriodInfo,
    can_transition,
)
from ttb_kernel.domain.filing_calendar import due_date_for
from ttb_kernel.domain.ledger_lines import PeriodLedgerEntry, ordered_line_codes
from ttb_kernel.domain.values import Barrels
from ttb_kernel.exceptions import (
    AlreadyFinalizedError,
    InvalidPeriodTransitionError,
    OptimisticLockError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from ttb_kernel.logging_config import get_logger
from ttb_kernel.models.period_entry import TTBPeriodEntry
from ttb_kernel.models.snapshot import PeriodSnapshotRecord
from ttb_kernel.models.ttb_period import TTBPeriod
from ttb_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[TTBPeriod]):
    """
    Service for the reporting period lifecycle.

    Contract:
        Lifecycle methods flush within the caller's transaction and return
        ``TTBPeriodInfo``.  Every check runs before the first flush, so a
        rejected call leaves nothing behind.

    Non-goals:
        - Does NOT compute ledgers, reconciliations or tax; the caller
          passes in the already-materialized snapshot payload.
        - Does NOT decide whether anomalies block finalization (that is
          policy, owned by the report services).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _to_dto(self, period: TTBPeriod) -> TTBPeriodInfo:
        return TTBPeriodInfo(
            id=period.id,
            workspace_id=period.workspace_id,
            report_kind=ReportKind(period.report_kind),
            period_type=PeriodType(period.period_type),
            start_date=period.start_date,
            end_date=period.end_date,
            due_date=period.due_date,
            status=PeriodStatus(period.status),
            opening_balance_bbl=(
                Barrels.of(period.opening_balance_bbl)
                if period.opening_balance_bbl is not None
                else None
            ),
            physical_count_bbl=(
                Barrels.of(period.physical_count_bbl)
                if period.physical_count_bbl is not None
                else None
            ),
            cbma_ytd_override_bbl=(
                Barrels.of(period.cbma_ytd_override_bbl)
                if period.cbma_ytd_override_bbl is not None
                else None
            ),
            version=period.version,
            generated_at=period.generated_at,
            finalized_at=period.finalized_at,
            finalized_by_id=period.finalized_by_id,
        )

    # =========================================================================
    # Creation and lookup
    # =========================================================================

    def create_period(
        self,
        workspace_id: UUID,
        report_kind: ReportKind | str,
        period_type: PeriodType | str,
        start_date: date,
        end_date: date,
        due_days_after_end: int,
        actor_id: UUID,
        opening_balance_bbl: Barrels | Decimal | str | None = None,
    ) -> TTBPeriodInfo:
        """
        Create a new OPEN reporting period.

        Args:
            workspace_id: Owning brewery workspace.
            report_kind: brop or excise.
            period_type: Filing frequency.
            start_date: First day of the period (inclusive).
            end_date: Last day of the period (inclusive).
            due_days_after_end: Filing deadline offset from configuration.
            actor_id: Who is creating the period.
            opening_balance_bbl: Explicit opening balance for a workspace's
                first period.  Later periods chain from the prior snapshot.

        Raises:
            ValueError: If start_date > end_date.
            PeriodOverlapError: If the range overlaps an existing period.
        """
        kind = ReportKind(report_kind)
        ptype = PeriodType(period_type)

        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        self._validate_no_overlap(workspace_id, kind, start_date, end_date)

        opening = None
        if opening_balance_bbl is not None:
            opening = Barrels.of(opening_balance_bbl).value

        period = TTBPeriod(
            workspace_id=workspace_id,
            report_kind=kind.value,
            period_type=ptype.value,
            start_date=start_date,
            end_date=end_date,
            due_date=due_date_for(end_date, due_days_after_end),
            status=PeriodStatus.OPEN.value,
            opening_balance_bbl=opening,
            created_by_id=actor_id,
        )

        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period_id": str(period.id),
                "report_kind": kind.value,
                "period_type": ptype.value,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "due_date": str(period.due_date),
            },
        )

        return self._to_dto(period)

    def _validate_no_overlap(
        self,
        workspace_id: UUID,
        report_kind: ReportKind,
        start_date: date,
        end_date: date,
    ) -> None:
        """Two ranges overlap if start1 <= end2 AND start2 <= end1."""
        overlapping = self.session.execute(
            select(TTBPeriod)
            .where(
                TTBPeriod.workspace_id == workspace_id,
                TTBPeriod.report_kind == report_kind.value,
                TTBPeriod.start_date <= end_date,
                TTBPeriod.end_date >= start_date,
            )
            .order_by(TTBPeriod.start_date)
            .limit(1)
        ).scalar_one_or_none()

        if overlapping:
            raise PeriodOverlapError(
                workspace_id=str(workspace_id),
                report_kind=report_kind.value,
                existing_period_id=str(overlapping.id),
                overlap_start=str(max(start_date, overlapping.start_date)),
                overlap_end=str(min(end_date, overlapping.end_date)),
            )

    def _get_period_orm(self, period_id: UUID) -> TTBPeriod:
        period = self.session.get(TTBPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def get_period(self, period_id: UUID) -> TTBPeriodInfo:
        """
        Raises:
            PeriodNotFoundError: If no such period exists.
        """
        return self._to_dto(self._get_period_orm(period_id))

    def find_period_ending(
        self,
        workspace_id: UUID,
        report_kind: ReportKind | str,
        end_date: date,
    ) -> TTBPeriodInfo | None:
        period = self.session.execute(
            select(TTBPeriod).where(
                TTBPeriod.workspace_id == workspace_id,
                TTBPeriod.report_kind == ReportKind(report_kind).value,
                TTBPeriod.end_date == end_date,
            )
        ).scalar_one_or_none()
        return self._to_dto(period) if period is not None else None

    def find_prior_period(self, period: TTBPeriodInfo) -> TTBPeriodInfo | None:
        """The period of the same workspace and kind ending the day before ``period`` starts."""
        return self.find_prior_period_for(
            period.workspace_id, period.report_kind, period.start_date
        )

    def find_prior_period_for(
        self,
        workspace_id: UUID,
        report_kind: ReportKind | str,
        start_date: date,
    ) -> TTBPeriodInfo | None:
        return self.find_period_ending(
            workspace_id, report_kind, start_date - timedelta(days=1)
        )

    def list_periods(
        self,
        workspace_id: UUID,
        report_kind: ReportKind | str | None = None,
    ) -> list[TTBPeriodInfo]:
        """All periods of a workspace, ordered by start date."""
        query = select(TTBPeriod).where(TTBPeriod.workspace_id == workspace_id)
        if report_kind is not None:
            query = query.where(TTBPeriod.report_kind == ReportKind(report_kind).value)
        query = query.order_by(TTBPeriod.report_kind, TTBPeriod.start_date)
        return [self._to_dto(p) for p in self.session.execute(query).scalars()]

    # =========================================================================
    # Draft generation
    # =========================================================================

    def mark_draft(
        self,
        period_id: UUID,
        actor_id: UUID,
        entries: tuple[PeriodLedgerEntry, ...] = (),
        expected_version: int | None = None,
        physical_count_bbl: Barrels | Decimal | str | None = None,
        cbma_ytd_override_bbl: Barrels | Decimal | str | None = None,
    ) -> TTBPeriodInfo:
        """
        Record a (re)generated draft.

        Moves OPEN -> DRAFT or DRAFT -> DRAFT, stamps ``generated_at`` and
        replaces the stored draft lines with ``entries``.  The physical
        count and CBMA override are stored as given; callers that keep a
        previous value pass it back in.

        Raises:
            AlreadyFinalizedError: If the period is finalized.
            OptimisticLockError: If ``expected_version`` is stale.
        """
        period = self._get_period_orm(period_id)

        if period.status == PeriodStatus.FINALIZED.value:
            raise AlreadyFinalizedError(str(period_id), operation="regenerate")
        if not can_transition(PeriodStatus(period.status), PeriodStatus.DRAFT):
            raise InvalidPeriodTransitionError(
                str(period_id), period.status, PeriodStatus.DRAFT.value
            )
        if expected_version is not None and period.version != expected_version:
            raise OptimisticLockError(str(period_id), expected_version, period.version)

        existing = self.session.execute(
            select(TTBPeriodEntry).where(TTBPeriodEntry.period_id == period_id)
        ).scalars().all()
        for row in existing:
            self.session.delete(row)
        # Deletes must reach the database before re-inserting the same categories
        self.session.flush()

        for entry in entries:
            self.session.add(
                TTBPeriodEntry(
                    period_id=period_id,
                    line_code=entry.line_code,
                    category=entry.category.value,
                    quantity_bbl=entry.quantity_bbl.value,
                    notes=entry.notes,
                )
            )

        previous_version = period.version
        period.status = PeriodStatus.DRAFT.value
        period.physical_count_bbl = (
            Barrels.of(physical_count_bbl).value if physical_count_bbl is not None else None
        )
        period.cbma_ytd_override_bbl = (
            Barrels.of(cbma_ytd_override_bbl).value
            if cbma_ytd_override_bbl is not None
            else None
        )
        period.generated_at = self._clock.now()
        period.updated_by_id = actor_id

        try:
            self.session.flush()
        except StaleDataError as e:
            self.session.rollback()
            actual = self._current_version(period_id)
            logger.warning(
                "period_draft_version_conflict",
                extra={
                    "period_id": str(period_id),
                    "expected_version": previous_version,
                    "actual_version": actual,
                },
            )
            raise OptimisticLockError(str(period_id), previous_version, actual) from e

        logger.info(
            "period_draft_generated",
            extra={
                "period_id": str(period_id),
                "report_kind": period.report_kind,
                "line_count": len(entries),
                "version": period.version,
            },
        )

        return self._to_dto(period)

    def get_draft_entries(self, period_id: UUID) -> tuple[PeriodLedgerEntry, ...]:
        """Stored draft lines in report order."""
        rows = self.session.execute(
            select(TTBPeriodEntry).where(TTBPeriodEntry.period_id == period_id)
        ).scalars().all()
        order = {code: i for i, code in enumerate(ordered_line_codes())}
        rows = sorted(rows, key=lambda r: order.get(r.line_code, len(order)))
        return tuple(
            PeriodLedgerEntry(
                line_code=r.line_code,
                category=r.category,
                quantity_bbl=Barrels.of(r.quantity_bbl),
                notes=r.notes,
            )
            for r in rows
        )

    # =========================================================================
    # Finalization
    # =========================================================================

    def finalize(
        self,
        period_id: UUID,
        actor_id: UUID,
        snapshot_payload: dict,
        snapshot_checksum: str,
        expected_version: int | None = None,
        finalized_at: datetime | None = None,
    ) -> TTBPeriodInfo:
        """
        Atomically transition DRAFT -> FINALIZED and store the snapshot.

        Preconditions:
            - The caller has already materialized and checksummed the
              snapshot; nothing here recomputes it.
            - ``finalized_at`` matches the timestamp inside the payload
              when given; otherwise the service clock is read.

        Postconditions:
            - Period status is FINALIZED with version + 1.
            - Exactly one PeriodSnapshotRecord exists for the period.

        Raises:
            PeriodNotFoundError: Unknown period.
            AlreadyFinalizedError: Period already finalized (including by a
                concurrent writer that won the compare-and-swap).
            InvalidPeriodTransitionError: Period is still OPEN.
            OptimisticLockError: Period was regenerated since it was read.
        """
        period = self._get_period_orm(period_id)

        if period.status == PeriodStatus.FINALIZED.value:
            raise AlreadyFinalizedError(str(period_id))
        if not can_transition(PeriodStatus(period.status), PeriodStatus.FINALIZED):
            raise InvalidPeriodTransitionError(
                str(period_id), period.status, PeriodStatus.FINALIZED.value
            )

        version = expected_version if expected_version is not None else period.version
        finalized_at = finalized_at or self._clock.now()

        result = self.session.execute(
            update(TTBPeriod)
            .where(
                TTBPeriod.id == period_id,
                TTBPeriod.status == PeriodStatus.DRAFT.value,
                TTBPeriod.version == version,
            )
            .values(
                status=PeriodStatus.FINALIZED.value,
                version=TTBPeriod.version + 1,
                finalized_at=finalized_at,
                finalized_by_id=actor_id,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current = self.session.execute(
                select(TTBPeriod.status, TTBPeriod.version).where(TTBPeriod.id == period_id)
            ).one()
            logger.warning(
                "period_finalize_cas_failed",
                extra={
                    "period_id": str(period_id),
                    "expected_version": version,
                    "actual_version": current.version,
                    "status": current.status,
                },
            )
            if current.status == PeriodStatus.FINALIZED.value:
                raise AlreadyFinalizedError(str(period_id))
            raise OptimisticLockError(str(period_id), version, current.version)

        self.session.add(
            PeriodSnapshotRecord(
                period_id=period_id,
                report_kind=period.report_kind,
                payload=snapshot_payload,
                checksum=snapshot_checksum,
                finalized_at=finalized_at,
                finalized_by_id=actor_id,
                created_by_id=actor_id,
            )
        )

        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            logger.warning(
                "concurrent_finalize_conflict",
                extra={"period_id": str(period_id)},
            )
            raise AlreadyFinalizedError(str(period_id))

        # The compare-and-swap bypassed the identity map
        self.session.refresh(period)

        logger.info(
            "period_finalized",
            extra={
                "period_id": str(period_id),
                "report_kind": period.report_kind,
                "version": period.version,
                "checksum": snapshot_checksum,
            },
        )

        return self._to_dto(period)

    def _current_version(self, period_id: UUID) -> int:
        return self.session.execute(
            select(TTBPeriod.version).where(TTBPeriod.id == period_id)
        ).scalar_one()
