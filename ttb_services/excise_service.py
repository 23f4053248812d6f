"""
ttb_services.excise_service -- Federal excise worksheet workflow.

Responsibility:
    Builds the excise worksheet for an excise period: removal detail from
    the movement log, netting of taxpaid returns, CBMA band allocation
    against the year-to-date counter, and finalization into a snapshot.

Architecture position:
    Services -- orchestration over kernel selectors, PeriodService, the
    pure excise engine and the configured rate table.

Invariants enforced:
    - The year-to-date CBMA counter is derived from finalized excise
      snapshots of the same tax year that end before this period starts,
      unless the caller supplies it.  It resets every January 1.
    - A period is finalized on the derived counter only when every earlier
      excise period of the tax year is finalized.  A supplied counter is
      stored with the draft and reused at finalization.
    - The rate table is the one in force on the period's first day.
    - A finalized period is never rebuilt for persistence; ``dry_run``
      recomputes without writing.

Failure modes:
    - ConfigurationError: no rate table or filing schedule applies.
    - AlreadyFinalizedError / InvalidPeriodTransitionError /
      OptimisticLockError from PeriodService.
    - DataGapError: an earlier excise period of the tax year is still open
      or draft at finalization.
    - SnapshotIntegrityError: a snapshot feeding the counter fails its
      checksum.
    - ValueError: the period is not an excise period.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ttb_config import ComplianceConfig, get_active_config, get_excise_rate_table
from ttb_engines.excise import ExciseTaxCalculator, ExciseWorksheet, Removal
from ttb_engines.materializer import (
    PeriodSnapshot,
    ReportMaterializer,
    compute_snapshot_checksum,
)
from ttb_kernel.domain.cbma import CBMACounter
from ttb_kernel.domain.clock import Clock, SystemClock
from ttb_kernel.domain.dtos import PeriodStatus, PeriodType, ReportKind, TTBPeriodInfo
from ttb_kernel.domain.filing_calendar import period_bounds
from ttb_kernel.domain.ledger_lines import LedgerCategory
from ttb_kernel.domain.values import Barrels
from ttb_kernel.exceptions import (
    AlreadyFinalizedError,
    ConfigurationError,
    DataGapError,
    InvalidPeriodTransitionError,
    SnapshotIntegrityError,
)
from ttb_kernel.logging_config import LogContext, get_logger
from ttb_kernel.selectors.movement_selector import MovementSelector
from ttb_kernel.selectors.snapshot_selector import SnapshotSelector
from ttb_kernel.services.period_service import PeriodService
from ttb_services._snapshot_reader import read_verified_snapshot

logger = get_logger("services.excise")

# Category -> (taxable, is_return)
_REMOVAL_TREATMENT: dict[LedgerCategory, tuple[bool, bool]] = {
    LedgerCategory.REMOVED_TAX_DETERMINED: (True, False),
    LedgerCategory.CONSUMED_ON_PREMISES: (True, False),
    LedgerCategory.RETURNED_TO_BREWERY: (True, True),
    LedgerCategory.REMOVED_WITHOUT_TAX: (False, False),
}


class ExciseWorksheetService:
    """
    Excise worksheet build / finalize workflow.

    Contract:
        Flush-only.  The caller commits through ``session_scope``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ComplianceConfig | None = None,
        calculator: ExciseTaxCalculator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._periods = PeriodService(session, self._clock)
        self._movements = MovementSelector(session)
        self._snapshots = SnapshotSelector(session)
        self._calculator = calculator or ExciseTaxCalculator()
        self._materializer = ReportMaterializer()

    def open_period(
        self,
        workspace_id: UUID,
        period_type: PeriodType | str,
        anchor: date,
        actor_id: UUID,
    ) -> TTBPeriodInfo:
        """
        Open the excise period of ``period_type`` containing ``anchor``.

        Raises:
            ConfigurationError: No excise filing schedule for ``period_type``.
        """
        ptype = PeriodType(period_type)
        schedule = self._config.filing_schedule(ReportKind.EXCISE.value, ptype.value)
        if schedule is None:
            raise ConfigurationError(
                f"no excise filing schedule for {ptype.value} periods",
                source=self._config.source_path,
            )
        start, end = period_bounds(ptype, anchor)
        return self._periods.create_period(
            workspace_id=workspace_id,
            report_kind=ReportKind.EXCISE,
            period_type=ptype,
            start_date=start,
            end_date=end,
            due_days_after_end=schedule.due_days_after_end,
            actor_id=actor_id,
        )

    def _get_excise_period(self, period_id: UUID) -> TTBPeriodInfo:
        period = self._periods.get_period(period_id)
        if period.report_kind != ReportKind.EXCISE:
            raise ValueError(f"Period {period_id} is a {period.report_kind.value} period")
        return period

    # =========================================================================
    # Inputs
    # =========================================================================

    def removals_for(self, period: TTBPeriodInfo) -> tuple[Removal, ...]:
        """Removal detail for the period, returns as negative taxable rows."""
        records = self._movements.movements(
            period.workspace_id,
            period.start_date,
            period.end_date,
            categories=tuple(_REMOVAL_TREATMENT),
        )
        removals = []
        for record in records:
            taxable, is_return = _REMOVAL_TREATMENT[record.category]
            quantity = Barrels.of(record.quantity_bbl)
            removals.append(Removal(
                occurred_on=record.occurred_on,
                destination=record.destination,
                quantity_bbl=-quantity if is_return else quantity,
                taxable=taxable,
                reference=record.source_ref,
            ))
        return tuple(removals)

    def cbma_counter(self, period: TTBPeriodInfo) -> CBMACounter:
        """
        Taxable barrels already reported in the period's tax year.

        Raises:
            SnapshotIntegrityError: A contributing snapshot fails its checksum.
        """
        counter = CBMACounter.start_of_year(period.tax_year)
        for stored in self._snapshots.finalized_in_year(
            period.workspace_id,
            ReportKind.EXCISE.value,
            period.tax_year,
            before=period.start_date,
        ):
            snapshot = PeriodSnapshot.from_payload(stored.payload, stored.checksum)
            if not snapshot.verify():
                actual = compute_snapshot_checksum(stored.payload)
                logger.error("snapshot_integrity_failed", extra={
                    "period_id": str(stored.period_id),
                    "expected": stored.checksum,
                    "actual": actual,
                })
                raise SnapshotIntegrityError(str(stored.period_id), stored.checksum, actual)
            counter = counter.after(snapshot.taxable_bbl)
        return counter

    def _check_counter_chain(self, period: TTBPeriodInfo) -> None:
        """Every earlier excise period of the tax year must be finalized."""
        pending = [
            p for p in self._periods.list_periods(period.workspace_id, ReportKind.EXCISE)
            if p.tax_year == period.tax_year
            and p.start_date < period.start_date
            and not p.is_finalized
        ]
        if not pending:
            return
        first = pending[0]
        logger.warning("excise_counter_data_gap", extra={
            "period_id": str(period.id),
            "pending_period_id": str(first.id),
            "pending_count": len(pending),
        })
        raise DataGapError(
            str(period.workspace_id),
            str(period.start_date),
            f"earlier excise period {first.id} ({first.start_date}..{first.end_date}) "
            f"is {first.status.value}, not finalized",
            prior_period_id=str(first.id),
        )

    # =========================================================================
    # Worksheet
    # =========================================================================

    def _compute(
        self,
        period: TTBPeriodInfo,
        ytd_used_bbl: Barrels | None,
    ) -> ExciseWorksheet:
        rate_table = get_excise_rate_table(period.start_date, self._config)
        if ytd_used_bbl is None:
            ytd = self.cbma_counter(period).taxable_bbl_ytd
        else:
            ytd = ytd_used_bbl
        return ExciseWorksheet.build(
            period,
            self.removals_for(period),
            ytd,
            rate_table,
            calculator=self._calculator,
        )

    @staticmethod
    def _ytd_override(
        period: TTBPeriodInfo,
        ytd_used_bbl: Barrels | Decimal | str | None,
    ) -> Barrels | None:
        if ytd_used_bbl is not None:
            return Barrels.of(ytd_used_bbl)
        return period.cbma_ytd_override_bbl

    def build_worksheet(
        self,
        period_id: UUID,
        actor_id: UUID,
        *,
        dry_run: bool = False,
        ytd_used_bbl: Barrels | Decimal | str | None = None,
        expected_version: int | None = None,
    ) -> ExciseWorksheet:
        """
        Compute the worksheet and, unless ``dry_run``, mark the period DRAFT.

        An explicit ``ytd_used_bbl`` is stored with the draft and used again
        by later rebuilds and by ``finalize``.

        Raises:
            AlreadyFinalizedError: Rebuilding a finalized period without
                ``dry_run``.
            ConfigurationError: No rate table in force on the start date.
        """
        with LogContext.bind(period_id=str(period_id), actor_id=str(actor_id)):
            period = self._get_excise_period(period_id)
            if period.is_finalized and not dry_run:
                raise AlreadyFinalizedError(str(period_id), operation="regenerate")

            override = self._ytd_override(period, ytd_used_bbl)
            worksheet = self._compute(period, override)

            if not dry_run:
                period = self._periods.mark_draft(
                    period_id,
                    actor_id,
                    expected_version=expected_version,
                    cbma_ytd_override_bbl=override,
                )

            logger.info("excise_worksheet_built", extra={
                "period_id": str(period_id),
                "dry_run": dry_run,
                "net_taxable_bbl": str(worksheet.net.net_taxable_bbl.value),
                "ytd_before": str(worksheet.allocation.ytd_before.value),
                "ytd_override": override is not None,
                "total_tax_cents": worksheet.total_tax_cents,
                "rate_table_id": worksheet.rate_table_id,
            })

            return worksheet

    def finalize(
        self,
        period_id: UUID,
        actor_id: UUID,
        *,
        ytd_used_bbl: Barrels | Decimal | str | None = None,
        expected_version: int | None = None,
    ) -> PeriodSnapshot:
        """
        Freeze a drafted excise period.

        Uses ``ytd_used_bbl`` when given, else the override stored with the
        draft, else the counter of earlier finalized periods.

        Raises:
            AlreadyFinalizedError: Already finalized (or lost the race).
            InvalidPeriodTransitionError: The worksheet was never built.
            DataGapError: No override and an earlier excise period of the
                tax year is not finalized.
            SnapshotIntegrityError: An earlier snapshot fails its checksum.
        """
        with LogContext.bind(period_id=str(period_id), actor_id=str(actor_id)):
            period = self._get_excise_period(period_id)
            if period.is_finalized:
                raise AlreadyFinalizedError(str(period_id))
            if period.status != PeriodStatus.DRAFT:
                raise InvalidPeriodTransitionError(
                    str(period_id), period.status.value, PeriodStatus.FINALIZED.value
                )

            override = self._ytd_override(period, ytd_used_bbl)
            if override is None:
                self._check_counter_chain(period)
            worksheet = self._compute(period, override)
            finalized_at = self._clock.now()
            snapshot = self._materializer.materialize(
                period,
                finalized_at=finalized_at,
                finalized_by_id=actor_id,
                worksheet=worksheet,
            )
            self._periods.finalize(
                period_id,
                actor_id,
                snapshot.payload,
                snapshot.checksum,
                expected_version=expected_version,
                finalized_at=finalized_at,
            )

            logger.info("excise_finalized", extra={
                "period_id": str(period_id),
                "checksum": snapshot.checksum,
                "taxable_bbl": str(snapshot.taxable_bbl.value),
                "total_tax_cents": worksheet.total_tax_cents,
            })

            return snapshot

    def get_snapshot(self, period_id: UUID) -> PeriodSnapshot:
        """Verified snapshot of a finalized excise period."""
        return read_verified_snapshot(self._snapshots, period_id)
