"""
ttb_services.brop_service -- Brewer's Report of Operations workflow.

Responsibility:
    Opens BROP periods on the filing calendar, generates (and regenerates)
    drafts from live movement data, finalizes a draft into an immutable
    snapshot and serves reads of finalized periods from that snapshot.

Architecture position:
    Services -- stateful orchestration over kernel services, selectors and
    pure engines.  Owns the anomaly confirmation policy; the engines only
    report anomalies.

Invariants enforced:
    - A finalized period is never recomputed for persistence: regenerate
      raises AlreadyFinalizedError, and ``dry_run`` recomputes without
      writing anything.
    - Finalization recomputes from live data with the drafted physical
      count, so the frozen figures are exactly what the movement log says
      at the moment of the compare-and-swap.
    - Outstanding anomalies block finalization unless the caller confirms
      them explicitly.
    - Reads after finalization verify the stored checksum.

Failure modes:
    - PeriodNotFoundError, AlreadyFinalizedError,
      InvalidPeriodTransitionError, OptimisticLockError from PeriodService.
    - DataGapError from the ledger service.
    - UnconfirmedAnomaliesError: anomalies present, ``confirm_anomalies``
      false.
    - SnapshotNotFoundError / SnapshotIntegrityError on finalized reads.
    - ConfigurationError: no filing schedule for the requested frequency.

Audit relevance:
    ``brop_draft_generated`` and ``brop_finalized`` records carry the
    reconciliation status, anomaly codes and snapshot checksum.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ttb_config import ComplianceConfig, get_active_config
from ttb_engines.materializer import PeriodSnapshot, ReportMaterializer
from ttb_engines.reconciliation import ReconciliationEngine, ReconciliationResult
from ttb_kernel.domain.clock import Clock, SystemClock
from ttb_kernel.domain.dtos import PeriodStatus, PeriodType, ReportKind, TTBPeriodInfo
from ttb_kernel.domain.filing_calendar import period_bounds
from ttb_kernel.domain.ledger_lines import PeriodLedgerEntry
from ttb_kernel.domain.values import Barrels
from ttb_kernel.exceptions import (
    AlreadyFinalizedError,
    ConfigurationError,
    InvalidPeriodTransitionError,
    UnconfirmedAnomaliesError,
)
from ttb_kernel.logging_config import LogContext, get_logger
from ttb_kernel.selectors.snapshot_selector import SnapshotSelector
from ttb_kernel.services.period_service import PeriodService
from ttb_services._snapshot_reader import read_verified_snapshot
from ttb_services.ledger_service import AggregatedLedger, OpeningSource, PeriodLedgerService

logger = get_logger("services.brop")


@dataclass(frozen=True)
class BROPDraft:
    """A freshly computed BROP (persisted or dry run)."""

    period: TTBPeriodInfo
    ledger: tuple[PeriodLedgerEntry, ...]
    reconciliation: ReconciliationResult
    opening_source: OpeningSource
    dry_run: bool = False

    @property
    def has_anomalies(self) -> bool:
        return self.reconciliation.has_anomalies


@dataclass(frozen=True)
class BROPReport:
    """
    What a reader sees for a period.

    For a finalized period ``snapshot`` is set and every figure comes from
    it; otherwise the report is the live draft.
    """

    period: TTBPeriodInfo
    ledger: tuple[PeriodLedgerEntry, ...]
    reconciliation: ReconciliationResult | None
    snapshot: PeriodSnapshot | None = None

    @property
    def is_frozen(self) -> bool:
        return self.snapshot is not None


class BROPReportService:
    """
    BROP draft / finalize workflow.

    Contract:
        Flush-only.  The caller commits through ``session_scope``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ComplianceConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._periods = PeriodService(session, self._clock)
        self._ledgers = PeriodLedgerService(session, self._clock)
        self._snapshots = SnapshotSelector(session)
        self._engine = ReconciliationEngine()
        self._materializer = ReportMaterializer()

    # =========================================================================
    # Periods
    # =========================================================================

    def open_period(
        self,
        workspace_id: UUID,
        period_type: PeriodType | str,
        anchor: date,
        actor_id: UUID,
        opening_balance_bbl: Barrels | Decimal | str | None = None,
    ) -> TTBPeriodInfo:
        """
        Open the BROP period of ``period_type`` containing ``anchor``.

        Raises:
            ConfigurationError: No BROP filing schedule for ``period_type``.
            PeriodOverlapError: The range overlaps an existing BROP period.
        """
        ptype = PeriodType(period_type)
        schedule = self._config.filing_schedule(ReportKind.BROP.value, ptype.value)
        if schedule is None:
            raise ConfigurationError(
                f"no BROP filing schedule for {ptype.value} periods",
                source=self._config.source_path,
            )
        start, end = period_bounds(ptype, anchor)
        return self._periods.create_period(
            workspace_id=workspace_id,
            report_kind=ReportKind.BROP,
            period_type=ptype,
            start_date=start,
            end_date=end,
            due_days_after_end=schedule.due_days_after_end,
            actor_id=actor_id,
            opening_balance_bbl=opening_balance_bbl,
        )

    def _get_brop_period(self, period_id: UUID) -> TTBPeriodInfo:
        period = self._periods.get_period(period_id)
        if period.report_kind != ReportKind.BROP:
            raise ValueError(f"Period {period_id} is a {period.report_kind.value} period")
        return period

    # =========================================================================
    # Draft
    # =========================================================================

    def _compute(
        self,
        period: TTBPeriodInfo,
        reported_closing_bbl: Barrels | Decimal | str | None,
    ) -> tuple[AggregatedLedger, ReconciliationResult]:
        aggregated = self._ledgers.aggregate_period(period, reported_closing_bbl)
        reconciliation = self._engine.reconcile(
            aggregated.entries,
            prior_closing_bbl=aggregated.prior_closing_bbl,
            checkpoints=aggregated.checkpoints,
            provisional_production_count=aggregated.provisional_production_count,
            tolerance=self._config.reconciliation_tolerance_bbl,
        )
        return aggregated, reconciliation

    def generate_draft(
        self,
        period_id: UUID,
        actor_id: UUID,
        *,
        reported_closing_bbl: Barrels | Decimal | str | None = None,
        dry_run: bool = False,
        expected_version: int | None = None,
    ) -> BROPDraft:
        """
        Compute the BROP for a period from the current movement log.

        Args:
            period_id: BROP period.
            actor_id: Who is generating.
            reported_closing_bbl: Physical on-hand count at period end.
                Defaults to the count stored by the previous draft.
            dry_run: Recompute without persisting.  Allowed on a finalized
                period, whose stored snapshot is left untouched.
            expected_version: Optimistic lock for the draft write.

        Raises:
            AlreadyFinalizedError: Regenerating a finalized period without
                ``dry_run``.
            DataGapError: No opening balance can be resolved.
        """
        with LogContext.bind(period_id=str(period_id), actor_id=str(actor_id)):
            period = self._get_brop_period(period_id)
            if period.is_finalized and not dry_run:
                raise AlreadyFinalizedError(str(period_id), operation="regenerate")

            closing = reported_closing_bbl
            if closing is None:
                closing = period.physical_count_bbl
            aggregated, reconciliation = self._compute(period, closing)

            if not dry_run:
                period = self._periods.mark_draft(
                    period_id,
                    actor_id,
                    entries=aggregated.entries,
                    expected_version=expected_version,
                    physical_count_bbl=closing,
                )

            logger.info("brop_draft_generated", extra={
                "period_id": str(period_id),
                "dry_run": dry_run,
                "opening_source": aggregated.opening_source.value,
                "reconciliation_status": reconciliation.status.value,
                "variance": str(reconciliation.variance.value),
                "anomaly_codes": list(reconciliation.anomaly_codes),
            })

            return BROPDraft(
                period=period,
                ledger=aggregated.entries,
                reconciliation=reconciliation,
                opening_source=aggregated.opening_source,
                dry_run=dry_run,
            )

    # =========================================================================
    # Finalize
    # =========================================================================

    def finalize(
        self,
        period_id: UUID,
        actor_id: UUID,
        *,
        confirm_anomalies: bool = False,
        expected_version: int | None = None,
    ) -> PeriodSnapshot:
        """
        Freeze a drafted BROP period.

        Raises:
            AlreadyFinalizedError: Already finalized (or lost the race).
            InvalidPeriodTransitionError: The period was never drafted.
            UnconfirmedAnomaliesError: Anomalies present and not confirmed.
            OptimisticLockError: Regenerated since ``expected_version``.
        """
        with LogContext.bind(period_id=str(period_id), actor_id=str(actor_id)):
            period = self._get_brop_period(period_id)
            if period.is_finalized:
                raise AlreadyFinalizedError(str(period_id))
            if period.status != PeriodStatus.DRAFT:
                raise InvalidPeriodTransitionError(
                    str(period_id), period.status.value, PeriodStatus.FINALIZED.value
                )

            aggregated, reconciliation = self._compute(period, period.physical_count_bbl)

            if reconciliation.has_anomalies and not confirm_anomalies:
                logger.warning("brop_finalize_blocked", extra={
                    "period_id": str(period_id),
                    "anomaly_codes": list(reconciliation.anomaly_codes),
                })
                raise UnconfirmedAnomaliesError(
                    str(period_id), list(reconciliation.anomaly_codes)
                )

            finalized_at = self._clock.now()
            snapshot = self._materializer.materialize(
                period,
                aggregated.entries,
                reconciliation,
                finalized_at=finalized_at,
                finalized_by_id=actor_id,
            )
            self._periods.finalize(
                period_id,
                actor_id,
                snapshot.payload,
                snapshot.checksum,
                expected_version=expected_version,
                finalized_at=finalized_at,
            )

            logger.info("brop_finalized", extra={
                "period_id": str(period_id),
                "checksum": snapshot.checksum,
                "closing_bbl": str(aggregated.closing_bbl.value),
                "confirmed_anomalies": list(reconciliation.anomaly_codes),
            })

            return snapshot

    # =========================================================================
    # Reads
    # =========================================================================

    def get_snapshot(self, period_id: UUID) -> PeriodSnapshot:
        """
        Verified snapshot of a finalized period.

        Raises:
            SnapshotNotFoundError: No snapshot stored for the period.
            SnapshotIntegrityError: Stored checksum does not match payload.
        """
        return read_verified_snapshot(self._snapshots, period_id)

    def get_report(self, period_id: UUID) -> BROPReport:
        """
        The report as a reader should see it.

        Finalized periods are served from the snapshot and never
        re-derived; open and draft periods are recomputed from live data.
        """
        period = self._get_brop_period(period_id)
        if period.is_finalized:
            snapshot = self.get_snapshot(period_id)
            return BROPReport(
                period=period,
                ledger=snapshot.ledger,
                reconciliation=snapshot.reconciliation,
                snapshot=snapshot,
            )
        aggregated, reconciliation = self._compute(period, period.physical_count_bbl)
        return BROPReport(
            period=period,
            ledger=aggregated.entries,
            reconciliation=reconciliation,
        )
