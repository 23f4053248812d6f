"""
ttb_services.ledger_service -- Period ledger over the movement log.

Responsibility:
    Read a workspace's volume movements for one inclusive date window,
    resolve the opening balance from the period chain and hand both to
    PeriodLedgerAggregator.  Also gathers the inputs the reconciliation
    engine needs besides the ledger itself: daily checkpoints, provisional
    production and the prior period's finalized closing.

Architecture position:
    Services -- read-only composition of kernel selectors and engines.

Invariants enforced:
    - Opening balance resolution, first match wins:
        1. prior period (same workspace and report kind, ending the day
           before) is finalized -> its snapshot closing (line 15);
        2. the period declares an explicit opening balance -> that value;
        3. the window has movements -> DataGapError;
        4. otherwise -> zero.
    - Nothing is written.  Aggregating twice over an unchanged log yields
      an equal result.

Failure modes:
    - DataGapError: movements exist but no opening balance can be resolved.
    - SnapshotNotFoundError / SnapshotIntegrityError: the prior period is
      finalized but its snapshot is missing or fails its checksum.
    - ValueError: start_date after end_date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from ttb_engines.ledger import PeriodLedgerAggregator
from ttb_engines.reconciliation import Checkpoint
from ttb_kernel.domain.clock import Clock
from ttb_kernel.domain.dtos import ReportKind, TTBPeriodInfo
from ttb_kernel.domain.ledger_lines import LedgerCategory, PeriodLedgerEntry
from ttb_kernel.domain.values import Barrels
from ttb_kernel.exceptions import DataGapError, SnapshotNotFoundError
from ttb_kernel.logging_config import get_logger
from ttb_kernel.selectors.movement_selector import MovementSelector
from ttb_kernel.selectors.snapshot_selector import SnapshotSelector
from ttb_kernel.services.period_service import PeriodService
from ttb_services._snapshot_reader import read_verified_snapshot

logger = get_logger("services.ledger")


class OpeningSource(str, Enum):
    """Where a period's opening balance came from."""

    PRIOR_SNAPSHOT = "prior_snapshot"
    DECLARED = "declared"
    EMPTY = "empty"


@dataclass(frozen=True)
class AggregatedLedger:
    """Ledger for one window plus everything reconciliation needs."""

    workspace_id: UUID
    start_date: date
    end_date: date
    opening_bbl: Barrels
    opening_source: OpeningSource
    entries: tuple[PeriodLedgerEntry, ...]
    checkpoints: tuple[Checkpoint, ...]
    provisional_production_count: int
    unexplained_loss_bbl: Barrels
    movement_count: int
    prior_period_id: UUID | None = None
    prior_closing_bbl: Barrels | None = None

    def quantity(self, category: LedgerCategory) -> Barrels:
        for entry in self.entries:
            if entry.category == category:
                return entry.quantity_bbl
        return Barrels.zero()

    @property
    def closing_bbl(self) -> Barrels:
        return self.quantity(LedgerCategory.CLOSING)


class PeriodLedgerService:
    """
    Builds period ledgers from live movement data.

    Contract:
        Takes a Session and never flushes or commits it.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        aggregator: PeriodLedgerAggregator | None = None,
    ):
        self._session = session
        self._periods = PeriodService(session, clock)
        self._movements = MovementSelector(session)
        self._snapshots = SnapshotSelector(session)
        self._aggregator = aggregator or PeriodLedgerAggregator()

    def aggregate(
        self,
        workspace_id: UUID,
        start_date: date,
        end_date: date,
        *,
        report_kind: ReportKind | str = ReportKind.BROP,
        declared_opening_bbl: Barrels | Decimal | str | None = None,
        reported_closing_bbl: Barrels | Decimal | str | None = None,
    ) -> AggregatedLedger:
        """
        Aggregate the movement log for ``start_date..end_date`` inclusive.

        Args:
            workspace_id: Brewery workspace.
            start_date: First day of the window.
            end_date: Last day of the window.
            report_kind: Period chain to resolve the opening balance from.
            declared_opening_bbl: Explicit opening for a first period.
            reported_closing_bbl: Physical on-hand count, if one was taken.

        Raises:
            DataGapError: Movements exist but no opening balance resolves.
        """
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        movement_count = self._movements.movement_count(workspace_id, start_date, end_date)
        opening, source, prior_id, prior_closing = self._resolve_opening(
            workspace_id,
            ReportKind(report_kind),
            start_date,
            declared_opening_bbl,
            has_movements=movement_count > 0,
        )

        totals = self._movements.category_totals(workspace_id, start_date, end_date)
        notes = self._movements.loss_notes(workspace_id, start_date, end_date)
        entries = self._aggregator.build(
            opening,
            totals,
            reported_closing_bbl=reported_closing_bbl,
            notes=notes,
        )

        checkpoints = tuple(
            Checkpoint(on_date=d.on_date, net_bbl=Barrels.of(d.net_bbl))
            for d in self._movements.daily_net(workspace_id, start_date, end_date)
        )
        provisional = self._movements.provisional_production_count(
            workspace_id, start_date, end_date
        )
        unexplained = Barrels.of(
            self._movements.unexplained_loss_bbl(workspace_id, start_date, end_date)
        )

        logger.info("period_ledger_aggregated", extra={
            "workspace_id": str(workspace_id),
            "start_date": str(start_date),
            "end_date": str(end_date),
            "opening_bbl": str(opening.value),
            "opening_source": source.value,
            "movement_count": movement_count,
            "provisional_production_count": provisional,
        })

        return AggregatedLedger(
            workspace_id=workspace_id,
            start_date=start_date,
            end_date=end_date,
            opening_bbl=opening,
            opening_source=source,
            entries=entries,
            checkpoints=checkpoints,
            provisional_production_count=provisional,
            unexplained_loss_bbl=unexplained,
            movement_count=movement_count,
            prior_period_id=prior_id,
            prior_closing_bbl=prior_closing,
        )

    def aggregate_period(
        self,
        period: TTBPeriodInfo,
        reported_closing_bbl: Barrels | Decimal | str | None = None,
    ) -> AggregatedLedger:
        """Aggregate a stored period, using its declared opening if it has one."""
        return self.aggregate(
            period.workspace_id,
            period.start_date,
            period.end_date,
            report_kind=period.report_kind,
            declared_opening_bbl=period.opening_balance_bbl,
            reported_closing_bbl=reported_closing_bbl,
        )

    def _resolve_opening(
        self,
        workspace_id: UUID,
        report_kind: ReportKind,
        start_date: date,
        declared_opening_bbl: Barrels | Decimal | str | None,
        has_movements: bool,
    ) -> tuple[Barrels, OpeningSource, UUID | None, Barrels | None]:
        prior = self._periods.find_prior_period_for(workspace_id, report_kind, start_date)

        if prior is not None and prior.is_finalized:
            closing = self._prior_closing(prior)
            return closing, OpeningSource.PRIOR_SNAPSHOT, prior.id, closing

        if declared_opening_bbl is not None:
            return (
                Barrels.of(declared_opening_bbl),
                OpeningSource.DECLARED,
                prior.id if prior is not None else None,
                None,
            )

        if has_movements:
            if prior is not None:
                reason = f"prior period {prior.id} is {prior.status.value}, not finalized"
            else:
                reason = "no prior period and no declared opening balance"
            logger.warning("period_ledger_data_gap", extra={
                "workspace_id": str(workspace_id),
                "start_date": str(start_date),
                "reason": reason,
            })
            raise DataGapError(
                workspace_id=str(workspace_id),
                period_start=str(start_date),
                reason=reason,
                prior_period_id=str(prior.id) if prior is not None else None,
            )

        return Barrels.zero(), OpeningSource.EMPTY, None, None

    def _prior_closing(self, prior: TTBPeriodInfo) -> Barrels:
        closing = read_verified_snapshot(self._snapshots, prior.id).closing_bbl
        if closing is None:
            raise SnapshotNotFoundError(str(prior.id))
        return closing
