"""
ttb_engines.materializer -- Immutable snapshot of a finalized period.

Responsibility:
    Freeze a period's ledger, reconciliation and excise allocation into one
    canonical JSON payload with a SHA-256 checksum.  After finalization
    every read of the period is served from this payload.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The finalize timestamp
    and actor are passed in; PeriodService persists the result.

Invariants enforced:
    - Canonical form: keys sorted, compact separators, quantities as exact
      decimal strings.  Identical input gives an identical checksum.
    - A period that is already finalized cannot be materialized again.

Failure modes:
    - AlreadyFinalizedError if ``period.is_finalized``.
    - ValueError if a ledger item is not a PeriodLedgerEntry.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from ttb_kernel.domain.dtos import ReportKind, TTBPeriodInfo
from ttb_kernel.domain.ledger_lines import (
    ADDITION_CATEGORIES,
    REMOVAL_CATEGORIES,
    TOTAL_ADDITIONS_LINE,
    TOTAL_REMOVALS_LINE,
    LedgerCategory,
    PeriodLedgerEntry,
)
from ttb_kernel.domain.values import Barrels
from ttb_kernel.exceptions import AlreadyFinalizedError
from ttb_kernel.logging_config import get_logger
from ttb_engines.excise import ExciseAllocation, ExciseWorksheet
from ttb_engines.reconciliation.types import ReconciliationResult
from ttb_engines.tracer import traced_engine

logger = get_logger("engines.materializer")

SNAPSHOT_SCHEMA_VERSION = 1


def canonical_json(payload: dict) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_snapshot_checksum(payload: dict) -> str:
    """SHA-256 hex digest of the canonical JSON form."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class PeriodSnapshot:
    """
    Frozen record of a finalized period.

    The payload is the single source of truth; the typed views below are
    rebuilt from it on access.
    """

    period_id: UUID
    report_kind: ReportKind
    payload: dict
    checksum: str

    @property
    def ledger(self) -> tuple[PeriodLedgerEntry, ...]:
        return tuple(PeriodLedgerEntry.from_payload(e) for e in self.payload.get("ledger", ()))

    @property
    def reconciliation(self) -> ReconciliationResult | None:
        data = self.payload.get("reconciliation")
        return ReconciliationResult.from_payload(data) if data else None

    @property
    def allocation(self) -> ExciseAllocation | None:
        data = self.payload.get("excise")
        return ExciseAllocation.from_payload(data) if data else None

    @property
    def closing_bbl(self) -> Barrels | None:
        """Line 15 of the frozen ledger (the next period's opening)."""
        for entry in self.ledger:
            if entry.category == LedgerCategory.CLOSING:
                return entry.quantity_bbl
        return None

    @property
    def taxable_bbl(self) -> Barrels:
        allocation = self.allocation
        return allocation.taxable_bbl if allocation is not None else Barrels.zero()

    @property
    def finalized_at(self) -> str:
        return self.payload["period"]["finalized_at"]

    def verify(self) -> bool:
        """True when the checksum matches the payload."""
        return compute_snapshot_checksum(self.payload) == self.checksum

    @classmethod
    def from_payload(cls, payload: dict, checksum: str | None = None) -> PeriodSnapshot:
        """Rebuild a snapshot from a stored payload.  Computes the checksum if not given."""
        period = payload["period"]
        return cls(
            period_id=UUID(period["id"]),
            report_kind=ReportKind(period["report_kind"]),
            payload=payload,
            checksum=checksum if checksum is not None else compute_snapshot_checksum(payload),
        )


class ReportMaterializer:
    """Pure builder of PeriodSnapshot."""

    @traced_engine(
        "materializer",
        "1.0",
        fingerprint_fields=("period", "ledger", "reconciliation", "tax_bands"),
    )
    def materialize(
        self,
        period: TTBPeriodInfo,
        ledger: Iterable[PeriodLedgerEntry] = (),
        reconciliation: ReconciliationResult | None = None,
        tax_bands: ExciseAllocation | None = None,
        *,
        finalized_at: datetime,
        finalized_by_id: UUID,
        worksheet: ExciseWorksheet | None = None,
    ) -> PeriodSnapshot:
        """
        Freeze a period.

        Args:
            period: The period being finalized (must not be finalized yet).
            ledger: BROP lines (empty for an excise period).
            reconciliation: BROP reconciliation, if any.
            tax_bands: Excise allocation, if any.  Taken from ``worksheet``
                when omitted.
            finalized_at: Finalization timestamp from the caller's clock.
            finalized_by_id: Actor finalizing the period.
            worksheet: Excise worksheet detail (removals, netting, CBMA).

        Raises:
            AlreadyFinalizedError: If the period is already finalized.
        """
        if period.is_finalized:
            raise AlreadyFinalizedError(str(period.id), operation="materialize")

        ledger = tuple(ledger)
        for entry in ledger:
            if not isinstance(entry, PeriodLedgerEntry):
                raise ValueError(f"Not a ledger entry: {entry!r}")
        if tax_bands is None and worksheet is not None:
            tax_bands = worksheet.allocation

        period_payload = period.to_payload()
        period_payload.update({
            "status": "finalized",
            "finalized_at": finalized_at.isoformat(),
            "finalized_by_id": str(finalized_by_id),
        })

        payload: dict[str, Any] = {
            "schema_version": SNAPSHOT_SCHEMA_VERSION,
            "period": period_payload,
            "ledger": [e.to_payload() for e in ledger],
            "totals": self._totals(ledger),
            "reconciliation": reconciliation.to_payload() if reconciliation else None,
            "excise": tax_bands.to_payload() if tax_bands else None,
            "worksheet": None,
        }
        if worksheet is not None:
            detail = worksheet.to_payload()
            detail.pop("period", None)
            detail.pop("allocation", None)
            payload["worksheet"] = detail

        checksum = compute_snapshot_checksum(payload)

        logger.info("period_snapshot_materialized", extra={
            "period_id": str(period.id),
            "report_kind": period.report_kind.value,
            "line_count": len(ledger),
            "checksum": checksum,
        })

        return PeriodSnapshot(
            period_id=period.id,
            report_kind=period.report_kind,
            payload=payload,
            checksum=checksum,
        )

    @staticmethod
    def _totals(ledger: tuple[PeriodLedgerEntry, ...]) -> dict[str, str] | None:
        """Form total lines: 05 sums lines 01-04, 12 sums the removal lines."""
        if not ledger:
            return None
        additions = sum(
            (
                e.quantity_bbl
                for e in ledger
                if e.category in ADDITION_CATEGORIES or e.category == LedgerCategory.OPENING
            ),
            Barrels.zero(),
        )
        removals = sum(
            (e.quantity_bbl for e in ledger if e.category in REMOVAL_CATEGORIES),
            Barrels.zero(),
        )
        return {
            TOTAL_ADDITIONS_LINE: str(additions.value),
            TOTAL_REMOVALS_LINE: str(removals.value),
        }
