"""
ttb_engines.reconciliation.engine -- BROP conservation check.

Responsibility:
    Balance one period's ledger with the conservation equation
    opening + additions - removals = closing, measure the variance against
    the reported (physical) closing, and collect non-fatal anomalies.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ttb_kernel domain, exceptions and logging.

Invariants enforced:
    - Replay safety: identical inputs produce an identical result; inputs
      are never mutated and nothing is read from a clock or the database.
    - ``is_valid`` iff |variance| <= tolerance.
    - Anomalies never raise; they are returned alongside the result.

Failure modes:
    - ValueError when an entry is not a PeriodLedgerEntry, a checkpoint is
      not a Checkpoint, the tolerance is negative, or the provisional
      production count is negative.

Audit relevance:
    The result is shown on the BROP draft and frozen into the snapshot at
    finalization.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from decimal import Decimal

from ttb_kernel.domain.ledger_lines import (
    LOSS_CATEGORIES,
    LedgerCategory,
    PeriodLedgerEntry,
    line_for,
)
from ttb_kernel.domain.values import DEFAULT_TOLERANCE_BBL, Barrels
from ttb_kernel.logging_config import get_logger
from ttb_engines.reconciliation.types import (
    AnomalyCode,
    AnomalySeverity,
    Checkpoint,
    ReconciliationResult,
    ValidationAnomaly,
)
from ttb_engines.tracer import traced_engine

logger = get_logger("engines.reconciliation")

_ORDERED_CATEGORIES = (
    LedgerCategory.OPENING,
    LedgerCategory.PRODUCED,
    LedgerCategory.RECEIVED_IN_BOND,
    LedgerCategory.RETURNED_TO_BREWERY,
    LedgerCategory.REMOVED_TAX_DETERMINED,
    LedgerCategory.REMOVED_WITHOUT_TAX,
    LedgerCategory.CONSUMED_ON_PREMISES,
    LedgerCategory.DESTROYED,
    LedgerCategory.LOSS,
    LedgerCategory.SHORTAGE,
    LedgerCategory.CLOSING,
)


class ReconciliationEngine:
    """
    Pure BROP reconciliation.

    Contract:
        ``reconcile`` may be called any number of times with the same
        entries and always returns an equal result.

    Guarantees:
        - Duplicate categories are summed; a missing category counts as zero.
        - ``losses_bbl`` is loss + shortage.
        - Anomalies are ordered: opening mismatch, negative quantities,
          unexplained losses, negative running balances, incomplete
          production, variance, negative closing.

    Non-goals:
        - Does NOT decide whether anomalies block finalization.
        - Does NOT read the prior period; the caller passes its closing.
    """

    @traced_engine(
        "reconciliation",
        "1.0",
        fingerprint_fields=("entries", "prior_closing_bbl", "checkpoints", "tolerance"),
    )
    def reconcile(
        self,
        entries: Iterable[PeriodLedgerEntry],
        *,
        prior_closing_bbl: Barrels | None = None,
        checkpoints: Iterable[Checkpoint] = (),
        provisional_production_count: int = 0,
        tolerance: Decimal = DEFAULT_TOLERANCE_BBL,
    ) -> ReconciliationResult:
        """
        Balance a period ledger.

        Args:
            entries: One or more PeriodLedgerEntry per category.
            prior_closing_bbl: Finalized closing of the previous period, if any.
            checkpoints: Daily net movements used for running-balance checks.
            provisional_production_count: Production records in the window
                that still carry estimated volumes.
            tolerance: Maximum |variance| still considered balanced.

        Returns:
            ReconciliationResult with derived closing, variance and anomalies.
        """
        t0 = time.monotonic()
        entries = tuple(entries)
        checkpoints = tuple(checkpoints)
        tolerance = Decimal(tolerance)

        for entry in entries:
            if not isinstance(entry, PeriodLedgerEntry):
                raise ValueError(f"Not a ledger entry: {entry!r}")
        for checkpoint in checkpoints:
            if not isinstance(checkpoint, Checkpoint):
                raise ValueError(f"Not a checkpoint: {checkpoint!r}")
        if tolerance < 0:
            raise ValueError("Tolerance cannot be negative")
        if provisional_production_count < 0:
            raise ValueError("Provisional production count cannot be negative")

        logger.info("reconciliation_started", extra={
            "entry_count": len(entries),
            "checkpoint_count": len(checkpoints),
            "tolerance": str(tolerance),
        })

        totals = self._sum_by_category(entries)

        opening = totals[LedgerCategory.OPENING]
        produced = totals[LedgerCategory.PRODUCED]
        received = totals[LedgerCategory.RECEIVED_IN_BOND]
        returned = totals[LedgerCategory.RETURNED_TO_BREWERY]
        removed_tax = totals[LedgerCategory.REMOVED_TAX_DETERMINED]
        removed_notax = totals[LedgerCategory.REMOVED_WITHOUT_TAX]
        consumed = totals[LedgerCategory.CONSUMED_ON_PREMISES]
        destroyed = totals[LedgerCategory.DESTROYED]
        losses = totals[LedgerCategory.LOSS] + totals[LedgerCategory.SHORTAGE]
        reported_closing = totals[LedgerCategory.CLOSING]

        calculated_closing = (
            opening
            + produced
            + received
            + returned
            - removed_tax
            - removed_notax
            - consumed
            - destroyed
            - losses
        )
        variance = calculated_closing - reported_closing

        anomalies: list[ValidationAnomaly] = []
        anomalies.extend(self._check_opening(opening, prior_closing_bbl, tolerance))
        anomalies.extend(self._check_negative_quantities(totals))
        anomalies.extend(self._check_loss_explanations(entries))
        anomalies.extend(self._check_running_balance(opening, checkpoints))
        if provisional_production_count > 0:
            anomalies.append(ValidationAnomaly(
                code=AnomalyCode.PRODUCTION_RECORDS_INCOMPLETE,
                severity=AnomalySeverity.WARNING,
                message=(
                    f"{provisional_production_count} production record(s) in this "
                    "period still carry estimated volumes"
                ),
                details={"provisional_count": provisional_production_count},
            ))
        if abs(variance.value) > tolerance:
            anomalies.append(ValidationAnomaly(
                code=AnomalyCode.RECONCILIATION_VARIANCE,
                severity=AnomalySeverity.ERROR,
                message=(
                    f"Calculated closing {calculated_closing.value} differs from "
                    f"reported closing {reported_closing.value} by {variance.value}"
                ),
                details={
                    "calculated_closing": str(calculated_closing.value),
                    "reported_closing": str(reported_closing.value),
                    "variance": str(variance.value),
                    "tolerance": str(tolerance),
                },
            ))
        if calculated_closing.is_negative:
            anomalies.append(ValidationAnomaly(
                code=AnomalyCode.NEGATIVE_CLOSING_BALANCE,
                severity=AnomalySeverity.ERROR,
                message=f"Calculated closing balance is negative ({calculated_closing.value})",
                details={"calculated_closing": str(calculated_closing.value)},
            ))

        result = ReconciliationResult(
            opening_bbl=opening,
            produced_bbl=produced,
            received_bbl=received,
            returned_bbl=returned,
            removed_tax_bbl=removed_tax,
            removed_notax_bbl=removed_notax,
            consumed_bbl=consumed,
            destroyed_bbl=destroyed,
            losses_bbl=losses,
            closing_bbl=reported_closing,
            calculated_closing=calculated_closing,
            variance=variance,
            tolerance=tolerance,
            anomalies=tuple(anomalies),
        )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info("reconciliation_completed", extra={
            "calculated_closing": str(calculated_closing.value),
            "reported_closing": str(reported_closing.value),
            "variance": str(variance.value),
            "is_valid": result.is_valid,
            "status": result.status.value,
            "anomaly_count": len(anomalies),
            "duration_ms": duration_ms,
        })

        return result

    @staticmethod
    def _sum_by_category(entries: tuple[PeriodLedgerEntry, ...]) -> dict[LedgerCategory, Barrels]:
        totals = {category: Barrels.zero() for category in _ORDERED_CATEGORIES}
        for entry in entries:
            totals[entry.category] = totals[entry.category] + entry.quantity_bbl
        return totals

    @staticmethod
    def _check_opening(
        opening: Barrels,
        prior_closing_bbl: Barrels | None,
        tolerance: Decimal,
    ) -> list[ValidationAnomaly]:
        if prior_closing_bbl is None:
            return []
        prior = Barrels.of(prior_closing_bbl)
        if opening.within(prior, tolerance):
            return []
        return [ValidationAnomaly(
            code=AnomalyCode.OPENING_BALANCE_MISMATCH,
            severity=AnomalySeverity.ERROR,
            message=(
                f"Opening balance {opening.value} does not match prior period "
                f"closing {prior.value}"
            ),
            details={
                "opening": str(opening.value),
                "prior_closing": str(prior.value),
                "difference": str((opening - prior).value),
            },
        )]

    @staticmethod
    def _check_negative_quantities(totals: dict[LedgerCategory, Barrels]) -> list[ValidationAnomaly]:
        found = []
        for category in _ORDERED_CATEGORIES:
            if category in LOSS_CATEGORIES or not totals[category].is_negative:
                continue
            line = line_for(category)
            found.append(ValidationAnomaly(
                code=AnomalyCode.NEGATIVE_QUANTITY,
                severity=AnomalySeverity.WARNING,
                message=(
                    f"Line {line.line_code} ({category.value}) has a negative "
                    f"quantity {totals[category].value}"
                ),
                details={
                    "line_code": line.line_code,
                    "category": category.value,
                    "quantity_bbl": str(totals[category].value),
                },
            ))
        return found

    @staticmethod
    def _check_loss_explanations(entries: tuple[PeriodLedgerEntry, ...]) -> list[ValidationAnomaly]:
        unexplained: dict[LedgerCategory, Barrels] = {}
        for entry in entries:
            if entry.category not in LOSS_CATEGORIES or entry.quantity_bbl.is_zero:
                continue
            if entry.notes and entry.notes.strip():
                continue
            unexplained[entry.category] = (
                unexplained.get(entry.category, Barrels.zero()) + entry.quantity_bbl
            )

        found = []
        for category in (LedgerCategory.LOSS, LedgerCategory.SHORTAGE):
            if category not in unexplained:
                continue
            found.append(ValidationAnomaly(
                code=AnomalyCode.UNEXPLAINED_LOSS,
                severity=AnomalySeverity.WARNING,
                message=(
                    f"{unexplained[category].value} bbl of {category.value} "
                    "recorded without an explanation"
                ),
                details={
                    "category": category.value,
                    "quantity_bbl": str(unexplained[category].value),
                },
            ))
        return found

    @staticmethod
    def _check_running_balance(
        opening: Barrels,
        checkpoints: tuple[Checkpoint, ...],
    ) -> list[ValidationAnomaly]:
        found = []
        running = opening
        for checkpoint in sorted(checkpoints, key=lambda c: c.on_date):
            running = running + checkpoint.net_bbl
            if running.is_negative:
                found.append(ValidationAnomaly(
                    code=AnomalyCode.NEGATIVE_RUNNING_BALANCE,
                    severity=AnomalySeverity.ERROR,
                    message=(
                        f"Running balance goes negative ({running.value}) on "
                        f"{checkpoint.on_date.isoformat()}"
                    ),
                    details={
                        "on_date": checkpoint.on_date.isoformat(),
                        "running_balance": str(running.value),
                    },
                ))
        return found
