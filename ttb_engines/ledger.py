"""
ttb_engines.ledger -- Period ledger assembly.

Responsibility:
    Turn an opening balance and per-category movement totals into the
    ordered BROP ledger: one PeriodLedgerEntry per category from line 01
    (opening) to line 15 (closing).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The service layer reads
    the movement log and resolves the opening balance; this module only
    assembles.

Invariants enforced:
    - Every category appears exactly once, in line-code order; categories
      with no movements are zero.
    - Without a physical count the closing line equals the book balance,
      so an unadjusted ledger always reconciles.
    - Negative totals are passed through untouched; flagging them is the
      reconciliation engine's job.

Failure modes:
    - ValueError if ``category_totals`` names opening/closing or an unknown
      category.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from ttb_kernel.domain.ledger_lines import (
    ADDITION_CATEGORIES,
    LINE_DEFINITIONS,
    MOVEMENT_CATEGORIES,
    REMOVAL_CATEGORIES,
    LedgerCategory,
    PeriodLedgerEntry,
)
from ttb_kernel.domain.values import Barrels
from ttb_kernel.logging_config import get_logger
from ttb_engines.tracer import traced_engine

logger = get_logger("engines.ledger")


def book_closing(
    opening_bbl: Barrels,
    category_totals: Mapping[LedgerCategory, Barrels],
) -> Barrels:
    """opening + additions - removals over the given totals."""
    additions = sum(
        (Barrels.of(category_totals.get(c, Barrels.zero())) for c in ADDITION_CATEGORIES),
        Barrels.zero(),
    )
    removals = sum(
        (Barrels.of(category_totals.get(c, Barrels.zero())) for c in REMOVAL_CATEGORIES),
        Barrels.zero(),
    )
    return Barrels.of(opening_bbl) + additions - removals


class PeriodLedgerAggregator:
    """Pure assembly of a period's BROP ledger lines."""

    @traced_engine(
        "period_ledger",
        "1.0",
        fingerprint_fields=("opening_bbl", "category_totals", "reported_closing_bbl"),
    )
    def build(
        self,
        opening_bbl: Barrels | Decimal | str,
        category_totals: Mapping[LedgerCategory | str, Barrels | Decimal | str],
        reported_closing_bbl: Barrels | Decimal | str | None = None,
        notes: Mapping[LedgerCategory | str, str | None] | None = None,
    ) -> tuple[PeriodLedgerEntry, ...]:
        """
        Build the ordered ledger.

        Args:
            opening_bbl: Resolved opening balance (line 01).
            category_totals: Movement total per category.
            reported_closing_bbl: Physical on-hand count at period end, if
                one was taken.  Defaults to the book balance.
            notes: Optional explanation per category (loss, shortage, ...).

        Returns:
            Tuple of PeriodLedgerEntry in line-code order.
        """
        opening = Barrels.of(opening_bbl)
        totals: dict[LedgerCategory, Barrels] = {}
        for key, value in category_totals.items():
            category = LedgerCategory(key)
            if category not in MOVEMENT_CATEGORIES:
                raise ValueError(
                    f"{category.value} is a balance line, not a movement category"
                )
            totals[category] = totals.get(category, Barrels.zero()) + Barrels.of(value)

        line_notes = {LedgerCategory(k): v for k, v in (notes or {}).items()}

        book = book_closing(opening, totals)
        closing = Barrels.of(reported_closing_bbl) if reported_closing_bbl is not None else book

        logger.info("period_ledger_build_started", extra={
            "opening_bbl": str(opening.value),
            "category_count": len(totals),
            "has_physical_count": reported_closing_bbl is not None,
        })

        entries = []
        for definition in LINE_DEFINITIONS:
            if definition.category == LedgerCategory.OPENING:
                quantity = opening
            elif definition.category == LedgerCategory.CLOSING:
                quantity = closing
            else:
                quantity = totals.get(definition.category, Barrels.zero())
            entries.append(PeriodLedgerEntry(
                line_code=definition.line_code,
                category=definition.category,
                quantity_bbl=quantity,
                notes=line_notes.get(definition.category),
            ))

        logger.info("period_ledger_build_completed", extra={
            "book_closing_bbl": str(book.value),
            "closing_bbl": str(closing.value),
            "line_count": len(entries),
        })

        return tuple(entries)
