"""
Ledger lines -- BROP categories, TTB line codes, and the period ledger entry.

Responsibility:
    Names every volume movement category that appears on the Brewer's
    Report of Operations, maps it to its form line number, and says whether
    it adds to or removes from bonded inventory.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Each category maps to exactly one line code.
    - Line order is fixed: balances bracket additions and removals.
    - ``PeriodLedgerEntry`` is immutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ttb_kernel.domain.values import Barrels


class LedgerCategory(str, Enum):
    """Volume movement category on the BROP."""

    OPENING = "opening"
    PRODUCED = "produced"
    RECEIVED_IN_BOND = "received_in_bond"
    RETURNED_TO_BREWERY = "returned_to_brewery"
    REMOVED_TAX_DETERMINED = "removed_tax_determined"
    REMOVED_WITHOUT_TAX = "removed_without_tax"
    CONSUMED_ON_PREMISES = "consumed_on_premises"
    DESTROYED = "destroyed"
    LOSS = "loss"
    SHORTAGE = "shortage"
    CLOSING = "closing"


class LineRole(str, Enum):
    """How a category participates in the conservation equation."""

    BALANCE = "balance"
    ADDITION = "addition"
    REMOVAL = "removal"


@dataclass(frozen=True)
class LineDefinition:
    """Static description of one BROP line."""

    line_code: str
    category: LedgerCategory
    role: LineRole
    label: str


LINE_DEFINITIONS: tuple[LineDefinition, ...] = (
    LineDefinition("01", LedgerCategory.OPENING, LineRole.BALANCE, "On hand first of period"),
    LineDefinition("02", LedgerCategory.PRODUCED, LineRole.ADDITION, "Produced by fermentation"),
    LineDefinition("03", LedgerCategory.RECEIVED_IN_BOND, LineRole.ADDITION, "Received by transfer in bond"),
    LineDefinition("04", LedgerCategory.RETURNED_TO_BREWERY, LineRole.ADDITION, "Returned to bond"),
    LineDefinition("07", LedgerCategory.REMOVED_TAX_DETERMINED, LineRole.REMOVAL, "Taxpaid removals"),
    LineDefinition("08", LedgerCategory.REMOVED_WITHOUT_TAX, LineRole.REMOVAL, "Removals without payment of tax"),
    LineDefinition("09", LedgerCategory.CONSUMED_ON_PREMISES, LineRole.REMOVAL, "Consumed on brewery premises"),
    LineDefinition("10", LedgerCategory.DESTROYED, LineRole.REMOVAL, "Destroyed"),
    LineDefinition("11", LedgerCategory.LOSS, LineRole.REMOVAL, "Losses"),
    LineDefinition("13", LedgerCategory.SHORTAGE, LineRole.REMOVAL, "Shortages"),
    LineDefinition("15", LedgerCategory.CLOSING, LineRole.BALANCE, "On hand end of period"),
)

# Computed total lines printed on the form
TOTAL_ADDITIONS_LINE = "05"
TOTAL_REMOVALS_LINE = "12"

_BY_CATEGORY: dict[LedgerCategory, LineDefinition] = {
    d.category: d for d in LINE_DEFINITIONS
}

ADDITION_CATEGORIES: tuple[LedgerCategory, ...] = tuple(
    d.category for d in LINE_DEFINITIONS if d.role == LineRole.ADDITION
)
REMOVAL_CATEGORIES: tuple[LedgerCategory, ...] = tuple(
    d.category for d in LINE_DEFINITIONS if d.role == LineRole.REMOVAL
)
MOVEMENT_CATEGORIES: tuple[LedgerCategory, ...] = ADDITION_CATEGORIES + REMOVAL_CATEGORIES

# Categories where a negative or unexplained quantity is expected bookkeeping
LOSS_CATEGORIES = frozenset({LedgerCategory.LOSS, LedgerCategory.SHORTAGE})


def line_for(category: LedgerCategory | str) -> LineDefinition:
    """Line definition for a category (accepts the enum or its value)."""
    return _BY_CATEGORY[LedgerCategory(category)]


def line_code_for(category: LedgerCategory | str) -> str:
    return line_for(category).line_code


def ordered_line_codes() -> tuple[str, ...]:
    """Line codes in report order."""
    return tuple(d.line_code for d in LINE_DEFINITIONS)


@dataclass(frozen=True)
class PeriodLedgerEntry:
    """
    One BROP line for a reporting period.

    Immutable once created; a finalized period keeps its entries inside the
    frozen snapshot.
    """

    line_code: str
    category: LedgerCategory
    quantity_bbl: Barrels
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", LedgerCategory(self.category))
        object.__setattr__(self, "quantity_bbl", Barrels.of(self.quantity_bbl))
        expected = line_code_for(self.category)
        if self.line_code != expected:
            raise ValueError(
                f"Line code {self.line_code} does not match category "
                f"{self.category.value} (expected {expected})"
            )

    @classmethod
    def for_category(
        cls,
        category: LedgerCategory | str,
        quantity_bbl: Barrels | str | int,
        notes: str | None = None,
    ) -> PeriodLedgerEntry:
        """Build an entry, deriving the line code from the category."""
        cat = LedgerCategory(category)
        return cls(
            line_code=line_code_for(cat),
            category=cat,
            quantity_bbl=Barrels.of(quantity_bbl),
            notes=notes,
        )

    @property
    def role(self) -> LineRole:
        return line_for(self.category).role

    def to_payload(self) -> dict:
        return {
            "line_code": self.line_code,
            "category": self.category.value,
            "quantity_bbl": str(self.quantity_bbl.value),
            "notes": self.notes,
        }

    @classmethod
    def from_payload(cls, data: dict) -> PeriodLedgerEntry:
        return cls(
            line_code=data["line_code"],
            category=LedgerCategory(data["category"]),
            quantity_bbl=Barrels.of(data["quantity_bbl"]),
            notes=data.get("notes"),
        )
