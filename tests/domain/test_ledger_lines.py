"""BROP line definitions and ledger entries."""

import pytest

from ttb_kernel.domain.ledger_lines import (
    ADDITION_CATEGORIES,
    LOSS_CATEGORIES,
    MOVEMENT_CATEGORIES,
    REMOVAL_CATEGORIES,
    TOTAL_ADDITIONS_LINE,
    TOTAL_REMOVALS_LINE,
    LedgerCategory,
    LineRole,
    PeriodLedgerEntry,
    line_code_for,
    ordered_line_codes,
)
from ttb_kernel.domain.values import Barrels


class TestLineDefinitions:
    def test_report_order(self):
        assert ordered_line_codes() == (
            "01", "02", "03", "04", "07", "08", "09", "10", "11", "13", "15",
        )

    def test_total_lines_are_not_categories(self):
        assert TOTAL_ADDITIONS_LINE not in ordered_line_codes()
        assert TOTAL_REMOVALS_LINE not in ordered_line_codes()

    @pytest.mark.parametrize(
        "category, code",
        [
            (LedgerCategory.OPENING, "01"),
            (LedgerCategory.RETURNED_TO_BREWERY, "04"),
            (LedgerCategory.REMOVED_TAX_DETERMINED, "07"),
            (LedgerCategory.LOSS, "11"),
            (LedgerCategory.SHORTAGE, "13"),
            (LedgerCategory.CLOSING, "15"),
        ],
    )
    def test_line_codes(self, category, code):
        assert line_code_for(category) == code
        assert line_code_for(category.value) == code

    def test_roles_partition_movements(self):
        assert set(ADDITION_CATEGORIES).isdisjoint(REMOVAL_CATEGORIES)
        assert LedgerCategory.OPENING not in MOVEMENT_CATEGORIES
        assert LedgerCategory.CLOSING not in MOVEMENT_CATEGORIES
        assert len(MOVEMENT_CATEGORIES) == 9

    def test_shortage_is_a_loss_category(self):
        assert LOSS_CATEGORIES == {LedgerCategory.LOSS, LedgerCategory.SHORTAGE}


class TestPeriodLedgerEntry:
    def test_for_category_derives_line_code(self):
        entry = PeriodLedgerEntry.for_category("produced", "890.12")
        assert entry.line_code == "02"
        assert entry.category == LedgerCategory.PRODUCED
        assert entry.quantity_bbl == Barrels.of("890.12")
        assert entry.role == LineRole.ADDITION

    def test_mismatched_line_code_rejected(self):
        with pytest.raises(ValueError, match="does not match"):
            PeriodLedgerEntry(
                line_code="07",
                category=LedgerCategory.PRODUCED,
                quantity_bbl=Barrels.of("1"),
            )

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError):
            PeriodLedgerEntry.for_category("spilled", "1")

    def test_payload_keeps_exact_quantity(self):
        entry = PeriodLedgerEntry.for_category("loss", "1.2300", notes="filter change")
        payload = entry.to_payload()
        assert payload == {
            "line_code": "11",
            "category": "loss",
            "quantity_bbl": "1.2300",
            "notes": "filter change",
        }
        assert PeriodLedgerEntry.from_payload(payload) == entry

    def test_frozen(self):
        entry = PeriodLedgerEntry.for_category("produced", "1")
        with pytest.raises(AttributeError):
            entry.notes = "changed"
