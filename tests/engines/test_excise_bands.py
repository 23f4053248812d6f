"""
Tests for ExciseTaxCalculator -- CBMA tiered band allocation.

Rate table used throughout (cents per barrel):
    first_60k    up to 60,000 bbl        350
    60k_to_6m    up to 6,000,000 bbl    1600
    over_6m      unbounded              1800
"""

from datetime import date
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP

import pytest

from ttb_engines.excise import (
    ExciseAllocation,
    ExciseRateTable,
    ExciseTaxCalculator,
    RateBandDefinition,
)
from ttb_kernel.domain.values import Barrels
from ttb_kernel.exceptions import ConfigurationError


def _table(rounding=ROUND_HALF_UP, bands=None) -> ExciseRateTable:
    return ExciseRateTable(
        table_id="cbma-test",
        effective_from=date(2021, 1, 1),
        bands=bands if bands is not None else (
            RateBandDefinition("first_60k", Barrels.of("60000"), 350),
            RateBandDefinition("60k_to_6m", Barrels.of("6000000"), 1600),
            RateBandDefinition("over_6m", None, 1800),
        ),
        rounding=rounding,
    )


@pytest.fixture
def calculator():
    return ExciseTaxCalculator()


@pytest.fixture
def table():
    return _table()


class TestAllocation:
    def test_reduced_rate_only(self, calculator, table):
        allocation = calculator.allocate("456.78", "15234", table)

        assert [b.band_id for b in allocation.bands] == ["first_60k"]
        assert allocation.qty_in("first_60k") == Barrels.of("456.78")
        assert allocation.total_tax_cents == 159873
        assert allocation.total_tax_display == "$1,598.73"
        assert allocation.ytd_after == Barrels.of("15690.78")

    def test_spill_into_second_band(self, calculator, table):
        allocation = calculator.allocate("500", "59800", table)

        assert allocation.qty_in("first_60k") == Barrels.of("200")
        assert allocation.qty_in("60k_to_6m") == Barrels.of("300")
        assert [b.tax_cents for b in allocation.bands] == [70000, 480000]
        assert allocation.total_tax_cents == 550000

    def test_ytd_past_first_ceiling(self, calculator, table):
        allocation = calculator.allocate("10", "70000", table)
        assert [b.band_id for b in allocation.bands] == ["60k_to_6m"]
        assert allocation.total_tax_cents == 16000

    def test_spill_into_unbounded_band(self, calculator, table):
        allocation = calculator.allocate("20", "5999990", table)
        assert allocation.qty_in("60k_to_6m") == Barrels.of("10")
        assert allocation.qty_in("over_6m") == Barrels.of("10")
        assert allocation.total_tax_cents == 16000 + 18000

    def test_ytd_exactly_at_ceiling(self, calculator, table):
        allocation = calculator.allocate("1", "60000", table)
        assert allocation.qty_in("first_60k").is_zero
        assert allocation.qty_in("60k_to_6m") == Barrels.of("1")

    def test_zero_taxable(self, calculator, table):
        allocation = calculator.allocate("0", "100", table)
        assert allocation.bands == ()
        assert allocation.total_tax_cents == 0
        assert allocation.ytd_after == Barrels.of("100")

    def test_band_quantities_sum_to_taxable(self, calculator, table):
        allocation = calculator.allocate("6100000.5", "0", table)
        assert allocation.allocated_bbl == Barrels.of("6100000.5")
        assert len(allocation.bands) == 3

    def test_total_is_sum_of_band_cents(self, calculator, table):
        allocation = calculator.allocate("60000.03", "0", table)
        assert allocation.total_tax_cents == sum(b.tax_cents for b in allocation.bands)


class TestRounding:
    def test_half_up(self, calculator):
        # 0.03 bbl * 350 = 10.5 cents
        assert calculator.allocate("0.03", "0", _table()).total_tax_cents == 11

    def test_half_even(self, calculator):
        assert calculator.allocate("0.03", "0", _table(ROUND_HALF_EVEN)).total_tax_cents == 10

    def test_each_band_rounded_once(self, calculator, table):
        # 0.01 in each of the first two bands: 3.5 -> 4 and 16
        allocation = calculator.allocate("0.02", "59999.99", table)
        assert [b.tax_cents for b in allocation.bands] == [4, 16]


class TestInputValidation:
    def test_negative_taxable(self, calculator, table):
        with pytest.raises(ValueError, match="Taxable"):
            calculator.allocate("-1", "0", table)

    def test_negative_ytd(self, calculator, table):
        with pytest.raises(ValueError, match="Year-to-date"):
            calculator.allocate("1", "-0.01", table)

    def test_float_rejected(self, calculator, table):
        with pytest.raises(TypeError):
            calculator.allocate(1.0, "0", table)


class TestRateTableValidation:
    def test_no_bands(self):
        with pytest.raises(ConfigurationError, match="no bands"):
            _table(bands=())

    def test_duplicate_band_id(self):
        with pytest.raises(ConfigurationError, match="duplicate"):
            _table(bands=(
                RateBandDefinition("a", Barrels.of("10"), 1),
                RateBandDefinition("a", None, 2),
            ))

    def test_ceilings_must_ascend(self):
        with pytest.raises(ConfigurationError, match="ascend"):
            _table(bands=(
                RateBandDefinition("a", Barrels.of("10"), 1),
                RateBandDefinition("b", Barrels.of("10"), 2),
                RateBandDefinition("c", None, 3),
            ))

    def test_unbounded_band_must_be_last(self):
        with pytest.raises(ConfigurationError, match="only the last band"):
            _table(bands=(
                RateBandDefinition("a", None, 1),
                RateBandDefinition("b", Barrels.of("10"), 2),
            ))

    def test_last_band_must_be_unbounded(self):
        with pytest.raises(ConfigurationError, match="must be unbounded"):
            _table(bands=(RateBandDefinition("a", Barrels.of("10"), 1),))

    def test_rate_must_be_integer_cents(self):
        with pytest.raises(ConfigurationError, match="integer cents"):
            _table(bands=(RateBandDefinition("a", None, "3.50"),))

    def test_negative_rate(self):
        with pytest.raises(ConfigurationError, match="negative"):
            _table(bands=(RateBandDefinition("a", None, -1),))

    def test_unsupported_rounding(self):
        with pytest.raises(ConfigurationError, match="rounding"):
            _table(rounding="ROUND_DOWN")

    def test_effective_range(self):
        with pytest.raises(ConfigurationError):
            ExciseRateTable(
                table_id="t",
                effective_from=date(2024, 1, 1),
                effective_to=date(2023, 1, 1),
                bands=(RateBandDefinition("a", None, 1),),
            )

    def test_is_effective(self, table):
        assert table.is_effective(date(2025, 6, 1))
        assert not table.is_effective(date(2020, 12, 31))

    def test_reduced_rate_ceiling(self, table):
        assert table.reduced_rate_ceiling == Barrels.of("60000")
        assert table.band("over_6m").ceiling_bbl is None
        with pytest.raises(KeyError):
            table.band("nope")


class TestAllocationPayload:
    def test_round_trip(self, calculator, table):
        allocation = calculator.allocate("500", "59800", table)
        assert ExciseAllocation.from_payload(allocation.to_payload()) == allocation

    def test_deterministic(self, calculator, table):
        assert calculator.allocate("123.45", "1000", table) == calculator.allocate(
            "123.45", "1000", table
        )
