"""
Barrel quantities and integer-cent tax amounts.

Barrels wrap Decimal and reject floats; tax is rounded to whole cents once,
with the configured rounding mode.
"""

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal

import pytest

from ttb_kernel.domain.values import (
    BARREL_PRECISION,
    Barrels,
    cents_for,
    format_cents,
)


class TestBarrelConstruction:
    def test_from_string_is_exact(self):
        assert Barrels.of("1670.89").value == Decimal("1670.89")

    def test_from_int(self):
        assert Barrels.of(60000).value == Decimal("60000")

    def test_float_rejected(self):
        """Binary floats never enter a barrel quantity."""
        with pytest.raises(TypeError):
            Barrels.of(1.5)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            Barrels.of(True)

    def test_garbage_string_rejected(self):
        with pytest.raises(ValueError):
            Barrels.of("twelve")

    def test_nan_rejected(self):
        with pytest.raises(ValueError):
            Barrels.of(Decimal("NaN"))

    def test_of_returns_existing_instance(self):
        b = Barrels.of("3")
        assert Barrels.of(b) is b

    def test_from_gallons(self):
        assert Barrels.from_gallons(31).value == Decimal("1")
        assert Barrels.from_gallons("15.5").value == Decimal("0.5")


class TestBarrelArithmetic:
    def test_add_sub(self):
        total = Barrels.of("1234.56") + Barrels.of("890.12") - Barrels.of("456.78")
        assert total == Barrels.of("1667.90")

    def test_sum_starts_from_zero(self):
        values = [Barrels.of("0.1"), Barrels.of("0.2"), Barrels.of("0.3")]
        assert sum(values) == Barrels.of("0.6")

    def test_neg_and_abs(self):
        assert -Barrels.of("2") == Barrels.of("-2")
        assert abs(Barrels.of("-2.5")) == Barrels.of("2.5")

    def test_comparisons(self):
        assert Barrels.of("1") < Barrels.of("2")
        assert Barrels.of("2") >= Barrels.of("2.00")

    def test_adding_decimal_is_type_error(self):
        with pytest.raises(TypeError):
            Barrels.of("1") + Decimal("1")

    def test_predicates(self):
        assert Barrels.zero().is_zero
        assert Barrels.of("-0.01").is_negative
        assert Barrels.of("0.01").is_positive

    def test_quantize_half_up(self):
        assert Barrels.of("1.005").quantize().value == Decimal("1.01")
        assert Barrels.of("1.005").quantize().value.as_tuple().exponent == BARREL_PRECISION.as_tuple().exponent

    def test_within_tolerance(self):
        assert Barrels.of("100.00").within(Barrels.of("100.01"))
        assert not Barrels.of("100.00").within(Barrels.of("100.02"))


class TestCentsFor:
    def test_reduced_rate_example(self):
        """456.78 bbl at $3.50 is $1,598.73."""
        assert cents_for(Barrels.of("456.78"), 350) == 159873

    def test_half_up_vs_half_even(self):
        # 0.005 bbl x 100 cents = 0.5 cent
        assert cents_for(Barrels.of("0.005"), 100, ROUND_HALF_UP) == 1
        assert cents_for(Barrels.of("0.005"), 100, ROUND_HALF_EVEN) == 0

    def test_unsupported_rounding(self):
        with pytest.raises(ValueError):
            cents_for(Barrels.of("1"), 100, ROUND_DOWN)

    def test_negative_rate(self):
        with pytest.raises(ValueError):
            cents_for(Barrels.of("1"), -1)

    def test_returns_int(self):
        assert isinstance(cents_for(Barrels.of("2"), 1600), int)


class TestFormatCents:
    @pytest.mark.parametrize(
        "cents, expected",
        [
            (159873, "$1,598.73"),
            (0, "$0.00"),
            (5, "$0.05"),
            (-1250, "-$12.50"),
        ],
    )
    def test_format(self, cents, expected):
        assert format_cents(cents) == expected
