"""Period boundaries and filing due dates."""

from datetime import date

import pytest

from ttb_kernel.domain.dtos import PeriodType
from ttb_kernel.domain.filing_calendar import (
    due_date_for,
    next_period_bounds,
    period_bounds,
)


class TestPeriodBounds:
    def test_monthly(self):
        assert period_bounds("monthly", date(2025, 2, 10)) == (
            date(2025, 2, 1),
            date(2025, 2, 28),
        )

    def test_monthly_leap_year(self):
        assert period_bounds(PeriodType.MONTHLY, date(2024, 2, 29))[1] == date(2024, 2, 29)

    @pytest.mark.parametrize(
        "anchor, expected",
        [
            (date(2025, 3, 1), (date(2025, 3, 1), date(2025, 3, 15))),
            (date(2025, 3, 15), (date(2025, 3, 1), date(2025, 3, 15))),
            (date(2025, 3, 16), (date(2025, 3, 16), date(2025, 3, 31))),
            (date(2025, 4, 30), (date(2025, 4, 16), date(2025, 4, 30))),
        ],
    )
    def test_semi_monthly(self, anchor, expected):
        assert period_bounds("semi_monthly", anchor) == expected

    @pytest.mark.parametrize(
        "anchor, expected",
        [
            (date(2025, 1, 1), (date(2025, 1, 1), date(2025, 3, 31))),
            (date(2025, 5, 20), (date(2025, 4, 1), date(2025, 6, 30))),
            (date(2025, 12, 31), (date(2025, 10, 1), date(2025, 12, 31))),
        ],
    )
    def test_quarterly(self, anchor, expected):
        assert period_bounds("quarterly", anchor) == expected

    def test_annual(self):
        assert period_bounds("annual", date(2025, 7, 4)) == (date(2025, 1, 1), date(2025, 12, 31))

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            period_bounds("weekly", date(2025, 1, 1))


class TestNextPeriodBounds:
    def test_crosses_year(self):
        assert next_period_bounds("monthly", date(2024, 12, 31)) == (
            date(2025, 1, 1),
            date(2025, 1, 31),
        )

    def test_semi_monthly_second_half(self):
        assert next_period_bounds("semi_monthly", date(2025, 2, 15)) == (
            date(2025, 2, 16),
            date(2025, 2, 28),
        )


class TestDueDate:
    def test_brop_fifteen_days(self):
        assert due_date_for(date(2025, 1, 31), 15) == date(2025, 2, 15)

    def test_excise_fourteen_days(self):
        assert due_date_for(date(2025, 1, 15), 14) == date(2025, 1, 29)

    def test_negative_offset(self):
        with pytest.raises(ValueError):
            due_date_for(date(2025, 1, 31), -1)
