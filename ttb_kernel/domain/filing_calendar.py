"""
Filing calendar -- period boundaries and due dates.

Pure date arithmetic. Due-day offsets are supplied by configuration, not
hard-coded here, because filing deadlines are set by regulation.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from ttb_kernel.domain.dtos import PeriodType


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def period_bounds(period_type: PeriodType | str, anchor: date) -> tuple[date, date]:
    """
    Inclusive (start, end) of the period of ``period_type`` containing ``anchor``.

    Semi-monthly periods run from the 1st through the 15th and from the
    16th through the last day of the month.
    """
    ptype = PeriodType(period_type)
    if ptype == PeriodType.MONTHLY:
        return date(anchor.year, anchor.month, 1), _month_end(anchor.year, anchor.month)
    if ptype == PeriodType.SEMI_MONTHLY:
        if anchor.day <= 15:
            return date(anchor.year, anchor.month, 1), date(anchor.year, anchor.month, 15)
        return date(anchor.year, anchor.month, 16), _month_end(anchor.year, anchor.month)
    if ptype == PeriodType.QUARTERLY:
        first_month = 3 * ((anchor.month - 1) // 3) + 1
        return (
            date(anchor.year, first_month, 1),
            _month_end(anchor.year, first_month + 2),
        )
    return date(anchor.year, 1, 1), date(anchor.year, 12, 31)


def next_period_bounds(period_type: PeriodType | str, end_date: date) -> tuple[date, date]:
    """Bounds of the period immediately following one ending on ``end_date``."""
    return period_bounds(period_type, end_date + timedelta(days=1))


def due_date_for(end_date: date, due_days_after_end: int) -> date:
    """Due date ``due_days_after_end`` days after the period's last day."""
    if due_days_after_end < 0:
        raise ValueError("due_days_after_end cannot be negative")
    return end_date + timedelta(days=due_days_after_end)
