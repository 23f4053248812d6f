"""
Pure domain layer.

Value objects, ledger line definitions, period DTOs, the filing calendar and
the CBMA counter. NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the Clock abstraction itself)
- I/O

All domain objects are immutable and deterministic.
"""

from ttb_kernel.domain.cbma import CBMACounter
from ttb_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ttb_kernel.domain.dtos import (
    PeriodStatus,
    PeriodType,
    ReportKind,
    TTBPeriodInfo,
    can_transition,
    form_number_for,
)
from ttb_kernel.domain.filing_calendar import (
    due_date_for,
    next_period_bounds,
    period_bounds,
)
from ttb_kernel.domain.ledger_lines import (
    ADDITION_CATEGORIES,
    LOSS_CATEGORIES,
    MOVEMENT_CATEGORIES,
    REMOVAL_CATEGORIES,
    LedgerCategory,
    LineRole,
    PeriodLedgerEntry,
    line_code_for,
    ordered_line_codes,
)
from ttb_kernel.domain.values import (
    BARREL_PRECISION,
    DEFAULT_TOLERANCE_BBL,
    Barrels,
    cents_for,
    format_cents,
)

__all__ = [
    "ADDITION_CATEGORIES",
    "BARREL_PRECISION",
    "Barrels",
    "CBMACounter",
    "Clock",
    "DEFAULT_TOLERANCE_BBL",
    "DeterministicClock",
    "LOSS_CATEGORIES",
    "LedgerCategory",
    "LineRole",
    "MOVEMENT_CATEGORIES",
    "PeriodLedgerEntry",
    "PeriodStatus",
    "PeriodType",
    "REMOVAL_CATEGORIES",
    "ReportKind",
    "SystemClock",
    "TTBPeriodInfo",
    "can_transition",
    "cents_for",
    "due_date_for",
    "form_number_for",
    "format_cents",
    "line_code_for",
    "next_period_bounds",
    "ordered_line_codes",
    "period_bounds",
]
