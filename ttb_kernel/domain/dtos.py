"""
Data Transfer Objects for reporting periods.

Responsibility:
    Frozen representations of TTB reporting periods passed explicitly
    between services and engines. There is no ambient "current period":
    every operation receives the period it acts on.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Services convert ORM rows into these
    DTOs before handing them to engines.

Invariants enforced:
    - Period lifecycle: OPEN -> DRAFT (repeatable) -> FINALIZED (terminal).
    - ``start_date <= end_date``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from ttb_kernel.domain.values import Barrels


class PeriodType(str, Enum):
    """Filing frequency of a reporting period."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_MONTHLY = "semi_monthly"
    ANNUAL = "annual"


class ReportKind(str, Enum):
    """Which TTB filing a period belongs to."""

    BROP = "brop"  # Brewer's Report of Operations
    EXCISE = "excise"  # Federal excise tax return


class PeriodStatus(str, Enum):
    """Lifecycle status of a reporting period.

    Contract: OPEN -> DRAFT -> FINALIZED. DRAFT may be regenerated any
    number of times. FINALIZED cannot be undone.
    """

    OPEN = "open"
    DRAFT = "draft"
    FINALIZED = "finalized"


ALLOWED_TRANSITIONS: dict[PeriodStatus, frozenset[PeriodStatus]] = {
    PeriodStatus.OPEN: frozenset({PeriodStatus.DRAFT}),
    PeriodStatus.DRAFT: frozenset({PeriodStatus.DRAFT, PeriodStatus.FINALIZED}),
    PeriodStatus.FINALIZED: frozenset(),  # Terminal
}


def can_transition(current: PeriodStatus, target: PeriodStatus) -> bool:
    """Check if a status transition is valid."""
    return target in ALLOWED_TRANSITIONS.get(PeriodStatus(current), frozenset())


_FORM_NUMBERS: dict[tuple[ReportKind, PeriodType], str] = {
    (ReportKind.BROP, PeriodType.MONTHLY): "5130.9",
    (ReportKind.BROP, PeriodType.QUARTERLY): "5130.26",
    (ReportKind.EXCISE, PeriodType.SEMI_MONTHLY): "5000.24",
    (ReportKind.EXCISE, PeriodType.QUARTERLY): "5000.24",
    (ReportKind.EXCISE, PeriodType.ANNUAL): "5000.24",
}


def form_number_for(report_kind: ReportKind, period_type: PeriodType) -> str | None:
    """TTB form number for a filing, or None for an unsupported combination."""
    return _FORM_NUMBERS.get((ReportKind(report_kind), PeriodType(period_type)))


@dataclass(frozen=True)
class TTBPeriodInfo:
    """
    Pure domain representation of a reporting period.

    Contract:
        Immutable snapshot of period state. Engines use this DTO and never
        touch the ORM row.

    Non-goals:
        - Does NOT enforce the finalize lock (PeriodService does that).
    """

    id: UUID
    workspace_id: UUID
    report_kind: ReportKind
    period_type: PeriodType
    start_date: date
    end_date: date
    due_date: date
    status: PeriodStatus
    opening_balance_bbl: Barrels | None = None
    physical_count_bbl: Barrels | None = None
    cbma_ytd_override_bbl: Barrels | None = None
    version: int = 1
    generated_at: datetime | None = None
    finalized_at: datetime | None = None
    finalized_by_id: UUID | None = None

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date ({self.start_date}) cannot be after end_date ({self.end_date})"
            )

    @property
    def is_finalized(self) -> bool:
        return self.status == PeriodStatus.FINALIZED

    @property
    def is_draft(self) -> bool:
        return self.status == PeriodStatus.DRAFT

    @property
    def tax_year(self) -> int:
        """Calendar year that owns this period's CBMA allowance."""
        return self.start_date.year

    @property
    def form_number(self) -> str | None:
        return form_number_for(self.report_kind, self.period_type)

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def to_payload(self) -> dict:
        return {
            "id": str(self.id),
            "workspace_id": str(self.workspace_id),
            "report_kind": self.report_kind.value,
            "period_type": self.period_type.value,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "due_date": self.due_date.isoformat(),
            "form_number": self.form_number,
        }
