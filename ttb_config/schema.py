"""
Compliance configuration schema.

Human-authored, reviewable regulatory configuration: excise rate tables,
the reconciliation tolerance and filing schedules.  YAML is parsed into
these frozen types by the loader; ``bridges`` turns them into engine
inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

# ---------------------------------------------------------------------------
# Excise rates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateBandDef:
    """One tier of an excise rate table."""

    band_id: str
    ceiling_bbl: Decimal | None  # None = unbounded
    rate_cents_per_bbl: int
    label: str | None = None


@dataclass(frozen=True)
class ExciseRateTableDef:
    """Rates in force over a date range."""

    table_id: str
    effective_from: date
    bands: tuple[RateBandDef, ...]
    effective_to: date | None = None
    rounding: str = "half_up"  # half_up | half_even

    def is_effective(self, on_date: date) -> bool:
        if on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to


# ---------------------------------------------------------------------------
# Filing schedules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilingScheduleDef:
    """Due-date rule for one report kind and filing frequency."""

    report_kind: str  # brop | excise
    period_type: str  # monthly | quarterly | semi_monthly | annual
    due_days_after_end: int


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComplianceConfig:
    """
    Root configuration artifact.

    ``checksum`` is computed over the raw YAML document, so any edit to the
    source changes it.
    """

    config_id: str
    version: int
    rate_tables: tuple[ExciseRateTableDef, ...]
    filing_schedules: tuple[FilingScheduleDef, ...]
    reconciliation_tolerance_bbl: Decimal = Decimal("0.01")
    source_path: str | None = None
    checksum: str = field(default="")

    def rate_table_for(self, as_of_date: date) -> ExciseRateTableDef | None:
        """The rate table in force on ``as_of_date``; the latest start wins on overlap."""
        effective = [t for t in self.rate_tables if t.is_effective(as_of_date)]
        if not effective:
            return None
        return max(effective, key=lambda t: t.effective_from)

    def filing_schedule(self, report_kind: str, period_type: str) -> FilingScheduleDef | None:
        for schedule in self.filing_schedules:
            if schedule.report_kind == report_kind and schedule.period_type == period_type:
                return schedule
        return None
