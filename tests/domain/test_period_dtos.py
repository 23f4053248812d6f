"""Period DTO, status transitions and form numbers."""

from datetime import date
from uuid import uuid4

import pytest

from ttb_kernel.domain.dtos import (
    PeriodStatus,
    PeriodType,
    ReportKind,
    TTBPeriodInfo,
    can_transition,
    form_number_for,
)


def _period(**overrides) -> TTBPeriodInfo:
    fields = dict(
        id=uuid4(),
        workspace_id=uuid4(),
        report_kind=ReportKind.BROP,
        period_type=PeriodType.MONTHLY,
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 31),
        due_date=date(2025, 2, 15),
        status=PeriodStatus.OPEN,
    )
    fields.update(overrides)
    return TTBPeriodInfo(**fields)


class TestTransitions:
    @pytest.mark.parametrize(
        "current, target, allowed",
        [
            (PeriodStatus.OPEN, PeriodStatus.DRAFT, True),
            (PeriodStatus.DRAFT, PeriodStatus.DRAFT, True),
            (PeriodStatus.DRAFT, PeriodStatus.FINALIZED, True),
            (PeriodStatus.OPEN, PeriodStatus.FINALIZED, False),
            (PeriodStatus.FINALIZED, PeriodStatus.DRAFT, False),
            (PeriodStatus.FINALIZED, PeriodStatus.OPEN, False),
            (PeriodStatus.DRAFT, PeriodStatus.OPEN, False),
        ],
    )
    def test_allowed_transitions(self, current, target, allowed):
        assert can_transition(current, target) is allowed


class TestFormNumbers:
    def test_monthly_brop(self):
        assert form_number_for(ReportKind.BROP, PeriodType.MONTHLY) == "5130.9"

    def test_quarterly_brop(self):
        assert form_number_for(ReportKind.BROP, PeriodType.QUARTERLY) == "5130.26"

    def test_excise(self):
        assert form_number_for(ReportKind.EXCISE, PeriodType.SEMI_MONTHLY) == "5000.24"

    def test_unsupported_combination(self):
        assert form_number_for(ReportKind.BROP, PeriodType.SEMI_MONTHLY) is None


class TestTTBPeriodInfo:
    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            _period(start_date=date(2025, 2, 1), end_date=date(2025, 1, 31))

    def test_properties(self):
        period = _period(status=PeriodStatus.FINALIZED)
        assert period.is_finalized
        assert not period.is_draft
        assert period.tax_year == 2025
        assert period.form_number == "5130.9"
        assert period.contains_date(date(2025, 1, 31))
        assert not period.contains_date(date(2025, 2, 1))

    def test_payload(self):
        period = _period()
        payload = period.to_payload()
        assert payload["report_kind"] == "brop"
        assert payload["start_date"] == "2025-01-01"
        assert payload["form_number"] == "5130.9"
        assert payload["id"] == str(period.id)
