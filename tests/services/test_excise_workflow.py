"""
Tests for ExciseWorksheetService -- removals, netting, CBMA year-to-date
and excise finalization.
"""

from datetime import date

import pytest
from sqlalchemy import update

from ttb_kernel.domain.dtos import PeriodStatus
from ttb_kernel.domain.values import Barrels
from ttb_kernel.exceptions import (
    AlreadyFinalizedError,
    ConfigurationError,
    DataGapError,
    InvalidPeriodTransitionError,
    SnapshotIntegrityError,
)
from ttb_kernel.models.snapshot import PeriodSnapshotRecord


@pytest.fixture
def q1(excise_service, record, workspace_id, test_actor_id):
    """Q1 2025 excise period with a mix of removals."""
    period = excise_service.open_period(workspace_id, "quarterly", date(2025, 2, 1), test_actor_id)
    record(date(2025, 1, 2), "produced", "1000")
    record(
        date(2025, 1, 15),
        "removed_tax_determined",
        "456.78",
        destination="Distributor",
        source_type="sales",
        source_ref="INV-1",
    )
    record(date(2025, 2, 1), "returned_to_brewery", "10", source_ref="RMA-7")
    record(date(2025, 2, 5), "removed_without_tax", "20", destination="export")
    record(date(2025, 3, 1), "consumed_on_premises", "5")
    return period


class TestOpenPeriod:
    def test_quarterly(self, q1):
        assert (q1.start_date, q1.end_date) == (date(2025, 1, 1), date(2025, 3, 31))
        assert q1.due_date == date(2025, 4, 14)
        assert q1.form_number == "5000.24"

    def test_semi_monthly(self, excise_service, workspace_id, test_actor_id):
        period = excise_service.open_period(workspace_id, "semi_monthly", date(2025, 1, 20), test_actor_id)
        assert (period.start_date, period.end_date) == (date(2025, 1, 16), date(2025, 1, 31))
        assert period.due_date == date(2025, 2, 14)

    def test_unscheduled_frequency(self, excise_service, workspace_id, test_actor_id):
        with pytest.raises(ConfigurationError):
            excise_service.open_period(workspace_id, "monthly", date(2025, 1, 20), test_actor_id)


class TestRemovals:
    def test_removal_detail(self, excise_service, q1):
        removals = excise_service.removals_for(q1)

        assert [(r.occurred_on, r.quantity_bbl, r.taxable) for r in removals] == [
            (date(2025, 1, 15), Barrels.of("456.78"), True),
            (date(2025, 2, 1), Barrels.of("-10"), True),
            (date(2025, 2, 5), Barrels.of("20"), False),
            (date(2025, 3, 1), Barrels.of("5"), True),
        ]
        assert removals[0].reference == "INV-1"
        assert removals[0].destination == "Distributor"
        assert removals[1].is_return


class TestBuildWorksheet:
    def test_netting_and_tax(self, excise_service, period_service, q1, test_actor_id):
        worksheet = excise_service.build_worksheet(q1.id, test_actor_id)

        assert worksheet.net.gross_taxable_bbl == Barrels.of("461.78")
        assert worksheet.net.returns_bbl == Barrels.of("10")
        assert worksheet.net.non_taxable_bbl == Barrels.of("20")
        assert worksheet.net.net_taxable_bbl == Barrels.of("451.78")
        # 451.78 bbl * 350 cents
        assert worksheet.total_tax_cents == 158123
        assert worksheet.allocation.ytd_before.is_zero
        assert worksheet.cbma_remaining_bbl == Barrels.of("59548.22")
        assert worksheet.rate_table_id == "cbma-2021"
        assert period_service.get_period(q1.id).status == PeriodStatus.DRAFT

    def test_dry_run(self, excise_service, period_service, q1, test_actor_id):
        excise_service.build_worksheet(q1.id, test_actor_id, dry_run=True)
        assert period_service.get_period(q1.id).status == PeriodStatus.OPEN

    def test_explicit_ytd(self, excise_service, record, workspace_id, test_actor_id):
        period = excise_service.open_period(workspace_id, "semi_monthly", date(2025, 7, 3), test_actor_id)
        record(date(2025, 7, 4), "removed_tax_determined", "500")

        worksheet = excise_service.build_worksheet(period.id, test_actor_id, ytd_used_bbl="59800")

        assert worksheet.allocation.qty_in("first_60k") == Barrels.of("200")
        assert worksheet.allocation.qty_in("60k_to_6m") == Barrels.of("300")
        assert worksheet.total_tax_cents == 550000
        assert worksheet.cbma_remaining_bbl.is_zero

    def test_excess_returns(self, excise_service, record, workspace_id, test_actor_id):
        period = excise_service.open_period(workspace_id, "semi_monthly", date(2025, 7, 3), test_actor_id)
        record(date(2025, 7, 4), "removed_tax_determined", "10")
        record(date(2025, 7, 5), "returned_to_brewery", "30")

        worksheet = excise_service.build_worksheet(period.id, test_actor_id)

        assert worksheet.total_tax_cents == 0
        assert worksheet.net.excess_returns_bbl == Barrels.of("20")
        assert worksheet.warnings

    def test_no_rate_table(self, excise_service, workspace_id, test_actor_id):
        period = excise_service.open_period(workspace_id, "quarterly", date(2020, 5, 1), test_actor_id)
        with pytest.raises(ConfigurationError, match="2020-04-01"):
            excise_service.build_worksheet(period.id, test_actor_id)

    def test_wrong_report_kind(self, excise_service, create_period, test_actor_id):
        brop = create_period(date(2025, 1, 1), date(2025, 1, 31))
        with pytest.raises(ValueError, match="brop"):
            excise_service.build_worksheet(brop.id, test_actor_id)

    def test_build_logged(self, excise_service, q1, test_actor_id, captured_logs):
        excise_service.build_worksheet(q1.id, test_actor_id)
        record = next(r for r in captured_logs() if r["message"] == "excise_worksheet_built")
        assert record["total_tax_cents"] == 158123
        assert record["rate_table_id"] == "cbma-2021"


class TestFinalize:
    def test_finalize(self, excise_service, period_service, q1, test_actor_id):
        excise_service.build_worksheet(q1.id, test_actor_id)

        snapshot = excise_service.finalize(q1.id, test_actor_id)

        assert snapshot.verify()
        assert snapshot.taxable_bbl == Barrels.of("451.78")
        assert snapshot.payload["excise"]["total_tax_cents"] == 158123
        assert snapshot.payload["worksheet"]["removals"][0]["reference"] == "INV-1"
        assert snapshot.payload["ledger"] == []
        assert period_service.get_period(q1.id).is_finalized
        assert excise_service.get_snapshot(q1.id).checksum == snapshot.checksum

    def test_finalize_requires_worksheet(self, excise_service, q1, test_actor_id):
        with pytest.raises(InvalidPeriodTransitionError):
            excise_service.finalize(q1.id, test_actor_id)

    def test_finalize_twice(self, excise_service, q1, test_actor_id):
        excise_service.build_worksheet(q1.id, test_actor_id)
        snapshot = excise_service.finalize(q1.id, test_actor_id)

        with pytest.raises(AlreadyFinalizedError):
            excise_service.finalize(q1.id, test_actor_id)
        with pytest.raises(AlreadyFinalizedError):
            excise_service.build_worksheet(q1.id, test_actor_id)

        assert excise_service.get_snapshot(q1.id).checksum == snapshot.checksum

    def test_dry_run_after_finalize(self, excise_service, q1, test_actor_id):
        excise_service.build_worksheet(q1.id, test_actor_id)
        snapshot = excise_service.finalize(q1.id, test_actor_id)

        worksheet = excise_service.build_worksheet(q1.id, test_actor_id, dry_run=True)

        assert worksheet.total_tax_cents == 158123
        assert excise_service.get_snapshot(q1.id).checksum == snapshot.checksum


class TestYearToDate:
    def test_counter_from_finalized_periods(
        self, excise_service, record, workspace_id, q1, test_actor_id
    ):
        excise_service.build_worksheet(q1.id, test_actor_id)
        excise_service.finalize(q1.id, test_actor_id)

        q2 = excise_service.open_period(workspace_id, "quarterly", date(2025, 5, 1), test_actor_id)
        record(date(2025, 4, 15), "removed_tax_determined", "100")

        assert excise_service.cbma_counter(q2).taxable_bbl_ytd == Barrels.of("451.78")
        worksheet = excise_service.build_worksheet(q2.id, test_actor_id)
        assert worksheet.allocation.ytd_before == Barrels.of("451.78")
        assert worksheet.allocation.ytd_after == Barrels.of("551.78")
        assert worksheet.total_tax_cents == 35000

    def test_draft_periods_do_not_count(
        self, excise_service, workspace_id, q1, test_actor_id
    ):
        excise_service.build_worksheet(q1.id, test_actor_id)
        q2 = excise_service.open_period(workspace_id, "quarterly", date(2025, 5, 1), test_actor_id)
        assert excise_service.cbma_counter(q2).taxable_bbl_ytd.is_zero

    def test_resets_each_year(self, excise_service, workspace_id, q1, test_actor_id):
        excise_service.build_worksheet(q1.id, test_actor_id)
        excise_service.finalize(q1.id, test_actor_id)

        next_year = excise_service.open_period(workspace_id, "quarterly", date(2026, 2, 1), test_actor_id)
        counter = excise_service.cbma_counter(next_year)

        assert counter.tax_year == 2026
        assert counter.taxable_bbl_ytd.is_zero

    def test_tampered_snapshot_rejected(
        self, excise_service, session, workspace_id, q1, test_actor_id
    ):
        excise_service.build_worksheet(q1.id, test_actor_id)
        excise_service.finalize(q1.id, test_actor_id)
        session.execute(
            update(PeriodSnapshotRecord)
            .where(PeriodSnapshotRecord.period_id == q1.id)
            .values(checksum="0" * 64)
            .execution_options(synchronize_session=False)
        )
        session.expire_all()

        q2 = excise_service.open_period(workspace_id, "quarterly", date(2025, 5, 1), test_actor_id)

        with pytest.raises(SnapshotIntegrityError) as exc_info:
            excise_service.cbma_counter(q2)
        assert exc_info.value.period_id == str(q1.id)


@pytest.fixture
def january_halves(excise_service, record, workspace_id, test_actor_id):
    """Two semi-monthly January periods straddling the reduced-rate ceiling."""
    first = excise_service.open_period(workspace_id, "semi_monthly", date(2025, 1, 5), test_actor_id)
    second = excise_service.open_period(workspace_id, "semi_monthly", date(2025, 1, 20), test_actor_id)
    record(date(2025, 1, 10), "removed_tax_determined", "59900")
    record(date(2025, 1, 20), "removed_tax_determined", "500")
    return first, second


class TestCounterChain:
    """A period is finalized on the derived counter only after its predecessors."""

    def test_finalize_blocked_while_earlier_period_drafted(
        self, excise_service, period_service, january_halves, test_actor_id, captured_logs
    ):
        first, second = january_halves
        excise_service.build_worksheet(first.id, test_actor_id)
        excise_service.build_worksheet(second.id, test_actor_id)

        with pytest.raises(DataGapError) as exc_info:
            excise_service.finalize(second.id, test_actor_id)

        assert exc_info.value.prior_period_id == str(first.id)
        assert "draft" in exc_info.value.reason
        assert period_service.get_period(second.id).status == PeriodStatus.DRAFT
        assert any(r["message"] == "excise_counter_data_gap" for r in captured_logs())

    def test_finalize_blocked_while_earlier_period_open(
        self, excise_service, january_halves, test_actor_id
    ):
        _, second = january_halves
        excise_service.build_worksheet(second.id, test_actor_id)

        with pytest.raises(DataGapError):
            excise_service.finalize(second.id, test_actor_id)

    def test_in_order_finalization_spills_into_next_band(
        self, excise_service, january_halves, test_actor_id
    ):
        first, second = january_halves
        excise_service.build_worksheet(first.id, test_actor_id)
        excise_service.finalize(first.id, test_actor_id)
        excise_service.build_worksheet(second.id, test_actor_id)

        snapshot = excise_service.finalize(second.id, test_actor_id)

        allocation = snapshot.allocation
        assert allocation.ytd_before == Barrels.of("59900")
        assert allocation.qty_in("first_60k") == Barrels.of("100")
        assert allocation.qty_in("60k_to_6m") == Barrels.of("400")
        # 100 * 350 + 400 * 1600
        assert allocation.total_tax_cents == 675000

    def test_prior_year_periods_do_not_block(
        self, excise_service, workspace_id, q1, test_actor_id
    ):
        excise_service.open_period(workspace_id, "quarterly", date(2024, 11, 1), test_actor_id)
        excise_service.build_worksheet(q1.id, test_actor_id)

        snapshot = excise_service.finalize(q1.id, test_actor_id)

        assert snapshot.allocation.ytd_before.is_zero

    def test_explicit_counter_skips_chain(
        self, excise_service, january_halves, test_actor_id
    ):
        _, second = january_halves
        excise_service.build_worksheet(second.id, test_actor_id, ytd_used_bbl="59900")

        snapshot = excise_service.finalize(second.id, test_actor_id)

        assert snapshot.allocation.qty_in("first_60k") == Barrels.of("100")


class TestStoredCounterOverride:
    def test_override_kept_for_finalize(
        self, excise_service, period_service, record, workspace_id, test_actor_id
    ):
        period = excise_service.open_period(workspace_id, "semi_monthly", date(2025, 7, 3), test_actor_id)
        record(date(2025, 7, 4), "removed_tax_determined", "500")
        worksheet = excise_service.build_worksheet(period.id, test_actor_id, ytd_used_bbl="59800")

        assert period_service.get_period(period.id).cbma_ytd_override_bbl == Barrels.of("59800")

        snapshot = excise_service.finalize(period.id, test_actor_id)

        assert snapshot.allocation.total_tax_cents == worksheet.total_tax_cents == 550000
        assert snapshot.allocation.ytd_before == Barrels.of("59800")

    def test_rebuild_reuses_override(
        self, excise_service, record, workspace_id, test_actor_id
    ):
        period = excise_service.open_period(workspace_id, "semi_monthly", date(2025, 7, 3), test_actor_id)
        record(date(2025, 7, 4), "removed_tax_determined", "500")
        excise_service.build_worksheet(period.id, test_actor_id, ytd_used_bbl="59800")

        again = excise_service.build_worksheet(period.id, test_actor_id)

        assert again.allocation.ytd_before == Barrels.of("59800")
        assert again.period.cbma_ytd_override_bbl == Barrels.of("59800")

    def test_no_override_by_default(self, excise_service, period_service, q1, test_actor_id):
        excise_service.build_worksheet(q1.id, test_actor_id)
        assert period_service.get_period(q1.id).cbma_ytd_override_bbl is None
