"""
Pytest fixtures for the TTB compliance kernel test suite.

Provides:
- In-memory SQLite sessions with immutability listeners registered
- A deterministic clock
- Structured log capture
- Builders for periods and movements
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest

from ttb_config import get_active_config
from ttb_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from ttb_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ttb_kernel.domain.clock import DeterministicClock
from ttb_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ttb_kernel.services.movement_service import MovementService
from ttb_kernel.services.period_service import PeriodService
from ttb_services.brop_service import BROPReportService
from ttb_services.excise_service import ExciseWorksheetService
from ttb_services.ledger_service import PeriodLedgerService


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ttb_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "period_finalized" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ttb_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    eng = init_engine_from_url("sqlite://")
    create_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine):
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Identity and time
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def workspace_id() -> UUID:
    return uuid4()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2025, 2, 3, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def compliance_config():
    return get_active_config()


# =============================================================================
# Services and builders
# =============================================================================


@pytest.fixture
def period_service(session, deterministic_clock) -> PeriodService:
    return PeriodService(session, deterministic_clock)


@pytest.fixture
def movement_service(session) -> MovementService:
    return MovementService(session)


@pytest.fixture
def create_period(period_service, workspace_id, test_actor_id):
    """Factory creating an OPEN period in the test workspace."""

    def _create(
        start_date: date,
        end_date: date,
        report_kind: str = "brop",
        period_type: str = "monthly",
        opening_balance_bbl=None,
        due_days_after_end: int = 15,
        workspace=None,
    ):
        return period_service.create_period(
            workspace_id=workspace or workspace_id,
            report_kind=report_kind,
            period_type=period_type,
            start_date=start_date,
            end_date=end_date,
            due_days_after_end=due_days_after_end,
            actor_id=test_actor_id,
            opening_balance_bbl=opening_balance_bbl,
        )

    return _create


@pytest.fixture
def record(movement_service, workspace_id, test_actor_id):
    """Factory appending a movement to the test workspace's log."""

    def _record(
        occurred_on: date,
        category: str,
        quantity_bbl: str | Decimal,
        notes: str | None = None,
        destination: str | None = None,
        is_provisional: bool = False,
        source_type: str = "adjustment",
        source_ref: str | None = None,
        workspace=None,
    ) -> UUID:
        return movement_service.record_movement(
            workspace_id=workspace or workspace_id,
            occurred_on=occurred_on,
            category=category,
            quantity_bbl=Decimal(quantity_bbl),
            actor_id=test_actor_id,
            source_type=source_type,
            source_ref=source_ref,
            destination=destination,
            notes=notes,
            is_provisional=is_provisional,
        )

    return _record


@pytest.fixture
def brop_service(session, deterministic_clock, compliance_config):
    return BROPReportService(session, deterministic_clock, compliance_config)


@pytest.fixture
def excise_service(session, deterministic_clock, compliance_config):
    return ExciseWorksheetService(session, deterministic_clock, compliance_config)


@pytest.fixture
def ledger_service(session, deterministic_clock):
    return PeriodLedgerService(session, deterministic_clock)
