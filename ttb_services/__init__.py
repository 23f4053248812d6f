"""
Report services -- the imperative shell over the kernel and engines.

PeriodLedgerService aggregates the movement log, BROPReportService runs the
BROP draft / finalize workflow and ExciseWorksheetService the excise one.
All of them flush only; callers own the transaction.
"""

from ttb_services.brop_service import BROPDraft, BROPReport, BROPReportService
from ttb_services.excise_service import ExciseWorksheetService
from ttb_services.ledger_service import AggregatedLedger, OpeningSource, PeriodLedgerService

__all__ = [
    "AggregatedLedger",
    "BROPDraft",
    "BROPReport",
    "BROPReportService",
    "ExciseWorksheetService",
    "OpeningSource",
    "PeriodLedgerService",
]
