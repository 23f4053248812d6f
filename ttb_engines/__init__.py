"""
Module: ttb_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: ledger
    assembly, BROP reconciliation, CBMA excise allocation and the report
    materializer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ttb_kernel (domain, exceptions, logging).
    MUST NOT import ttb_services or ttb_config.

Invariants enforced:
    - Purity: engines never read the clock; timestamps are parameters.
    - Decimal-only barrel arithmetic and integer-cent money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``
    (``ttb_engines.tracer``), emitting TTB_ENGINE_TRACE records with the
    engine name, version, input fingerprint and duration.
"""

from ttb_engines.excise import (
    ExciseAllocation,
    ExciseRateBand,
    ExciseRateTable,
    ExciseTaxCalculator,
    ExciseWorksheet,
    NetTaxableRemovals,
    RateBandDefinition,
    Removal,
    net_taxable_removals,
)
from ttb_engines.ledger import PeriodLedgerAggregator, book_closing
from ttb_engines.materializer import (
    PeriodSnapshot,
    ReportMaterializer,
    compute_snapshot_checksum,
)
from ttb_engines.reconciliation import (
    AnomalyCode,
    AnomalySeverity,
    Checkpoint,
    ReconciliationEngine,
    ReconciliationResult,
    ReconciliationStatus,
    ValidationAnomaly,
)
from ttb_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Ledger
    "PeriodLedgerAggregator",
    "book_closing",
    # Reconciliation
    "AnomalyCode",
    "AnomalySeverity",
    "Checkpoint",
    "ReconciliationEngine",
    "ReconciliationResult",
    "ReconciliationStatus",
    "ValidationAnomaly",
    # Excise
    "ExciseAllocation",
    "ExciseRateBand",
    "ExciseRateTable",
    "ExciseTaxCalculator",
    "ExciseWorksheet",
    "NetTaxableRemovals",
    "RateBandDefinition",
    "Removal",
    "net_taxable_removals",
    # Materializer
    "PeriodSnapshot",
    "ReportMaterializer",
    "compute_snapshot_checksum",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]
