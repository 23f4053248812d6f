"""
Reconciliation - pure BROP conservation check and its domain types.
"""

from ttb_engines.reconciliation.engine import ReconciliationEngine
from ttb_engines.reconciliation.types import (
    AnomalyCode,
    AnomalySeverity,
    Checkpoint,
    ReconciliationResult,
    ReconciliationStatus,
    ValidationAnomaly,
)

__all__ = [
    "AnomalyCode",
    "AnomalySeverity",
    "Checkpoint",
    "ReconciliationEngine",
    "ReconciliationResult",
    "ReconciliationStatus",
    "ValidationAnomaly",
]
