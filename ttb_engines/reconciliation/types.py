"""
BROP reconciliation domain types.

Pure frozen dataclasses and enums consumed and produced by
ReconciliationEngine.  The service layer populates the inputs from the
movement log; the engine never touches storage.

Architecture: ttb_engines/reconciliation -- pure domain, zero I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from ttb_kernel.domain.values import DEFAULT_TOLERANCE_BBL, Barrels


# =============================================================================
# Enums
# =============================================================================


class AnomalySeverity(str, Enum):
    """Severity of a reconciliation anomaly."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ReconciliationStatus(str, Enum):
    """Overall outcome, derived from the worst anomaly."""

    PASSED = "passed"
    WARNING = "warning"  # Warnings only
    FAILED = "failed"  # At least one ERROR


class AnomalyCode(str, Enum):
    """Machine-readable anomaly identifiers."""

    RECONCILIATION_VARIANCE = "RECONCILIATION_VARIANCE"
    NEGATIVE_RUNNING_BALANCE = "NEGATIVE_RUNNING_BALANCE"
    OPENING_BALANCE_MISMATCH = "OPENING_BALANCE_MISMATCH"
    NEGATIVE_QUANTITY = "NEGATIVE_QUANTITY"
    UNEXPLAINED_LOSS = "UNEXPLAINED_LOSS"
    PRODUCTION_RECORDS_INCOMPLETE = "PRODUCTION_RECORDS_INCOMPLETE"
    NEGATIVE_CLOSING_BALANCE = "NEGATIVE_CLOSING_BALANCE"


# =============================================================================
# Input types
# =============================================================================


@dataclass(frozen=True)
class Checkpoint:
    """Net movement on one day inside the period (additions - removals)."""

    on_date: date
    net_bbl: Barrels

    def __post_init__(self) -> None:
        object.__setattr__(self, "net_bbl", Barrels.of(self.net_bbl))


# =============================================================================
# Output types
# =============================================================================


@dataclass(frozen=True)
class ValidationAnomaly:
    """
    One non-fatal finding attached to a reconciliation result.

    Anomalies never abort reconciliation; the caller decides whether to
    warn-and-allow or block.
    """

    code: AnomalyCode
    severity: AnomalySeverity
    message: str
    details: Mapping[str, Any] | None = None

    def to_payload(self) -> dict:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "details": dict(self.details) if self.details else None,
        }

    @classmethod
    def from_payload(cls, data: dict) -> ValidationAnomaly:
        return cls(
            code=AnomalyCode(data["code"]),
            severity=AnomalySeverity(data["severity"]),
            message=data["message"],
            details=data.get("details"),
        )


_AMOUNT_FIELDS = (
    "opening_bbl",
    "produced_bbl",
    "received_bbl",
    "returned_bbl",
    "removed_tax_bbl",
    "removed_notax_bbl",
    "consumed_bbl",
    "destroyed_bbl",
    "losses_bbl",
    "closing_bbl",
    "calculated_closing",
    "variance",
)


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Outcome of balancing one period's BROP ledger.

    ``calculated_closing = opening + produced + received + returned
    - removed_tax - removed_notax - consumed - destroyed - losses`` and
    ``variance = calculated_closing - closing_bbl`` (reported).
    """

    opening_bbl: Barrels
    produced_bbl: Barrels
    received_bbl: Barrels
    returned_bbl: Barrels
    removed_tax_bbl: Barrels
    removed_notax_bbl: Barrels
    consumed_bbl: Barrels
    destroyed_bbl: Barrels
    losses_bbl: Barrels
    closing_bbl: Barrels
    calculated_closing: Barrels
    variance: Barrels
    tolerance: Decimal = DEFAULT_TOLERANCE_BBL
    anomalies: tuple[ValidationAnomaly, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        """|variance| <= tolerance."""
        return abs(self.variance.value) <= self.tolerance

    @property
    def total_additions(self) -> Barrels:
        return self.produced_bbl + self.received_bbl + self.returned_bbl

    @property
    def total_removals(self) -> Barrels:
        return (
            self.removed_tax_bbl
            + self.removed_notax_bbl
            + self.consumed_bbl
            + self.destroyed_bbl
            + self.losses_bbl
        )

    @property
    def status(self) -> ReconciliationStatus:
        if any(a.severity == AnomalySeverity.ERROR for a in self.anomalies):
            return ReconciliationStatus.FAILED
        if any(a.severity == AnomalySeverity.WARNING for a in self.anomalies):
            return ReconciliationStatus.WARNING
        return ReconciliationStatus.PASSED

    @property
    def has_anomalies(self) -> bool:
        return len(self.anomalies) > 0

    @property
    def has_variance_anomaly(self) -> bool:
        return any(a.code == AnomalyCode.RECONCILIATION_VARIANCE for a in self.anomalies)

    @property
    def anomaly_codes(self) -> tuple[str, ...]:
        return tuple(a.code.value for a in self.anomalies)

    @property
    def error_count(self) -> int:
        return sum(1 for a in self.anomalies if a.severity == AnomalySeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for a in self.anomalies if a.severity == AnomalySeverity.WARNING)

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {
            name: str(getattr(self, name).value) for name in _AMOUNT_FIELDS
        }
        payload["tolerance"] = str(self.tolerance)
        payload["is_valid"] = self.is_valid
        payload["status"] = self.status.value
        payload["anomalies"] = [a.to_payload() for a in self.anomalies]
        return payload

    @classmethod
    def from_payload(cls, data: dict) -> ReconciliationResult:
        amounts = {name: Barrels.of(data[name]) for name in _AMOUNT_FIELDS}
        return cls(
            **amounts,
            tolerance=Decimal(data.get("tolerance", str(DEFAULT_TOLERANCE_BBL))),
            anomalies=tuple(ValidationAnomaly.from_payload(a) for a in data.get("anomalies", ())),
        )
