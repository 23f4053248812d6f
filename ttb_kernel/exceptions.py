"""
Typed Exception Hierarchy for the TTB Compliance Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Regulatory reporting must fail precisely. A generic ValueError forces callers
to parse messages to learn whether a period is already finalized or whether
the opening-balance chain is broken. Every error raised by the kernel:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        brop_service.finalize(period_id, actor_id)
    except AlreadyFinalizedError as e:
        api_response(code=e.code, period=e.period_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from TTBKernelError:

    TTBKernelError (base)
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- PeriodOverlapError
    |   +-- AlreadyFinalizedError
    |   +-- InvalidPeriodTransitionError
    |
    +-- LedgerError
    |   +-- DataGapError
    |
    +-- ConfigurationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- SnapshotError
    |   +-- SnapshotNotFoundError
    |   +-- SnapshotIntegrityError
    |
    +-- PolicyError
        +-- UnconfirmedAnomaliesError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Period          | PERIOD_NOT_FOUND            | Period ID doesn't exist
                | PERIOD_OVERLAP              | Date range conflicts with a sibling
                | ALREADY_FINALIZED           | Mutation of a terminal period
                | INVALID_PERIOD_TRANSITION   | e.g. finalize an OPEN period
----------------|-----------------------------|-----------------------------------------
Ledger          | DATA_GAP                    | Movements but no opening balance
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Rate table missing or malformed
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Period version changed underneath
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of a frozen record
----------------|-----------------------------|-----------------------------------------
Snapshot        | SNAPSHOT_NOT_FOUND          | Finalized period has no snapshot row
                | SNAPSHOT_INTEGRITY          | Stored checksum does not match payload
----------------|-----------------------------|-----------------------------------------
Policy          | UNCONFIRMED_ANOMALIES       | Finalize with anomalies, no confirmation

Reconciliation anomalies are NOT exceptions. They are ``ValidationAnomaly``
values returned on the ``ReconciliationResult`` so the caller can decide
whether to warn-and-allow or block.
"""


class TTBKernelError(Exception):
    """
    Base exception for all TTB kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TTB_KERNEL_ERROR"


# Period-related exceptions


class PeriodError(TTBKernelError):
    """Base exception for reporting-period errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """No reporting period with the given identifier."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Reporting period not found: {period_id}")


class PeriodOverlapError(PeriodError):
    """New period date range overlaps an existing period of the same kind."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        workspace_id: str,
        report_kind: str,
        existing_period_id: str,
        overlap_start: str,
        overlap_end: str,
    ):
        self.workspace_id = workspace_id
        self.report_kind = report_kind
        self.existing_period_id = existing_period_id
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"{report_kind} period overlaps existing period {existing_period_id} "
            f"from {overlap_start} to {overlap_end}"
        )


class AlreadyFinalizedError(PeriodError):
    """
    Attempted mutation of a finalized (terminal) period.

    Raised at the transition boundary: a second finalize, a non-dry-run
    draft regeneration, or any write that would alter the frozen snapshot.
    """

    code: str = "ALREADY_FINALIZED"

    def __init__(self, period_id: str, operation: str = "finalize"):
        self.period_id = period_id
        self.operation = operation
        super().__init__(
            f"Period {period_id} is already finalized; cannot {operation}"
        )


class InvalidPeriodTransitionError(PeriodError):
    """Requested status transition is not allowed from the current status."""

    code: str = "INVALID_PERIOD_TRANSITION"

    def __init__(self, period_id: str, from_status: str, to_status: str):
        self.period_id = period_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Period {period_id} cannot transition from {from_status} to {to_status}"
        )


# Ledger-related exceptions


class LedgerError(TTBKernelError):
    """Base exception for ledger aggregation errors."""

    code: str = "LEDGER_ERROR"


class DataGapError(LedgerError):
    """
    A period cannot be chained to the periods before it.

    The opening balance of period N must equal the closing balance of
    period N-1, and the CBMA counter of an excise period must include every
    earlier excise period of the tax year.  Both chains are checked before
    anything is written.
    """

    code: str = "DATA_GAP"

    def __init__(
        self,
        workspace_id: str,
        period_start: str,
        reason: str,
        prior_period_id: str | None = None,
    ):
        self.workspace_id = workspace_id
        self.period_start = period_start
        self.reason = reason
        self.prior_period_id = prior_period_id
        super().__init__(
            f"Cannot chain period starting {period_start} "
            f"in workspace {workspace_id}: {reason}"
        )


# Configuration


class ConfigurationError(TTBKernelError):
    """Regulatory configuration (e.g. the excise rate table) is missing or malformed."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}{message}")


# Concurrency


class ConcurrencyError(TTBKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Period row changed between read and compare-and-swap."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_id: str, expected_version: int, actual_version: int):
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock conflict on {entity_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


# Immutability


class ImmutabilityError(TTBKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a finalized period or its snapshot."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Snapshots


class SnapshotError(TTBKernelError):
    """Base exception for finalized snapshot errors."""

    code: str = "SNAPSHOT_ERROR"


class SnapshotNotFoundError(SnapshotError):
    """A finalized period has no stored snapshot."""

    code: str = "SNAPSHOT_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"No finalized snapshot for period {period_id}")


class SnapshotIntegrityError(SnapshotError):
    """Stored snapshot checksum does not match its payload."""

    code: str = "SNAPSHOT_INTEGRITY"

    def __init__(self, period_id: str, expected: str, actual: str):
        self.period_id = period_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Snapshot checksum mismatch for period {period_id}: "
            f"stored {expected[:16]}... != computed {actual[:16]}..."
        )


# Policy (enforced by the service layer, never by engines)


class PolicyError(TTBKernelError):
    """Base exception for business-policy rejections."""

    code: str = "POLICY_ERROR"


class UnconfirmedAnomaliesError(PolicyError):
    """Finalization requested with outstanding anomalies and no confirmation."""

    code: str = "UNCONFIRMED_ANOMALIES"

    def __init__(self, period_id: str, anomaly_codes: list[str]):
        self.period_id = period_id
        self.anomaly_codes = anomaly_codes
        super().__init__(
            f"Period {period_id} has {len(anomaly_codes)} anomaly(ies) "
            f"({', '.join(anomaly_codes)}); explicit confirmation required"
        )
