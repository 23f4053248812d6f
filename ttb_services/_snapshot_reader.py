"""Verified reads of stored period snapshots, shared by the report services."""

from __future__ import annotations

from uuid import UUID

from ttb_engines.materializer import PeriodSnapshot, compute_snapshot_checksum
from ttb_kernel.exceptions import SnapshotIntegrityError, SnapshotNotFoundError
from ttb_kernel.logging_config import get_logger
from ttb_kernel.selectors.snapshot_selector import SnapshotSelector

logger = get_logger("services.snapshots")


def read_verified_snapshot(selector: SnapshotSelector, period_id: UUID) -> PeriodSnapshot:
    """
    Load a period's snapshot and check its checksum.

    Raises:
        SnapshotNotFoundError: No snapshot stored for the period.
        SnapshotIntegrityError: Stored checksum does not match the payload.
    """
    stored = selector.get_for_period(period_id)
    if stored is None:
        raise SnapshotNotFoundError(str(period_id))

    snapshot = PeriodSnapshot.from_payload(stored.payload, stored.checksum)
    if not snapshot.verify():
        actual = compute_snapshot_checksum(stored.payload)
        logger.error("snapshot_integrity_failed", extra={
            "period_id": str(period_id),
            "expected": stored.checksum,
            "actual": actual,
        })
        raise SnapshotIntegrityError(str(period_id), stored.checksum, actual)
    return snapshot
