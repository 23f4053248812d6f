"""Read-only query selectors."""

from ttb_kernel.selectors.base import BaseSelector
from ttb_kernel.selectors.movement_selector import (
    DailyNetMovement,
    MovementRecord,
    MovementSelector,
)
from ttb_kernel.selectors.snapshot_selector import SnapshotSelector, StoredSnapshot

__all__ = [
    "BaseSelector",
    "DailyNetMovement",
    "MovementRecord",
    "MovementSelector",
    "SnapshotSelector",
    "StoredSnapshot",
]
