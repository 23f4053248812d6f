"""ORM models for the TTB compliance kernel."""

from ttb_kernel.models.movement import VolumeMovement
from ttb_kernel.models.period_entry import TTBPeriodEntry
from ttb_kernel.models.snapshot import PeriodSnapshotRecord
from ttb_kernel.models.ttb_period import TTBPeriod

__all__ = [
    "PeriodSnapshotRecord",
    "TTBPeriod",
    "TTBPeriodEntry",
    "VolumeMovement",
]
