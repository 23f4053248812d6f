"""Kernel services (flush-only, caller owns the transaction)."""

from ttb_kernel.services.base import BaseService
from ttb_kernel.services.movement_service import MovementService
from ttb_kernel.services.period_service import PeriodService

__all__ = [
    "BaseService",
    "MovementService",
    "PeriodService",
]
