"""
Module: ttb_kernel.selectors.movement_selector
Responsibility: Read-only queries over the volume movement log for one
    workspace and one inclusive date window: per-category totals, daily net
    movement, loss explanations, provisional production and removal detail.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/ or outer
    layers.

Invariants enforced:
    - No stored balances.  Every total is summed from movement rows at query
      time, so regenerating a draft always reflects the current log.
    - Quantities are returned as exact Decimals at storage precision
      (0.0001 bbl).

Audit relevance:
    These queries are the only path from the movement log into a BROP or
    excise draft.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ttb_kernel.domain.ledger_lines import (
    ADDITION_CATEGORIES,
    LOSS_CATEGORIES,
    LedgerCategory,
)
from ttb_kernel.models.movement import VolumeMovement
from ttb_kernel.selectors.base import BaseSelector

STORAGE_PRECISION = Decimal("0.0001")


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value)).quantize(STORAGE_PRECISION)


@dataclass(frozen=True)
class DailyNetMovement:
    """Net change to bonded inventory on one day (additions - removals)."""

    on_date: date
    net_bbl: Decimal


@dataclass(frozen=True)
class MovementRecord:
    """A single movement row as seen by reports."""

    id: UUID
    occurred_on: date
    category: LedgerCategory
    quantity_bbl: Decimal
    source_type: str
    source_ref: str | None
    destination: str | None
    notes: str | None


class MovementSelector(BaseSelector[VolumeMovement]):
    """Aggregations over ``volume_movements`` for a date window."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _window(self, workspace_id: UUID, start_date: date, end_date: date):
        return (
            VolumeMovement.workspace_id == workspace_id,
            VolumeMovement.occurred_on >= start_date,
            VolumeMovement.occurred_on <= end_date,
        )

    def category_totals(
        self,
        workspace_id: UUID,
        start_date: date,
        end_date: date,
    ) -> dict[LedgerCategory, Decimal]:
        """
        Sum of movement quantities per category in the window.

        Categories with no movements are omitted.

        Raises:
            ValueError: If a row carries a category that is not a BROP
                movement category.
        """
        rows = self.session.execute(
            select(
                VolumeMovement.category,
                func.sum(VolumeMovement.quantity_bbl).label("total"),
            )
            .where(*self._window(workspace_id, start_date, end_date))
            .group_by(VolumeMovement.category)
            .order_by(VolumeMovement.category)
        ).all()

        return {LedgerCategory(row.category): _as_decimal(row.total) for row in rows}

    def movement_count(self, workspace_id: UUID, start_date: date, end_date: date) -> int:
        return self.session.execute(
            select(func.count(VolumeMovement.id)).where(
                *self._window(workspace_id, start_date, end_date)
            )
        ).scalar_one()

    def has_movements(self, workspace_id: UUID, start_date: date, end_date: date) -> bool:
        return self.movement_count(workspace_id, start_date, end_date) > 0

    def daily_net(
        self,
        workspace_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[DailyNetMovement]:
        """Net movement per day, ordered by date.  Days without movements are omitted."""
        additions = [c.value for c in ADDITION_CATEGORIES]
        signed = case(
            (VolumeMovement.category.in_(additions), VolumeMovement.quantity_bbl),
            else_=-VolumeMovement.quantity_bbl,
        )
        rows = self.session.execute(
            select(
                VolumeMovement.occurred_on,
                func.sum(signed).label("net"),
            )
            .where(*self._window(workspace_id, start_date, end_date))
            .group_by(VolumeMovement.occurred_on)
            .order_by(VolumeMovement.occurred_on)
        ).all()

        return [
            DailyNetMovement(on_date=row.occurred_on, net_bbl=_as_decimal(row.net))
            for row in rows
        ]

    def provisional_production_count(
        self,
        workspace_id: UUID,
        start_date: date,
        end_date: date,
    ) -> int:
        """Production movements still carrying an estimated volume."""
        return self.session.execute(
            select(func.count(VolumeMovement.id)).where(
                *self._window(workspace_id, start_date, end_date),
                VolumeMovement.category == LedgerCategory.PRODUCED.value,
                VolumeMovement.is_provisional.is_(True),
            )
        ).scalar_one()

    def loss_notes(
        self,
        workspace_id: UUID,
        start_date: date,
        end_date: date,
    ) -> dict[LedgerCategory, str | None]:
        """
        Combined explanation per loss category.

        A category maps to None when any of its movements lacks a note;
        otherwise to the distinct notes joined with "; " in date order.
        """
        rows = self.session.execute(
            select(VolumeMovement.category, VolumeMovement.notes)
            .where(
                *self._window(workspace_id, start_date, end_date),
                VolumeMovement.category.in_([c.value for c in LOSS_CATEGORIES]),
            )
            .order_by(VolumeMovement.occurred_on, VolumeMovement.created_at, VolumeMovement.id)
        ).all()

        collected: dict[LedgerCategory, list[str] | None] = {}
        for row in rows:
            category = LedgerCategory(row.category)
            notes = collected.setdefault(category, [])
            if notes is None:
                continue
            text = (row.notes or "").strip()
            if not text:
                collected[category] = None
            elif text not in notes:
                notes.append(text)

        return {
            category: ("; ".join(notes) if notes is not None else None)
            for category, notes in collected.items()
        }

    def unexplained_loss_bbl(
        self,
        workspace_id: UUID,
        start_date: date,
        end_date: date,
    ) -> Decimal:
        """Loss and shortage barrels recorded without any note."""
        total = self.session.execute(
            select(func.sum(VolumeMovement.quantity_bbl)).where(
                *self._window(workspace_id, start_date, end_date),
                VolumeMovement.category.in_([c.value for c in LOSS_CATEGORIES]),
                func.coalesce(func.trim(VolumeMovement.notes), "") == "",
            )
        ).scalar_one_or_none()
        return _as_decimal(total)

    def movements(
        self,
        workspace_id: UUID,
        start_date: date,
        end_date: date,
        categories: tuple[LedgerCategory, ...] | None = None,
    ) -> list[MovementRecord]:
        """Movement rows in the window, optionally filtered by category."""
        query = select(VolumeMovement).where(
            *self._window(workspace_id, start_date, end_date)
        )
        if categories:
            query = query.where(VolumeMovement.category.in_([c.value for c in categories]))
        query = query.order_by(
            VolumeMovement.occurred_on, VolumeMovement.created_at, VolumeMovement.id
        )

        return [
            MovementRecord(
                id=m.id,
                occurred_on=m.occurred_on,
                category=LedgerCategory(m.category),
                quantity_bbl=_as_decimal(m.quantity_bbl),
                source_type=m.source_type,
                source_ref=m.source_ref,
                destination=m.destination,
                notes=m.notes,
            )
            for m in self.session.execute(query).scalars()
        ]
