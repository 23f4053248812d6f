"""
MovementService -- Append-only writes to the volume movement log.

Responsibility:
    Records beer movements (production, receipts in bond, returns,
    removals, destruction, losses) for a workspace.  Ledger and excise
    reports are derived from these rows at read time.

Architecture position:
    Kernel > Services -- imperative shell.  Batch completion, packaging
    and sales ingestion call this; reports read via MovementSelector.

Invariants enforced:
    - Only BROP movement categories are accepted; opening and closing are
      derived balances and are never logged.
    - Quantities are exact decimals (floats rejected by ``Barrels``).
    - A movement dated inside a finalized period is rejected by the ORM
      immutability listener; corrections go in the open period.
    - Flush-only: never commits.

Failure modes:
    - ValueError: unknown or balance category, or unknown source type.
    - ImmutabilityViolationError: the date falls in a finalized period.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from ttb_kernel.domain.ledger_lines import MOVEMENT_CATEGORIES, LedgerCategory
from ttb_kernel.domain.values import Barrels
from ttb_kernel.logging_config import get_logger
from ttb_kernel.models.movement import VolumeMovement
from ttb_kernel.services.base import BaseService

logger = get_logger("services.movement")

SOURCE_TYPES = frozenset({"batch", "packaging", "sales", "transfer", "adjustment"})


class MovementService(BaseService[VolumeMovement]):
    """Writes to ``volume_movements``."""

    def record_movement(
        self,
        workspace_id: UUID,
        occurred_on: date,
        category: LedgerCategory | str,
        quantity_bbl: Barrels | Decimal | str | int,
        actor_id: UUID,
        source_type: str = "adjustment",
        source_ref: str | None = None,
        destination: str | None = None,
        notes: str | None = None,
        is_provisional: bool = False,
    ) -> UUID:
        """
        Append one movement and return its id.

        Raises:
            ValueError: If the category is not a movement category or the
                source type is unknown.
        """
        cat = LedgerCategory(category)
        if cat not in MOVEMENT_CATEGORIES:
            raise ValueError(f"{cat.value} is a balance line and cannot be recorded")
        if source_type not in SOURCE_TYPES:
            raise ValueError(f"Unknown source type {source_type!r}")
        quantity = Barrels.of(quantity_bbl)

        movement = VolumeMovement(
            workspace_id=workspace_id,
            occurred_on=occurred_on,
            category=cat.value,
            quantity_bbl=quantity.value,
            source_type=source_type,
            source_ref=source_ref,
            destination=destination,
            notes=notes,
            is_provisional=is_provisional,
            created_by_id=actor_id,
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "movement_recorded",
            extra={
                "movement_id": str(movement.id),
                "workspace_id": str(workspace_id),
                "occurred_on": str(occurred_on),
                "category": cat.value,
                "quantity_bbl": str(quantity.value),
                "source_type": source_type,
            },
        )

        return movement.id

    def mark_confirmed(self, movement_id: UUID, actor_id: UUID) -> None:
        """Clear the provisional flag once batch records are complete."""
        movement = self.session.get(VolumeMovement, movement_id)
        if movement is None:
            raise ValueError(f"Unknown movement {movement_id}")
        movement.is_provisional = False
        movement.updated_by_id = actor_id
        self.session.flush()
