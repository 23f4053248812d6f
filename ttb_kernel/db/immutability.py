"""
ORM-level immutability enforcement for finalized TTB periods.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity               | When Immutable                          | Operation blocked
---------------------|-----------------------------------------|------------------
TTBPeriod            | After status = finalized                | UPDATE, DELETE
TTBPeriodEntry       | When the parent period is finalized     | UPDATE, DELETE
PeriodSnapshotRecord | ALWAYS (from creation)                  | UPDATE, DELETE
VolumeMovement       | When dated inside a finalized period    | INSERT, UPDATE, DELETE

A filed report is a legal record.  Corrections discovered after
finalization are recorded as new movements in the current open period and
flow through the opening-balance chain; they never rewrite a finalized
period.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update / before_delete / before_insert]
         |
         +--> _check_*() --> ImmutabilityViolationError (flush aborted)
         |
         v
    SQL sent to database (only if checks pass)

The finalize transition itself is a Core ``UPDATE ... WHERE status='draft'``
issued by PeriodService; Core statements do not fire mapper events, so the
compare-and-swap is not blocked here.  ORM attribute history is used to tell
"was finalized before this flush" apart from "is being finalized now".

===============================================================================
USAGE
===============================================================================

    from ttb_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import Date, bindparam, event, text
from sqlalchemy.orm.attributes import get_history

from ttb_kernel.exceptions import ImmutabilityViolationError
from ttb_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = ("updated_at", "updated_by_id")


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _period_status(connection, period_id) -> str | None:
    row = connection.execute(
        text("SELECT status FROM ttb_periods WHERE id = :period_id"),
        {"period_id": str(period_id)},
    ).first()
    return row[0] if row else None


def _finalized_period_covering(connection, workspace_id, on_date) -> str | None:
    row = connection.execute(
        text(
            "SELECT id FROM ttb_periods "
            "WHERE workspace_id = :workspace_id AND status = 'finalized' "
            "AND start_date <= :on_date AND end_date >= :on_date "
            "LIMIT 1"
        ).bindparams(bindparam("on_date", type_=Date)),
        {"workspace_id": str(workspace_id), "on_date": on_date},
    ).first()
    return row[0] if row else None


# =============================================================================
# TTBPeriod
# =============================================================================


def _check_period_immutability(mapper, connection, target):
    """
    Block changes to a period that was already finalized before this flush.

    status history:
        deleted = [old value]   -> status is changing; old value decides
        no deleted, no added    -> status unchanged; current value decides
    """
    status_history = get_history(target, "status")

    if status_history.deleted:
        was_finalized = status_history.deleted[0] == "finalized"
    elif not status_history.added:
        was_finalized = target.status == "finalized"
    else:
        was_finalized = False

    if not was_finalized:
        return

    from sqlalchemy import inspect

    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            _block(
                "TTBPeriod",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on finalized period",
                field=attr.key,
            )


def _check_period_delete(mapper, connection, target):
    if target.status == "finalized":
        _block("TTBPeriod", target.id, "DELETE", "Finalized periods cannot be deleted")


# =============================================================================
# TTBPeriodEntry
# =============================================================================


def _check_entry_immutability(mapper, connection, target):
    if _period_status(connection, target.period_id) == "finalized":
        _block(
            "TTBPeriodEntry",
            target.id,
            "UPDATE",
            "Report lines cannot be modified after the period is finalized",
        )


def _check_entry_delete(mapper, connection, target):
    if _period_status(connection, target.period_id) == "finalized":
        _block(
            "TTBPeriodEntry",
            target.id,
            "DELETE",
            "Report lines cannot be deleted after the period is finalized",
        )


# =============================================================================
# PeriodSnapshotRecord (append-only)
# =============================================================================


def _check_snapshot_immutability(mapper, connection, target):
    _block("PeriodSnapshotRecord", target.id, "UPDATE", "Snapshots are immutable")


def _check_snapshot_delete(mapper, connection, target):
    _block("PeriodSnapshotRecord", target.id, "DELETE", "Snapshots cannot be deleted")


# =============================================================================
# VolumeMovement
# =============================================================================


def _check_movement_insert(mapper, connection, target):
    period_id = _finalized_period_covering(connection, target.workspace_id, target.occurred_on)
    if period_id is not None:
        _block(
            "VolumeMovement",
            target.id,
            "INSERT",
            f"{target.occurred_on} falls inside finalized period {period_id}; "
            "record the correction in the current open period",
        )


def _check_movement_immutability(mapper, connection, target):
    dates = set(get_history(target, "occurred_on").deleted)
    dates.add(target.occurred_on)
    for on_date in dates:
        period_id = _finalized_period_covering(connection, target.workspace_id, on_date)
        if period_id is not None:
            _block(
                "VolumeMovement",
                target.id,
                "UPDATE",
                f"Movement dated {on_date} belongs to finalized period {period_id}",
            )


def _check_movement_delete(mapper, connection, target):
    period_id = _finalized_period_covering(connection, target.workspace_id, target.occurred_on)
    if period_id is not None:
        _block(
            "VolumeMovement",
            target.id,
            "DELETE",
            f"Movement dated {target.occurred_on} belongs to finalized period {period_id}",
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from ttb_kernel.models import (
        PeriodSnapshotRecord,
        TTBPeriod,
        TTBPeriodEntry,
        VolumeMovement,
    )

    return [
        (TTBPeriod, "before_update", _check_period_immutability),
        (TTBPeriod, "before_delete", _check_period_delete),
        (TTBPeriodEntry, "before_update", _check_entry_immutability),
        (TTBPeriodEntry, "before_delete", _check_entry_delete),
        (PeriodSnapshotRecord, "before_update", _check_snapshot_immutability),
        (PeriodSnapshotRecord, "before_delete", _check_snapshot_delete),
        (VolumeMovement, "before_insert", _check_movement_insert),
        (VolumeMovement, "before_update", _check_movement_immutability),
        (VolumeMovement, "before_delete", _check_movement_delete),
    ]


def register_immutability_listeners():
    """Register all immutability enforcement event listeners.  Idempotent."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate immutability
    deliberately.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
