"""
ORM-Level Immutability Enforcement for dispense history.

===============================================================================
WHY THIS EXISTS
===============================================================================

Every dispense event carries an append-only history: created, updated,
rejected, re-entered, linked.  That trail is what yard supervisors and the
fuel order desk use to reconstruct who did what, independently of the
system-wide audit log.  Entries may be added; they may never be edited or
removed.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update] --> _check_history_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_history_delete() -------/
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | When Immutable          | Why
------------------------|-------------------------|------------------------------
DispenseHistoryEntry    | ALWAYS (from creation)  | Dispense audit trail
"""

from sqlalchemy import event

from fuel_kernel.exceptions import ImmutabilityViolationError
from fuel_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _check_history_immutability(mapper, connection, target):
    """Prevent any updates to DispenseHistoryEntry records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "DispenseHistoryEntry",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="DispenseHistoryEntry",
        entity_id=str(target.id),
        reason="Dispense history entries are append-only and cannot be modified",
    )


def _check_history_delete(mapper, connection, target):
    """Prevent deletion of DispenseHistoryEntry records."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "DispenseHistoryEntry",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="DispenseHistoryEntry",
        entity_id=str(target.id),
        reason="Dispense history entries are append-only and cannot be deleted",
    )


_LISTENERS = (
    ("before_update", _check_history_immutability),
    ("before_delete", _check_history_delete),
)


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: calling it again does not stack duplicate listeners.
    """
    from fuel_kernel.models.dispense import DispenseHistoryEntry

    for identifier, fn in _LISTENERS:
        if not event.contains(DispenseHistoryEntry, identifier, fn):
            event.listen(DispenseHistoryEntry, identifier, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rule.
    """
    from fuel_kernel.models.dispense import DispenseHistoryEntry

    for identifier, fn in _LISTENERS:
        if event.contains(DispenseHistoryEntry, identifier, fn):
            event.remove(DispenseHistoryEntry, identifier, fn)
