"""
Dispense event state machine.

    pending --> linked   (auto-linked to a journey)
    pending --> manual   (linked by office staff)
    pending | linked | manual --> rejected
    rejected --> pending | linked   (re-entered)

Rejecting a linked or manual event reverses its posted quantity before the
status changes.  ``rejection_resolved`` is a separate flag and is not a
state.
"""

from enum import Enum

from fuel_kernel.exceptions import InvalidDispenseTransitionError


class DispenseStatus(str, Enum):
    PENDING = "pending"
    LINKED = "linked"
    MANUAL = "manual"
    REJECTED = "rejected"


VALID_TRANSITIONS: dict[DispenseStatus, frozenset[DispenseStatus]] = {
    DispenseStatus.PENDING: frozenset(
        {DispenseStatus.LINKED, DispenseStatus.MANUAL, DispenseStatus.REJECTED}
    ),
    DispenseStatus.LINKED: frozenset({DispenseStatus.REJECTED}),
    DispenseStatus.MANUAL: frozenset({DispenseStatus.REJECTED}),
    DispenseStatus.REJECTED: frozenset({DispenseStatus.PENDING, DispenseStatus.LINKED}),
}

# Statuses that carry a journey reference and a posted quantity
LINKED_STATUSES: frozenset[DispenseStatus] = frozenset(
    {DispenseStatus.LINKED, DispenseStatus.MANUAL}
)


def can_transition(from_status: DispenseStatus, to_status: DispenseStatus) -> bool:
    return DispenseStatus(to_status) in VALID_TRANSITIONS.get(
        DispenseStatus(from_status), frozenset()
    )


def validate_transition(
    dispense_event_id: object,
    from_status: DispenseStatus,
    to_status: DispenseStatus,
) -> None:
    """Raise InvalidDispenseTransitionError unless the move is allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidDispenseTransitionError(
            dispense_event_id=str(dispense_event_id),
            from_status=DispenseStatus(from_status).value,
            to_status=DispenseStatus(to_status).value,
        )
