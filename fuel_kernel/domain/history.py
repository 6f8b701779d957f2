"""
Dispense history details -- one payload shape per action.

Each history entry stores its details as JSON.  The payload is a tagged
union keyed by ``HistoryAction`` so readers always know which fields an
entry carries.  ``details_to_dict`` / ``details_from_dict`` convert between
the frozen dataclasses and the stored JSON.
"""

from dataclasses import asdict, dataclass, fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union


class HistoryAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    REJECTED = "rejected"
    RE_ENTERED = "re-entered"
    LINKED = "linked"


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: str | None
    new: str | None


@dataclass(frozen=True)
class CreatedDetails:
    action: ClassVar[HistoryAction] = HistoryAction.CREATED

    truck_no: str
    yard: str
    liters: Decimal
    dispense_date: date


@dataclass(frozen=True)
class UpdatedDetails:
    action: ClassVar[HistoryAction] = HistoryAction.UPDATED

    changes: tuple[FieldChange, ...]


@dataclass(frozen=True)
class RejectedDetails:
    action: ClassVar[HistoryAction] = HistoryAction.REJECTED

    reason: str
    prior_status: str
    journey_id: str | None = None
    going_do: str | None = None
    reversed_slot: str | None = None
    reversed_quantity: Decimal | None = None


@dataclass(frozen=True)
class ReEnteredDetails:
    action: ClassVar[HistoryAction] = HistoryAction.RE_ENTERED

    previous_rejection_reason: str | None
    changes: tuple[FieldChange, ...] = ()


@dataclass(frozen=True)
class LinkedDetails:
    action: ClassVar[HistoryAction] = HistoryAction.LINKED

    journey_id: str
    going_do: str
    slot: str
    quantity: Decimal
    auto_linked: bool
    balance_after: Decimal | None = None


HistoryDetails = Union[
    CreatedDetails, UpdatedDetails, RejectedDetails, ReEnteredDetails, LinkedDetails
]

DETAILS_BY_ACTION: dict[HistoryAction, type] = {
    HistoryAction.CREATED: CreatedDetails,
    HistoryAction.UPDATED: UpdatedDetails,
    HistoryAction.REJECTED: RejectedDetails,
    HistoryAction.RE_ENTERED: ReEnteredDetails,
    HistoryAction.LINKED: LinkedDetails,
}


def _to_json(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    return value


def details_to_dict(details: HistoryDetails) -> dict[str, Any]:
    """JSON-safe dict for a details payload (Decimals and dates as strings)."""
    return _to_json(asdict(details))


def details_from_dict(action: HistoryAction | str, data: dict[str, Any]) -> HistoryDetails:
    """Rebuild the typed payload for ``action`` from stored JSON."""
    action = HistoryAction(action)
    cls = DETAILS_BY_ACTION[action]
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.name == "changes":
            value = tuple(FieldChange(**c) for c in value)
        elif f.name in ("liters", "quantity", "reversed_quantity", "balance_after"):
            value = None if value is None else Decimal(value)
        elif f.name == "dispense_date":
            value = date.fromisoformat(value)
        kwargs[f.name] = value
    return cls(**kwargs)
