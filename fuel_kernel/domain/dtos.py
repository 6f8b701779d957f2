"""
Domain DTOs -- immutable values passed across the engine boundary.

Responsibility:
    Result and view types returned by services and selectors, so callers
    never hold live ORM objects.

Architecture position:
    Kernel > Domain.  Model types are referenced only under TYPE_CHECKING;
    ``from_model`` constructors read attributes and copy them.

Invariants enforced:
    - Every DTO is a frozen dataclass.
    - ConfigurationMissingWarning is data, not an exception: missing
      configuration never fails an operation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING
from uuid import UUID

from fuel_kernel.domain.checkpoints import SLOT_ORDER
from fuel_kernel.domain.dispense_state import DispenseStatus
from fuel_kernel.domain.history import HistoryAction, HistoryDetails, details_from_dict

if TYPE_CHECKING:
    from fuel_kernel.models.dispense import DispenseEvent, DispenseHistoryEntry
    from fuel_kernel.models.journey import JourneyRecord


class PendingConfigReason(str, Enum):
    """Why a journey record is locked."""

    MISSING_TOTAL_LITERS = "missing_total_liters"
    MISSING_EXTRA_FUEL = "missing_extra_fuel"
    BOTH = "both"

    @property
    def missing_fields(self) -> tuple[str, ...]:
        if self is PendingConfigReason.MISSING_TOTAL_LITERS:
            return ("total_liters",)
        if self is PendingConfigReason.MISSING_EXTRA_FUEL:
            return ("extra_liters",)
        return ("total_liters", "extra_liters")


def pending_config_reason(
    total_liters: Decimal | None,
    extra_liters: Decimal | None,
) -> PendingConfigReason | None:
    """Lock reason for a total/extra pair, or None when both are present."""
    if total_liters is None and extra_liters is None:
        return PendingConfigReason.BOTH
    if total_liters is None:
        return PendingConfigReason.MISSING_TOTAL_LITERS
    if extra_liters is None:
        return PendingConfigReason.MISSING_EXTRA_FUEL
    return None


@dataclass(frozen=True)
class ConfigurationMissingWarning:
    """A journey was saved locked because configuration was missing."""

    journey_id: UUID
    going_do: str
    truck_no: str
    destination: str | None
    reason: PendingConfigReason
    truck_suffix: str | None = None

    @property
    def missing_fields(self) -> tuple[str, ...]:
        return self.reason.missing_fields

    @property
    def message(self) -> str:
        parts = []
        if "total_liters" in self.missing_fields:
            parts.append(f"no route budget for destination {self.destination!r}")
        if "extra_liters" in self.missing_fields:
            parts.append(f"no extra fuel batch for truck suffix {self.truck_suffix!r}")
        return (
            f"Journey {self.going_do} for {self.truck_no} is locked: "
            + "; ".join(parts)
        )


@dataclass(frozen=True)
class HistoryEntryView:
    sequence: int
    action: HistoryAction
    performed_by: str
    performed_at: datetime
    details: HistoryDetails

    @classmethod
    def from_model(cls, entry: DispenseHistoryEntry) -> HistoryEntryView:
        return cls(
            sequence=entry.sequence,
            action=HistoryAction(entry.action),
            performed_by=entry.performed_by,
            performed_at=entry.performed_at,
            details=details_from_dict(entry.action, entry.details),
        )


@dataclass(frozen=True)
class DispenseEventView:
    id: UUID
    truck_no: str
    yard: str
    dispense_date: date
    liters: Decimal
    status: DispenseStatus
    entered_by: str
    entered_at: datetime
    notes: str | None
    journey_id: UUID | None
    linked_do_number: str | None
    auto_linked: bool
    posted_slot: str | None
    posted_quantity: Decimal | None
    rejection_reason: str | None
    rejected_by: str | None
    rejected_at: datetime | None
    rejection_resolved: bool
    rejection_resolved_by: str | None
    rejection_resolved_at: datetime | None
    history: tuple[HistoryEntryView, ...] = ()

    @classmethod
    def from_model(cls, event: DispenseEvent) -> DispenseEventView:
        return cls(
            id=event.id,
            truck_no=event.truck_no,
            yard=event.yard.value,
            dispense_date=event.dispense_date,
            liters=event.liters,
            status=DispenseStatus(event.status),
            entered_by=event.entered_by,
            entered_at=event.entered_at,
            notes=event.notes,
            journey_id=event.journey_id,
            linked_do_number=event.linked_do_number,
            auto_linked=event.auto_linked,
            posted_slot=event.posted_slot,
            posted_quantity=event.posted_quantity,
            rejection_reason=event.rejection_reason,
            rejected_by=event.rejected_by,
            rejected_at=event.rejected_at,
            rejection_resolved=event.rejection_resolved,
            rejection_resolved_by=event.rejection_resolved_by,
            rejection_resolved_at=event.rejection_resolved_at,
            history=tuple(HistoryEntryView.from_model(h) for h in event.history),
        )


@dataclass(frozen=True)
class JourneyView:
    id: UUID
    truck_no: str
    going_do: str
    return_do: str | None
    trip_date: date
    month: str
    start: str | None
    origin: str | None
    destination: str | None
    total_liters: Decimal | None
    extra_liters: Decimal | None
    balance: Decimal
    is_locked: bool
    pending_config_reason: PendingConfigReason | None
    is_cancelled: bool
    is_deleted: bool
    version: int
    slots: Mapping[str, Decimal] = field(default_factory=dict)

    @classmethod
    def from_model(cls, record: JourneyRecord) -> JourneyView:
        return cls(
            id=record.id,
            truck_no=record.truck_no,
            going_do=record.going_do,
            return_do=record.return_do,
            trip_date=record.trip_date,
            month=record.month,
            start=record.start,
            origin=record.origin,
            destination=record.destination,
            total_liters=record.total_liters,
            extra_liters=record.extra_liters,
            balance=record.balance,
            is_locked=record.is_locked,
            pending_config_reason=record.pending_config_reason,
            is_cancelled=record.is_cancelled,
            is_deleted=record.is_deleted,
            version=record.version,
            slots=MappingProxyType({cp.slot: getattr(record, cp.slot) for cp in SLOT_ORDER}),
        )


@dataclass(frozen=True)
class DispenseResult:
    """Outcome of a submission, link, rejection or re-entry."""

    event: DispenseEventView
    status: DispenseStatus
    message: str
    linked_do_number: str | None = None
    linked_journey_id: UUID | None = None
    auto_linked: bool = False
    linked_count: int = 0
    config_warning: ConfigurationMissingWarning | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == DispenseStatus.PENDING


@dataclass(frozen=True)
class JourneyOpenResult:
    journey: JourneyView
    linked_count: int = 0
    config_warning: ConfigurationMissingWarning | None = None


@dataclass(frozen=True)
class YardSummary:
    yard: str | None
    date_from: date | None
    date_to: date | None
    total_dispenses: int
    total_liters: Decimal
    by_status: Mapping[str, int]


@dataclass(frozen=True)
class BalanceDiscrepancy:
    journey_id: UUID
    truck_no: str
    going_do: str
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance
