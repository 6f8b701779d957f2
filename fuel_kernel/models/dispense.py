"""
Module: fuel_kernel.models.dispense
Responsibility: ORM persistence for yard dispense events and their
    append-only history.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain enums only.

Invariants enforced:
    - status in {linked, manual} => journey_id is set; status pending =>
      journey_id is null.  Maintained by DispenseLifecycleService.
    - posted_slot/posted_quantity record exactly what was applied to the
      journey, so a rejection can reverse it.
    - DispenseHistoryEntry rows are append-only (db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of a history entry.
    - StaleDataError on a flush against a stale version.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fuel_kernel.db.base import Base, TrackedBase, UUIDString
from fuel_kernel.db.types import Liters, enum_type
from fuel_kernel.domain.checkpoints import Yard
from fuel_kernel.domain.dispense_state import DispenseStatus
from fuel_kernel.domain.history import HistoryAction, HistoryDetails, details_to_dict


class DispenseEvent(TrackedBase):
    """
    Fuel dispensed to a truck at a yard.

    Contract:
        Created pending or linked.  Status changes only through
        DispenseLifecycleService, and every change appends exactly one
        history entry via ``append_history``.
    """

    __tablename__ = "dispense_events"

    __table_args__ = (
        Index("idx_dispense_truck_status", "truck_no", "status"),
        Index("idx_dispense_yard_date", "yard", "dispense_date"),
        Index("idx_dispense_journey", "journey_id"),
    )

    truck_no: Mapped[str] = mapped_column(String(30), nullable=False)
    yard: Mapped[Yard] = mapped_column(enum_type(Yard, length=20), nullable=False)
    dispense_date: Mapped[date] = mapped_column(Date, nullable=False)
    liters: Mapped[Decimal] = mapped_column(Liters(), nullable=False)

    entered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    entered_by: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[DispenseStatus] = mapped_column(
        enum_type(DispenseStatus, length=20),
        default=DispenseStatus.PENDING,
        nullable=False,
    )

    journey_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journey_records.id"),
        nullable=True,
    )
    linked_do_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    auto_linked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # What was applied to the journey, so it can be reversed exactly
    posted_slot: Mapped[str | None] = mapped_column(String(30), nullable=True)
    posted_quantity: Mapped[Decimal | None] = mapped_column(Liters(), nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rejection_resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rejection_resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    history: Mapped[list["DispenseHistoryEntry"]] = relationship(
        back_populates="event",
        order_by="DispenseHistoryEntry.sequence",
        cascade="save-update, merge",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<DispenseEvent {self.truck_no} {self.yard.value} {self.liters}L: {self.status.value}>"

    def append_history(
        self,
        details: HistoryDetails,
        performed_by: str,
        performed_at: datetime,
    ) -> "DispenseHistoryEntry":
        """Append one history entry; the action is taken from the payload type."""
        entry = DispenseHistoryEntry(
            sequence=len(self.history) + 1,
            action=details.action,
            performed_by=performed_by,
            performed_at=performed_at,
            details=details_to_dict(details),
        )
        self.history.append(entry)
        return entry

    def clear_posting(self) -> None:
        self.journey_id = None
        self.linked_do_number = None
        self.auto_linked = False
        self.posted_slot = None
        self.posted_quantity = None


class DispenseHistoryEntry(Base):
    """
    One append-only entry in a dispense event's history.

    Guarantees:
        - (dispense_event_id, sequence) is unique; sequence starts at 1.
        - details is the JSON form of the action's payload dataclass.
    """

    __tablename__ = "dispense_history"

    __table_args__ = (
        UniqueConstraint("dispense_event_id", "sequence", name="uq_dispense_history_seq"),
    )

    dispense_event_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("dispense_events.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[HistoryAction] = mapped_column(
        enum_type(HistoryAction, length=20),
        nullable=False,
    )
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    event: Mapped[DispenseEvent] = relationship(back_populates="history")

    def __repr__(self) -> str:
        return f"<DispenseHistoryEntry #{self.sequence} {self.action.value}>"
