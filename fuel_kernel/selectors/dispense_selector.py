"""
Module: fuel_kernel.selectors.dispense_selector
Responsibility: Read-side queries over yard dispense events: pending
    entries awaiting a journey, rejection history, and per-yard summaries.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only; returns DispenseEventView / YardSummary DTOs.
    - Date ranges are inclusive on both ends.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from fuel_kernel.db.types import ZERO_LITERS
from fuel_kernel.domain.checkpoints import Yard, resolve_yard
from fuel_kernel.domain.dispense_state import DispenseStatus
from fuel_kernel.domain.dtos import DispenseEventView, YardSummary
from fuel_kernel.domain.truck_number import normalize_truck_number
from fuel_kernel.models.dispense import DispenseEvent
from fuel_kernel.selectors.base import BaseSelector
from fuel_kernel.db.base import coerce_uuid


class DispenseSelector(BaseSelector):
    """Dispense event lookups returning DTOs."""

    def get(self, dispense_event_id: "UUID | str") -> DispenseEventView | None:
        event_id = coerce_uuid(dispense_event_id)
        if event_id is None:
            return None
        event = self.session.get(DispenseEvent, event_id, populate_existing=True)
        return DispenseEventView.from_model(event) if event else None

    def pending(
        self,
        truck_no: str | None = None,
        yard: "Yard | str | None" = None,
    ) -> list[DispenseEventView]:
        """Pending events, oldest entry first."""
        stmt = select(DispenseEvent).where(DispenseEvent.status == DispenseStatus.PENDING)
        if truck_no is not None:
            stmt = stmt.where(DispenseEvent.truck_no == normalize_truck_number(truck_no))
        if yard is not None:
            stmt = stmt.where(DispenseEvent.yard == resolve_yard(yard))
        stmt = stmt.order_by(DispenseEvent.entered_at, DispenseEvent.created_at).execution_options(
            populate_existing=True
        )
        return [DispenseEventView.from_model(e) for e in self.session.execute(stmt).scalars()]

    def for_journey(self, journey_id: "UUID | str") -> list[DispenseEventView]:
        jid = coerce_uuid(journey_id)
        if jid is None:
            return []
        stmt = (
            select(DispenseEvent)
            .where(DispenseEvent.journey_id == jid)
            .order_by(DispenseEvent.entered_at)
            .execution_options(populate_existing=True)
        )
        return [DispenseEventView.from_model(e) for e in self.session.execute(stmt).scalars()]

    def rejection_history(
        self,
        yard: "Yard | str | None" = None,
        date_from: date | None = None,
        date_to: date | None = None,
        include_resolved: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DispenseEventView]:
        """Events that were ever rejected, most recent rejection first."""
        stmt = select(DispenseEvent).where(DispenseEvent.rejected_at.is_not(None))
        if yard is not None:
            stmt = stmt.where(DispenseEvent.yard == resolve_yard(yard))
        if date_from is not None:
            stmt = stmt.where(DispenseEvent.dispense_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(DispenseEvent.dispense_date <= date_to)
        if not include_resolved:
            stmt = stmt.where(DispenseEvent.rejection_resolved.is_(False))
        stmt = (
            stmt.order_by(DispenseEvent.rejected_at.desc(), DispenseEvent.id)
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return [DispenseEventView.from_model(e) for e in self.session.execute(stmt).scalars()]

    def yard_summary(
        self,
        yard: "Yard | str | None" = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> YardSummary:
        """Dispense count, liters and per-status counts, rejected events excluded from liters."""
        yard_enum = resolve_yard(yard) if yard is not None else None

        stmt = select(DispenseEvent.status, func.count(), func.sum(DispenseEvent.liters))
        if yard_enum is not None:
            stmt = stmt.where(DispenseEvent.yard == yard_enum)
        if date_from is not None:
            stmt = stmt.where(DispenseEvent.dispense_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(DispenseEvent.dispense_date <= date_to)
        stmt = stmt.group_by(DispenseEvent.status)

        by_status = {status.value: 0 for status in DispenseStatus}
        total_dispenses = 0
        total_liters = ZERO_LITERS
        for status, count, liters in self.session.execute(stmt):
            status = DispenseStatus(status)
            by_status[status.value] = count
            total_dispenses += count
            if status != DispenseStatus.REJECTED and liters is not None:
                total_liters += Decimal(liters)

        return YardSummary(
            yard=yard_enum.value if yard_enum else None,
            date_from=date_from,
            date_to=date_to,
            total_dispenses=total_dispenses,
            total_liters=total_liters,
            by_status=by_status,
        )
