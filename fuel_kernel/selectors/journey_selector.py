"""Read-side queries over journey records."""

from uuid import UUID

from sqlalchemy import select

from fuel_kernel.domain.dtos import JourneyView
from fuel_kernel.domain.truck_number import normalize_truck_number
from fuel_kernel.models.journey import JourneyRecord
from fuel_kernel.selectors.base import BaseSelector
from fuel_kernel.db.base import coerce_uuid


class JourneySelector(BaseSelector):
    """Journey lookups returning JourneyView DTOs."""

    def get(self, journey_id: "UUID | str") -> JourneyView | None:
        """A journey by id; soft-deleted records are invisible."""
        jid = coerce_uuid(journey_id)
        if jid is None:
            return None
        record = self.session.get(JourneyRecord, jid, populate_existing=True)
        if record is None or record.is_deleted:
            return None
        return JourneyView.from_model(record)

    def for_truck(self, truck_no: str, include_cancelled: bool = False) -> list[JourneyView]:
        """A truck's journeys, latest trip first."""
        stmt = select(JourneyRecord).where(
            JourneyRecord.truck_no == normalize_truck_number(truck_no),
            JourneyRecord.is_deleted.is_(False),
        )
        if not include_cancelled:
            stmt = stmt.where(JourneyRecord.is_cancelled.is_(False))
        stmt = stmt.order_by(
            JourneyRecord.trip_date.desc(),
            JourneyRecord.created_at.desc(),
            JourneyRecord.going_do.desc(),
        ).execution_options(populate_existing=True)
        return [JourneyView.from_model(r) for r in self.session.execute(stmt).scalars()]

    def locked(self) -> list[JourneyView]:
        """Active journeys waiting for configuration, oldest first."""
        stmt = (
            select(JourneyRecord)
            .where(
                JourneyRecord.is_locked.is_(True),
                JourneyRecord.is_cancelled.is_(False),
                JourneyRecord.is_deleted.is_(False),
            )
            .order_by(JourneyRecord.created_at, JourneyRecord.going_do)
            .execution_options(populate_existing=True)
        )
        return [JourneyView.from_model(r) for r in self.session.execute(stmt).scalars()]
