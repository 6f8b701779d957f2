"""
JourneyMatcher -- decides which journey a yard dispense belongs to.

Responsibility:
    Finds the single in-flight journey record for a truck, and verifies
    targets chosen by hand.

Architecture position:
    Kernel > Services.  Read-only against journey_records; posting is done
    by LedgerService.

Invariants enforced:
    - Cancelled and soft-deleted records are never candidates.
    - The dispense date is never a filter: a truck's latest journey is its
      in-flight journey regardless of when the yard recorded the fuel.
    - Ranking is a total order: trip_date desc, created_at desc,
      going_do desc.
    - Every read bypasses the identity map (populate_existing) so a
      cancellation committed elsewhere is seen immediately.

Failure modes:
    - JourneyNotFoundError / CancelledTargetError from verify_target().
    - No candidate is not an error; match() returns a MatchResult with
      journey None.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuel_kernel.domain.checkpoints import Yard
from fuel_kernel.domain.truck_number import normalize_truck_number
from fuel_kernel.exceptions import CancelledTargetError, JourneyNotFoundError
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.journey import JourneyRecord

logger = get_logger("services.journey_matcher")


@dataclass(frozen=True)
class MatchResult:
    truck_no: str
    journey: JourneyRecord | None
    candidate_count: int

    @property
    def matched(self) -> bool:
        return self.journey is not None


class JourneyMatcher:
    """Ranks a truck's active journey records and picks the in-flight one."""

    def __init__(self, session: Session):
        self.session = session

    def candidates(
        self,
        truck_no: str,
        exclude: frozenset[UUID] = frozenset(),
    ) -> list[JourneyRecord]:
        """Active journeys for the truck, best candidate first."""
        canonical = normalize_truck_number(truck_no)
        stmt = (
            select(JourneyRecord)
            .where(
                JourneyRecord.truck_no == canonical,
                JourneyRecord.is_cancelled.is_(False),
                JourneyRecord.is_deleted.is_(False),
            )
            .order_by(
                JourneyRecord.trip_date.desc(),
                JourneyRecord.created_at.desc(),
                JourneyRecord.going_do.desc(),
            )
            .execution_options(populate_existing=True)
        )
        records = list(self.session.execute(stmt).scalars())
        return [r for r in records if r.id not in exclude]

    def match(
        self,
        truck_no: str,
        dispense_date: date,
        liters: Decimal,
        yard: Yard,
        exclude: frozenset[UUID] = frozenset(),
    ) -> MatchResult:
        """
        The journey a dispense should be linked to, if any.

        ``dispense_date``, ``liters`` and ``yard`` are logged for tracing
        but do not narrow the search.
        """
        canonical = normalize_truck_number(truck_no)
        found = self.candidates(canonical, exclude)
        best = found[0] if found else None

        logger.info(
            "journey_match_evaluated",
            extra={
                "truck_no": canonical,
                "dispense_date": dispense_date,
                "liters": liters,
                "yard": yard.value,
                "candidate_count": len(found),
                "matched_journey_id": str(best.id) if best else None,
                "matched_going_do": best.going_do if best else None,
            },
        )
        return MatchResult(truck_no=canonical, journey=best, candidate_count=len(found))

    def verify_target(self, journey_id: UUID) -> JourneyRecord:
        """
        Journey chosen by hand, checked for existence and cancellation.

        Raises:
            JourneyNotFoundError: If missing or soft-deleted.
            CancelledTargetError: If cancelled.
        """
        stmt = (
            select(JourneyRecord)
            .where(JourneyRecord.id == journey_id)
            .execution_options(populate_existing=True)
        )
        record = self.session.execute(stmt).scalar_one_or_none()
        if record is None or record.is_deleted:
            raise JourneyNotFoundError(str(journey_id))
        if record.is_cancelled:
            logger.warning(
                "link_to_cancelled_journey_refused",
                extra={"journey_id": str(journey_id), "going_do": record.going_do},
            )
            raise CancelledTargetError(str(journey_id), record.going_do)
        return record
