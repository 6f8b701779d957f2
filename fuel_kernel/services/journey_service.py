"""
JourneyService -- lifecycle of journey records.

Responsibility:
    Opens journey records from going delivery orders, resolves their fuel
    configuration (locking them when it is missing), attaches return legs,
    records manual checkpoint entries, fills configuration later, and
    cancels or soft-deletes records.

Architecture position:
    Kernel > Services.  Uses CheckpointAllocator for quantities and
    LedgerService for every write to an existing record.

Invariants enforced:
    - A record with missing total or extra liters is saved locked with the
      matching pending_config_reason; saving never fails for it.
    - Manual checkpoint entries are allowed while locked; only
      configuration-dependent standards are refused.
    - Cancelled records refuse postings with CancelledTargetError.

Failure modes:
    - JourneyAlreadyExistsError on a duplicate truck + going DO.
    - JourneyNotFoundError / CancelledTargetError for bad targets.
    - Allocation errors from CheckpointAllocator.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fuel_kernel.domain.allocator import (
    Allocation,
    AllocationBasis,
    CheckpointAllocator,
    JourneyRoute,
    LoadingPoint,
    month_tag,
)
from fuel_kernel.domain.checkpoints import Checkpoint, resolve_checkpoint
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.dtos import ConfigurationMissingWarning
from fuel_kernel.domain.ledger import JourneyLedger
from fuel_kernel.domain.truck_number import normalize_truck_number
from fuel_kernel.exceptions import (
    CancelledTargetError,
    JourneyAlreadyExistsError,
    JourneyNotFoundError,
    ValidationError,
)
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.journey import JourneyRecord
from fuel_kernel.services.base import BaseService
from fuel_kernel.services.ledger_service import LedgerService, LedgerUpdate

logger = get_logger("services.journey")


@dataclass(frozen=True)
class OpenedJourney:
    record: JourneyRecord
    config_warning: ConfigurationMissingWarning | None


class JourneyService(BaseService):
    """Write-side operations on JourneyRecord."""

    def __init__(
        self,
        session: Session,
        allocator: CheckpointAllocator,
        ledger: LedgerService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._allocator = allocator
        self._ledger = ledger

    def open_journey(
        self,
        truck_no: str,
        going_do: str,
        trip_date: date,
        destination: str | None,
        created_by: str,
        start: str | None = None,
        origin: str | None = None,
        total_liters: Any = None,
        extra_liters: Any = None,
        loading_point: LoadingPoint | None = None,
        month: str | None = None,
    ) -> OpenedJourney:
        """
        Create a journey record for a going delivery order.

        Total and extra liters given here win over configuration.  Going-leg
        slots are planned from the loading point.
        """
        canonical = normalize_truck_number(truck_no)
        going_do = (going_do or "").strip()
        if not going_do:
            raise ValidationError("going_do is required")

        existing = self.session.execute(
            select(JourneyRecord.id).where(
                JourneyRecord.truck_no == canonical,
                JourneyRecord.going_do == going_do,
            )
        ).first()
        if existing is not None:
            raise JourneyAlreadyExistsError(canonical, going_do)

        config = self._allocator.resolve_configuration(
            canonical, destination, total_liters, extra_liters
        )
        plan = self._allocator.plan_going_allocations(
            loading_point,
            start,
            destination,
            config.total_liters,
            config.extra_liters,
        )
        ledger = JourneyLedger.create(config.total_liters, config.extra_liters, plan)

        record = JourneyRecord(
            truck_no=canonical,
            going_do=going_do,
            trip_date=trip_date,
            month=month or month_tag(trip_date),
            start=start,
            origin=origin,
            destination=destination,
            total_liters=config.total_liters,
            extra_liters=config.extra_liters,
            balance=ledger.balance,
            is_locked=config.is_locked,
            pending_config_reason=config.pending_config_reason,
            created_at=self.clock.now(),
            updated_at=self.clock.now(),
            created_by=created_by,
            **ledger.slot_columns(),
        )
        self.session.add(record)
        self.session.flush()

        warning = None
        if config.is_locked:
            warning = ConfigurationMissingWarning(
                journey_id=record.id,
                going_do=going_do,
                truck_no=canonical,
                destination=destination,
                reason=config.pending_config_reason,
                truck_suffix=config.extra_fuel.truck_suffix,
            )
            logger.warning(
                "journey_locked",
                extra={
                    "journey_id": str(record.id),
                    "going_do": going_do,
                    "truck_no": canonical,
                    "destination": destination,
                    "pending_config_reason": config.pending_config_reason,
                },
            )

        logger.info(
            "journey_opened",
            extra={
                "journey_id": str(record.id),
                "truck_no": canonical,
                "going_do": going_do,
                "destination": destination,
                "total_liters": config.total_liters,
                "extra_liters": config.extra_liters,
                "extra_fuel_source": config.extra_fuel.source,
                "balance": ledger.balance,
            },
        )
        return OpenedJourney(record=record, config_warning=warning)

    def get_active(self, journey_id: UUID) -> JourneyRecord:
        """
        Raises:
            JourneyNotFoundError: If missing or soft-deleted.
            CancelledTargetError: If cancelled.
        """
        record = self._ledger.fetch(journey_id)
        if record is None or record.is_deleted:
            raise JourneyNotFoundError(str(journey_id))
        if record.is_cancelled:
            raise CancelledTargetError(str(journey_id), record.going_do)
        return record

    def attach_return_leg(
        self,
        journey_id: UUID,
        return_do: str,
        actor: str,
        plan_allocations: bool = True,
    ) -> JourneyRecord:
        """Set the return DO and, optionally, post the planned return slots."""
        record = self.get_active(journey_id)
        return_do = (return_do or "").strip()
        if not return_do:
            raise ValidationError("return_do is required")

        allocations: list[Allocation] = []
        if plan_allocations and not record.return_do:
            plan = self._allocator.plan_return_allocations(record.destination)
            allocations = [
                Allocation(cp, quantity, AllocationBasis.STANDARD)
                for cp, quantity in plan.items()
            ]

        self._ledger.apply_postings(
            record.id,
            allocations,
            actor,
            extra_values={"return_do": return_do},
        )
        logger.info(
            "return_leg_attached",
            extra={
                "journey_id": str(journey_id),
                "return_do": return_do,
                "planned_slots": [a.checkpoint.slot for a in allocations],
            },
        )
        return self.get_active(journey_id)

    def record_checkpoint(
        self,
        journey_id: UUID,
        checkpoint: "str | Checkpoint",
        actor: str,
        liters: Any = None,
    ) -> LedgerUpdate:
        """
        Post a checkpoint entry by hand.

        Allowed while the record is locked; configuration-dependent
        standards (ZAMBIA_GOING without liters) raise JourneyLockedError.
        """
        cp = resolve_checkpoint(checkpoint)
        record = self.get_active(journey_id)

        def allocate(fresh: JourneyRecord, ledger: JourneyLedger) -> list[Allocation]:
            return [
                self._allocator.allocate(cp, JourneyRoute.from_record(fresh), ledger, liters)
            ]

        return self._ledger.apply_computed_postings(record.id, allocate, actor)

    def fill_configuration(
        self,
        journey_id: UUID,
        actor: str,
        total_liters: Any = None,
        extra_liters: Any = None,
    ) -> JourneyRecord:
        """
        Populate missing total/extra liters and unlock when both are set.

        Values not given are looked up again from configuration, so fixing
        the configuration and calling this with no values also unlocks.
        """
        record = self.get_active(journey_id)
        config = self._allocator.resolve_configuration(
            record.truck_no,
            record.destination,
            total_liters if total_liters is not None else record.total_liters,
            extra_liters if extra_liters is not None else record.extra_liters,
        )
        was_locked = record.is_locked
        updated = self._ledger.apply_configuration(
            record.id,
            actor,
            total_liters=config.total_liters,
            extra_liters=config.extra_liters,
        )
        logger.info(
            "journey_unlocked" if was_locked and not updated.is_locked else "journey_configured",
            extra={
                "journey_id": str(updated.id),
                "total_liters": updated.total_liters,
                "extra_liters": updated.extra_liters,
                "pending_config_reason": updated.pending_config_reason,
                "balance": updated.balance,
            },
        )
        return updated

    def cancel_journey(
        self,
        journey_id: UUID,
        reason: str,
        cancelled_by: str,
    ) -> JourneyRecord:
        """Cancel a journey; it stops being a match or link target at once."""
        self.get_active(journey_id)
        now = self.clock.now()
        record = self._ledger.mutate(
            journey_id,
            lambda record, ledger: {
                "is_cancelled": True,
                "cancellation_reason": reason,
                "cancelled_by": cancelled_by,
                "cancelled_at": now,
            },
            cancelled_by,
        )
        logger.info(
            "journey_cancelled",
            extra={
                "journey_id": str(journey_id),
                "going_do": record.going_do,
                "reason": reason,
            },
        )
        return record

    def soft_delete_journey(self, journey_id: UUID, actor: str) -> JourneyRecord:
        record = self._ledger.fetch(journey_id)
        if record is None or record.is_deleted:
            raise JourneyNotFoundError(str(journey_id))
        now = self.clock.now()
        record = self._ledger.mutate(
            journey_id,
            lambda record, ledger: {"is_deleted": True, "deleted_at": now},
            actor,
            require_active=False,
        )
        logger.info(
            "journey_deleted",
            extra={"journey_id": str(journey_id), "going_do": record.going_do},
        )
        return record

    def reconcile(self, journey_id: UUID, actor: str = "system") -> Decimal:
        return self._ledger.reconcile(journey_id, actor)
