"""
FuelAllocationEngine -- the external operations facade.

Responsibility:
    The one object outer layers (HTTP handlers, import scripts) talk to.
    Wires matcher, allocator, ledger, journey and lifecycle services over a
    caller-owned session and runs each operation as one unit of work.

Architecture position:
    Kernel > Services -- top of the kernel.  Returns DTOs only.

Invariants enforced:
    - Each operation runs inside a SAVEPOINT: a failure leaves no partial
      writes behind, and the caller's outer transaction stays usable.
    - OptimisticLockError is retried for the whole operation up to
      MAX_CONFLICT_RETRIES extra times, then surfaces.
    - Validation and cancellation errors are never retried.

Usage:
    with session_scope() as session:
        engine = FuelAllocationEngine(session, lookup)
        result = engine.submit_dispense_event(
            "T123 DNH", date(2025, 11, 3), 44, "DAR YARD", "yard.dar"
        )
"""

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from fuel_kernel.db.base import coerce_uuid
from fuel_kernel.domain.allocator import CheckpointAllocator, LoadingPoint
from fuel_kernel.domain.checkpoints import Checkpoint, Yard
from fuel_kernel.domain.clock import Clock, SystemClock
from fuel_kernel.domain.config_lookup import ConfigurationLookup
from fuel_kernel.domain.dtos import (
    DispenseEventView,
    DispenseResult,
    JourneyOpenResult,
    JourneyView,
)
from fuel_kernel.exceptions import JourneyNotFoundError, OptimisticLockError
from fuel_kernel.logging_config import LogContext, get_logger
from fuel_kernel.services.dispense_lifecycle import DispenseLifecycleService
from fuel_kernel.services.journey_matcher import JourneyMatcher
from fuel_kernel.services.journey_service import JourneyService
from fuel_kernel.services.ledger_service import LedgerService, LedgerUpdate

logger = get_logger("services.fuel_engine")

T = TypeVar("T")


class FuelAllocationEngine:
    """
    Facade over the fuel kernel services.

    Contract:
        Never commits.  Every method either completes fully or, on error,
        rolls back to the savepoint taken at its start and re-raises.
    """

    MAX_CONFLICT_RETRIES = 1

    def __init__(
        self,
        session: Session,
        lookup: ConfigurationLookup,
        clock: Clock | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.lookup = lookup
        self.allocator = CheckpointAllocator(lookup)
        self.ledger = LedgerService(session, self.clock)
        self.matcher = JourneyMatcher(session)
        self.journeys = JourneyService(session, self.allocator, self.ledger, self.clock)
        self.lifecycle = DispenseLifecycleService(
            session, self.matcher, self.allocator, self.ledger, self.clock
        )

    def _run(self, operation: str, fn: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                with self.session.begin_nested():
                    return fn()
            except OptimisticLockError as exc:
                attempt += 1
                if attempt > self.MAX_CONFLICT_RETRIES:
                    logger.error(
                        "operation_conflict_exhausted",
                        extra={
                            "operation": operation,
                            "entity_type": exc.entity_type,
                            "entity_id": exc.entity_id,
                        },
                    )
                    raise
                logger.warning(
                    "operation_conflict_retry",
                    extra={"operation": operation, "attempt": attempt},
                )

    @staticmethod
    def _journey_id(journey_id: Any) -> UUID:
        value = coerce_uuid(journey_id)
        if value is None:
            raise JourneyNotFoundError(str(journey_id))
        return value

    # ------------------------------------------------------------------
    # Dispense events
    # ------------------------------------------------------------------

    def submit_dispense_event(
        self,
        truck_no: str,
        dispense_date: date,
        liters: Any,
        yard: "str | Yard",
        entered_by: str,
        notes: str | None = None,
    ) -> DispenseResult:
        with LogContext.bind(actor=entered_by):
            return self._run(
                "submit_dispense_event",
                lambda: self.lifecycle.submit(
                    truck_no, dispense_date, liters, yard, entered_by, notes
                ),
            )

    def link_pending_event(
        self,
        dispense_event_id: Any,
        journey_id: Any,
        linked_by: str,
    ) -> DispenseResult:
        with LogContext.bind(actor=linked_by):
            return self._run(
                "link_pending_event",
                lambda: self.lifecycle.link_pending(dispense_event_id, journey_id, linked_by),
            )

    def reject_dispense_event(
        self,
        dispense_event_id: Any,
        reason: str,
        rejected_by: str,
    ) -> DispenseResult:
        with LogContext.bind(actor=rejected_by):
            return self._run(
                "reject_dispense_event",
                lambda: self.lifecycle.reject(dispense_event_id, reason, rejected_by),
            )

    def reenter_dispense_event(
        self,
        dispense_event_id: Any,
        reentered_by: str,
        truck_no: str | None = None,
        liters: Any = None,
        dispense_date: date | None = None,
        notes: str | None = None,
    ) -> DispenseResult:
        with LogContext.bind(actor=reentered_by):
            return self._run(
                "reenter_dispense_event",
                lambda: self.lifecycle.reenter(
                    dispense_event_id,
                    reentered_by,
                    truck_no=truck_no,
                    liters=liters,
                    dispense_date=dispense_date,
                    notes=notes,
                ),
            )

    def update_pending_event(
        self,
        dispense_event_id: Any,
        updated_by: str,
        truck_no: str | None = None,
        liters: Any = None,
        dispense_date: date | None = None,
        notes: str | None = None,
    ) -> DispenseEventView:
        return self._run(
            "update_pending_event",
            lambda: self.lifecycle.update_pending(
                dispense_event_id,
                updated_by,
                truck_no=truck_no,
                liters=liters,
                dispense_date=dispense_date,
                notes=notes,
            ),
        )

    def resolve_rejection(self, dispense_event_id: Any, resolved_by: str) -> DispenseEventView:
        return self._run(
            "resolve_rejection",
            lambda: self.lifecycle.resolve_rejection(dispense_event_id, resolved_by),
        )

    # ------------------------------------------------------------------
    # Journeys
    # ------------------------------------------------------------------

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
    ) -> JourneyOpenResult:
        """Create a journey record, then link the truck's pending dispenses to it."""

        def run() -> JourneyOpenResult:
            opened = self.journeys.open_journey(
                truck_no,
                going_do,
                trip_date,
                destination,
                created_by,
                start=start,
                origin=origin,
                total_liters=total_liters,
                extra_liters=extra_liters,
                loading_point=loading_point,
                month=month,
            )
            linked = self.lifecycle.link_pending_for_journey(opened.record, created_by)
            record = self.ledger.fetch(opened.record.id)
            return JourneyOpenResult(
                journey=JourneyView.from_model(record),
                linked_count=linked,
                config_warning=opened.config_warning,
            )

        with LogContext.bind(actor=created_by):
            return self._run("open_journey", run)

    def attach_return_leg(
        self,
        journey_id: Any,
        return_do: str,
        actor: str,
        plan_allocations: bool = True,
    ) -> JourneyView:
        jid = self._journey_id(journey_id)
        return self._run(
            "attach_return_leg",
            lambda: JourneyView.from_model(
                self.journeys.attach_return_leg(jid, return_do, actor, plan_allocations)
            ),
        )

    def record_checkpoint(
        self,
        journey_id: Any,
        checkpoint: "str | Checkpoint",
        actor: str,
        liters: Any = None,
    ) -> LedgerUpdate:
        jid = self._journey_id(journey_id)
        return self._run(
            "record_checkpoint",
            lambda: self.journeys.record_checkpoint(jid, checkpoint, actor, liters),
        )

    def fill_configuration(
        self,
        journey_id: Any,
        actor: str,
        total_liters: Any = None,
        extra_liters: Any = None,
    ) -> JourneyView:
        jid = self._journey_id(journey_id)
        return self._run(
            "fill_configuration",
            lambda: JourneyView.from_model(
                self.journeys.fill_configuration(jid, actor, total_liters, extra_liters)
            ),
        )

    def cancel_journey(self, journey_id: Any, reason: str, cancelled_by: str) -> JourneyView:
        jid = self._journey_id(journey_id)
        return self._run(
            "cancel_journey",
            lambda: JourneyView.from_model(
                self.journeys.cancel_journey(jid, reason, cancelled_by)
            ),
        )

    def soft_delete_journey(self, journey_id: Any, actor: str) -> JourneyView:
        jid = self._journey_id(journey_id)
        return self._run(
            "soft_delete_journey",
            lambda: JourneyView.from_model(self.journeys.soft_delete_journey(jid, actor)),
        )

    def reconcile_journey(self, journey_id: Any, actor: str = "system") -> Decimal:
        jid = self._journey_id(journey_id)
        return self._run("reconcile_journey", lambda: self.journeys.reconcile(jid, actor))
