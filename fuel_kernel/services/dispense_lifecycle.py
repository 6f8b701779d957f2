"""
DispenseLifecycleService -- state machine of yard dispense events.

Responsibility:
    Records yard dispenses, links them to journeys automatically or by
    hand, rejects them (reversing what they posted), re-enters rejected
    events, and keeps an append-only history of every step.

Architecture position:
    Kernel > Services.  Orchestrates JourneyMatcher (which journey),
    CheckpointAllocator (which slot, how much) and LedgerService (atomic
    write), then persists the event's own state.

Invariants enforced:
    - Every status change is checked against VALID_TRANSITIONS and appends
      exactly one history entry.
    - linked/manual events carry journey_id, linked_do_number and the exact
      posted slot and quantity; pending events carry none of them.
    - Rejecting a linked or manual event reverses its posted quantity
      before the status changes, so the journey balance is restored.
    - A lost match-then-post race re-runs the matcher once; otherwise the
      event stays pending.  Yard fuel never lands on a cancelled journey.

Failure modes:
    - ValidationError subclasses for malformed input, before any write.
    - DispenseEventNotFoundError, InvalidDispenseTransitionError,
      DispenseNotEditableError.
    - JourneyNotFoundError / CancelledTargetError on manual links.
    - OptimisticLockError when an event or journey keeps changing under
      the write.

Audit relevance:
    Logs dispense_recorded, dispense_auto_linked, dispense_left_pending,
    dispense_manually_linked, dispense_rejected, dispense_reentered and
    rejections_auto_resolved with truck, event and journey context.
"""

from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fuel_kernel.db.base import coerce_uuid
from fuel_kernel.domain.allocator import CheckpointAllocator, require_positive_liters
from fuel_kernel.domain.checkpoints import Checkpoint, Yard, resolve_yard
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.dispense_state import (
    LINKED_STATUSES,
    DispenseStatus,
    validate_transition,
)
from fuel_kernel.domain.dtos import (
    ConfigurationMissingWarning,
    DispenseEventView,
    DispenseResult,
)
from fuel_kernel.domain.history import (
    CreatedDetails,
    FieldChange,
    LinkedDetails,
    ReEnteredDetails,
    RejectedDetails,
    UpdatedDetails,
)
from fuel_kernel.domain.truck_number import normalize_truck_number, truck_suffix
from fuel_kernel.exceptions import (
    DispenseEventNotFoundError,
    DispenseNotEditableError,
    InvalidDispenseTransitionError,
    JourneyNotFoundError,
    JourneyUnavailableError,
    OptimisticLockError,
    ValidationError,
)
from fuel_kernel.logging_config import LogContext, get_logger
from fuel_kernel.models.dispense import DispenseEvent
from fuel_kernel.models.journey import JourneyRecord
from fuel_kernel.services.base import BaseService
from fuel_kernel.services.journey_matcher import JourneyMatcher
from fuel_kernel.services.ledger_service import LedgerService, LedgerUpdate

logger = get_logger("services.dispense_lifecycle")

PENDING_MESSAGE = "Fuel recorded successfully. Will be linked when fuel record is created."


def linked_message(going_do: str) -> str:
    return f"Fuel recorded and linked to DO {going_do}"


def _require_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Invalid dispense date: {value!r}")


def _require_text(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{what} is required")
    return value.strip()


class DispenseLifecycleService(BaseService):
    """
    Write-side operations on DispenseEvent.

    Contract:
        Every public method leaves the event in a valid state with its
        history appended, and flushes; the caller commits.
    """

    MAX_MATCH_ATTEMPTS = 2

    # Linking a truck's pending fuel resolves its rejections this recent
    RECENT_REJECTION_WINDOW = timedelta(days=7)

    def __init__(
        self,
        session: Session,
        matcher: JourneyMatcher,
        allocator: CheckpointAllocator,
        ledger: LedgerService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._matcher = matcher
        self._allocator = allocator
        self._ledger = ledger

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        truck_no: str,
        dispense_date: date,
        liters: Any,
        yard: "str | Yard",
        entered_by: str,
        notes: str | None = None,
    ) -> DispenseResult:
        """
        Record a yard dispense and link it to the truck's in-flight journey.

        Without a matching journey the event stays pending and is linked
        when the journey is opened.
        """
        canonical = normalize_truck_number(truck_no)
        value = require_positive_liters(liters)
        yard_enum = resolve_yard(yard)
        day = _require_date(dispense_date)
        actor = _require_text(entered_by, "entered_by")

        now = self.clock.now()
        event = DispenseEvent(
            truck_no=canonical,
            yard=yard_enum,
            dispense_date=day,
            liters=value,
            entered_at=now,
            entered_by=actor,
            notes=notes,
            status=DispenseStatus.PENDING,
            auto_linked=False,
            rejection_resolved=False,
            created_at=now,
            updated_at=now,
            created_by=actor,
        )
        self.session.add(event)
        event.append_history(
            CreatedDetails(
                truck_no=canonical,
                yard=yard_enum.value,
                liters=value,
                dispense_date=day,
            ),
            performed_by=actor,
            performed_at=now,
        )
        self._flush_event(event)

        with LogContext.bind(truck_no=canonical, dispense_event_id=str(event.id), actor=actor):
            logger.info(
                "dispense_recorded",
                extra={"yard": yard_enum.value, "liters": value, "dispense_date": day},
            )
            journey = self.auto_link(event, actor)

        if journey is None:
            return self._result(event, PENDING_MESSAGE)

        self._resolve_recent_rejections([event], actor)
        return self._result(
            event,
            linked_message(journey.going_do),
            linked_count=1,
            config_warning=self._config_warning(journey),
        )

    def auto_link(self, event: DispenseEvent, actor: str) -> JourneyRecord | None:
        """
        Link a pending event to its best candidate journey.

        A candidate that is cancelled or deleted between match and post is
        excluded and the matcher runs again, at most MAX_MATCH_ATTEMPTS
        times in total.
        """
        excluded: set[UUID] = set()
        for attempt in range(1, self.MAX_MATCH_ATTEMPTS + 1):
            match = self._matcher.match(
                event.truck_no,
                event.dispense_date,
                event.liters,
                event.yard,
                exclude=frozenset(excluded),
            )
            if not match.matched:
                break
            journey = match.journey
            try:
                self._link(event, journey, actor, DispenseStatus.LINKED, auto_linked=True)
            except JourneyUnavailableError as exc:
                excluded.add(journey.id)
                logger.warning(
                    "journey_match_lost_race",
                    extra={
                        "journey_id": str(journey.id),
                        "going_do": journey.going_do,
                        "attempt": attempt,
                        "reason": exc.reason,
                    },
                )
                continue
            logger.info(
                "dispense_auto_linked",
                extra={
                    "journey_id": str(journey.id),
                    "going_do": journey.going_do,
                    "slot": event.posted_slot,
                    "quantity": event.posted_quantity,
                },
            )
            return self._ledger.fetch(journey.id)

        logger.info(
            "dispense_left_pending",
            extra={"truck_no": event.truck_no, "excluded_candidates": len(excluded)},
        )
        return None

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def link_pending(
        self,
        dispense_event_id: Any,
        journey_id: Any,
        linked_by: str,
    ) -> DispenseResult:
        """
        Link a pending event to a journey chosen by office staff.

        The event becomes manual.  The truck's other pending events are
        linked to the same journey in the same operation.
        """
        actor = _require_text(linked_by, "linked_by")
        event = self.get_event(dispense_event_id)
        if event.status != DispenseStatus.PENDING:
            raise InvalidDispenseTransitionError(
                str(event.id), event.status.value, DispenseStatus.MANUAL.value
            )

        target_id = coerce_uuid(journey_id)
        if target_id is None:
            raise JourneyNotFoundError(str(journey_id))
        journey = self._matcher.verify_target(target_id)

        with LogContext.bind(
            truck_no=event.truck_no,
            dispense_event_id=str(event.id),
            journey_id=str(journey.id),
            actor=actor,
        ):
            self._link(event, journey, actor, DispenseStatus.MANUAL, auto_linked=False)
            linked_events = [event]
            linked_events.extend(
                self._link_siblings(event.truck_no, journey, actor, exclude=event.id)
            )
            self._resolve_recent_rejections(linked_events, actor)
            logger.info(
                "dispense_manually_linked",
                extra={"going_do": journey.going_do, "linked_count": len(linked_events)},
            )

        journey = self._ledger.fetch(journey.id)
        return self._result(
            event,
            f"Linked {len(linked_events)} pending fuel "
            f"{'entry' if len(linked_events) == 1 else 'entries'} to DO {journey.going_do}",
            linked_count=len(linked_events),
            config_warning=self._config_warning(journey),
        )

    def link_pending_for_journey(self, journey: JourneyRecord, actor: str) -> int:
        """Link every pending event of the journey's truck; returns the count."""
        with LogContext.bind(truck_no=journey.truck_no, journey_id=str(journey.id), actor=actor):
            linked = self._link_siblings(journey.truck_no, journey, actor)
            self._resolve_recent_rejections(linked, actor)
            if linked:
                logger.info(
                    "pending_dispenses_linked",
                    extra={"going_do": journey.going_do, "linked_count": len(linked)},
                )
        return len(linked)

    def _link_siblings(
        self,
        truck_no: str,
        journey: JourneyRecord,
        actor: str,
        exclude: UUID | None = None,
    ) -> list[DispenseEvent]:
        stmt = (
            select(DispenseEvent)
            .where(
                DispenseEvent.truck_no == truck_no,
                DispenseEvent.status == DispenseStatus.PENDING,
            )
            .order_by(DispenseEvent.entered_at, DispenseEvent.created_at)
            .execution_options(populate_existing=True)
        )
        linked = []
        for sibling in list(self.session.execute(stmt).scalars()):
            if sibling.id == exclude:
                continue
            self._link(sibling, journey, actor, DispenseStatus.LINKED, auto_linked=True)
            linked.append(sibling)
        return linked

    def _link(
        self,
        event: DispenseEvent,
        journey: JourneyRecord,
        actor: str,
        status: DispenseStatus,
        auto_linked: bool,
    ) -> LedgerUpdate:
        validate_transition(event.id, event.status, status)
        allocation = self._allocator.allocate_yard_dispense(event.yard, event.liters)
        update = self._ledger.apply_posting(journey.id, allocation, actor)

        now = self.clock.now()
        event.status = status
        event.journey_id = update.journey_id
        event.linked_do_number = update.going_do
        event.auto_linked = auto_linked
        event.posted_slot = allocation.slot
        event.posted_quantity = allocation.quantity
        event.updated_at = now
        event.updated_by = actor
        event.append_history(
            LinkedDetails(
                journey_id=str(update.journey_id),
                going_do=update.going_do,
                slot=allocation.slot,
                quantity=allocation.quantity,
                auto_linked=auto_linked,
                balance_after=update.balance_after,
            ),
            performed_by=actor,
            performed_at=now,
        )
        self._flush_event(event)
        return update

    # ------------------------------------------------------------------
    # Rejection
    # ------------------------------------------------------------------

    def reject(
        self,
        dispense_event_id: Any,
        reason: str,
        rejected_by: str,
    ) -> DispenseResult:
        """
        Reject an event.  A linked or manual event's posting is reversed
        first, so the journey balance returns to its prior value.
        """
        reason = _require_text(reason, "rejection reason")
        actor = _require_text(rejected_by, "rejected_by")
        event = self.get_event(dispense_event_id)
        validate_transition(event.id, event.status, DispenseStatus.REJECTED)

        prior_status = event.status
        journey_id = event.journey_id
        going_do = event.linked_do_number
        reversed_slot = None
        reversed_quantity = None

        with LogContext.bind(
            truck_no=event.truck_no,
            dispense_event_id=str(event.id),
            journey_id=str(journey_id) if journey_id else None,
            actor=actor,
        ):
            if prior_status in LINKED_STATUSES and event.posted_slot and journey_id:
                reversal = self._allocator.reversal_of(
                    Checkpoint(event.posted_slot), event.posted_quantity
                )
                self._ledger.apply_postings(
                    journey_id, [reversal], actor, require_active=False
                )
                reversed_slot = reversal.slot
                reversed_quantity = reversal.quantity

            now = self.clock.now()
            event.status = DispenseStatus.REJECTED
            event.clear_posting()
            event.rejection_reason = reason
            event.rejected_by = actor
            event.rejected_at = now
            event.rejection_resolved = False
            event.rejection_resolved_by = None
            event.rejection_resolved_at = None
            event.updated_at = now
            event.updated_by = actor
            event.append_history(
                RejectedDetails(
                    reason=reason,
                    prior_status=prior_status.value,
                    journey_id=str(journey_id) if journey_id else None,
                    going_do=going_do,
                    reversed_slot=reversed_slot,
                    reversed_quantity=reversed_quantity,
                ),
                performed_by=actor,
                performed_at=now,
            )
            self._flush_event(event)

            logger.info(
                "dispense_rejected",
                extra={
                    "prior_status": prior_status,
                    "reason": reason,
                    "reversed_slot": reversed_slot,
                    "reversed_quantity": reversed_quantity,
                },
            )

        return self._result(event, f"Fuel entry rejected: {reason}")

    def resolve_rejection(self, dispense_event_id: Any, resolved_by: str) -> DispenseEventView:
        """Mark a rejection as dealt with.  Does not change status."""
        actor = _require_text(resolved_by, "resolved_by")
        event = self.get_event(dispense_event_id)
        if event.rejected_at is None:
            raise InvalidDispenseTransitionError(
                str(event.id), event.status.value, "rejection_resolved"
            )
        if not event.rejection_resolved:
            self._mark_resolved(event, actor)
            self._flush_event(event)
        return DispenseEventView.from_model(event)

    def _resolve_recent_rejections(
        self,
        linked_events: Iterable[DispenseEvent],
        actor: str,
    ) -> int:
        """
        Resolve unresolved rejections from the last seven days for the same
        truck and yard as each linked event.  Resolved by the linked entry's
        author.
        """
        cutoff = self.clock.now() - self.RECENT_REJECTION_WINDOW
        resolved = 0
        seen: set[tuple[str, Yard]] = set()
        for linked in linked_events:
            key = (linked.truck_no, linked.yard)
            if key in seen:
                continue
            seen.add(key)
            stmt = (
                select(DispenseEvent)
                .where(
                    DispenseEvent.truck_no == linked.truck_no,
                    DispenseEvent.yard == linked.yard,
                    DispenseEvent.rejected_at.is_not(None),
                    DispenseEvent.rejected_at >= cutoff,
                    DispenseEvent.rejection_resolved.is_(False),
                )
                .execution_options(populate_existing=True)
            )
            for rejected in list(self.session.execute(stmt).scalars()):
                self._mark_resolved(rejected, linked.entered_by)
                self._flush_event(rejected)
                resolved += 1

        if resolved:
            logger.info(
                "rejections_auto_resolved",
                extra={"resolved_count": resolved, "actor": actor},
            )
        return resolved

    def _mark_resolved(self, event: DispenseEvent, resolved_by: str) -> None:
        now = self.clock.now()
        event.rejection_resolved = True
        event.rejection_resolved_by = resolved_by
        event.rejection_resolved_at = now
        event.updated_at = now
        event.updated_by = resolved_by
        event.append_history(
            UpdatedDetails(changes=(FieldChange("rejection_resolved", "false", "true"),)),
            performed_by=resolved_by,
            performed_at=now,
        )

    # ------------------------------------------------------------------
    # Re-entry and edits
    # ------------------------------------------------------------------

    def reenter(
        self,
        dispense_event_id: Any,
        reentered_by: str,
        truck_no: str | None = None,
        liters: Any = None,
        dispense_date: date | None = None,
        notes: str | None = None,
    ) -> DispenseResult:
        """
        Re-enter a rejected event, optionally correcting its facts, then
        run the matcher again.
        """
        actor = _require_text(reentered_by, "reentered_by")
        event = self.get_event(dispense_event_id)
        validate_transition(event.id, event.status, DispenseStatus.PENDING)

        changes = self._apply_corrections(event, truck_no, liters, dispense_date, notes)

        now = self.clock.now()
        event.status = DispenseStatus.PENDING
        event.clear_posting()
        event.updated_at = now
        event.updated_by = actor
        event.append_history(
            ReEnteredDetails(
                previous_rejection_reason=event.rejection_reason,
                changes=changes,
            ),
            performed_by=actor,
            performed_at=now,
        )
        self._flush_event(event)

        with LogContext.bind(truck_no=event.truck_no, dispense_event_id=str(event.id), actor=actor):
            logger.info(
                "dispense_reentered",
                extra={"changed_fields": [c.field for c in changes]},
            )
            journey = self.auto_link(event, actor)

        if journey is None:
            return self._result(event, PENDING_MESSAGE)
        self._resolve_recent_rejections([event], actor)
        return self._result(
            event,
            linked_message(journey.going_do),
            linked_count=1,
            config_warning=self._config_warning(journey),
        )

    def update_pending(
        self,
        dispense_event_id: Any,
        updated_by: str,
        truck_no: str | None = None,
        liters: Any = None,
        dispense_date: date | None = None,
        notes: str | None = None,
    ) -> DispenseEventView:
        """Correct the recorded facts of a pending event."""
        actor = _require_text(updated_by, "updated_by")
        event = self.get_event(dispense_event_id)
        if event.status != DispenseStatus.PENDING:
            raise DispenseNotEditableError(str(event.id), event.status.value)

        changes = self._apply_corrections(event, truck_no, liters, dispense_date, notes)
        if changes:
            now = self.clock.now()
            event.updated_at = now
            event.updated_by = actor
            event.append_history(
                UpdatedDetails(changes=changes),
                performed_by=actor,
                performed_at=now,
            )
            self._flush_event(event)
        return DispenseEventView.from_model(event)

    def _apply_corrections(
        self,
        event: DispenseEvent,
        truck_no: str | None,
        liters: Any,
        dispense_date: date | None,
        notes: str | None,
    ) -> tuple[FieldChange, ...]:
        # Validate everything before touching the event
        new_truck = normalize_truck_number(truck_no) if truck_no is not None else None
        new_liters = require_positive_liters(liters) if liters is not None else None
        new_date = _require_date(dispense_date) if dispense_date is not None else None

        changes: list[FieldChange] = []
        if new_truck is not None and new_truck != event.truck_no:
            changes.append(FieldChange("truck_no", event.truck_no, new_truck))
            event.truck_no = new_truck
        if new_liters is not None and new_liters != event.liters:
            changes.append(FieldChange("liters", str(event.liters), str(new_liters)))
            event.liters = new_liters
        if new_date is not None and new_date != event.dispense_date:
            changes.append(
                FieldChange("dispense_date", event.dispense_date.isoformat(), new_date.isoformat())
            )
            event.dispense_date = new_date
        if notes is not None and notes != event.notes:
            changes.append(FieldChange("notes", event.notes, notes))
            event.notes = notes
        return tuple(changes)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get_event(self, dispense_event_id: Any) -> DispenseEvent:
        """
        Raises:
            DispenseEventNotFoundError: If no event has this id.
        """
        event_id = coerce_uuid(dispense_event_id)
        event = None
        if event_id is not None:
            stmt = (
                select(DispenseEvent)
                .where(DispenseEvent.id == event_id)
                .execution_options(populate_existing=True)
            )
            event = self.session.execute(stmt).scalar_one_or_none()
        if event is None:
            raise DispenseEventNotFoundError(str(dispense_event_id))
        return event

    def _flush_event(self, event: DispenseEvent) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("DispenseEvent", str(event.id)) from exc

    def _config_warning(self, journey: JourneyRecord | None) -> ConfigurationMissingWarning | None:
        if journey is None or not journey.is_locked:
            return None
        return ConfigurationMissingWarning(
            journey_id=journey.id,
            going_do=journey.going_do,
            truck_no=journey.truck_no,
            destination=journey.destination,
            reason=journey.pending_config_reason,
            truck_suffix=truck_suffix(journey.truck_no),
        )

    def _result(
        self,
        event: DispenseEvent,
        message: str,
        linked_count: int = 0,
        config_warning: ConfigurationMissingWarning | None = None,
    ) -> DispenseResult:
        return DispenseResult(
            event=DispenseEventView.from_model(event),
            status=DispenseStatus(event.status),
            message=message,
            linked_do_number=event.linked_do_number,
            linked_journey_id=event.journey_id,
            auto_linked=event.auto_linked,
            linked_count=linked_count,
            config_warning=config_warning,
        )
