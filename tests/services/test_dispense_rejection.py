"""
Rejecting yard dispenses and resolving rejections.

Rejecting a linked entry reverses exactly what it posted; a later linked
entry for the same truck and yard clears recent rejections.
"""

from datetime import date
from decimal import Decimal

import pytest

from fuel_kernel.domain.dispense_state import DispenseStatus
from fuel_kernel.domain.history import HistoryAction, RejectedDetails
from fuel_kernel.exceptions import InvalidDispenseTransitionError, ValidationError
from fuel_kernel.selectors.dispense_selector import DispenseSelector
from tests.conftest import OFFICE_USER, YARD_USER

DISPENSE_DATE = date(2025, 11, 3)
ONE_DAY = 24 * 60 * 60


@pytest.fixture
def linked_dispense(fuel_engine, open_journey):
    """A 44 L Dar yard dispense linked to a fresh Kolwezi journey."""
    journey = open_journey().journey
    result = fuel_engine.submit_dispense_event(
        "T123 DNH", DISPENSE_DATE, 44, "DAR YARD", YARD_USER
    )
    assert result.status is DispenseStatus.LINKED
    return journey, result.event


class TestRejectLinkedEvent:

    def test_reversal_restores_slot_and_balance(self, fuel_engine, journey_record, linked_dispense):
        journey, event = linked_dispense
        assert journey_record(journey.id).dar_yard == Decimal("506")

        result = fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)

        assert result.status is DispenseStatus.REJECTED
        assert result.message == "Fuel entry rejected: wrong truck"
        record = journey_record(journey.id)
        assert record.dar_yard == Decimal("550")
        assert record.balance == journey.balance == Decimal("-100")

    def test_link_fields_cleared(self, fuel_engine, linked_dispense):
        _, event = linked_dispense

        result = fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)

        rejected = result.event
        assert rejected.journey_id is None
        assert rejected.linked_do_number is None
        assert rejected.posted_slot is None
        assert rejected.posted_quantity is None
        assert rejected.rejection_reason == "wrong truck"
        assert rejected.rejected_by == OFFICE_USER
        assert rejected.rejection_resolved is False

    def test_history_records_reversal(self, fuel_engine, linked_dispense):
        journey, event = linked_dispense

        result = fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)

        entry = result.event.history[-1]
        assert entry.action is HistoryAction.REJECTED
        assert isinstance(entry.details, RejectedDetails)
        assert entry.details.prior_status == "linked"
        assert entry.details.journey_id == str(journey.id)
        assert entry.details.going_do == "DO-1001"
        assert entry.details.reversed_slot == "dar_yard"
        assert entry.details.reversed_quantity == Decimal("44")

    def test_manual_event_reversal(self, fuel_engine, open_journey, journey_record):
        pending = fuel_engine.submit_dispense_event(
            "T124 DNH", DISPENSE_DATE, 44, "DAR YARD", YARD_USER
        ).event
        journey = open_journey().journey
        fuel_engine.link_pending_event(pending.id, journey.id, OFFICE_USER)

        result = fuel_engine.reject_dispense_event(pending.id, "double entry", OFFICE_USER)

        assert result.event.history[-1].details.prior_status == "manual"
        assert journey_record(journey.id).dar_yard == Decimal("550")

    def test_reversal_lands_on_cancelled_journey(self, fuel_engine, journey_record, linked_dispense):
        journey, event = linked_dispense
        fuel_engine.cancel_journey(journey.id, "trip called off", OFFICE_USER)

        fuel_engine.reject_dispense_event(event.id, "trip called off", OFFICE_USER)

        record = journey_record(journey.id)
        assert record.is_cancelled
        assert record.dar_yard == Decimal("550")

    def test_rejection_logged(self, fuel_engine, linked_dispense, captured_logs):
        _, event = linked_dispense

        fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)

        records = [r for r in captured_logs() if r["message"] == "dispense_rejected"]
        assert len(records) == 1
        assert records[0]["prior_status"] == "linked"
        assert records[0]["reversed_slot"] == "dar_yard"
        assert records[0]["reversed_quantity"] == "44.000"
        assert records[0]["actor"] == OFFICE_USER


class TestRejectOtherStatuses:

    def test_pending_event_rejected_without_reversal(self, fuel_engine, open_journey, journey_record):
        pending = fuel_engine.submit_dispense_event(
            "T124 DNH", DISPENSE_DATE, 44, "DAR YARD", YARD_USER
        ).event
        journey = open_journey().journey

        result = fuel_engine.reject_dispense_event(pending.id, "no such truck", OFFICE_USER)

        assert result.status is DispenseStatus.REJECTED
        details = result.event.history[-1].details
        assert details.prior_status == "pending"
        assert details.reversed_slot is None
        assert journey_record(journey.id).dar_yard == Decimal("550")

    def test_cannot_reject_twice(self, fuel_engine, linked_dispense, journey_record):
        journey, event = linked_dispense
        fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)

        with pytest.raises(InvalidDispenseTransitionError):
            fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)
        assert journey_record(journey.id).dar_yard == Decimal("550")

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, fuel_engine, linked_dispense, reason):
        _, event = linked_dispense
        with pytest.raises(ValidationError):
            fuel_engine.reject_dispense_event(event.id, reason, OFFICE_USER)


class TestResolveRejection:

    def test_resolve_by_hand(self, fuel_engine, linked_dispense, deterministic_clock):
        _, event = linked_dispense
        fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)

        view = fuel_engine.resolve_rejection(event.id, "supervisor.neema")

        assert view.status is DispenseStatus.REJECTED
        assert view.rejection_resolved is True
        assert view.rejection_resolved_by == "supervisor.neema"
        assert view.history[-1].action is HistoryAction.UPDATED

    def test_resolve_twice_adds_no_history(self, fuel_engine, linked_dispense):
        _, event = linked_dispense
        fuel_engine.reject_dispense_event(event.id, "wrong truck", OFFICE_USER)
        first = fuel_engine.resolve_rejection(event.id, "supervisor.neema")

        second = fuel_engine.resolve_rejection(event.id, "supervisor.neema")

        assert len(second.history) == len(first.history)

    def test_never_rejected_event_refused(self, fuel_engine, linked_dispense):
        _, event = linked_dispense
        with pytest.raises(InvalidDispenseTransitionError):
            fuel_engine.resolve_rejection(event.id, "supervisor.neema")


class TestAutoResolveRecentRejections:

    @pytest.fixture
    def rejected_event(self, fuel_engine, linked_dispense):
        _, event = linked_dispense
        fuel_engine.reject_dispense_event(event.id, "meter misread", OFFICE_USER)
        return event

    def test_next_linked_entry_resolves(
        self, fuel_engine, session, deterministic_clock, rejected_event, captured_logs
    ):
        deterministic_clock.advance(ONE_DAY)

        fuel_engine.submit_dispense_event("T123 DNH", DISPENSE_DATE, 40, "DAR YARD", "yard.rehema")

        view = DispenseSelector(session).get(rejected_event.id)
        assert view.rejection_resolved is True
        assert view.rejection_resolved_by == "yard.rehema"
        assert view.status is DispenseStatus.REJECTED
        assert [h.action for h in view.history] == [
            HistoryAction.CREATED,
            HistoryAction.LINKED,
            HistoryAction.REJECTED,
            HistoryAction.UPDATED,
        ]
        records = [r for r in captured_logs() if r["message"] == "rejections_auto_resolved"]
        assert records[0]["resolved_count"] == 1

    def test_rejection_older_than_a_week_stays_open(
        self, fuel_engine, session, deterministic_clock, rejected_event
    ):
        deterministic_clock.advance(8 * ONE_DAY)

        fuel_engine.submit_dispense_event("T123 DNH", DISPENSE_DATE, 40, "DAR YARD", YARD_USER)

        assert DispenseSelector(session).get(rejected_event.id).rejection_resolved is False

    def test_other_yard_does_not_resolve(self, fuel_engine, session, deterministic_clock, rejected_event):
        deterministic_clock.advance(ONE_DAY)

        fuel_engine.submit_dispense_event("T123 DNH", DISPENSE_DATE, 40, "TANGA YARD", YARD_USER)

        assert DispenseSelector(session).get(rejected_event.id).rejection_resolved is False

    def test_pending_entry_does_not_resolve(
        self, fuel_engine, open_journey, session, deterministic_clock, rejected_event
    ):
        deterministic_clock.advance(ONE_DAY)

        result = fuel_engine.submit_dispense_event("T555 DNH", DISPENSE_DATE, 40, "DAR YARD", YARD_USER)

        assert result.is_pending
        assert DispenseSelector(session).get(rejected_event.id).rejection_resolved is False

    def test_open_rejections_listed_until_resolved(
        self, fuel_engine, session, deterministic_clock, rejected_event
    ):
        selector = DispenseSelector(session)
        assert [e.id for e in selector.rejection_history(include_resolved=False)] == [
            rejected_event.id
        ]

        deterministic_clock.advance(ONE_DAY)
        fuel_engine.submit_dispense_event("T123 DNH", DISPENSE_DATE, 40, "DAR YARD", YARD_USER)

        assert selector.rejection_history(include_resolved=False) == []
        assert [e.id for e in selector.rejection_history()] == [rejected_event.id]
