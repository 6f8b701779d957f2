"""
Manual linking of pending dispenses by office staff.

The office picks a journey for a pending entry, usually because the yard
typed the truck number wrong.  The target must exist and must not be
cancelled.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fuel_kernel.domain.dispense_state import DispenseStatus
from fuel_kernel.exceptions import (
    CancelledTargetError,
    DispenseEventNotFoundError,
    InvalidDispenseTransitionError,
    JourneyNotFoundError,
    ValidationError,
)
from fuel_kernel.selectors.dispense_selector import DispenseSelector
from tests.conftest import OFFICE_USER, YARD_USER

DISPENSE_DATE = date(2025, 11, 3)


@pytest.fixture
def typo_dispense(fuel_engine):
    """A dispense typed against a truck with no journey, so it stays pending."""
    result = fuel_engine.submit_dispense_event(
        "T124 DNH", DISPENSE_DATE, 44, "DAR YARD", YARD_USER
    )
    assert result.is_pending
    return result.event


class TestLinkPendingEvent:

    def test_links_as_manual(self, fuel_engine, open_journey, journey_record, typo_dispense):
        journey = open_journey("T123 DNH", "DO-1001").journey

        result = fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)

        assert result.status is DispenseStatus.MANUAL
        assert result.auto_linked is False
        assert result.linked_do_number == "DO-1001"
        assert result.linked_journey_id == journey.id
        assert result.linked_count == 1
        assert result.message == "Linked 1 pending fuel entry to DO DO-1001"
        assert result.event.posted_slot == "dar_yard"
        assert result.event.posted_quantity == Decimal("-44")
        assert journey_record(journey.id).dar_yard == Decimal("506")

    def test_other_pending_entries_of_the_truck_follow(
        self, fuel_engine, open_journey, session, typo_dispense
    ):
        sibling = fuel_engine.submit_dispense_event(
            "T124 DNH", DISPENSE_DATE, 30, "DAR YARD", YARD_USER
        ).event
        journey = open_journey("T123 DNH", "DO-1001").journey

        result = fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)

        assert result.linked_count == 2
        assert result.message == "Linked 2 pending fuel entries to DO DO-1001"
        selector = DispenseSelector(session)
        linked_sibling = selector.get(sibling.id)
        assert linked_sibling.status is DispenseStatus.LINKED
        assert linked_sibling.auto_linked is True
        assert linked_sibling.journey_id == journey.id
        assert selector.pending() == []

    def test_accepts_string_ids(self, fuel_engine, open_journey, typo_dispense):
        journey = open_journey().journey
        result = fuel_engine.link_pending_event(
            str(typo_dispense.id), str(journey.id), OFFICE_USER
        )
        assert result.status is DispenseStatus.MANUAL

    def test_config_warning_for_locked_target(self, fuel_engine, open_journey, typo_dispense):
        journey = open_journey("T777 ZZZ", "DO-LOCKED").journey

        result = fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)

        assert result.status is DispenseStatus.MANUAL
        assert result.config_warning is not None
        assert result.config_warning.going_do == "DO-LOCKED"

    def test_history_and_log(self, fuel_engine, open_journey, typo_dispense, captured_logs):
        journey = open_journey().journey

        result = fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)

        linked_entry = result.event.history[-1]
        assert linked_entry.performed_by == OFFICE_USER
        assert linked_entry.details.auto_linked is False
        records = [r for r in captured_logs() if r["message"] == "dispense_manually_linked"]
        assert len(records) == 1
        assert records[0]["journey_id"] == str(journey.id)
        assert records[0]["linked_count"] == 1


class TestLinkTargetChecks:

    def test_cancelled_target_refused(
        self, fuel_engine, open_journey, journey_record, typo_dispense, session
    ):
        journey = open_journey().journey
        fuel_engine.cancel_journey(journey.id, "duplicate DO", OFFICE_USER)

        with pytest.raises(CancelledTargetError) as exc_info:
            fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)

        assert "cancelled" in str(exc_info.value)
        assert exc_info.value.going_do == "DO-1001"
        assert journey_record(journey.id).dar_yard == Decimal("550")
        assert DispenseSelector(session).get(typo_dispense.id).status is DispenseStatus.PENDING

    def test_cancelled_refusal_is_logged(self, fuel_engine, open_journey, typo_dispense, captured_logs):
        journey = open_journey().journey
        fuel_engine.cancel_journey(journey.id, "duplicate DO", OFFICE_USER)

        with pytest.raises(CancelledTargetError):
            fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)

        messages = [r["message"] for r in captured_logs()]
        assert "link_to_cancelled_journey_refused" in messages

    def test_unknown_target(self, fuel_engine, typo_dispense):
        with pytest.raises(JourneyNotFoundError):
            fuel_engine.link_pending_event(typo_dispense.id, uuid4(), OFFICE_USER)

    def test_malformed_target_id(self, fuel_engine, typo_dispense):
        with pytest.raises(JourneyNotFoundError):
            fuel_engine.link_pending_event(typo_dispense.id, "not-a-uuid", OFFICE_USER)

    def test_soft_deleted_target(self, fuel_engine, open_journey, typo_dispense):
        journey = open_journey().journey
        fuel_engine.soft_delete_journey(journey.id, OFFICE_USER)

        with pytest.raises(JourneyNotFoundError):
            fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)


class TestLinkEventChecks:

    def test_already_linked_event(self, fuel_engine, open_journey):
        journey = open_journey().journey
        linked = fuel_engine.submit_dispense_event(
            "T123 DNH", DISPENSE_DATE, 44, "DAR YARD", YARD_USER
        )
        assert linked.status is DispenseStatus.LINKED

        with pytest.raises(InvalidDispenseTransitionError) as exc_info:
            fuel_engine.link_pending_event(linked.event.id, journey.id, OFFICE_USER)
        assert exc_info.value.from_status == "linked"
        assert exc_info.value.to_status == "manual"

    def test_rejected_event(self, fuel_engine, open_journey, typo_dispense):
        journey = open_journey().journey
        fuel_engine.reject_dispense_event(typo_dispense.id, "wrong truck", OFFICE_USER)

        with pytest.raises(InvalidDispenseTransitionError):
            fuel_engine.link_pending_event(typo_dispense.id, journey.id, OFFICE_USER)

    def test_unknown_event(self, fuel_engine, open_journey):
        journey = open_journey().journey
        with pytest.raises(DispenseEventNotFoundError):
            fuel_engine.link_pending_event(uuid4(), journey.id, OFFICE_USER)

    def test_actor_required(self, fuel_engine, open_journey, typo_dispense):
        journey = open_journey().journey
        with pytest.raises(ValidationError):
            fuel_engine.link_pending_event(typo_dispense.id, journey.id, "")
