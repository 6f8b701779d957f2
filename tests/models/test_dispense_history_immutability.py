"""
Dispense history is append-only.

Entries are added by the lifecycle service; any UPDATE or DELETE of an
existing entry is blocked at flush time.
"""

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fuel_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fuel_kernel.domain.history import HistoryAction
from fuel_kernel.exceptions import ImmutabilityViolationError
from fuel_kernel.models.dispense import DispenseEvent, DispenseHistoryEntry
from tests.conftest import OFFICE_USER, YARD_USER


@pytest.fixture
def history_entry(fuel_engine, session):
    event = fuel_engine.submit_dispense_event(
        "T124 DNH", date(2025, 11, 3), 44, "DAR YARD", YARD_USER
    ).event
    return session.execute(
        select(DispenseHistoryEntry).where(DispenseHistoryEntry.dispense_event_id == event.id)
    ).scalar_one()


class TestHistoryImmutability:

    def test_update_blocked(self, session, history_entry, captured_logs):
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            with session.begin_nested():
                history_entry.performed_by = "someone.else"

        assert exc_info.value.entity_type == "DispenseHistoryEntry"
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "UPDATE"

    def test_delete_blocked(self, session, history_entry):
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                session.delete(history_entry)

    def test_details_cannot_be_rewritten(self, session, history_entry):
        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                history_entry.details = {"liters": "4.000"}

    def test_appending_is_allowed(self, fuel_engine, session, history_entry):
        fuel_engine.reject_dispense_event(history_entry.dispense_event_id, "wrong truck", OFFICE_USER)

        event = session.get(DispenseEvent, history_entry.dispense_event_id)
        assert [h.action for h in event.history] == [HistoryAction.CREATED, HistoryAction.REJECTED]
        assert [h.sequence for h in event.history] == [1, 2]

    def test_sequence_is_unique_per_event(self, session, history_entry, deterministic_clock):
        duplicate = DispenseHistoryEntry(
            dispense_event_id=history_entry.dispense_event_id,
            sequence=history_entry.sequence,
            action=HistoryAction.UPDATED,
            performed_by=OFFICE_USER,
            performed_at=deterministic_clock.now(),
            details={"changes": []},
        )
        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(duplicate)


class TestListenerRegistration:

    def test_registration_is_idempotent(self, session, history_entry):
        register_immutability_listeners()
        register_immutability_listeners()

        with pytest.raises(ImmutabilityViolationError):
            with session.begin_nested():
                history_entry.performed_by = "someone.else"

    def test_unregistered_listeners_allow_updates(self, session, history_entry):
        unregister_immutability_listeners()
        try:
            with session.begin_nested():
                history_entry.performed_by = "someone.else"
        finally:
            register_immutability_listeners()
        assert history_entry.performed_by == "someone.else"
