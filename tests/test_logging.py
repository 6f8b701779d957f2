"""Tests for the structured logging system (fuel_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from fuel_kernel.domain.dispense_state import DispenseStatus
from fuel_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    """Parse all JSON log lines from a stream."""
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "fuel_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("slot_posted", extra={"slot": "dar_yard", "version": 3})

        record = _parse_log(stream)
        assert record["slot"] == "dar_yard"
        assert record["version"] == 3

    def test_decimal_and_enum_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info(
            "dispense_rejected",
            extra={"quantity": Decimal("-44.000"), "prior_status": DispenseStatus.LINKED},
        )

        record = _parse_log(stream)
        assert record["quantity"] == "-44.000"
        assert record["prior_status"] == "linked"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", truck_no="T123 DNH")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["truck_no"] == "T123 DNH"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Fuel kernel exceptions carry a .code attribute."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from fuel_kernel.exceptions import CancelledTargetError

        try:
            raise CancelledTargetError("j-1", "DO-1001")
        except CancelledTargetError:
            logger.error("link_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "CANCELLED_TARGET"
        assert record["exc_type"] == "CancelledTargetError"
        assert record["exc_journey_id"] == "j-1"
        assert record["exc_going_do"] == "DO-1001"
        assert "cancelled" in record["exc_message"]

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "truck_no" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info("with_uuid", extra={"journey_ref": uid})

        record = _parse_log(stream)
        assert record["journey_ref"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor="yard.juma")
        ctx = LogContext.get_all()
        assert ctx == {"correlation_id": "x", "actor": "yard.juma"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(truck_no="T123 DNH")
        with LogContext.bind(truck_no="T456 DVK"):
            assert LogContext.get_all()["truck_no"] == "T456 DVK"
        assert LogContext.get_all()["truck_no"] == "T123 DNH"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "journey_id" not in LogContext.get_all()
        with LogContext.bind(journey_id="temp"):
            assert LogContext.get_all()["journey_id"] == "temp"
        assert "journey_id" not in LogContext.get_all()

    def test_bind_skips_none_values(self):
        with LogContext.bind(truck_no="T123 DNH", journey_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"truck_no": "T123 DNH"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor="a",
            truck_no="t",
            dispense_event_id="d",
            journey_id="j",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["dispense_event_id"] == "d"
        assert ctx["journey_id"] == "j"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("fuel_kernel")
        assert len(root.handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("services.dispense_lifecycle")
        assert logger.name == "fuel_kernel.services.dispense_lifecycle"

    def test_logger_hierarchy(self):
        """Child loggers inherit the fuel_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("deep.nested.module")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "fuel_kernel.deep.nested.module"


# ---------------------------------------------------------------------------
# Context carried through engine operations
# ---------------------------------------------------------------------------


class TestEngineLogContext:
    """Fields bound by the dispense lifecycle reach every line it emits."""

    def test_submission_lines_carry_dispense_context(self, fuel_engine, open_journey, captured_logs):
        journey = open_journey("T123 DNH").journey

        event = fuel_engine.submit_dispense_event(
            "t123-dnh", date(2025, 11, 3), 44, "DAR YARD", "yard.juma"
        ).event

        records = {r["message"]: r for r in captured_logs()}
        for message in ("dispense_recorded", "slot_posted", "dispense_auto_linked"):
            record = records[message]
            assert record["dispense_event_id"] == str(event.id)
            assert record["truck_no"] == "T123 DNH"
            assert record["actor"] == "yard.juma"
        assert records["slot_posted"]["journey_id"] == str(journey.id)
        assert records["slot_posted"]["quantity"] == "-44.000"

    def test_open_journey_lines_carry_actor_only(self, open_journey, captured_logs):
        open_journey("T123 DNH", created_by="office.amina")

        opened = [r for r in captured_logs() if r["message"] == "journey_opened"]
        assert opened[0]["actor"] == "office.amina"
        assert "dispense_event_id" not in opened[0]

    def test_manual_link_binds_target_journey(self, fuel_engine, open_journey, captured_logs):
        pending = fuel_engine.submit_dispense_event(
            "T124 DNH", date(2025, 11, 3), 44, "DAR YARD", "yard.juma"
        ).event
        journey = open_journey("T123 DNH").journey

        fuel_engine.link_pending_event(pending.id, journey.id, "office.amina")

        (linked,) = [r for r in captured_logs() if r["message"] == "dispense_manually_linked"]
        assert linked["journey_id"] == str(journey.id)
        assert linked["dispense_event_id"] == str(pending.id)
        assert linked["actor"] == "office.amina"

    def test_context_released_after_operation(self, fuel_engine, open_journey):
        open_journey("T123 DNH")
        with LogContext.bind(correlation_id="req-42"):
            fuel_engine.submit_dispense_event("T123 DNH", date(2025, 11, 3), 44, "DAR YARD", "yard.juma")
            assert LogContext.get_all() == {"correlation_id": "req-42"}
        assert LogContext.get_all() == {}

    def test_correlation_id_reaches_ledger_lines(self, fuel_engine, open_journey, captured_logs):
        open_journey("T123 DNH")
        with LogContext.bind(correlation_id="req-42"):
            fuel_engine.submit_dispense_event("T123 DNH", date(2025, 11, 3), 44, "DAR YARD", "yard.juma")

        posted = [r for r in captured_logs() if r["message"] == "slot_posted"]
        assert posted and all(r["correlation_id"] == "req-42" for r in posted)
