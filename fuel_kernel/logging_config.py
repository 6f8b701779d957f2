"""
Structured JSON logging for the fuel kernel.

Every kernel module logs through ``get_logger(<module>)`` with a short
snake_case event name as the message and the facts in ``extra``:

    logger.info("slot_posted", extra={"slot": "dar_yard", "quantity": q})

Request-scoped fields (who is acting, which truck, which dispense or
journey) live in LogContext and are stamped onto every line emitted while
they are bound.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("fuel_log_context", default=_EMPTY)


class LogContext:
    """
    Per-thread / per-task log fields.

    Only the names in FIELDS are accepted; unknown names are ignored so a
    caller can pass a wider dict through ``bind(**values)``.
    """

    FIELDS = (
        "correlation_id",
        "actor",
        "truck_no",
        "dispense_event_id",
        "journey_id",
    )

    @classmethod
    def _merged(cls, values: Mapping[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        for name, value in values.items():
            if name in cls.FIELDS and value is not None:
                current[name] = str(value)
        return MappingProxyType(current)

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor: str | None = None,
        truck_no: str | None = None,
        dispense_event_id: str | None = None,
        journey_id: str | None = None,
    ) -> None:
        """Set fields for the rest of the current context; None leaves a field as is."""
        _context.set(
            cls._merged(
                {
                    "correlation_id": correlation_id,
                    "actor": actor,
                    "truck_no": truck_no,
                    "dispense_event_id": dispense_event_id,
                    "journey_id": journey_id,
                }
            )
        )

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **values: Any) -> Iterator[type["LogContext"]]:
        """Bind fields for the duration of a ``with`` block, then restore the previous set."""
        token = _context.set(cls._merged(values))
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


class _PayloadEncoder(json.JSONEncoder):
    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Key order: ts, level, logger, message, then bound LogContext fields,
    then ``extra`` keys.  An ``extra`` key never overwrites a context field.
    Exceptions add exc_type / exc_message / traceback, plus exc_code and one
    ``exc_<attr>`` entry per public attribute of a FuelKernelError.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_PayloadEncoder, default=str)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for attr, value in vars(exc).items():
            if not attr.startswith("_") and attr not in ("args", "code"):
                fields[f"exc_{attr}"] = value
        return fields


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_ROOT = "fuel_kernel"
_setup_lock = threading.Lock()
_is_configured = False


def get_logger(name: str) -> logging.Logger:
    """Child of the ``fuel_kernel`` logger, e.g. ``get_logger("services.ledger")``."""
    return logging.getLogger(f"{_ROOT}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``fuel_kernel`` logger.

    Only the first call has an effect; later calls return immediately so
    that init_engine_from_url() can call this unconditionally.
    """
    global _is_configured
    with _setup_lock:
        if _is_configured:
            return
        _is_configured = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(_ROOT)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers and allow configure_logging() to run again (tests)."""
    global _is_configured
    with _setup_lock:
        _is_configured = False
        root = logging.getLogger(_ROOT)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
