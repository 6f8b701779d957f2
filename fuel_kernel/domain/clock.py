"""
Clock -- injectable source of "now".

Responsibility:
    Services stamp created_at / updated_at / performed_at and evaluate the
    rejection auto-resolve window through a Clock, never through
    ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain.  SystemClock is the only implementation that reads the
    wall clock.

Why tests care:
    Journey ranking falls back to created_at and rejections auto-resolve
    within seven days; both need time under test control.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# Monday morning at the yard; an arbitrary but fixed starting point.
DEFAULT_TEST_TIME = datetime(2025, 11, 3, 8, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Timezone-aware time source passed to every service constructor."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``tick()`` is the usual way to separate two writes in a test so that
    created_at ordering is unambiguous.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Move forward one second and return the new time."""
        self.advance(1)
        return self._current
