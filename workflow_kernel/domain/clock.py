"""
Clock -- Injectable time source.

Responsibility:
    Services and coordinators never call ``datetime.now()`` directly.
    Process timestamps, activation times (and therefore task due dates and
    the FIFO order of the inbox) all come from the Clock handed to them.

Architecture position:
    Kernel > Domain -- zero I/O except SystemClock, the one sanctioned
    boundary to wall-clock time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance()``,
    ``tick()`` or ``set_time()`` is called, so two writes in one test get
    identical timestamps unless the test separates them on purpose.
    """

    def __init__(self, start: datetime | None = None):
        start = start or DEFAULT_TEST_EPOCH
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware time")
        self._current = moment

    def advance(self, seconds: float = 1, *, hours: float = 0) -> datetime:
        """Move forward and return the new time."""
        self._current += timedelta(seconds=seconds, hours=hours)
        return self._current

    def tick(self) -> datetime:
        return self.advance(1)
