"""
Clock -- injectable time source for resource timestamps.

``ResourceStore`` stamps ``created_at``, ``updated_at``, sub-resource
``created_at`` and history ``occurred_at`` from the clock it was built
with.  Nothing else in the kernel reads wall-clock time, so replaying a
scenario against a ``DeterministicClock`` gives identical timestamps and
therefore identical history hashes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_EPOCH = datetime(2025, 11, 1, 9, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Time source.  ``now()`` returns an aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at ``start`` until moved.

    With ``step`` set, every ``now()`` call returns the current instant and
    then moves forward by ``step``, so consecutive operations get distinct,
    ordered timestamps without the test advancing time by hand.
    """

    def __init__(self, start: datetime | None = None, *, step: timedelta | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")
        self._current = (start or DEFAULT_EPOCH).astimezone(timezone.utc)
        self._step = step

    def now(self) -> datetime:
        current = self._current
        if self._step is not None:
            self._current += self._step
        return current

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new instant."""
        self._current += timedelta(seconds=seconds)
        return self._current

    def set_time(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("set_time needs a timezone-aware datetime")
        self._current = moment.astimezone(timezone.utc)
