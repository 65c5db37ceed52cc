"""
Clock -- injectable time source.

Responsibility:
    Every service that needs "now" (cashback expiry, order timestamps,
    audit columns) receives a Clock through its constructor.  Nothing in
    the kernel calls ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain -- pure core.  SystemClock is the single I/O boundary
    for time.

Audit relevance:
    Expiry is a function of the injected clock, so expiry runs and spend
    filters are reproducible in tests with a DeterministicClock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Contract:
        ``now()`` returns the same instant on repeated calls until
        ``advance()`` or ``set_time()`` moves it.
    """

    DEFAULT_START = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = _as_utc(start or self.DEFAULT_START)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = _as_utc(moment)

    def advance(self, **delta: float) -> datetime:
        """Move the clock forward, e.g. ``advance(days=31)``.  Returns the new time."""
        step = timedelta(**delta)
        if step < timedelta(0):
            raise ValueError("DeterministicClock cannot move backwards")
        self._current = self._current + step
        return self._current


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
