"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that services recording human
    decisions (confirmations, disputes, sign-offs) never call
    ``datetime.now()`` directly.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Audit relevance:
    Every acknowledgement timestamp is traceable to an injected Clock
    instance, so recorded decisions can be replayed in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services that need current time receive a Clock instance via
        constructor injection.  Engine code never reads time at all.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    """Production clock that returns actual system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
