"""
Clock -- injectable time source and the fixed reporting timezone.

Responsibility:
    Services, engines and the auth gate never call ``datetime.now()``
    directly; they receive a Clock.  All date bucketing and human-readable
    formatting happen in ``REPORTING_TZ`` so monthly groupings do not move
    with the viewer's locale.

Failure modes:
    None.  ``DeterministicClock`` is for tests and the CLI's replay mode.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# UTC+7 (WIB).  Configurable through kas_config, this is the default.
REPORTING_UTC_OFFSET_HOURS = 7
REPORTING_TZ = timezone(timedelta(hours=REPORTING_UTC_OFFSET_HOURS), name="UTC+07:00")


def reporting_tz(offset_hours: int = REPORTING_UTC_OFFSET_HOURS) -> timezone:
    """Fixed-offset reporting timezone for the given UTC offset."""
    if offset_hours == REPORTING_UTC_OFFSET_HOURS:
        return REPORTING_TZ
    return timezone(timedelta(hours=offset_hours))


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; leave aware ones alone."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock returning the actual system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value on repeated calls until ``advance()``
    or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = ensure_aware(
            fixed_time or datetime(2024, 7, 15, 3, 0, 0, tzinfo=timezone.utc)
        )
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = ensure_aware(time)
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
