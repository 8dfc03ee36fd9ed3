"""
Clock abstraction for every time-dependent decision in the core.

Services never read system time directly. Production wiring uses
SystemClock; APP_MODE=TEST wiring uses OffsetClock, whose hour offset can
be moved by the test-tool routes so quota resets, cooldowns and expiry can
be replayed deterministically. The offset lives in process memory only and
is back to zero after a restart.
"""

from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    tz: ZoneInfo

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time, always timezone-aware (UTC)."""

    def __init__(self, tz: ZoneInfo | None = None):
        self.tz = tz or ZoneInfo("UTC")

    def now(self) -> datetime:
        return datetime.now(UTC)


class OffsetClock:
    """
    Wall-clock time shifted by a mutable hour offset.

    Args:
        tz: Zone used for calendar-day computations
        base: Source of unshifted time (defaults to the system clock)
    """

    def __init__(self, tz: ZoneInfo | None = None, base: Callable[[], datetime] | None = None):
        self.tz = tz or ZoneInfo("UTC")
        self._base = base or (lambda: datetime.now(UTC))
        self._hour_offset = 0

    def now(self) -> datetime:
        return self._base() + timedelta(hours=self._hour_offset)

    def advance_day(self, days: int = 1) -> None:
        self._hour_offset += days * 24

    def advance_hours(self, hours: int = 1) -> None:
        self._hour_offset += hours

    def reset(self) -> None:
        self._hour_offset = 0

    def get_offset(self) -> float:
        """Current offset in days."""
        return self._hour_offset / 24


def local_date(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar date of an instant in the given zone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz).date()


def today(clock: Clock) -> date:
    return local_date(clock.now(), clock.tz)


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """[00:00:00, 23:59:59.999999] of a local calendar day, as UTC instants."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time.max, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def ensure_aware(moment: datetime | None) -> datetime | None:
    """Treat naive datetimes coming back from storage as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment
