"""Injectable time sources for template resolution and run identity."""

from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Clock frozen at a single instant.

    Useful for deterministic runs and tests. `advance()` moves the
    instant forward by a number of milliseconds.
    """

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, ms: int) -> None:
        self._instant = self._instant + timedelta(milliseconds=ms)


def now_fields(clock) -> dict:
    """Build the `now.*` template fields from a clock reading."""
    instant = clock.now().astimezone(timezone.utc)
    millis = int(instant.timestamp() * 1000)
    return {
        "iso": instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z",
        "date": instant.strftime("%Y-%m-%d"),
        "timestamp": millis,
        "unix": millis // 1000,
    }
