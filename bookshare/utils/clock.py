"""
Injectable time source.

Services receive a clock instead of calling ``datetime.utcnow()`` so OTP
expiry and the sweeps can be tested against a controlled "now". All values
are naive UTC datetimes, matching what the models store.
"""
from datetime import datetime, timedelta, timezone


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2024, 1, 15, 12, 0, 0)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now
