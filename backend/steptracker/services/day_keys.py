"""Calendar-day keys for step buckets.

A day key is the ISO date (``YYYY-MM-DD``) of an instant in the user's local
timezone, so lexicographic order of keys equals chronological order.
"""

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

DAY_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    """Default clock: current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def is_day_key(value: object) -> bool:
    """Check that a value has the shape of a day key and names a real date."""
    if not isinstance(value, str) or not DAY_KEY_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


class DayKeyResolver:
    """Maps instants to local calendar days.

    With ``tz=None`` the host's local timezone is used, looked up at call time
    so a change of the device's offset is picked up immediately.
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def _localize(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            # Naive instants are already local wall-clock time
            if self.tz is None:
                return instant.astimezone()
            return instant.replace(tzinfo=self.tz)
        if self.tz is None:
            return instant.astimezone()
        return instant.astimezone(self.tz)

    def _midnight(self, day: date) -> datetime:
        if self.tz is None:
            return datetime.combine(day, time()).astimezone()
        return datetime.combine(day, time(), tzinfo=self.tz)

    def local_date(self, instant: datetime) -> date:
        return self._localize(instant).date()

    def resolve(self, instant: datetime) -> str:
        """Day key of the local calendar day containing ``instant``."""
        return self.local_date(instant).isoformat()

    def start_of_day(self, instant: datetime) -> datetime:
        """Local midnight that opens the day containing ``instant``."""
        return self._midnight(self.local_date(instant))

    def next_midnight(self, instant: datetime) -> datetime:
        """Local midnight that closes the day containing ``instant``."""
        return self._midnight(self.local_date(instant) + timedelta(days=1))
