# referral_hub/utils/datetime_utils.py
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

# Mongo hands back naive datetimes (tz_aware=False), so everything the service
# stores and compares is naive UTC.
Clock = Callable[[], datetime]


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def days_from(now: datetime, days: int) -> datetime:
    return now + timedelta(days=int(days))


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)
