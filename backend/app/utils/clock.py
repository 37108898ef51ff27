"""UTC calendar helpers.

All reward day boundaries (daily claims, caps, streaks) are UTC days.
"""

from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_day(value: datetime) -> date:
    return as_utc(value).date()


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def utc_day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return [start, end) of the UTC day containing ``now``."""
    start = day_start(utc_day(now))
    return start, start + timedelta(days=1)


def next_utc_midnight(now: datetime) -> datetime:
    return utc_day_bounds(now)[1]
