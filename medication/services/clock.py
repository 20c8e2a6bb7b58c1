# medication/services/clock.py
"""
Civil-calendar arithmetic in the clinic's single fixed timezone.

Every date/time conversion in the engine goes through this module. The
offset is fixed (no daylight saving), so ``combine`` and
``extract_local_time`` are exact inverses for any ``HH:MM`` value.
"""
import re
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Iterator, Optional, Union

from django.conf import settings
from django.utils import timezone

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def clinic_timezone() -> dt_timezone:
    offset = getattr(settings, 'CLINIC_UTC_OFFSET_HOURS', 8)
    name = getattr(settings, 'CLINIC_TIME_ZONE_NAME', 'MYT')
    return dt_timezone(timedelta(hours=offset), name)


def now() -> datetime:
    return timezone.now()


def today(at: Optional[datetime] = None) -> date:
    """Current calendar date in the clinic timezone."""
    return local_date(at or now())


def local_date(instant: datetime) -> date:
    return timezone.localtime(instant, clinic_timezone()).date()


def parse_date(value: Union[str, date]) -> date:
    """Accept a date or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        raise ValueError(f"Expected a calendar date, got a timestamp: {value!r}")
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def parse_time(value: str) -> time:
    """Parse a 24-hour ``HH:MM`` clock time."""
    match = TIME_PATTERN.match(value or '')
    if not match:
        raise ValueError(f"Invalid clock time {value!r}; expected 24-hour HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def is_valid_time(value: str) -> bool:
    return isinstance(value, str) and bool(TIME_PATTERN.match(value))


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=clinic_timezone())


def end_of_day(day: date) -> datetime:
    """Last millisecond of the civil day (23:59:59.999 local)."""
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=clinic_timezone())


def combine(day: date, clock_time: str) -> datetime:
    """Absolute instant for a civil date and a local ``HH:MM`` time."""
    return datetime.combine(day, parse_time(clock_time), tzinfo=clinic_timezone())


def extract_local_time(instant: datetime) -> str:
    return timezone.localtime(instant, clinic_timezone()).strftime('%H:%M')


def inclusive_day_count(start: date, end: date) -> int:
    return (end - start).days + 1


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every civil date from ``start`` to ``end``, both ends included."""
    for offset in range(inclusive_day_count(start, end)):
        yield start + timedelta(days=offset)


def age(birth_date: date, on: Optional[date] = None) -> int:
    """Whole years elapsed; rounds down until this year's anniversary is reached."""
    on = on or today()
    years = on.year - birth_date.year
    if (on.month, on.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years
