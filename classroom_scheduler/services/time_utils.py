import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from classroom_scheduler.core.config import settings
from classroom_scheduler.core.errors import InvalidTimeFormat

# Fixed offset, never looked up in a tz database (host timezone must not leak in)
REFERENCE_OFFSET = timedelta(minutes=settings.REFERENCE_UTC_OFFSET_MINUTES)
REFERENCE_TZ = timezone(REFERENCE_OFFSET)

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?\s*([AaPp][Mm])?$")

TimeLike = Union[str, time]


def to_minutes(value: TimeLike) -> int:
    """
    Converts a wall-clock time to minutes since midnight.
    Accepts 'HH:MM', 'HH:MM:SS' (seconds ignored), 'h:MM AM/PM' and datetime.time.
    Raises InvalidTimeFormat for anything else.
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute

    if not isinstance(value, str):
        raise InvalidTimeFormat(value)

    match = _TIME_RE.match(value.strip())
    if not match:
        raise InvalidTimeFormat(value)

    hours, minutes, seconds, period = match.groups()
    hours, minutes = int(hours), int(minutes)

    if minutes > 59 or (seconds is not None and int(seconds) > 59):
        raise InvalidTimeFormat(value)

    if period:
        # 12h clock: 12 AM is midnight, 12 PM is noon
        if not 1 <= hours <= 12:
            raise InvalidTimeFormat(value)
        hours = hours % 12
        if period.upper() == "PM":
            hours += 12
    elif hours > 23:
        raise InvalidTimeFormat(value)

    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    minutes = minutes % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: TimeLike) -> str:
    """'9:05:00' -> '09:05'"""
    return format_hhmm(to_minutes(value))


def format_12h(value: TimeLike) -> str:
    """Display helper: '13:05' -> '1:05 PM'."""
    minutes = to_minutes(value)
    hour, minute = divmod(minutes, 60)
    period = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minute:02d} {period}"


def reference_now(utc_now: Optional[datetime] = None) -> datetime:
    """
    Current instant in the reference timezone.
    `utc_now` defaults to the machine clock; a naive value is taken as UTC.
    """
    if utc_now is None:
        utc_now = datetime.now(timezone.utc)
    elif utc_now.tzinfo is None:
        utc_now = utc_now.replace(tzinfo=timezone.utc)
    return utc_now.astimezone(REFERENCE_TZ)


def to_reference(moment: datetime) -> datetime:
    """
    Aware datetimes are converted to the reference timezone.
    Naive datetimes are already reference wall-clock time and get the tzinfo attached.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=REFERENCE_TZ)
    return moment.astimezone(REFERENCE_TZ)


def reference_today(utc_now: Optional[datetime] = None) -> date:
    return reference_now(utc_now).date()


def reference_tomorrow(utc_now: Optional[datetime] = None) -> date:
    return reference_today(utc_now) + timedelta(days=1)


def minutes_of_day(moment: datetime) -> int:
    """Wall-clock minutes of a reference-time moment, seconds ignored."""
    moment = to_reference(moment)
    return moment.hour * 60 + moment.minute


def minutes_until(target: TimeLike, now: datetime) -> int:
    """Minutes from `now` until the next occurrence of `target`, wrapping past midnight."""
    diff = to_minutes(target) - minutes_of_day(now)
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def format_duration(minutes: int) -> str:
    hours, rest = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {rest}m"
    return f"{rest}m"
