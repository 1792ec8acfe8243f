"""Local wall-clock day arithmetic for Focus Dial.

All timestamps are epoch milliseconds. Day boundaries are local midnight;
day numbers come from the calendar, not from dividing milliseconds, so they
stay correct across DST changes.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR

_DAY_KEY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def to_local(ms: int | float) -> datetime:
    """Convert epoch milliseconds to a naive local datetime."""
    return datetime.fromtimestamp(ms / 1000)


def to_ms(dt: datetime) -> int:
    """Convert a datetime (naive = local) to epoch milliseconds."""
    return int(round(dt.timestamp() * 1000))


def _as_date(value: int | float | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return to_local(value).date()


def _midnight(d: date) -> int:
    return to_ms(datetime(d.year, d.month, d.day))


def start_of_day(value: int | float | date) -> int:
    """Local midnight at or before the given instant."""
    return _midnight(_as_date(value))


def add_days(value: int | float | date, days: int) -> int:
    """Local midnight `days` calendar days after the day containing value."""
    return _midnight(_as_date(value) + timedelta(days=days))


def day_bounds(value: int | float | date) -> tuple[int, int]:
    """Get start of day to start of next calendar day.

    Returns:
        Tuple of (start, end) epoch ms (start inclusive, end exclusive).
    """
    return start_of_day(value), add_days(value, 1)


def day_key(value: int | float | date) -> str:
    """Format the local calendar day as YYYY-MM-DD."""
    return _as_date(value).strftime("%Y-%m-%d")


def parse_day_key(key: object) -> date | None:
    """Parse a YYYY-MM-DD key, returning None for anything malformed."""
    if not isinstance(key, str):
        return None
    match = _DAY_KEY_RE.match(key.strip())
    if not match:
        return None
    try:
        return date(int(match[1]), int(match[2]), int(match[3]))
    except ValueError:
        return None


def day_start_for_key(key: str) -> int | None:
    d = parse_day_key(key)
    return None if d is None else _midnight(d)


def day_number(value: int | float | date) -> int:
    """Days since the proleptic Gregorian epoch for the local day."""
    return _as_date(value).toordinal()


def days_between(a: int | float | date, b: int | float | date) -> int:
    return day_number(b) - day_number(a)


def start_of_week(value: int | float | date) -> int:
    """Local midnight of the Monday starting the week that contains value."""
    d = _as_date(value)
    return _midnight(d - timedelta(days=d.weekday()))


def iso_week(value: int | float | date) -> tuple[int, int]:
    """ISO (year, week) for the local day."""
    iso = _as_date(value).isocalendar()
    return iso[0], iso[1]


def month_key(value: int | float | date) -> str:
    return _as_date(value).strftime("%Y-%m")


def format_hm(minutes: float) -> str:
    """Format minutes as 'Xh Ym', flooring both parts."""
    total = max(0.0, minutes)
    hours = int(total // 60)
    mins = int((total - hours * 60) + 1e-6)
    return f"{hours}h {mins}m"


def format_hms(ms: int | float) -> str:
    """Format milliseconds as HH:MM:SS."""
    s = max(0, int(ms // 1000))
    return f"{s // 3600:02d}:{(s % 3600) // 60:02d}:{s % 60:02d}"


def format_clock(ms: int | float, *, seconds: bool = False) -> str:
    """Local wall-clock time as HH:MM (or HH:MM:SS)."""
    return to_local(ms).strftime("%H:%M:%S" if seconds else "%H:%M")


def format_duration(ms: int) -> str:
    """Format milliseconds as 'Xh Ym', 'Ym', or '<1m'.

    Args:
        ms: Duration in milliseconds.

    Returns:
        Formatted duration string.
    """
    if ms < 60_000:  # Less than 1 minute
        return "<1m" if ms > 0 else "0m"
    total_minutes = ms // 60_000
    hours = total_minutes // 60
    minutes = total_minutes % 60
    if hours > 0:
        return f"{hours}h {minutes:2d}m"
    return f"{minutes}m"


def parse_clock(text: str, day_start: int) -> int:
    """Parse HH:MM (or HH:MM:SS) into an instant on the given day.

    Raises:
        ValueError: If the text is not a valid wall-clock time.
    """
    parsed = None
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            parsed = datetime.strptime(text.strip(), fmt)
            break
        except ValueError:
            continue
    if parsed is None:
        raise ValueError(f"Invalid time: {text!r}. Use HH:MM.")
    day = to_local(day_start)
    return to_ms(day.replace(hour=parsed.hour, minute=parsed.minute, second=parsed.second))
