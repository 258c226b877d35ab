"""Duration, clock, day and date parsing for scheduled recording."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

_DURATION_RE = re.compile(
    r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$", re.IGNORECASE
)

_CLOCK_12_RE = re.compile(
    r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$", re.IGNORECASE
)

_CLOCK_24_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

_BARE_MINUTES_RE = re.compile(r"^\d+$")

# Sunday=0 ... Saturday=6
_DAY_NAMES = {
    "sun": 0, "sunday": 0,
    "mon": 1, "monday": 1,
    "tue": 2, "tues": 2, "tuesday": 2,
    "wed": 3, "wednesday": 3,
    "thu": 4, "thur": 4, "thurs": 4, "thursday": 4,
    "fri": 5, "friday": 5,
    "sat": 6, "saturday": 6,
}

_DAY_GROUPS = {
    "daily": frozenset(range(7)),
    "all": frozenset(range(7)),
    "weekdays": frozenset({1, 2, 3, 4, 5}),
    "weekends": frozenset({0, 6}),
}

DAY_ABBREVIATIONS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def parse_duration(s: str) -> int:
    """Parse a duration string like '5m', '1h30m', '2h30m30s' into seconds.

    A bare number is taken as minutes ('30' == '30m').
    Raises ValueError on invalid input.
    """
    s = s.strip()
    if not s:
        raise ValueError("Empty duration string")

    if _BARE_MINUTES_RE.match(s):
        total = int(s) * 60
    else:
        m = _DURATION_RE.match(s)
        if not m or not any(m.groups()):
            raise ValueError(f"Invalid duration: {s!r}")

        hours = int(m.group(1) or 0)
        minutes = int(m.group(2) or 0)
        seconds = int(m.group(3) or 0)
        total = hours * 3600 + minutes * 60 + seconds
    if total <= 0:
        raise ValueError(f"Duration must be positive: {s!r}")
    return total


def parse_clock(s: str) -> time:
    """Parse a clock time string ('14:30', '9am', '2:30pm') into a time."""
    s = s.strip()
    if not s:
        raise ValueError("Empty time string")

    m = _CLOCK_12_RE.match(s)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2) or 0)
        ampm = m.group(3).lower()
        if hour < 1 or hour > 12 or minute > 59:
            raise ValueError(f"Invalid time: {s!r}")
        if ampm == "am" and hour == 12:
            hour = 0
        elif ampm == "pm" and hour != 12:
            hour += 12
        return time(hour, minute)

    m = _CLOCK_24_RE.match(s)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2))
        if hour > 23 or minute > 59:
            raise ValueError(f"Invalid time: {s!r}")
        return time(hour, minute)

    raise ValueError(f"Invalid time format: {s!r}")


def parse_days(s: str) -> frozenset[int]:
    """Parse a day list like 'mon,wed,fri', 'weekdays' or 'daily'.

    Returns day numbers with Sunday=0 ... Saturday=6.
    """
    s = s.strip().lower()
    if not s:
        raise ValueError("Empty day list")

    days: set[int] = set()
    for part in s.split(","):
        part = part.strip()
        if part in _DAY_GROUPS:
            days |= _DAY_GROUPS[part]
        elif part in _DAY_NAMES:
            days.add(_DAY_NAMES[part])
        elif part.isdigit() and 0 <= int(part) <= 6:
            days.add(int(part))
        else:
            raise ValueError(f"Invalid day: {part!r}")
    return frozenset(days)


def parse_date(s: str) -> date:
    """Parse 'today', 'tomorrow' or an ISO date ('2026-02-15')."""
    s = s.strip().lower()
    if not s:
        raise ValueError("Empty date string")

    if s == "today":
        return datetime.now().date()
    if s == "tomorrow":
        return datetime.now().date() + timedelta(days=1)
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date: {s!r}") from None


def format_days(days: frozenset[int]) -> str:
    """Render a day set back into a short human string."""
    if days == _DAY_GROUPS["daily"]:
        return "daily"
    if days == _DAY_GROUPS["weekdays"]:
        return "weekdays"
    if days == _DAY_GROUPS["weekends"]:
        return "weekends"
    return ",".join(DAY_ABBREVIATIONS[d] for d in sorted(days))


def format_duration(seconds: int) -> str:
    """Render seconds compactly, the inverse of ``parse_duration`` ('1h30m', '45s')."""
    hours, rem = divmod(int(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)
