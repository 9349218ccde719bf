"""Wall-clock helpers for slot arithmetic.

Times are local "HH:MM" strings and dates are :class:`datetime.date`
objects. Nothing here handles day rollover; callers keep arithmetic within a
single day.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time

from .models import DAYS_OF_WEEK

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def is_valid_time(value: object) -> bool:
    return isinstance(value, str) and bool(_TIME_RE.match(value))


def to_minutes(value: str) -> int:
    """Minutes since midnight for an "HH:MM" string."""
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def from_minutes(total: int) -> str:
    hours, minutes = divmod(total, 60)
    return f"{hours:02d}:{minutes:02d}"


def slots_between(start: str, end: str, step_minutes: int) -> list[str]:
    """Every time from ``start`` to ``end`` inclusive, ``step_minutes`` apart."""
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")
    current = to_minutes(start)
    last = to_minutes(end)
    slots = []
    while current <= last:
        slots.append(from_minutes(current))
        current += step_minutes
    return slots


def add_minutes(value: str, minutes: int) -> str:
    return from_minutes(to_minutes(value) + minutes)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open overlap: touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from None


def day_of_week(target: date) -> str:
    return DAYS_OF_WEEK[target.weekday()]


def combine(target: date, value: str) -> datetime:
    hours, minutes = divmod(to_minutes(value), 60)
    return datetime.combine(target, time(hours, minutes))


def hours_until(target: date, value: str, now: datetime | None = None) -> float:
    """Signed hours from ``now`` (local) until the given date and time."""
    now = now or datetime.now()
    return (combine(target, value) - now).total_seconds() / 3600


def is_past_date(target: date, today: date | None = None) -> bool:
    return target < (today or date.today())
