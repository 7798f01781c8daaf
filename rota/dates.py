"""Calendar helpers shared by the engine, the backend and the CLI."""

from datetime import date, timedelta
from typing import Iterator


def day_of_week(d: date) -> int:
    """1=Monday .. 7=Sunday."""
    return d.isoweekday()


def is_weekday(d: date) -> bool:
    return d.isoweekday() <= 5


def week_of_month(d: date, cap: int = 5) -> int:
    """
    Job-plan week number for a date (1-indexed, capped at `cap`).

    Weeks start on Sunday: the 1st of the month is always week 1 and the
    count ticks over each Sunday, so a month starting on a Saturday has a
    one-day week 1.
    """
    first = d.replace(day=1)
    leading = (first.weekday() + 1) % 7   # days of week 1 before the 1st, Sunday-based
    week = (d.day + leading + 6) // 7
    return max(1, min(cap, week))


def date_range(start: date, end: date) -> Iterator[date]:
    """Every date in [start, end], inclusive."""
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def parse_date(value: str) -> date:
    return date.fromisoformat(value[:10])
