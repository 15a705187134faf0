"""
Time source and calendar helpers.

All "today" decisions go through a Clock so tests can step time forward and
cross local midnight deterministically. Datetimes are naive local time.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import List, Protocol, Tuple

DATE_KEY_FMT = "%Y-%m-%d"


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock local time."""

    def now(self) -> datetime:
        return datetime.now()


def date_key(moment: datetime | date) -> str:
    """Ledger bucket for the local calendar day containing *moment*."""
    return moment.strftime(DATE_KEY_FMT)


def parse_date_key(key: str) -> date:
    return datetime.strptime(key, DATE_KEY_FMT).date()


def next_local_midnight(moment: datetime) -> datetime:
    return datetime.combine(moment.date() + timedelta(days=1), time.min)


def seconds_until_midnight(moment: datetime) -> float:
    return (next_local_midnight(moment) - moment).total_seconds()


def split_by_day(start: datetime, seconds: int) -> List[Tuple[str, int]]:
    """
    Distribute *seconds* of elapsed time beginning at *start* over the local
    calendar days it touches.

    Returns ``[(date_key, seconds), ...]`` in chronological order. The parts
    always sum to *seconds*; each midnight boundary is rounded to the nearest
    whole second.
    """
    parts: List[Tuple[str, int]] = []
    remaining = seconds
    cursor = start
    while remaining > 0:
        boundary = next_local_midnight(cursor)
        before = round((boundary - cursor).total_seconds())
        if before >= remaining:
            parts.append((date_key(cursor), remaining))
            break
        if before > 0:
            parts.append((date_key(cursor), before))
            remaining -= before
        cursor = boundary
    return parts
