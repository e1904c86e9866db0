"""Weekly chart buckets and dashboard totals over closed time entries.

Weeks are a bookkeeping partition computed in the *process's* local calendar,
not in the display timezone the user configured. Pass ``local_tz`` to pin the
calendar (tests do); ``None`` uses the interpreter's local time.

The trailing window goes back whole calendar months and clamps the day when
the target month is shorter: Aug 31 minus six months is Feb 29 (or 28).
Rolling the overflow into the next month instead would give Mar 2 and can
move the window start by one week.
"""

from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .models import as_utc
from .records import WorkInterval

SUNDAY = 6
DEFAULT_TRAILING_MONTHS = 6


@dataclass(frozen=True, slots=True)
class ProjectTotal:
    project_id: int
    total_ms: int


@dataclass(frozen=True, slots=True)
class WeekBucket:
    week_start: dt.datetime
    per_project: Tuple[ProjectTotal, ...]
    total_ms: int

    @property
    def week_label(self) -> str:
        return f"{self.week_start.month}/{self.week_start.day}"


@dataclass(frozen=True, slots=True)
class TimeTotals:
    today_ms: int
    week_ms: int
    month_ms: int


def _to_local(value: dt.datetime, local_tz: Optional[dt.tzinfo]) -> dt.datetime:
    return as_utc(value).astimezone(local_tz)


def _local_midnight(day: dt.date, local_tz: Optional[dt.tzinfo]) -> dt.datetime:
    naive = dt.datetime.combine(day, dt.time.min)
    if local_tz is not None:
        return naive.replace(tzinfo=local_tz)
    return naive.astimezone()


def _anchor_day(day: dt.date, anchor_weekday: int) -> dt.date:
    return day - dt.timedelta(days=(day.weekday() - anchor_weekday) % 7)


def _months_back(day: dt.date, months: int) -> dt.date:
    index = day.year * 12 + (day.month - 1) - months
    year, month_zero = divmod(index, 12)
    last_day = calendar.monthrange(year, month_zero + 1)[1]
    return dt.date(year, month_zero + 1, min(day.day, last_day))


def week_start_for(
    instant: dt.datetime,
    anchor_weekday: int = SUNDAY,
    local_tz: Optional[dt.tzinfo] = None,
) -> dt.datetime:
    """Local midnight of the latest ``anchor_weekday`` at or before ``instant``."""
    local_day = _to_local(instant, local_tz).date()
    return _local_midnight(_anchor_day(local_day, anchor_weekday), local_tz)


def window_start(
    now: dt.datetime,
    trailing_months: int = DEFAULT_TRAILING_MONTHS,
    anchor_weekday: int = SUNDAY,
    local_tz: Optional[dt.tzinfo] = None,
) -> dt.datetime:
    local_day = _to_local(now, local_tz).date()
    first_day = _anchor_day(_months_back(local_day, trailing_months), anchor_weekday)
    return _local_midnight(first_day, local_tz)


def bucketize(
    intervals: Iterable[WorkInterval],
    trailing_months: int = DEFAULT_TRAILING_MONTHS,
    anchor_weekday: int = SUNDAY,
    *,
    now: Optional[dt.datetime] = None,
    local_tz: Optional[dt.tzinfo] = None,
) -> List[WeekBucket]:
    """Sum closed intervals into per-project weekly totals, oldest week first.

    Each interval counts entirely towards the week its start falls in. Open
    and non-positive intervals are skipped, and so are weeks that end up
    empty.
    """
    now = now or dt.datetime.now(dt.timezone.utc)
    cutoff = window_start(now, trailing_months, anchor_weekday, local_tz)

    weeks: Dict[dt.date, Dict[int, int]] = {}
    for interval in intervals:
        if interval.end is None:
            continue
        elapsed = interval.duration_ms
        if elapsed <= 0:
            continue
        if as_utc(interval.start) < cutoff:
            continue
        key = _anchor_day(_to_local(interval.start, local_tz).date(), anchor_weekday)
        per_project = weeks.setdefault(key, {})
        per_project[interval.project_id] = per_project.get(interval.project_id, 0) + elapsed

    buckets: List[WeekBucket] = []
    for key in sorted(weeks):
        totals = tuple(ProjectTotal(project_id, ms) for project_id, ms in weeks[key].items())
        total_ms = sum(item.total_ms for item in totals)
        if total_ms <= 0:
            continue
        buckets.append(WeekBucket(week_start=_local_midnight(key, local_tz), per_project=totals, total_ms=total_ms))
    return buckets


def totals_window_start(
    now: dt.datetime,
    anchor_weekday: int = SUNDAY,
    local_tz: Optional[dt.tzinfo] = None,
) -> dt.datetime:
    """Earliest boundary ``time_totals`` looks at: this week or this month."""
    today = _to_local(now, local_tz).date()
    return _local_midnight(min(_anchor_day(today, anchor_weekday), today.replace(day=1)), local_tz)


def time_totals(
    intervals: Iterable[WorkInterval],
    *,
    now: Optional[dt.datetime] = None,
    anchor_weekday: int = SUNDAY,
    local_tz: Optional[dt.tzinfo] = None,
) -> TimeTotals:
    now = now or dt.datetime.now(dt.timezone.utc)
    today = _to_local(now, local_tz).date()
    today_start = _local_midnight(today, local_tz)
    week_start = _local_midnight(_anchor_day(today, anchor_weekday), local_tz)
    month_start = _local_midnight(today.replace(day=1), local_tz)

    today_ms = week_ms = month_ms = 0
    for interval in intervals:
        elapsed = interval.duration_ms
        if interval.end is None or elapsed <= 0:
            continue
        start = as_utc(interval.start)
        if start >= today_start:
            today_ms += elapsed
        if start >= week_start:
            week_ms += elapsed
        if start >= month_start:
            month_ms += elapsed
    return TimeTotals(today_ms=today_ms, week_ms=week_ms, month_ms=month_ms)


def project_total_ms(intervals: Iterable[WorkInterval], project_id: int) -> int:
    return sum(
        max(interval.duration_ms, 0)
        for interval in intervals
        if interval.project_id == project_id and interval.end is not None
    )
