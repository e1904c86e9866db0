"""Timesheet grouping and invoice line items.

Money stays in float major units until ``to_minor_units``, which is the only
place an amount is rounded. Group totals and line items never round an
intermediate figure.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Collection, Dict, Iterable, List, Mapping, Optional, Tuple

from .models import as_utc
from .records import MS_PER_HOUR, ProjectRef, WorkInterval

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TimesheetGroup:
    project: ProjectRef
    entries: Tuple[WorkInterval, ...]
    total_ms: int
    total_amount: float

    @property
    def total_hours(self) -> float:
        return self.total_ms / MS_PER_HOUR


@dataclass(frozen=True, slots=True)
class InvoiceLineItem:
    interval_id: int
    description: str
    hours: float
    rate: float
    amount_minor_units: int
    period_start: dt.datetime
    period_end: dt.datetime


@dataclass(frozen=True, slots=True)
class InvoiceDraft:
    line_items: Tuple[InvoiceLineItem, ...]
    total_hours: float
    total_amount: float
    billed_ids: Tuple[int, ...]


def to_minor_units(amount: float) -> int:
    """Round a major-unit amount to whole minor units, halves rounding up."""
    return math.floor(amount * 100 + 0.5)


def entry_amount(interval: WorkInterval, hourly_rate: float) -> float:
    return interval.duration_ms / MS_PER_HOUR * hourly_rate


def _is_billable_interval(interval: WorkInterval) -> bool:
    return interval.end is not None and interval.invoice_ref is None and interval.duration_ms > 0


def group_timesheets(
    intervals: Iterable[WorkInterval],
    projects: Mapping[int, ProjectRef],
) -> List[TimesheetGroup]:
    """Group unbilled closed intervals by billable project, sorted by name."""
    order: List[int] = []
    entries: Dict[int, List[WorkInterval]] = {}
    for interval in intervals:
        if not _is_billable_interval(interval):
            continue
        project = projects.get(interval.project_id)
        if project is None:
            logger.debug("Skipping time entry %s: project %s not found", interval.id, interval.project_id)
            continue
        if not project.is_billable:
            continue
        if project.id not in entries:
            order.append(project.id)
            entries[project.id] = []
        entries[project.id].append(interval)

    groups: List[TimesheetGroup] = []
    for project_id in order:
        project = projects[project_id]
        project_entries = tuple(entries[project_id])
        total_ms = sum(entry.duration_ms for entry in project_entries)
        total_amount = sum(entry_amount(entry, project.hourly_rate) for entry in project_entries)
        groups.append(
            TimesheetGroup(
                project=project,
                entries=project_entries,
                total_ms=total_ms,
                total_amount=total_amount,
            )
        )
    groups.sort(key=lambda group: group.project.name.casefold())
    return groups


def describe_line_item(
    hours: float,
    project_name: str,
    interval: WorkInterval,
    local_tz: Optional[dt.tzinfo] = None,
) -> str:
    description = interval.description
    if not description:
        local_start = as_utc(interval.start).astimezone(local_tz)
        description = f"Time entry {local_start.month}/{local_start.day}/{local_start.year}"
    return f"{hours:.2f} hour(s) :: {project_name} :: {description}"


def build_invoice(
    project: ProjectRef,
    candidates: Iterable[WorkInterval],
    selection: Collection[int] = (),
    *,
    local_tz: Optional[dt.tzinfo] = None,
) -> InvoiceDraft:
    """Price the selected intervals of one project.

    An empty ``selection`` bills every candidate. Intervals that are still
    running, or have no positive duration, are ignored even if selected.
    Items that round to zero cents are left out of ``line_items`` and of
    ``total_amount`` but still count as billed.
    """
    chosen = [interval for interval in candidates if not selection or interval.id in selection]
    rate = project.hourly_rate or 0.0

    line_items: List[InvoiceLineItem] = []
    billed_ids: List[int] = []
    total_hours = 0.0
    total_minor = 0
    for interval in chosen:
        if interval.end is None or interval.duration_ms <= 0:
            continue
        hours = interval.hours
        billed_ids.append(interval.id)
        total_hours += hours
        amount = to_minor_units(hours * rate)
        if amount <= 0:
            continue
        total_minor += amount
        line_items.append(
            InvoiceLineItem(
                interval_id=interval.id,
                description=describe_line_item(hours, project.name, interval, local_tz),
                hours=hours,
                rate=rate,
                amount_minor_units=amount,
                period_start=as_utc(interval.start),
                period_end=as_utc(interval.end),
            )
        )

    return InvoiceDraft(
        line_items=tuple(line_items),
        total_hours=total_hours,
        total_amount=total_minor / 100,
        billed_ids=tuple(billed_ids),
    )
