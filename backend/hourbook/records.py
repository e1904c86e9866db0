"""Immutable snapshots of persisted rows for the aggregation engine.

The stats and billing functions never touch the ORM. They work on these
frozen values, taken from a session right before the query, so each call is
a pure function of its inputs.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional

from .models import Customer, Project, TimeEntry, as_utc

MS_PER_HOUR = 3_600_000


def duration_ms(start: dt.datetime, end: Optional[dt.datetime]) -> int:
    """Milliseconds between two instants, 0 for an open interval."""
    if end is None:
        return 0
    return (as_utc(end) - as_utc(start)) // dt.timedelta(milliseconds=1)


@dataclass(frozen=True, slots=True)
class CustomerRef:
    id: int
    name: str
    email: str
    external_id: Optional[str] = None

    @classmethod
    def from_model(cls, customer: Customer) -> "CustomerRef":
        return cls(
            id=customer.id,
            name=customer.name,
            email=customer.email,
            external_id=customer.external_id,
        )


@dataclass(frozen=True, slots=True)
class ProjectRef:
    id: int
    name: str
    color: str = "#3b82f6"
    hourly_rate: Optional[float] = None
    archived: bool = False
    customer: Optional[CustomerRef] = None

    @property
    def is_billable(self) -> bool:
        return self.hourly_rate is not None and self.hourly_rate > 0

    @classmethod
    def from_model(cls, project: Project) -> "ProjectRef":
        return cls(
            id=project.id,
            name=project.name,
            color=project.color,
            hourly_rate=project.hourly_rate,
            archived=bool(project.archived),
            customer=CustomerRef.from_model(project.customer) if project.customer else None,
        )


@dataclass(frozen=True, slots=True)
class WorkInterval:
    id: int
    project_id: int
    start: dt.datetime
    end: Optional[dt.datetime] = None
    description: Optional[str] = None
    invoice_ref: Optional[int] = None

    @property
    def duration_ms(self) -> int:
        return duration_ms(self.start, self.end)

    @property
    def hours(self) -> float:
        return self.duration_ms / MS_PER_HOUR

    @classmethod
    def from_model(cls, entry: TimeEntry) -> "WorkInterval":
        return cls(
            id=entry.id,
            project_id=entry.project_id,
            start=as_utc(entry.start_time),
            end=as_utc(entry.end_time) if entry.end_time else None,
            description=entry.description,
            invoice_ref=entry.invoice_id,
        )
