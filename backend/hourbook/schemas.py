from __future__ import annotations

import datetime as dt
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str
    external_id: Optional[str] = None


class CustomerCreateRequest(BaseModel):
    name: str
    email: str


class CustomerUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: Optional[str] = None
    color: str
    hourly_rate: Optional[float] = None
    archived: bool
    customer: Optional[CustomerResponse] = None


class ProjectCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    hourly_rate: Optional[float] = None
    customer_id: Optional[int] = None


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    hourly_rate: Optional[float] = None


class ProjectCustomerRequest(BaseModel):
    customer_id: Optional[int] = None


class ProjectTotalResponse(BaseModel):
    project_id: int
    total_ms: int


class TimeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    project_id: int
    start_time: dt.datetime
    end_time: Optional[dt.datetime]
    description: Optional[str]
    invoice_id: Optional[int]
    duration_ms: int

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "start_time": _serialize_datetime(self.start_time),
            "end_time": _serialize_datetime(self.end_time) if self.end_time else None,
            "description": self.description,
            "invoice_id": self.invoice_id,
            "duration_ms": self.duration_ms,
        }


class TimerStartRequest(BaseModel):
    project_id: int


class TimerStopRequest(BaseModel):
    entry_id: int
    description: Optional[str] = None


class TimeEntryUpdateRequest(BaseModel):
    start: Optional[str] = Field(default=None, description="Wall-clock time, YYYY-MM-DD HH:MM")
    end: Optional[str] = Field(default=None, description="Wall-clock time, YYYY-MM-DD HH:MM")
    description: Optional[str] = None


class TimeEntryEditResponse(BaseModel):
    start: str
    end: Optional[str] = None


class WeekProjectResponse(BaseModel):
    project_id: int
    project_name: str
    project_color: str
    ms: int


class WeekBucketResponse(BaseModel):
    week_start: dt.datetime
    week_label: str
    total_ms: int
    projects: List[WeekProjectResponse]

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "week_start": self.week_start.isoformat(),
            "week_label": self.week_label,
            "total_ms": self.total_ms,
            "projects": [project.model_dump() for project in self.projects],
        }


class TimeTotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    today_ms: int
    week_ms: int
    month_ms: int


class TimesheetEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    start: dt.datetime
    end: Optional[dt.datetime]
    description: Optional[str]
    duration_ms: int


class TimesheetProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    color: str
    hourly_rate: Optional[float]
    customer: Optional[CustomerResponse] = None


class TimesheetGroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    project: TimesheetProjectResponse
    entries: List[TimesheetEntryResponse]
    total_ms: int
    total_hours: float
    total_amount: float


class InvoiceCreateRequest(BaseModel):
    project_id: int
    entry_ids: List[int] = Field(default_factory=list)


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    project_id: Optional[int]
    customer_id: Optional[int]
    total_hours: float
    total_amount: float
    external_id: Optional[str]
    created_at: dt.datetime

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "customer_id": self.customer_id,
            "total_hours": self.total_hours,
            "total_amount": self.total_amount,
            "external_id": self.external_id,
            "created_at": _serialize_datetime(self.created_at),
        }


class RemoteInvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    number: Optional[str]
    customer_name: Optional[str]
    customer_email: Optional[str]
    status: str
    amount: float
    currency: str
    created: dt.datetime
    due_date: Optional[dt.datetime]
    hosted_url: Optional[str]
    dashboard_url: str


class RemoteInvoicePageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    items: List[RemoteInvoiceResponse]
    has_more: bool
    next_cursor: Optional[str]


class SettingsResponse(BaseModel):
    timezone: str
    effective_timezone: str
    business_name: str
    stripe_api_key_set: bool


class SettingsUpdateRequest(BaseModel):
    timezone: Optional[str] = None
    business_name: Optional[str] = None
    stripe_api_key: Optional[str] = Field(default=None)


class TagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    color: str


class TagCreateRequest(BaseModel):
    name: str
    color: Optional[str] = None


class TaskProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    color: str


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    project_id: int
    title: str
    description: Optional[str]
    status: str
    priority: str
    due_date: Optional[dt.date]
    completed_at: Optional[dt.datetime]
    created_at: dt.datetime
    updated_at: dt.datetime
    tags: List[TagResponse] = Field(default_factory=list)
    project: Optional[TaskProjectResponse] = None

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": _serialize_datetime(self.completed_at) if self.completed_at else None,
            "created_at": _serialize_datetime(self.created_at),
            "updated_at": _serialize_datetime(self.updated_at),
            "tags": [tag.model_dump() for tag in self.tags],
            "project": self.project.model_dump() if self.project else None,
        }


class TaskCreateRequest(BaseModel):
    project_id: int
    title: str
    description: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[dt.date] = None


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[dt.date] = None


class TaskCleanupResponse(BaseModel):
    removed: int


class DashboardStatsResponse(BaseModel):
    total_projects: int
    active_projects: int
    archived_projects: int
    total_tasks: int
    todo_tasks: int
    in_progress_tasks: int
    done_tasks: int
    overdue_tasks: int
    completion_rate: int


class DatabaseImportRequest(BaseModel):
    path: str
