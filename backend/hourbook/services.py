from __future__ import annotations

import datetime as dt
import logging
import math
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from fastapi import HTTPException, status
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Query, Session, joinedload

from .billing import TimesheetGroup, build_invoice, group_timesheets
from .clock import AUTO_ZONE, zoneinfo_oracle
from .config import settings
from .database import atomic, engine, init_db
from .ledger import TimerLedger
from .models import TASK_PRIORITIES, TASK_STATUSES, Customer, Invoice, Project, Tag, Task, TimeEntry, as_utc
from .payments import PaymentError, RemoteInvoicePage, StripeClient
from .records import ProjectRef, WorkInterval
from .state import RuntimeState
from .stats import TimeTotals, bucketize, project_total_ms, time_totals, totals_window_start, window_start
from .utils import normalize_color, normalize_text, parse_civil

logger = logging.getLogger(__name__)

UTC = dt.timezone.utc


def _now() -> dt.datetime:
    return dt.datetime.now(UTC)


def _require_text(value: Any, label: str) -> str:
    text = normalize_text(value)
    if text is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{label} is required")
    return text


def _validate_rate(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    if value < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Hourly rate cannot be negative")
    return float(value)


# ----------------------------------------------------------------------
# Customers
# ----------------------------------------------------------------------
def list_customers(db: Session) -> List[Customer]:
    return db.query(Customer).order_by(Customer.name.asc()).all()


def get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


def create_customer(db: Session, name: str, email: str) -> Customer:
    customer = Customer(name=_require_text(name, "Customer name"), email=_require_text(email, "Email"))
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def update_customer(db: Session, customer_id: int, changes: Dict[str, Any]) -> Customer:
    customer = get_customer(db, customer_id)
    if "name" in changes:
        customer.name = _require_text(changes["name"], "Customer name")
    if "email" in changes:
        customer.email = _require_text(changes["email"], "Email")
    if "external_id" in changes:
        customer.external_id = normalize_text(changes["external_id"])
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def delete_customer(db: Session, customer_id: int) -> None:
    customer = get_customer(db, customer_id)
    db.delete(customer)
    db.commit()


# ----------------------------------------------------------------------
# Projects
# ----------------------------------------------------------------------
def list_projects(db: Session, include_archived: bool = False) -> List[Project]:
    query = db.query(Project).options(joinedload(Project.customer))
    if not include_archived:
        query = query.filter(Project.archived.is_(False))
    return query.order_by(Project.name.asc()).all()


def get_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


def create_project(
    db: Session,
    name: str,
    description: Optional[str] = None,
    color: Optional[str] = None,
    hourly_rate: Optional[float] = None,
    customer_id: Optional[int] = None,
) -> Project:
    if customer_id is not None:
        get_customer(db, customer_id)
    project = Project(
        name=_require_text(name, "Project name"),
        description=normalize_text(description),
        color=normalize_color(color, db.query(Project).count()),
        hourly_rate=_validate_rate(hourly_rate),
        customer_id=customer_id,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def update_project(db: Session, project_id: int, changes: Dict[str, Any]) -> Project:
    project = get_project(db, project_id)
    if "name" in changes:
        project.name = _require_text(changes["name"], "Project name")
    if "description" in changes:
        project.description = normalize_text(changes["description"])
    if "color" in changes and changes["color"] is not None:
        project.color = normalize_color(changes["color"])
    if "hourly_rate" in changes:
        project.hourly_rate = _validate_rate(changes["hourly_rate"])
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def set_project_archived(db: Session, project_id: int, archived: bool) -> Project:
    project = get_project(db, project_id)
    project.archived = archived
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def set_project_customer(db: Session, project_id: int, customer_id: Optional[int]) -> Project:
    project = get_project(db, project_id)
    if customer_id is not None:
        get_customer(db, customer_id)
    project.customer_id = customer_id
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: Session, project_id: int) -> None:
    project = get_project(db, project_id)
    if any(entry.end_time is None for entry in project.entries):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Stop the running timer first")
    db.delete(project)
    db.commit()


def project_tracked_ms(db: Session, project_id: int) -> int:
    get_project(db, project_id)
    rows = db.query(TimeEntry).filter(TimeEntry.project_id == project_id, TimeEntry.end_time.isnot(None)).all()
    return project_total_ms((WorkInterval.from_model(row) for row in rows), project_id)


def _project_refs(db: Session, project_ids: Optional[Iterable[int]] = None) -> Dict[int, ProjectRef]:
    query = db.query(Project).options(joinedload(Project.customer))
    if project_ids is not None:
        query = query.filter(Project.id.in_(list(project_ids)))
    return {project.id: ProjectRef.from_model(project) for project in query.all()}


# ----------------------------------------------------------------------
# Timer
# ----------------------------------------------------------------------
def get_running_entry(db: Session) -> Optional[TimeEntry]:
    return TimerLedger(db).running()


def start_timer(db: Session, project_id: int, now: Optional[dt.datetime] = None) -> TimeEntry:
    project = get_project(db, project_id)
    if project.archived:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Archived projects cannot be tracked")
    ledger = TimerLedger(db, now=(lambda: now) if now else _now)
    return ledger.start(project.id)


def stop_timer(
    db: Session,
    entry_id: int,
    description: Optional[str] = None,
    now: Optional[dt.datetime] = None,
) -> TimeEntry:
    ledger = TimerLedger(db, now=(lambda: now) if now else _now)
    return ledger.stop(entry_id, normalize_text(description))


# ----------------------------------------------------------------------
# Time entries
# ----------------------------------------------------------------------
def get_time_entry(db: Session, entry_id: int) -> TimeEntry:
    entry = db.get(TimeEntry, entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time entry not found")
    return entry


def list_recent_entries(db: Session, limit: int = 10) -> List[TimeEntry]:
    return (
        db.query(TimeEntry)
        .options(joinedload(TimeEntry.project))
        .filter(TimeEntry.end_time.isnot(None))
        .order_by(TimeEntry.start_time.desc())
        .limit(limit)
        .all()
    )


def list_project_entries(db: Session, project_id: int, limit: int = 50) -> List[TimeEntry]:
    get_project(db, project_id)
    return (
        db.query(TimeEntry)
        .filter(TimeEntry.project_id == project_id, TimeEntry.end_time.isnot(None))
        .order_by(TimeEntry.start_time.desc())
        .limit(limit)
        .all()
    )


def _civil_text_to_instant(state: RuntimeState, value: str, label: str) -> dt.datetime:
    fields = parse_civil(value)
    if fields is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{label} must look like YYYY-MM-DD HH:MM",
        )
    try:
        return state.clock.civil_to_instant(*fields, state.timezone)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{label} is not a valid date") from exc


def update_time_entry(db: Session, state: RuntimeState, entry_id: int, changes: Dict[str, Any]) -> TimeEntry:
    """Apply a manual edit; start/end arrive as wall-clock text in the user's zone."""
    entry = get_time_entry(db, entry_id)
    if entry.end_time is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Stop the timer before editing")

    start_time = as_utc(entry.start_time)
    end_time = as_utc(entry.end_time)
    if changes.get("start") is not None:
        start_time = _civil_text_to_instant(state, changes["start"], "Start time")
    if changes.get("end") is not None:
        end_time = _civil_text_to_instant(state, changes["end"], "End time")
    if end_time <= start_time:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time")

    entry.start_time = start_time
    entry.end_time = end_time
    if "description" in changes:
        entry.description = normalize_text(changes["description"])
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def delete_time_entry(db: Session, entry_id: int) -> None:
    entry = get_time_entry(db, entry_id)
    if entry.end_time is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Running timers cannot be deleted")
    db.delete(entry)
    db.commit()


def edit_view(state: RuntimeState, entry: TimeEntry) -> Dict[str, Optional[str]]:
    zone = state.timezone
    return {
        "start": state.clock.format_for_edit(as_utc(entry.start_time), zone),
        "end": state.clock.format_for_edit(as_utc(entry.end_time), zone) if entry.end_time else None,
    }


# ----------------------------------------------------------------------
# Tasks and tags
# ----------------------------------------------------------------------
TASK_STATUS_ORDER = {"in_progress": 0, "todo": 1, "done": 2}
TASK_PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3}
NEXT_TASK_STATUS = {"todo": "in_progress", "in_progress": "done", "done": "todo"}


def _task_sort_key(task: Task) -> tuple:
    return (
        TASK_STATUS_ORDER.get(task.status, 99),
        TASK_PRIORITY_ORDER.get(task.priority, 99),
        -as_utc(task.created_at).timestamp(),
    )


def _validate_choice(value: Any, choices: Sequence[str], label: str) -> str:
    text = normalize_text(value)
    if text not in choices:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{label} must be one of: {', '.join(choices)}",
        )
    return text


def list_tasks(db: Session, project_id: Optional[int] = None) -> List[Task]:
    """Tasks ordered in progress first, then todo, then done; by priority within each."""
    query = db.query(Task).options(joinedload(Task.tags), joinedload(Task.project))
    if project_id is not None:
        get_project(db, project_id)
        query = query.filter(Task.project_id == project_id)
    return sorted(query.all(), key=_task_sort_key)


def get_task(db: Session, task_id: int) -> Task:
    task = db.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


def create_task(
    db: Session,
    project_id: int,
    title: str,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    due_date: Optional[dt.date] = None,
) -> Task:
    get_project(db, project_id)
    task = Task(
        project_id=project_id,
        title=_require_text(title, "Task title"),
        description=normalize_text(description),
        priority=_validate_choice(priority or "medium", TASK_PRIORITIES, "Priority"),
        due_date=due_date,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def update_task(db: Session, task_id: int, changes: Dict[str, Any], now: Optional[dt.datetime] = None) -> Task:
    task = get_task(db, task_id)
    if "title" in changes:
        task.title = _require_text(changes["title"], "Task title")
    if "description" in changes:
        task.description = normalize_text(changes["description"])
    if changes.get("priority") is not None:
        task.priority = _validate_choice(changes["priority"], TASK_PRIORITIES, "Priority")
    if "due_date" in changes:
        task.due_date = changes["due_date"]
    if changes.get("status") is not None:
        new_status = _validate_choice(changes["status"], TASK_STATUSES, "Status")
        # completed_at tracks the latest move to done
        task.completed_at = (now or _now()) if new_status == "done" else None
        task.status = new_status
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def toggle_task_status(db: Session, task_id: int, now: Optional[dt.datetime] = None) -> Task:
    task = get_task(db, task_id)
    return update_task(db, task.id, {"status": NEXT_TASK_STATUS.get(task.status, "todo")}, now=now)


def delete_task(db: Session, task_id: int) -> None:
    task = get_task(db, task_id)
    db.delete(task)
    db.commit()


def cleanup_completed_tasks(db: Session, days_old: int = 3, now: Optional[dt.datetime] = None) -> int:
    cutoff = (now or _now()) - dt.timedelta(days=days_old)
    removed = (
        db.query(Task)
        .filter(Task.status == "done", Task.completed_at.isnot(None), Task.completed_at < as_utc(cutoff))
        .delete(synchronize_session=False)
    )
    db.commit()
    if removed:
        logger.info("Removed %d tasks completed before %s", removed, cutoff.isoformat())
    return removed


def list_tags(db: Session) -> List[Tag]:
    return db.query(Tag).order_by(Tag.name.asc()).all()


def get_tag(db: Session, tag_id: int) -> Tag:
    tag = db.get(Tag, tag_id)
    if not tag:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return tag


def create_tag(db: Session, name: str, color: Optional[str] = None) -> Tag:
    name = _require_text(name, "Tag name")
    if db.query(Tag).filter(Tag.name == name).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Tag {name!r} already exists")
    tag = Tag(name=name, color=normalize_color(color, db.query(Tag).count()))
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return tag


def add_tag_to_task(db: Session, task_id: int, tag_id: int) -> Task:
    task = get_task(db, task_id)
    tag = get_tag(db, tag_id)
    if tag not in task.tags:
        task.tags.append(tag)
        db.commit()
    db.refresh(task)
    return task


def remove_tag_from_task(db: Session, task_id: int, tag_id: int) -> Task:
    task = get_task(db, task_id)
    tag = get_tag(db, tag_id)
    if tag not in task.tags:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag is not attached to this task")
    task.tags.remove(tag)
    db.commit()
    db.refresh(task)
    return task


def dashboard_stats(db: Session, today: Optional[dt.date] = None) -> Dict[str, int]:
    today = today or dt.date.today()
    total_projects = db.query(Project).count()
    active_projects = db.query(Project).filter(Project.archived.is_(False)).count()
    counts = {task_status: db.query(Task).filter(Task.status == task_status).count() for task_status in TASK_STATUSES}
    total_tasks = db.query(Task).count()
    overdue = (
        db.query(Task)
        .filter(Task.status != "done", Task.due_date.isnot(None), Task.due_date < today)
        .count()
    )
    return {
        "total_projects": total_projects,
        "active_projects": active_projects,
        "archived_projects": total_projects - active_projects,
        "total_tasks": total_tasks,
        "todo_tasks": counts["todo"],
        "in_progress_tasks": counts["in_progress"],
        "done_tasks": counts["done"],
        "overdue_tasks": overdue,
        "completion_rate": math.floor(counts["done"] / total_tasks * 100 + 0.5) if total_tasks else 0,
    }


def recent_activity(db: Session, limit: int = 10) -> List[Task]:
    """Recently touched tasks, in progress first, newest first within a status."""
    candidates = (
        db.query(Task)
        .options(joinedload(Task.project), joinedload(Task.tags))
        .order_by(Task.updated_at.desc())
        .limit(limit * 2)
        .all()
    )
    candidates.sort(key=lambda task: (TASK_STATUS_ORDER.get(task.status, 99), -as_utc(task.updated_at).timestamp()))
    return candidates[:limit]


# ----------------------------------------------------------------------
# Statistics
# ----------------------------------------------------------------------
def _closed_since(db: Session, since: dt.datetime) -> Query:
    return db.query(TimeEntry).filter(
        TimeEntry.end_time.isnot(None),
        TimeEntry.start_time >= as_utc(since),
    )


def weekly_stats(
    db: Session,
    months: Optional[int] = None,
    anchor_weekday: Optional[int] = None,
    now: Optional[dt.datetime] = None,
    local_tz: Optional[dt.tzinfo] = None,
) -> List[Dict[str, Any]]:
    months = settings.weekly_stats_months if months is None else months
    anchor_weekday = settings.week_anchor_weekday if anchor_weekday is None else anchor_weekday
    now = now or _now()
    cutoff = window_start(now, months, anchor_weekday, local_tz)
    intervals = [WorkInterval.from_model(row) for row in _closed_since(db, cutoff).all()]
    buckets = bucketize(intervals, months, anchor_weekday, now=now, local_tz=local_tz)
    projects = _project_refs(db, {total.project_id for bucket in buckets for total in bucket.per_project})

    results: List[Dict[str, Any]] = []
    for bucket in buckets:
        results.append(
            {
                "week_start": bucket.week_start,
                "week_label": bucket.week_label,
                "total_ms": bucket.total_ms,
                "projects": [
                    {
                        "project_id": total.project_id,
                        "project_name": projects[total.project_id].name if total.project_id in projects else "",
                        "project_color": projects[total.project_id].color if total.project_id in projects else "",
                        "ms": total.total_ms,
                    }
                    for total in bucket.per_project
                ],
            }
        )
    return results


def time_stats(
    db: Session,
    now: Optional[dt.datetime] = None,
    local_tz: Optional[dt.tzinfo] = None,
) -> TimeTotals:
    now = now or _now()
    anchor_weekday = settings.week_anchor_weekday
    since = totals_window_start(now, anchor_weekday, local_tz)
    intervals = [WorkInterval.from_model(row) for row in _closed_since(db, since).all()]
    return time_totals(intervals, now=now, anchor_weekday=anchor_weekday, local_tz=local_tz)


# ----------------------------------------------------------------------
# Timesheets and invoices
# ----------------------------------------------------------------------
def _uninvoiced_entries(db: Session) -> Query:
    return (
        db.query(TimeEntry)
        .filter(TimeEntry.end_time.isnot(None), TimeEntry.invoice_id.is_(None))
        .order_by(TimeEntry.start_time.desc())
    )


def list_timesheets(db: Session) -> List[TimesheetGroup]:
    intervals = [WorkInterval.from_model(row) for row in _uninvoiced_entries(db).all()]
    return group_timesheets(intervals, _project_refs(db, {interval.project_id for interval in intervals}))


def create_invoice(
    db: Session,
    gateway: Optional[StripeClient],
    project_id: int,
    entry_ids: Sequence[int] = (),
) -> Invoice:
    """Bill a project's unbilled time on Stripe and record it locally.

    The remote draft is created first. Only when that succeeds are the local
    invoice row, the customer's Stripe id and the entries' invoice stamp
    written, all in one transaction.
    """
    project = get_project(db, project_id)
    customer = project.customer
    if customer is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No customer linked to project")
    if gateway is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No Stripe API key configured")

    snapshot = ProjectRef.from_model(project)
    intervals = [
        WorkInterval.from_model(row) for row in _uninvoiced_entries(db).filter(TimeEntry.project_id == project.id)
    ]
    groups = group_timesheets(intervals, {project.id: snapshot})
    if not groups:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No billable time entries for project")
    group = groups[0]

    selection = set(entry_ids)
    unknown = selection - {entry.id for entry in group.entries}
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Time entries not billable for this project: {sorted(unknown)}",
        )

    draft = build_invoice(group.project, group.entries, selection)
    if not draft.line_items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to invoice")

    try:
        customer_ref = gateway.ensure_customer(customer.name, customer.email, customer.external_id)
        external_id = gateway.create_draft_invoice(customer_ref, project.name, draft.line_items)
    except PaymentError as exc:
        logger.warning("Invoice for project %s failed at Stripe: %s", project.id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    with atomic(db):
        if customer.external_id != customer_ref:
            customer.external_id = customer_ref
        invoice = Invoice(
            project_id=project.id,
            customer_id=customer.id,
            total_hours=draft.total_hours,
            total_amount=draft.total_amount,
            external_id=external_id,
        )
        db.add(invoice)
        db.flush()
        stamped = (
            db.query(TimeEntry)
            .filter(TimeEntry.id.in_(draft.billed_ids), TimeEntry.invoice_id.is_(None))
            .update({TimeEntry.invoice_id: invoice.id}, synchronize_session=False)
        )
        if stamped != len(draft.billed_ids):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Some time entries were invoiced in the meantime",
            )
    db.refresh(invoice)
    logger.info(
        "Invoice %s (%s) created for project %s: %.2f h, %.2f",
        invoice.id,
        external_id,
        project.id,
        draft.total_hours,
        draft.total_amount,
    )
    return invoice


def list_invoices(db: Session) -> List[Invoice]:
    return (
        db.query(Invoice)
        .options(joinedload(Invoice.project), joinedload(Invoice.customer))
        .order_by(Invoice.created_at.desc())
        .all()
    )


def list_remote_invoices(
    gateway: Optional[StripeClient],
    cursor: Optional[str] = None,
    refresh: bool = False,
) -> RemoteInvoicePage:
    if gateway is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No Stripe API key configured")
    try:
        return gateway.list_invoices(cursor, force_refresh=refresh)
    except PaymentError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


# ----------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------
def update_runtime_settings(db: Session, state: RuntimeState, updates: Dict[str, Any]) -> Dict[str, Any]:
    if "timezone" in updates:
        zone = normalize_text(updates["timezone"]) or AUTO_ZONE
        if zone.lower() != AUTO_ZONE and not zoneinfo_oracle(_now(), zone).valid:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown timezone: {zone}")
        updates["timezone"] = AUTO_ZONE if zone.lower() == AUTO_ZONE else zone
    state.persist(db, updates)
    state.apply(updates)
    return state.snapshot()


# ----------------------------------------------------------------------
# Database file
# ----------------------------------------------------------------------
SQLITE_HEADER = b"SQLite format 3\x00"


def export_database(destination: Path, source: Optional[Path] = None) -> Path:
    """Copy the SQLite file to ``destination`` and return the copy's path."""
    source = Path(source or settings.sqlite_path)
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)
    logger.info("Exported database to %s", destination)
    return destination


def import_database(source: Path, target: Optional[Path] = None, bind: Engine = engine) -> None:
    """Replace the live database file with ``source``.

    Pooled connections are closed first; the schema is brought up to date
    afterwards so older exports gain newer tables.
    """
    source = Path(source)
    target = Path(target or settings.sqlite_path)
    if not source.is_file():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Source file does not exist")
    with source.open("rb") as handle:
        if handle.read(len(SQLITE_HEADER)) != SQLITE_HEADER:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Source file is not a SQLite database")
    if source.resolve() == target.resolve():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Source is the live database")
    bind.dispose()
    shutil.copyfile(source, target)
    init_db(bind)
    logger.info("Imported database from %s", source)
