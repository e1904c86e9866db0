from __future__ import annotations

import datetime as dt
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from .config import settings
from .database import db_session, get_db, init_db
from .payments import StripeClient
from .schemas import (
    CustomerCreateRequest,
    CustomerResponse,
    CustomerUpdateRequest,
    DashboardStatsResponse,
    DatabaseImportRequest,
    InvoiceCreateRequest,
    InvoiceResponse,
    ProjectCreateRequest,
    ProjectCustomerRequest,
    ProjectResponse,
    ProjectTotalResponse,
    ProjectUpdateRequest,
    RemoteInvoicePageResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    TagCreateRequest,
    TagResponse,
    TaskCleanupResponse,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
    TimeEntryEditResponse,
    TimeEntryResponse,
    TimeEntryUpdateRequest,
    TimerStartRequest,
    TimerStopRequest,
    TimesheetGroupResponse,
    TimeTotalsResponse,
    WeekBucketResponse,
)
from .services import (
    add_tag_to_task,
    cleanup_completed_tasks,
    create_customer,
    create_invoice,
    create_project,
    create_tag,
    create_task,
    dashboard_stats,
    delete_customer,
    delete_project,
    delete_task,
    delete_time_entry,
    edit_view,
    export_database,
    get_running_entry,
    get_time_entry,
    import_database,
    list_customers,
    list_invoices,
    list_project_entries,
    list_projects,
    list_recent_entries,
    list_remote_invoices,
    list_tags,
    list_tasks,
    list_timesheets,
    project_tracked_ms,
    recent_activity,
    remove_tag_from_task,
    set_project_archived,
    set_project_customer,
    start_timer,
    stop_timer,
    time_stats,
    toggle_task_status,
    update_customer,
    update_project,
    update_runtime_settings,
    update_task,
    update_time_entry,
    weekly_stats,
)
from .state import RuntimeState

init_db()

runtime_state = RuntimeState(settings)
with db_session() as session:
    runtime_state.load_from_db(session)
    cleanup_completed_tasks(session, settings.completed_task_retention_days)

app = FastAPI(title=settings.app_name)
app.state.runtime_state = runtime_state


def get_state(request: Request) -> RuntimeState:
    return request.app.state.runtime_state


def get_payment_gateway(state: RuntimeState = Depends(get_state)) -> Optional[StripeClient]:
    return state.payment_gateway()


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


# Timer ---------------------------------------------------------------------


@app.get("/timer", response_model=Optional[TimeEntryResponse])
def timer_status(db: Session = Depends(get_db)) -> Optional[TimeEntryResponse]:
    return get_running_entry(db)


@app.post("/timer/start", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
def timer_start(payload: TimerStartRequest, db: Session = Depends(get_db)) -> TimeEntryResponse:
    return start_timer(db, payload.project_id)


@app.post("/timer/stop", response_model=TimeEntryResponse)
def timer_stop(payload: TimerStopRequest, db: Session = Depends(get_db)) -> TimeEntryResponse:
    return stop_timer(db, payload.entry_id, payload.description)


# Time entries --------------------------------------------------------------


@app.get("/entries/recent", response_model=list[TimeEntryResponse])
def entries_recent(limit: int = Query(10, ge=1, le=500), db: Session = Depends(get_db)) -> list[TimeEntryResponse]:
    return list_recent_entries(db, limit)


@app.get("/entries/{entry_id}/edit", response_model=TimeEntryEditResponse)
def entries_edit_view(
    entry_id: int,
    db: Session = Depends(get_db),
    state: RuntimeState = Depends(get_state),
) -> TimeEntryEditResponse:
    return TimeEntryEditResponse(**edit_view(state, get_time_entry(db, entry_id)))


@app.patch("/entries/{entry_id}", response_model=TimeEntryResponse)
def entries_update(
    entry_id: int,
    payload: TimeEntryUpdateRequest,
    db: Session = Depends(get_db),
    state: RuntimeState = Depends(get_state),
) -> TimeEntryResponse:
    return update_time_entry(db, state, entry_id, payload.model_dump(exclude_unset=True))


@app.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def entries_delete(entry_id: int, db: Session = Depends(get_db)) -> Response:
    delete_time_entry(db, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Projects ------------------------------------------------------------------


@app.get("/projects", response_model=list[ProjectResponse])
def projects_list(include_archived: bool = False, db: Session = Depends(get_db)) -> list[ProjectResponse]:
    return list_projects(db, include_archived)


@app.post("/projects", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def projects_create(payload: ProjectCreateRequest, db: Session = Depends(get_db)) -> ProjectResponse:
    return create_project(
        db,
        payload.name,
        payload.description,
        payload.color,
        payload.hourly_rate,
        payload.customer_id,
    )


@app.patch("/projects/{project_id}", response_model=ProjectResponse)
def projects_update(project_id: int, payload: ProjectUpdateRequest, db: Session = Depends(get_db)) -> ProjectResponse:
    return update_project(db, project_id, payload.model_dump(exclude_unset=True))


@app.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def projects_delete(project_id: int, db: Session = Depends(get_db)) -> Response:
    delete_project(db, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/projects/{project_id}/archive", response_model=ProjectResponse)
def projects_archive(project_id: int, db: Session = Depends(get_db)) -> ProjectResponse:
    return set_project_archived(db, project_id, True)


@app.post("/projects/{project_id}/unarchive", response_model=ProjectResponse)
def projects_unarchive(project_id: int, db: Session = Depends(get_db)) -> ProjectResponse:
    return set_project_archived(db, project_id, False)


@app.put("/projects/{project_id}/customer", response_model=ProjectResponse)
def projects_set_customer(
    project_id: int,
    payload: ProjectCustomerRequest,
    db: Session = Depends(get_db),
) -> ProjectResponse:
    return set_project_customer(db, project_id, payload.customer_id)


@app.get("/projects/{project_id}/entries", response_model=list[TimeEntryResponse])
def projects_entries(project_id: int, db: Session = Depends(get_db)) -> list[TimeEntryResponse]:
    return list_project_entries(db, project_id)


@app.get("/projects/{project_id}/total", response_model=ProjectTotalResponse)
def projects_total(project_id: int, db: Session = Depends(get_db)) -> ProjectTotalResponse:
    return ProjectTotalResponse(project_id=project_id, total_ms=project_tracked_ms(db, project_id))


# Customers -----------------------------------------------------------------


@app.get("/customers", response_model=list[CustomerResponse])
def customers_list(db: Session = Depends(get_db)) -> list[CustomerResponse]:
    return list_customers(db)


@app.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def customers_create(payload: CustomerCreateRequest, db: Session = Depends(get_db)) -> CustomerResponse:
    return create_customer(db, payload.name, payload.email)


@app.patch("/customers/{customer_id}", response_model=CustomerResponse)
def customers_update(
    customer_id: int,
    payload: CustomerUpdateRequest,
    db: Session = Depends(get_db),
) -> CustomerResponse:
    return update_customer(db, customer_id, payload.model_dump(exclude_unset=True))


@app.delete("/customers/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
def customers_delete(customer_id: int, db: Session = Depends(get_db)) -> Response:
    delete_customer(db, customer_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Statistics ----------------------------------------------------------------


@app.get("/stats/weekly", response_model=list[WeekBucketResponse])
def stats_weekly(
    months: int = Query(settings.weekly_stats_months, ge=1, le=120),
    db: Session = Depends(get_db),
) -> list[WeekBucketResponse]:
    return [WeekBucketResponse(**bucket) for bucket in weekly_stats(db, months)]


@app.get("/stats/time", response_model=TimeTotalsResponse)
def stats_time(db: Session = Depends(get_db)) -> TimeTotalsResponse:
    return TimeTotalsResponse.model_validate(time_stats(db))


# Timesheets and invoices ---------------------------------------------------


@app.get("/timesheets", response_model=list[TimesheetGroupResponse])
def timesheets(db: Session = Depends(get_db)) -> list[TimesheetGroupResponse]:
    return [TimesheetGroupResponse.model_validate(group) for group in list_timesheets(db)]


@app.get("/invoices", response_model=list[InvoiceResponse])
def invoices_list(db: Session = Depends(get_db)) -> list[InvoiceResponse]:
    return list_invoices(db)


@app.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def invoices_create(
    payload: InvoiceCreateRequest,
    db: Session = Depends(get_db),
    gateway: Optional[StripeClient] = Depends(get_payment_gateway),
) -> InvoiceResponse:
    return create_invoice(db, gateway, payload.project_id, payload.entry_ids)


@app.get("/invoices/remote", response_model=RemoteInvoicePageResponse)
def invoices_remote(
    cursor: Optional[str] = None,
    refresh: bool = False,
    gateway: Optional[StripeClient] = Depends(get_payment_gateway),
) -> RemoteInvoicePageResponse:
    return RemoteInvoicePageResponse.model_validate(list_remote_invoices(gateway, cursor, refresh))


# Tasks and tags ------------------------------------------------------------


@app.get("/tasks", response_model=list[TaskResponse])
def tasks_list(project_id: Optional[int] = None, db: Session = Depends(get_db)) -> list[TaskResponse]:
    return list_tasks(db, project_id)


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def tasks_create(payload: TaskCreateRequest, db: Session = Depends(get_db)) -> TaskResponse:
    return create_task(db, payload.project_id, payload.title, payload.description, payload.priority, payload.due_date)


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
def tasks_update(task_id: int, payload: TaskUpdateRequest, db: Session = Depends(get_db)) -> TaskResponse:
    return update_task(db, task_id, payload.model_dump(exclude_unset=True))


@app.post("/tasks/{task_id}/toggle", response_model=TaskResponse)
def tasks_toggle(task_id: int, db: Session = Depends(get_db)) -> TaskResponse:
    return toggle_task_status(db, task_id)


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def tasks_delete(task_id: int, db: Session = Depends(get_db)) -> Response:
    delete_task(db, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/tasks/cleanup", response_model=TaskCleanupResponse)
def tasks_cleanup(
    days_old: int = Query(settings.completed_task_retention_days, ge=0),
    db: Session = Depends(get_db),
) -> TaskCleanupResponse:
    return TaskCleanupResponse(removed=cleanup_completed_tasks(db, days_old))


@app.get("/tags", response_model=list[TagResponse])
def tags_list(db: Session = Depends(get_db)) -> list[TagResponse]:
    return list_tags(db)


@app.post("/tags", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
def tags_create(payload: TagCreateRequest, db: Session = Depends(get_db)) -> TagResponse:
    return create_tag(db, payload.name, payload.color)


@app.put("/tasks/{task_id}/tags/{tag_id}", response_model=TaskResponse)
def tasks_add_tag(task_id: int, tag_id: int, db: Session = Depends(get_db)) -> TaskResponse:
    return add_tag_to_task(db, task_id, tag_id)


@app.delete("/tasks/{task_id}/tags/{tag_id}", response_model=TaskResponse)
def tasks_remove_tag(task_id: int, tag_id: int, db: Session = Depends(get_db)) -> TaskResponse:
    return remove_tag_from_task(db, task_id, tag_id)


@app.get("/stats/dashboard", response_model=DashboardStatsResponse)
def stats_dashboard(db: Session = Depends(get_db)) -> DashboardStatsResponse:
    return DashboardStatsResponse(**dashboard_stats(db))


@app.get("/stats/activity", response_model=list[TaskResponse])
def stats_activity(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)) -> list[TaskResponse]:
    return recent_activity(db, limit)


# Database file -------------------------------------------------------------


@app.get("/database/export")
def database_export() -> FileResponse:
    stamp = dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    path = export_database(settings.sqlite_path.parent / "exports" / f"hourbook-{stamp}.db")
    return FileResponse(path, media_type="application/x-sqlite3", filename=path.name)


@app.post("/database/import", response_model=SettingsResponse)
def database_import(payload: DatabaseImportRequest, state: RuntimeState = Depends(get_state)) -> SettingsResponse:
    import_database(payload.path)
    with db_session() as session:
        state.load_from_db(session)
    return SettingsResponse(**state.snapshot())


# Settings ------------------------------------------------------------------


@app.get("/settings", response_model=SettingsResponse)
def settings_get(state: RuntimeState = Depends(get_state)) -> SettingsResponse:
    return SettingsResponse(**state.snapshot())


@app.put("/settings", response_model=SettingsResponse)
def settings_update(
    payload: SettingsUpdateRequest,
    db: Session = Depends(get_db),
    state: RuntimeState = Depends(get_state),
) -> SettingsResponse:
    return SettingsResponse(**update_runtime_settings(db, state, payload.model_dump(exclude_unset=True)))
