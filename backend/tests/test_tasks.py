from __future__ import annotations

import datetime as dt

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from hourbook import models
from hourbook.services import (
    cleanup_completed_tasks,
    dashboard_stats,
    list_tasks,
    recent_activity,
    toggle_task_status,
    update_task,
)

UTC = dt.timezone.utc
NOW = dt.datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture()
def make_task(session: Session):
    def factory(project, title, status="todo", priority="medium", created_at=NOW, **fields):
        task = models.Task(
            project_id=project.id,
            title=title,
            status=status,
            priority=priority,
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        session.add(task)
        session.commit()
        return task

    return factory


def test_tasks_are_listed_by_status_then_priority_then_newest(session, make_project, make_task):
    project = make_project()
    make_task(project, "old low", priority="low", created_at=NOW - dt.timedelta(days=2))
    make_task(project, "done urgent", status="done", priority="urgent")
    make_task(project, "new low", priority="low", created_at=NOW - dt.timedelta(days=1))
    make_task(project, "working", status="in_progress", priority="low")
    make_task(project, "todo urgent", priority="urgent")

    titles = [task.title for task in list_tasks(session)]

    assert titles == ["working", "todo urgent", "new low", "old low", "done urgent"]


def test_toggle_cycles_status_and_tracks_completion(session, make_project, make_task):
    task = make_task(make_project(), "Write report")

    assert toggle_task_status(session, task.id, now=NOW).status == "in_progress"
    done = toggle_task_status(session, task.id, now=NOW)
    assert done.status == "done"
    assert models.as_utc(done.completed_at) == NOW

    reopened = toggle_task_status(session, task.id, now=NOW)
    assert reopened.status == "todo"
    assert reopened.completed_at is None


def test_update_rejects_unknown_status_and_priority(session, make_project, make_task):
    task = make_task(make_project(), "Write report")

    with pytest.raises(HTTPException) as bad_status:
        update_task(session, task.id, {"status": "blocked"})
    with pytest.raises(HTTPException) as bad_priority:
        update_task(session, task.id, {"priority": "someday"})

    assert bad_status.value.status_code == 400
    assert bad_priority.value.status_code == 400


def test_cleanup_removes_only_old_completed_tasks(session, make_project, make_task):
    project = make_project()
    make_task(project, "long done", status="done", completed_at=NOW - dt.timedelta(days=4))
    make_task(project, "just done", status="done", completed_at=NOW - dt.timedelta(days=1))
    make_task(project, "open", status="todo")

    assert cleanup_completed_tasks(session, days_old=3, now=NOW) == 1
    assert sorted(task.title for task in list_tasks(session)) == ["just done", "open"]


def test_dashboard_counts_projects_tasks_and_overdue(session, make_project, make_task):
    website = make_project("Website")
    make_project("Old", archived=True)
    today = dt.date(2024, 6, 15)
    make_task(website, "late", due_date=today - dt.timedelta(days=1))
    make_task(website, "late but done", status="done", due_date=today - dt.timedelta(days=1))
    make_task(website, "due today", status="in_progress", due_date=today)

    stats = dashboard_stats(session, today=today)

    assert stats == {
        "total_projects": 2,
        "active_projects": 1,
        "archived_projects": 1,
        "total_tasks": 3,
        "todo_tasks": 1,
        "in_progress_tasks": 1,
        "done_tasks": 1,
        "overdue_tasks": 1,
        "completion_rate": 33,
    }


def test_dashboard_without_tasks_has_zero_completion(session):
    assert dashboard_stats(session, today=dt.date(2024, 6, 15))["completion_rate"] == 0


def test_recent_activity_puts_work_in_progress_first(session, make_project, make_task):
    project = make_project()
    make_task(project, "newest todo", created_at=NOW)
    make_task(project, "older in progress", status="in_progress", created_at=NOW - dt.timedelta(hours=2))
    make_task(project, "middle todo", created_at=NOW - dt.timedelta(hours=1))

    assert [task.title for task in recent_activity(session, limit=2)] == ["older in progress", "newest todo"]


def test_task_and_tag_routes(client: TestClient, make_project):
    project = make_project("Website")

    created = client.post(
        "/tasks",
        json={"project_id": project.id, "title": "  Fix header  ", "priority": "high", "due_date": "2024-06-20"},
    )
    assert created.status_code == 201
    task = created.json()
    assert task["title"] == "Fix header"
    assert task["status"] == "todo"
    assert task["due_date"] == "2024-06-20"
    assert task["project"]["name"] == "Website"
    assert task["created_at"].endswith("+00:00")

    assert client.post("/tasks", json={"project_id": project.id, "title": " "}).status_code == 400
    assert client.post("/tasks", json={"project_id": 9999, "title": "Orphan"}).status_code == 404

    tag = client.post("/tags", json={"name": "frontend", "color": "#AABBCC"})
    assert tag.status_code == 201
    assert tag.json()["color"] == "#aabbcc"
    assert client.post("/tags", json={"name": "frontend"}).status_code == 409

    tagged = client.put(f"/tasks/{task['id']}/tags/{tag.json()['id']}")
    assert [item["name"] for item in tagged.json()["tags"]] == ["frontend"]
    again = client.put(f"/tasks/{task['id']}/tags/{tag.json()['id']}")
    assert len(again.json()["tags"]) == 1

    untagged = client.delete(f"/tasks/{task['id']}/tags/{tag.json()['id']}")
    assert untagged.json()["tags"] == []
    assert client.delete(f"/tasks/{task['id']}/tags/{tag.json()['id']}").status_code == 404

    toggled = client.post(f"/tasks/{task['id']}/toggle")
    assert toggled.json()["status"] == "in_progress"

    patched = client.patch(f"/tasks/{task['id']}", json={"status": "done"})
    assert patched.json()["completed_at"] is not None

    listed = client.get("/tasks", params={"project_id": project.id})
    assert [item["id"] for item in listed.json()] == [task["id"]]

    dashboard = client.get("/stats/dashboard").json()
    assert dashboard["done_tasks"] == 1
    assert dashboard["completion_rate"] == 100

    activity = client.get("/stats/activity").json()
    assert activity[0]["id"] == task["id"]

    assert client.post("/tasks/cleanup", params={"days_old": 0}).json() == {"removed": 1}
    assert client.get("/tasks").json() == []


def test_deleting_a_project_removes_its_tasks(client: TestClient, session: Session, make_project, make_task):
    project = make_project()
    task_id = make_task(project, "Gone with the project").id

    assert client.delete(f"/projects/{project.id}").status_code == 204
    assert session.get(models.Task, task_id) is None
    assert client.delete(f"/tasks/{task_id}").status_code == 404
