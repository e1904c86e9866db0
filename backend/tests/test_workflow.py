from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from hourbook import models
from hourbook.main import app, get_payment_gateway

UTC = dt.timezone.utc
DAY = dt.datetime(2024, 3, 5, 9, 0, tzinfo=UTC)


def test_project_and_customer_management(client: TestClient):
    customer = client.post("/customers", json={"name": "Acme", "email": "billing@acme.test"})
    assert customer.status_code == 201
    customer_id = customer.json()["id"]

    created = client.post("/projects", json={"name": "Website", "hourly_rate": 50, "color": "nope"})
    assert created.status_code == 201
    project = created.json()
    assert project["color"].startswith("#")
    assert project["customer"] is None

    linked = client.put(f"/projects/{project['id']}/customer", json={"customer_id": customer_id})
    assert linked.status_code == 200
    assert linked.json()["customer"]["email"] == "billing@acme.test"

    assert client.post("/projects", json={"name": "  "}).status_code == 400
    assert client.post("/projects", json={"name": "Bad", "hourly_rate": -1}).status_code == 400

    archived = client.post(f"/projects/{project['id']}/archive")
    assert archived.json()["archived"] is True
    assert client.get("/projects").json() == []
    assert len(client.get("/projects", params={"include_archived": True}).json()) == 1

    blocked = client.post("/timer/start", json={"project_id": project["id"]})
    assert blocked.status_code == 400

    client.post(f"/projects/{project['id']}/unarchive")
    assert client.delete(f"/customers/{customer_id}").status_code == 204
    assert client.get("/projects").json()[0]["customer"] is None


def test_timer_flow_keeps_one_running_entry(client: TestClient, make_project):
    first = make_project("Alpha")
    second = make_project("Beta")

    assert client.get("/timer").json() is None
    a = client.post("/timer/start", json={"project_id": first.id})
    assert a.status_code == 201
    assert a.json()["end_time"] is None

    b = client.post("/timer/start", json={"project_id": second.id}).json()
    assert client.get("/timer").json()["id"] == b["id"]

    recent = client.get("/entries/recent").json()
    assert [entry["id"] for entry in recent] == [a.json()["id"]]
    assert recent[0]["description"] == "auto-stopped"

    stale = client.post("/timer/stop", json={"entry_id": a.json()["id"]})
    assert stale.status_code == 409

    assert client.delete(f"/projects/{second.id}").status_code == 400

    stopped = client.post("/timer/stop", json={"entry_id": b["id"], "description": "  Call  "})
    assert stopped.status_code == 200
    assert stopped.json()["description"] == "Call"
    assert client.get("/timer").json() is None
    assert client.post("/timer/stop", json={"entry_id": b["id"]}).status_code == 409


def test_timer_start_unknown_project(client: TestClient):
    assert client.post("/timer/start", json={"project_id": 999}).status_code == 404


def test_edit_entry_in_configured_zone(client: TestClient, state, make_project, make_entry):
    state.timezone = "Asia/Tokyo"
    project = make_project()
    entry = make_entry(project, DAY, DAY + dt.timedelta(hours=1))

    view = client.get(f"/entries/{entry.id}/edit").json()
    assert view == {"start": "2024-03-05 18:00", "end": "2024-03-05 19:00"}

    updated = client.patch(
        f"/entries/{entry.id}",
        json={"start": "2024-05-01 09:00", "end": "2024-05-01 10:30", "description": "Retro"},
    )
    assert updated.status_code == 200
    body = updated.json()
    assert body["start_time"] == "2024-05-01T00:00:00+00:00"
    assert body["end_time"] == "2024-05-01T01:30:00+00:00"
    assert body["duration_ms"] == 90 * 60_000
    assert body["description"] == "Retro"


def test_edit_entry_validation(client: TestClient, make_project, make_entry):
    project = make_project()
    entry = make_entry(project, DAY, DAY + dt.timedelta(hours=1))
    running = make_entry(project, DAY + dt.timedelta(hours=2))

    backwards = client.patch(f"/entries/{entry.id}", json={"start": "2024-03-05 12:00", "end": "2024-03-05 11:00"})
    assert backwards.status_code == 400
    assert client.patch(f"/entries/{entry.id}", json={"start": "yesterday"}).status_code == 400
    assert client.patch(f"/entries/{entry.id}", json={"start": "2024-02-30 10:00"}).status_code == 400
    assert client.patch(f"/entries/{running.id}", json={"description": "x"}).status_code == 400
    assert client.delete(f"/entries/{running.id}").status_code == 400
    assert client.delete(f"/entries/{entry.id}").status_code == 204
    assert client.delete(f"/entries/{entry.id}").status_code == 404


def test_timesheets_and_invoice_creation(client: TestClient, session: Session, gateway, make_customer, make_project, make_entry):
    customer = make_customer()
    project = make_project("Website", 50.0, customer)
    internal = make_project("Internal")
    design = make_entry(project, DAY, DAY + dt.timedelta(hours=2), "Design")
    review = make_entry(project, DAY + dt.timedelta(days=1), DAY + dt.timedelta(days=1, minutes=15), "Review")
    make_entry(internal, DAY, DAY + dt.timedelta(hours=3))

    sheets = client.get("/timesheets").json()
    assert [sheet["project"]["name"] for sheet in sheets] == ["Website"]
    assert sheets[0]["total_amount"] == 112.5
    assert sheets[0]["total_hours"] == 2.25

    created = client.post("/invoices", json={"project_id": project.id})
    assert created.status_code == 201
    invoice = created.json()
    assert invoice["total_amount"] == 112.5
    assert invoice["total_hours"] == 2.25
    assert invoice["external_id"] == "in_fake_1"

    _, project_name, line_items = gateway.invoices[0]
    assert project_name == "Website"
    assert sorted(item.amount_minor_units for item in line_items) == [1250, 10000]

    session.expire_all()
    assert session.get(models.TimeEntry, design.id).invoice_id == invoice["id"]
    assert session.get(models.TimeEntry, review.id).invoice_id == invoice["id"]
    assert session.get(models.Customer, customer.id).external_id == "cus_fake"
    assert client.get("/timesheets").json() == []
    assert [item["id"] for item in client.get("/invoices").json()] == [invoice["id"]]

    again = client.post("/invoices", json={"project_id": project.id})
    assert again.status_code == 400


def test_invoice_for_selected_entries(client: TestClient, session: Session, make_customer, make_project, make_entry):
    project = make_project("Website", 60.0, make_customer())
    first = make_entry(project, DAY, DAY + dt.timedelta(hours=1))
    second = make_entry(project, DAY + dt.timedelta(days=1), DAY + dt.timedelta(days=1, hours=1))

    created = client.post("/invoices", json={"project_id": project.id, "entry_ids": [second.id]})
    assert created.status_code == 201
    assert created.json()["total_amount"] == 60.0

    session.expire_all()
    assert session.get(models.TimeEntry, first.id).invoice_id is None

    unknown = client.post("/invoices", json={"project_id": project.id, "entry_ids": [second.id]})
    assert unknown.status_code == 400


def test_payment_failure_leaves_entries_unbilled(client: TestClient, session: Session, gateway, make_customer, make_project, make_entry):
    gateway.fail = True
    customer = make_customer()
    project = make_project("Website", 50.0, customer)
    entry = make_entry(project, DAY, DAY + dt.timedelta(hours=1))

    response = client.post("/invoices", json={"project_id": project.id})
    assert response.status_code == 502
    assert "card declined" in response.json()["detail"]

    session.expire_all()
    assert session.get(models.TimeEntry, entry.id).invoice_id is None
    assert session.get(models.Customer, customer.id).external_id is None
    assert session.query(models.Invoice).count() == 0
    assert len(client.get("/timesheets").json()) == 1


def test_invoice_preconditions(client: TestClient, make_customer, make_project, make_entry):
    orphan = make_project("No customer", 50.0)
    make_entry(orphan, DAY, DAY + dt.timedelta(hours=1))
    assert client.post("/invoices", json={"project_id": orphan.id}).status_code == 400

    project = make_project("Website", 50.0, make_customer())
    make_entry(project, DAY, DAY + dt.timedelta(hours=1))
    app.dependency_overrides[get_payment_gateway] = lambda: None
    assert client.post("/invoices", json={"project_id": project.id}).status_code == 400
    assert client.get("/invoices/remote").status_code == 400


def test_stats_endpoints(client: TestClient, make_project, make_entry):
    project = make_project("Website")
    now = dt.datetime.now(UTC)
    make_entry(project, now - dt.timedelta(hours=2), now - dt.timedelta(hours=1))
    make_entry(project, now - dt.timedelta(minutes=30))

    weekly = client.get("/stats/weekly").json()
    assert len(weekly) == 1
    assert weekly[0]["total_ms"] == 3_600_000
    assert weekly[0]["projects"] == [
        {"project_id": project.id, "project_name": "Website", "project_color": project.color, "ms": 3_600_000}
    ]

    totals = client.get("/stats/time").json()
    assert set(totals) == {"today_ms", "week_ms", "month_ms"}
    assert max(totals.values()) <= 3_600_000

    assert client.get(f"/projects/{project.id}/total").json() == {"project_id": project.id, "total_ms": 3_600_000}


def test_settings_update(client: TestClient, state):
    current = client.get("/settings").json()
    assert current["stripe_api_key_set"] is False
    assert current["effective_timezone"] == "UTC"

    assert client.put("/settings", json={"timezone": "Mars/Base"}).status_code == 400

    updated = client.put(
        "/settings",
        json={"timezone": "Europe/Berlin", "business_name": "Studio", "stripe_api_key": "sk_test_abc"},
    ).json()
    assert updated["timezone"] == "Europe/Berlin"
    assert updated["business_name"] == "Studio"
    assert updated["stripe_api_key_set"] is True

    kept = client.put("/settings", json={"stripe_api_key": "__UNCHANGED__", "timezone": "auto"}).json()
    assert kept["stripe_api_key_set"] is True
    assert kept["timezone"] == "auto"
    assert state.stripe_api_key == "sk_test_abc"
