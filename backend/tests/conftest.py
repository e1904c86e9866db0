from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional

_TEST_DIR = tempfile.mkdtemp(prefix="hourbook-tests-")
os.environ["HB_SQLITE_PATH"] = str(Path(_TEST_DIR) / "test.db")
os.environ.pop("HB_STRIPE_API_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from hourbook import models  # noqa: E402
from hourbook.clock import TimezoneClock  # noqa: E402
from hourbook.config import settings  # noqa: E402
from hourbook.database import engine, get_db  # noqa: E402
from hourbook.main import app, get_payment_gateway  # noqa: E402
from hourbook.payments import PaymentError  # noqa: E402
from hourbook.state import RuntimeState  # noqa: E402

UTC = dt.timezone.utc


@pytest.fixture(scope="function")
def session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, autoflush=False, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def state() -> RuntimeState:
    runtime = RuntimeState(settings, clock=TimezoneClock(system_zone="UTC", local_tz=UTC))
    runtime.stripe_api_key = None
    return runtime


class FakeGateway:
    """Records what would have been sent to Stripe."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.customers: List[tuple] = []
        self.invoices: List[tuple] = []

    def ensure_customer(self, name: str, email: str, existing_ref: Optional[str] = None) -> str:
        if self.fail:
            raise PaymentError("Stripe error 402: card declined")
        self.customers.append((name, email, existing_ref))
        return existing_ref or "cus_fake"

    def create_draft_invoice(self, customer_ref, project_name, line_items) -> str:
        self.invoices.append((customer_ref, project_name, list(line_items)))
        return f"in_fake_{len(self.invoices)}"

    def list_invoices(self, cursor=None, *, limit=25, force_refresh=False):
        raise AssertionError("not used")


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(scope="function")
def client(session: Session, state: RuntimeState, gateway: FakeGateway) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield session

    previous_state = app.state.runtime_state
    app.state.runtime_state = state
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.runtime_state = previous_state


@pytest.fixture()
def make_customer(session: Session) -> Callable[..., models.Customer]:
    def factory(name: str = "Acme", email: str = "billing@acme.test") -> models.Customer:
        customer = models.Customer(name=name, email=email)
        session.add(customer)
        session.commit()
        return customer

    return factory


@pytest.fixture()
def make_project(session: Session) -> Callable[..., models.Project]:
    def factory(
        name: str = "Website",
        hourly_rate: Optional[float] = None,
        customer: Optional[models.Customer] = None,
        archived: bool = False,
    ) -> models.Project:
        project = models.Project(
            name=name,
            hourly_rate=hourly_rate,
            customer_id=customer.id if customer else None,
            archived=archived,
        )
        session.add(project)
        session.commit()
        return project

    return factory


@pytest.fixture()
def make_entry(session: Session) -> Callable[..., models.TimeEntry]:
    def factory(
        project: models.Project,
        start: dt.datetime,
        end: Optional[dt.datetime] = None,
        description: Optional[str] = None,
    ) -> models.TimeEntry:
        entry = models.TimeEntry(project_id=project.id, start_time=start, end_time=end, description=description)
        session.add(entry)
        session.commit()
        return entry

    return factory
