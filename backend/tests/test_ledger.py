from __future__ import annotations

import datetime as dt

import pytest
from fastapi import HTTPException

from hourbook import models
from hourbook.ledger import AUTO_STOP_DESCRIPTION, TimerLedger
from hourbook.models import as_utc

UTC = dt.timezone.utc
T0 = dt.datetime(2024, 4, 2, 9, 0, tzinfo=UTC)


class SteppingClock:
    def __init__(self, start: dt.datetime) -> None:
        self.current = start

    def __call__(self) -> dt.datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += dt.timedelta(**kwargs)


def _open_entries(session):
    return session.query(models.TimeEntry).filter(models.TimeEntry.end_time.is_(None)).all()


def test_starting_a_second_timer_stops_the_first(session, make_project):
    first = make_project("Alpha")
    second = make_project("Beta")
    clock = SteppingClock(T0)
    ledger = TimerLedger(session, now=clock)

    a = ledger.start(first.id)
    clock.advance(minutes=45)
    b = ledger.start(second.id)

    session.refresh(a)
    assert as_utc(a.end_time) == T0 + dt.timedelta(minutes=45)
    assert a.description == AUTO_STOP_DESCRIPTION
    assert [entry.id for entry in _open_entries(session)] == [b.id]
    assert ledger.running().id == b.id


def test_stop_closes_the_running_entry(session, make_project):
    project = make_project()
    clock = SteppingClock(T0)
    ledger = TimerLedger(session, now=clock)

    entry = ledger.start(project.id)
    clock.advance(hours=2)
    stopped = ledger.stop(entry.id, "Wireframes")

    assert stopped.description == "Wireframes"
    assert stopped.duration_ms == 2 * 3_600_000
    assert ledger.running() is None


def test_stop_without_description_keeps_existing_one(session, make_project):
    project = make_project()
    ledger = TimerLedger(session, now=lambda: T0)
    entry = ledger.start(project.id)
    entry.description = "Planning"
    session.commit()

    stopped = ledger.stop(entry.id)
    assert stopped.description == "Planning"


def test_stop_when_idle_is_rejected(session):
    ledger = TimerLedger(session, now=lambda: T0)
    with pytest.raises(HTTPException) as exc:
        ledger.stop(1)
    assert exc.value.status_code == 409


def test_stop_with_stale_id_is_rejected(session, make_project):
    project = make_project()
    clock = SteppingClock(T0)
    ledger = TimerLedger(session, now=clock)
    old = ledger.start(project.id)
    clock.advance(minutes=5)
    ledger.start(project.id)

    with pytest.raises(HTTPException) as exc:
        ledger.stop(old.id)
    assert exc.value.status_code == 409
    assert len(_open_entries(session)) == 1
