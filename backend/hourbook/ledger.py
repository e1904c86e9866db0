from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .database import atomic
from .models import TimeEntry

logger = logging.getLogger(__name__)

AUTO_STOP_DESCRIPTION = "auto-stopped"


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class TimerLedger:
    """Keeps at most one running time entry in the store.

    Idle means no entry without ``end_time``; Running means exactly one.
    Whether the project may be tracked at all (archived, deleted) is decided
    by the caller. The store backs the rule with a partial unique index, and
    transactions take the SQLite write lock before the first read, so two
    sessions cannot both see Idle.
    """

    def __init__(self, db: Session, now: Callable[[], dt.datetime] = _now) -> None:
        self.db = db
        self._now = now

    def running(self) -> Optional[TimeEntry]:
        return (
            self.db.query(TimeEntry)
            .filter(TimeEntry.end_time.is_(None))
            .order_by(TimeEntry.start_time.desc())
            .first()
        )

    def start(self, project_id: int) -> TimeEntry:
        now = self._now()
        try:
            with atomic(self.db):
                for open_entry in self.db.query(TimeEntry).filter(TimeEntry.end_time.is_(None)).all():
                    logger.info("Auto-stopping time entry %s before starting project %s", open_entry.id, project_id)
                    open_entry.mark_stopped(now, AUTO_STOP_DESCRIPTION)
                # the running-entry index must see the stop before the insert
                self.db.flush()
                entry = TimeEntry(project_id=project_id, start_time=now)
                self.db.add(entry)
        except IntegrityError as exc:
            logger.warning("Concurrent timer start rejected for project %s", project_id)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Another timer was started at the same time",
            ) from exc
        self.db.refresh(entry)
        return entry

    def stop(self, entry_id: int, description: Optional[str] = None) -> TimeEntry:
        current = self.running()
        if current is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No timer is running")
        if current.id != entry_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Time entry {entry_id} is not the running timer",
            )
        with atomic(self.db):
            current.mark_stopped(self._now(), description)
        self.db.refresh(current)
        return current
