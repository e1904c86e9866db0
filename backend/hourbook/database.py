from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator, Union

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings

# SQLite serialises writers itself; wait for a competing writer (a second
# terminal session, the menu bar helper) instead of failing immediately.
SQLITE_BUSY_TIMEOUT_SECONDS = 15


def create_sqlite_engine(path: Union[str, Path], timeout: float = SQLITE_BUSY_TIMEOUT_SECONDS) -> Engine:
    """Engine whose transactions start with ``BEGIN IMMEDIATE``.

    pysqlite defers its own BEGIN until the first write, so a read followed
    by a write in one transaction is not isolated from another writer. Here
    the driver's transaction handling is switched off and every transaction
    takes the write lock up front. SAVEPOINTs work as documented as a side
    effect.
    """
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": timeout},
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = create_sqlite_engine(settings.sqlite_path)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db(bind: Engine = engine) -> None:
    from .models import Base

    Base.metadata.create_all(bind=bind)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block as one unit, or nothing."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
