from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import settings


def _sqlite_connect_args(url: str) -> dict:
    if url.startswith("sqlite:"):
        # timeout is in seconds for sqlite3.connect(); helps transient lock contention.
        return {"check_same_thread": False, "timeout": 60}
    return {}


def make_engine(url: str) -> Engine:
    eng = create_engine(url, connect_args=_sqlite_connect_args(url), pool_pre_ping=True)

    # SQLite concurrency tuning:
    # - WAL allows concurrent readers while the upstream write path is inserting issues.
    # - busy_timeout makes reads wait a bit instead of failing fast with "database is locked".
    if url.startswith("sqlite:"):
        @event.listens_for(eng, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
            cur = dbapi_connection.cursor()
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA synchronous=NORMAL;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.execute("PRAGMA busy_timeout=60000;")  # ms
            cur.close()

    return eng


def make_session_factory(eng: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=eng, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
