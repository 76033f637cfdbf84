from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import (
    Engine,
    create_engine,
    event,
)
from sqlalchemy.orm import (
    Query,
    Session,
    sessionmaker,
)

from ..constants import RowLock


def create_db_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": 30,
        },
    )

    # SQLite has no row locks. Taking the write lock when the transaction
    # starts serializes read-then-write sequences the way FOR UPDATE does.
    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """One transaction: commit on normal exit, rollback on any exception."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()


def apply_row_lock(query: Query, lock: RowLock | None) -> Query:
    """Map a RowLock to FOR SHARE / FOR UPDATE on a legacy Query."""
    if lock is None:
        return query
    # Lock reads must see the latest committed row, not the identity map copy.
    query = query.populate_existing()
    if lock == RowLock.UPDATE:
        return query.with_for_update()
    return query.with_for_update(read=True)
