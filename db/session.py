from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from testdrive.errors import StoreTransientError
from testdrive.models import ACTIVE_CELL_INDEX, Base

logger = logging.getLogger(__name__)

settings = get_settings()

SUPPORTED_DIALECTS = {"postgresql", "sqlite"}


def _enable_sqlite_transactions(sqlite_engine: Engine) -> None:
    # pysqlite only emits BEGIN before DML; take over so reads share one transaction.
    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        # WAL keeps a reader's snapshot stable while writers commit.
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            pool_pre_ping=True,
        )
        _enable_sqlite_transactions(sqlite_engine)
        return sqlite_engine
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


@contextmanager
def snapshot_session() -> Iterator[Session]:
    """Session whose reads inside one ``begin()`` block share a single snapshot.

    PostgreSQL runs the block at REPEATABLE READ; SQLite gets the same guarantee
    from the explicit ``BEGIN`` and WAL journal set up in ``build_engine``.
    """
    with SessionLocal() as db:
        with db.begin():
            if db.get_bind().dialect.name == "postgresql":
                db.connection(execution_options={"isolation_level": "REPEATABLE READ"})
            yield db


def init_db() -> None:
    """Bootstrap schema for environments without migrations."""
    Base.metadata.create_all(bind=engine)


def validate_db_compatibility() -> None:
    if engine.dialect.name not in SUPPORTED_DIALECTS:
        raise RuntimeError(
            f"Unsupported database dialect '{engine.dialect.name}'. "
            f"Use one of: {', '.join(sorted(SUPPORTED_DIALECTS))}."
        )

    required_tables = {"bookings", "unavailability_blocks", "claim_locks"}
    required_columns = {
        "bookings": {"branch", "date", "time_slot", "car_model", "status"},
        "unavailability_blocks": {"branch", "date", "car_model", "start_time", "end_time"},
    }

    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    missing_tables = sorted(required_tables - existing_tables)

    missing_column_msgs: list[str] = []
    for table_name, columns in required_columns.items():
        if table_name not in existing_tables:
            continue
        existing_columns = {col["name"] for col in inspector.get_columns(table_name)}
        missing_columns = sorted(columns - existing_columns)
        if missing_columns:
            missing_column_msgs.append(f"{table_name}: {', '.join(missing_columns)}")

    if "bookings" in existing_tables:
        index_names = {index["name"] for index in inspector.get_indexes("bookings")}
        if ACTIVE_CELL_INDEX not in index_names:
            missing_column_msgs.append(f"bookings: {ACTIVE_CELL_INDEX} index")

    if not missing_tables and not missing_column_msgs:
        return

    details: list[str] = []
    if missing_tables:
        details.append(f"missing tables [{', '.join(missing_tables)}]")
    if missing_column_msgs:
        details.append(f"missing columns [{'; '.join(missing_column_msgs)}]")

    raise RuntimeError(
        "Database compatibility check failed: "
        + "; ".join(details)
        + ". Apply required migrations before starting the API."
    )


T = TypeVar("T")

# deadlock, serialization failure, admin shutdown, connection failures
_TRANSIENT_SQLSTATES = {"40001", "40P01", "57P01", "08000", "08001", "08003", "08006"}
_TRANSIENT_ERROR_SNIPPETS = (
    "server closed the connection",
    "ssl connection has been closed unexpectedly",
    "could not serialize access",
    "deadlock detected",
    "database is locked",
    "connection refused",
    "timeout expired",
)


def is_transient_db_error(exc: DBAPIError) -> bool:
    if exc.connection_invalidated:
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc).lower()
    return any(snippet in message for snippet in _TRANSIENT_ERROR_SNIPPETS)


def _retry_delay(attempt: int) -> float:
    base = settings.db_retry_backoff_seconds * (2 ** (attempt - 1))
    return base + random.uniform(0, base / 2)


def with_db_retry(op_name: str, func: Callable[[], T], *, max_attempts: int = 2) -> T:
    """Run ``func``, retrying transient store failures before giving up."""
    attempt = 1
    while True:
        try:
            return func()
        except DBAPIError as exc:
            if not is_transient_db_error(exc):
                raise
            if attempt >= max_attempts:
                logger.error(
                    "Transient DB failure persisted, giving up",
                    extra={"event": "db_retry_exhausted", "op": op_name, "attempts": attempt},
                )
                raise StoreTransientError(
                    "The booking store is temporarily unavailable. Please retry later.",
                    details={"operation": op_name},
                ) from exc

            delay = _retry_delay(attempt)
            logger.warning(
                "Transient DB failure detected, retrying",
                extra={
                    "event": "db_retry",
                    "op": op_name,
                    "attempt": attempt,
                    "delay": delay,
                    "error": str(exc),
                },
            )
            time.sleep(delay)
            attempt += 1
