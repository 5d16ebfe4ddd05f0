"""Tests for transient store error retries and the schema compatibility check."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError

from db.session import engine, is_transient_db_error, validate_db_compatibility, with_db_retry
from testdrive.errors import StoreTransientError


class _PgError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def _operational(message, pgcode=None) -> OperationalError:
    return OperationalError("INSERT INTO bookings ...", {}, _PgError(message, pgcode))


class TestTransientClassification:
    def test_locked_sqlite_database(self):
        assert is_transient_db_error(_operational("database is locked"))

    def test_deadlock_by_sqlstate(self):
        assert is_transient_db_error(_operational("boom", pgcode="40P01"))

    def test_serialization_failure(self):
        assert is_transient_db_error(_operational("could not serialize access due to concurrent update"))

    def test_connection_dropped(self):
        assert is_transient_db_error(_operational("server closed the connection unexpectedly"))

    def test_integrity_error_is_not_transient(self):
        exc = IntegrityError("INSERT", {}, _PgError("duplicate key", pgcode="23505"))
        assert not is_transient_db_error(exc)

    def test_unrelated_operational_error(self):
        assert not is_transient_db_error(_operational("no such table: bookings"))


class TestWithDbRetry:
    def test_returns_first_success(self):
        assert with_db_retry("op", lambda: 42) == 42

    def test_retries_once_then_succeeds(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise _operational("database is locked")
            return "ok"

        assert with_db_retry("op", flaky) == "ok"
        assert len(calls) == 2

    def test_gives_up_after_one_retry(self):
        calls = []

        def down():
            calls.append(1)
            raise _operational("server closed the connection unexpectedly")

        with pytest.raises(StoreTransientError) as exc_info:
            with_db_retry("create_booking", down)
        assert len(calls) == 2
        assert exc_info.value.code == "STORE_UNAVAILABLE"
        assert exc_info.value.details == {"operation": "create_booking"}
        assert isinstance(exc_info.value.__cause__, OperationalError)

    def test_non_transient_errors_propagate_immediately(self):
        calls = []

        def broken():
            calls.append(1)
            raise _operational("no such table: bookings")

        with pytest.raises(OperationalError):
            with_db_retry("op", broken)
        assert len(calls) == 1


class TestCompatibility:
    def test_schema_passes(self):
        validate_db_compatibility()

    def test_missing_table_reported(self):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE claim_locks"))
        with pytest.raises(RuntimeError, match="claim_locks"):
            validate_db_compatibility()
