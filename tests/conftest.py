"""Shared test fixtures: a throwaway SQLite database recreated for every test."""

import datetime as dt
import os
import tempfile

_DB_PATH = os.path.join(tempfile.gettempdir(), f"testdrive-tests-{os.getpid()}.db")

os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["TESTDRIVE_API_KEY"] = "test-api-key"
os.environ["DB_RETRY_BACKOFF_SECONDS"] = "0.01"

import pytest  # noqa: E402

from db.session import engine  # noqa: E402
from testdrive.models import Base  # noqa: E402
from testdrive.timegrid import Branch, CarModel  # noqa: E402

DAY = dt.date(2024, 7, 29)


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()


def booking_payload(**overrides) -> dict:
    payload = {
        "branch": Branch.MAHASARAKHAM.value,
        "date": DAY.isoformat(),
        "time_slot": "10:00",
        "car_model": CarModel.DOLPHIN.value,
        "customer_name": "Somchai Rakdee",
        "phone_number": "0812345678",
        "salesperson": "Somsri",
        "notes": "Interested in city driving.",
    }
    payload.update(overrides)
    return payload


def block_payload(**overrides) -> dict:
    payload = {
        "branch": Branch.MAHASARAKHAM.value,
        "date": DAY.isoformat(),
        "car_model": CarModel.DOLPHIN.value,
        "period": "morning",
        "reason": "service",
    }
    payload.update(overrides)
    return payload
