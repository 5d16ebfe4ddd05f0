from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_url: str
    api_key: str
    log_level: str
    business_day_start: str
    business_midday: str
    business_day_end: str
    slot_length_minutes: int
    db_pool_size: int
    db_retry_backoff_seconds: float
    branch_timezone: str


def _clean(value: str) -> str:
    return value.strip().strip('"').strip("'")


def _get_required_env(name: str) -> str:
    value = _clean(os.getenv(name, ""))
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _get_env(name: str, default: str) -> str:
    return _clean(os.getenv(name, "")) or default


def _get_int_env(name: str, default: int) -> int:
    raw = _get_env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid integer for {name}: {raw!r}") from None


def _get_float_env(name: str, default: float) -> float:
    raw = _get_env(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Invalid float for {name}: {raw!r}") from None


@lru_cache
def get_settings() -> Settings:
    return Settings(
        app_name="Test Drive Booking API",
        app_version="1.0.0",
        database_url=_get_required_env("DATABASE_URL"),
        api_key=_get_required_env("TESTDRIVE_API_KEY"),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        business_day_start=_get_env("BUSINESS_DAY_START", "08:00"),
        business_midday=_get_env("BUSINESS_MIDDAY", "13:00"),
        business_day_end=_get_env("BUSINESS_DAY_END", "17:00"),
        slot_length_minutes=_get_int_env("SLOT_LENGTH_MINUTES", 30),
        db_pool_size=_get_int_env("DB_POOL_SIZE", 5),
        db_retry_backoff_seconds=_get_float_env("DB_RETRY_BACKOFF_SECONDS", 0.1),
        branch_timezone=_get_env("BRANCH_TIMEZONE", "Asia/Bangkok"),
    )


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
