"""Bookable time slots, the fleet catalog and the half-day policy table."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from zoneinfo import ZoneInfo

from config import get_settings


class CarModel(str, Enum):
    SEAL_DYNAMIC = "BYD Seal Dynamic"
    SEAL_PERFORMANCE = "BYD Seal Performance"
    ATTO3 = "BYD Atto 3"
    DOLPHIN = "BYD Dolphin"
    SEALION6 = "BYD Sealion 6 DM-i"
    SEALION7 = "BYD Sealion 7"
    SEAL5 = "BYD Seal 5 DM-i"
    M6 = "BYD M6"


class Branch(str, Enum):
    MAHASARAKHAM = "มหาสารคาม"
    KALASIN = "กาฬสินธุ์"


class Period(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    ALL_DAY = "all-day"


def parse_hhmm(value: str) -> int:
    """Return minutes since midnight for a zero-padded ``HH:MM`` string."""
    if len(value) != 5 or value[2] != ":" or not (value[:2] + value[3:]).isdigit():
        raise ValueError(f"Time must be zero-padded HH:MM, got {value!r}.")
    hours, minutes = int(value[:2]), int(value[3:])
    if hours > 23 or minutes > 59:
        raise ValueError(f"Time out of range: {value!r}.")
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class TimeGrid:
    day_start: str = "08:00"
    midday: str = "13:00"
    day_end: str = "17:00"
    slot_length_minutes: int = 30

    def __post_init__(self):
        start = parse_hhmm(self.day_start)
        midday = parse_hhmm(self.midday)
        end = parse_hhmm(self.day_end)
        if self.slot_length_minutes < 1:
            raise ValueError("slot_length_minutes must be positive.")
        if not start < midday < end:
            raise ValueError("Business hours must satisfy day_start < midday < day_end.")
        if (end - start) % self.slot_length_minutes or (midday - start) % self.slot_length_minutes:
            raise ValueError(
                f"Business hours must align with {self.slot_length_minutes}-minute slot boundaries."
            )

    def all_slots(self) -> tuple[str, ...]:
        start = parse_hhmm(self.day_start)
        end = parse_hhmm(self.day_end)
        return tuple(format_hhmm(minute) for minute in range(start, end, self.slot_length_minutes))

    def all_car_models(self) -> frozenset[CarModel]:
        return frozenset(CarModel)

    def contains(self, slot: str) -> bool:
        return slot in self.all_slots()

    def period_bounds(self, period: Period) -> tuple[str, str]:
        """Half-open ``[start, end)`` wall-clock range a period withholds a car for."""
        period = Period(period)
        if period is Period.MORNING:
            return self.day_start, self.midday
        if period is Period.AFTERNOON:
            return self.midday, self.day_end
        return self.day_start, self.day_end

    def slots_in(self, period: Period) -> tuple[str, ...]:
        start, end = self.period_bounds(period)
        return tuple(slot for slot in self.all_slots() if start <= slot < end)


@lru_cache
def get_time_grid() -> TimeGrid:
    settings = get_settings()
    return TimeGrid(
        day_start=settings.business_day_start,
        midday=settings.business_midday,
        day_end=settings.business_day_end,
        slot_length_minutes=settings.slot_length_minutes,
    )


@lru_cache
def branch_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().branch_timezone)


def branch_today() -> dt.date:
    """Current calendar date at the branches, independent of the server's zone."""
    return dt.datetime.now(branch_timezone()).date()
