"""Pydantic schemas for booking, unavailability and read flows."""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from testdrive.timegrid import Branch, CarModel, Period


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class BookingCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    branch: Branch
    date: dt.date
    time_slot: str = Field(pattern=r"^\d{2}:\d{2}$")
    car_model: CarModel
    customer_name: str = Field(min_length=1, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=32)
    salesperson: str = Field(min_length=1, max_length=255)
    notes: Optional[str] = None

    @field_validator("phone_number", "notes")
    @classmethod
    def normalize_optional(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class UnavailabilityCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    branch: Branch
    date: dt.date
    car_model: CarModel
    period: Period
    reason: Optional[str] = None

    @field_validator("reason")
    @classmethod
    def normalize_reason(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class BookingOut(BaseModel):
    id: uuid.UUID
    branch: Branch
    date: dt.date
    time_slot: str
    car_model: CarModel
    customer_name: str
    phone_number: Optional[str] = None
    salesperson: str
    notes: Optional[str] = None
    status: str
    created_by: str
    created_at: Optional[dt.datetime] = None


class UnavailabilityBlockOut(BaseModel):
    id: uuid.UUID
    branch: Branch
    date: dt.date
    car_model: CarModel
    start_time: str
    end_time: str
    reason: Optional[str] = None
    created_by: str
    created_at: Optional[dt.datetime] = None


class BookedEntry(BaseModel):
    booking_id: uuid.UUID
    customer_name: str
    phone_number: Optional[str] = None
    car_model: CarModel
    salesperson: str
    notes: Optional[str] = None


class UnavailableEntry(BaseModel):
    block_id: uuid.UUID
    car_model: CarModel
    start_time: str
    end_time: str
    reason: Optional[str] = None


class SlotView(BaseModel):
    time_slot: str
    booked: list[BookedEntry]
    unavailable: list[UnavailableEntry]
    available: list[CarModel]


class DayView(BaseModel):
    branch: Branch
    date: dt.date
    slots: list[SlotView]


class SlotAvailabilityOut(BaseModel):
    branch: Branch
    date: dt.date
    time_slot: str
    available: list[CarModel]


class PeriodBounds(BaseModel):
    period: Period
    start_time: str
    end_time: str


class CatalogOut(BaseModel):
    branches: list[Branch]
    car_models: list[CarModel]
    time_slots: list[str]
    slot_length_minutes: int
    periods: list[PeriodBounds]
