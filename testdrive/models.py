"""SQLAlchemy models for test-drive claims."""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Date, DateTime, Enum, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from testdrive.timegrid import Branch, CarModel

ACTIVE_STATUS = "BOOKED"
ACTIVE_CELL_INDEX = "uq_bookings_active_cell"


def _enum_column(enum_cls) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=64,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    pass


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            ACTIVE_CELL_INDEX,
            "branch",
            "date",
            "time_slot",
            "car_model",
            unique=True,
            postgresql_where=text("status = 'BOOKED'"),
            sqlite_where=text("status = 'BOOKED'"),
        ),
        Index("ix_bookings_branch_date", "branch", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    branch: Mapped[Branch] = mapped_column(_enum_column(Branch), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)
    car_model: Mapped[CarModel] = mapped_column(_enum_column(CarModel), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    salesperson: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ACTIVE_STATUS, index=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UnavailabilityBlock(Base):
    __tablename__ = "unavailability_blocks"
    __table_args__ = (Index("ix_unavailability_blocks_cell", "branch", "date", "car_model"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    branch: Mapped[Branch] = mapped_column(_enum_column(Branch), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    car_model: Mapped[CarModel] = mapped_column(_enum_column(CarModel), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ClaimLock(Base):
    """One row per car per branch-day; claim writers update it before checking."""

    __tablename__ = "claim_locks"

    branch: Mapped[Branch] = mapped_column(_enum_column(Branch), primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    car_model: Mapped[CarModel] = mapped_column(_enum_column(CarModel), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
