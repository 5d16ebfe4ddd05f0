"""Availability resolution for car models across the slots of a day."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable

from sqlalchemy import Select, select

from testdrive.models import ACTIVE_STATUS, Booking, UnavailabilityBlock
from testdrive.timegrid import Branch, CarModel, TimeGrid, get_time_grid

logger = logging.getLogger(__name__)


def active_booking_query(*, branch: Branch, date: dt.date, time_slot: str, car_model: CarModel) -> Select:
    return select(Booking).where(
        Booking.branch == branch,
        Booking.date == date,
        Booking.time_slot == time_slot,
        Booking.car_model == car_model,
        Booking.status == ACTIVE_STATUS,
    )


def covering_block_query(*, branch: Branch, date: dt.date, time_slot: str, car_model: CarModel) -> Select:
    return select(UnavailabilityBlock).where(
        UnavailabilityBlock.branch == branch,
        UnavailabilityBlock.date == date,
        UnavailabilityBlock.car_model == car_model,
        UnavailabilityBlock.start_time <= time_slot,
        UnavailabilityBlock.end_time > time_slot,
    )


def bookings_in_range_query(
    *,
    branch: Branch,
    date: dt.date,
    car_model: CarModel,
    start_time: str,
    end_time: str,
) -> Select:
    return (
        select(Booking)
        .where(
            Booking.branch == branch,
            Booking.date == date,
            Booking.car_model == car_model,
            Booking.status == ACTIVE_STATUS,
            Booking.time_slot >= start_time,
            Booking.time_slot < end_time,
        )
        .order_by(Booking.time_slot.asc())
    )


def day_bookings_query(*, branch: Branch, date: dt.date) -> Select:
    return (
        select(Booking)
        .where(
            Booking.branch == branch,
            Booking.date == date,
            Booking.status == ACTIVE_STATUS,
        )
        .order_by(Booking.time_slot.asc(), Booking.car_model.asc())
    )


def day_blocks_query(*, branch: Branch, date: dt.date) -> Select:
    return (
        select(UnavailabilityBlock)
        .where(
            UnavailabilityBlock.branch == branch,
            UnavailabilityBlock.date == date,
        )
        .order_by(UnavailabilityBlock.start_time.asc(), UnavailabilityBlock.car_model.asc())
    )


def block_covers(block, slot: str) -> bool:
    return block.start_time <= slot < block.end_time


def _same_day(row, branch: Branch, date: dt.date) -> bool:
    return row.branch == branch and row.date == date


def _is_active(booking) -> bool:
    return getattr(booking, "status", ACTIVE_STATUS) == ACTIVE_STATUS


def resolve_day(
    branch: Branch,
    date: dt.date,
    bookings: Iterable,
    blocks: Iterable,
    grid: TimeGrid | None = None,
) -> dict[str, set[CarModel]]:
    """Map every slot of the day to the car models still free in it.

    ``bookings`` and ``blocks`` should already be filtered to ``(branch, date)``
    from one consistent read; stray rows and cancelled bookings are ignored.
    """
    grid = grid or get_time_grid()
    slots = grid.all_slots()
    free = {slot: set(grid.all_car_models()) for slot in slots}

    for booking in bookings:
        if not _same_day(booking, branch, date) or not _is_active(booking):
            continue
        if booking.time_slot in free:
            free[booking.time_slot].discard(CarModel(booking.car_model))

    for block in blocks:
        if not _same_day(block, branch, date):
            continue
        for slot in slots:
            if block_covers(block, slot):
                free[slot].discard(CarModel(block.car_model))

    return free


def resolve_slot(
    branch: Branch,
    date: dt.date,
    slot: str,
    bookings: Iterable,
    blocks: Iterable,
    grid: TimeGrid | None = None,
) -> set[CarModel]:
    grid = grid or get_time_grid()
    if not grid.contains(slot):
        logger.warning("Availability requested for unknown slot %r", slot)
        return set()
    return resolve_day(branch, date, bookings, blocks, grid=grid)[slot]


def is_car_available(
    branch: Branch,
    date: dt.date,
    slot: str,
    car_model: CarModel,
    bookings: Iterable,
    blocks: Iterable,
    grid: TimeGrid | None = None,
) -> bool:
    grid = grid or get_time_grid()
    if not grid.contains(slot):
        logger.warning("Availability requested for unknown slot %r", slot)
        return False
    try:
        car_model = CarModel(car_model)
    except ValueError:
        logger.warning("Availability requested for unknown car model %r", car_model)
        return False

    for booking in bookings:
        if (
            _same_day(booking, branch, date)
            and _is_active(booking)
            and booking.time_slot == slot
            and CarModel(booking.car_model) is car_model
        ):
            return False

    for block in blocks:
        if _same_day(block, branch, date) and CarModel(block.car_model) is car_model and block_covers(block, slot):
            return False

    return True
