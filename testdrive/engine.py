"""Conflict-checked claim writes and snapshot reads for test-drive bookings.

Every write runs in its own transaction that first bumps the ``claim_locks``
row for the car's branch-day, then re-reads the competing claims and only
then inserts. Bookings are additionally backed by the partial unique index
``uq_bookings_active_cell``; a violation of it is reported as already booked.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.session import SessionLocal, snapshot_session, with_db_retry
from testdrive.availability import (
    active_booking_query,
    bookings_in_range_query,
    covering_block_query,
    day_blocks_query,
    day_bookings_query,
    resolve_day,
    resolve_slot,
)
from testdrive.errors import ConflictError, ConflictKind, NotFoundError, ValidationError
from testdrive.models import ACTIVE_CELL_INDEX, ACTIVE_STATUS, Booking, ClaimLock, UnavailabilityBlock
from testdrive.rules import RuleCheckResult, RuleEngine
from testdrive.schema import (
    BookedEntry,
    BookingCreateRequest,
    BookingOut,
    CatalogOut,
    DayView,
    PeriodBounds,
    SlotAvailabilityOut,
    SlotView,
    UnavailabilityBlockOut,
    UnavailabilityCreateRequest,
    UnavailableEntry,
)
from testdrive.timegrid import Branch, CarModel, Period, branch_today, get_time_grid

logger = logging.getLogger(__name__)

CANCELLED_STATUS = "CANCELLED"


def _parse(model_cls, payload, label: str):
    if isinstance(payload, model_cls):
        return payload
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {label} payload.",
            details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


def _require(check: RuleCheckResult) -> None:
    if not check.allowed:
        raise ValidationError(check.reason or "Invalid request.")


def _parse_id(raw_id, label: str) -> uuid.UUID:
    if isinstance(raw_id, uuid.UUID):
        return raw_id
    try:
        return uuid.UUID(str(raw_id))
    except ValueError:
        raise NotFoundError(f"{label} not found.", details={"id": str(raw_id)}) from None


def _lock_car_day(db: Session, *, branch: Branch, date: dt.date, car_model: CarModel) -> None:
    """Serialise claim creation for one car on one branch-day until commit."""
    insert = postgresql.insert if db.get_bind().dialect.name == "postgresql" else sqlite.insert
    db.execute(
        insert(ClaimLock)
        .values(branch=branch, date=date, car_model=car_model, version=0)
        .on_conflict_do_nothing(index_elements=["branch", "date", "car_model"])
    )
    db.execute(
        update(ClaimLock)
        .where(
            ClaimLock.branch == branch,
            ClaimLock.date == date,
            ClaimLock.car_model == car_model,
        )
        .values(version=ClaimLock.version + 1)
    )


def _booking_out(booking: Booking) -> BookingOut:
    return BookingOut(
        id=booking.id,
        branch=booking.branch,
        date=booking.date,
        time_slot=booking.time_slot,
        car_model=booking.car_model,
        customer_name=booking.customer_name,
        phone_number=booking.phone_number,
        salesperson=booking.salesperson,
        notes=booking.notes,
        status=booking.status,
        created_by=booking.created_by,
        created_at=booking.created_at,
    )


def _block_out(block: UnavailabilityBlock) -> UnavailabilityBlockOut:
    return UnavailabilityBlockOut(
        id=block.id,
        branch=block.branch,
        date=block.date,
        car_model=block.car_model,
        start_time=block.start_time,
        end_time=block.end_time,
        reason=block.reason,
        created_by=block.created_by,
        created_at=block.created_at,
    )


_ACTIVE_CELL_COLUMNS = ("branch", "date", "time_slot", "car_model")


def is_active_cell_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` comes from ``uq_bookings_active_cell`` and no other constraint."""
    orig = exc.orig
    constraint_name = getattr(getattr(orig, "diag", None), "constraint_name", None)
    if constraint_name:
        return constraint_name == ACTIVE_CELL_INDEX
    # SQLite names the columns rather than the index.
    columns = ", ".join(f"bookings.{column}" for column in _ACTIVE_CELL_COLUMNS)
    return f"unique constraint failed: {columns}" in str(orig).lower()


def _already_booked(request: BookingCreateRequest) -> ConflictError:
    return ConflictError(
        ConflictKind.ALREADY_BOOKED,
        f"{request.car_model.value} is already booked at {request.time_slot} on {request.date.isoformat()}.",
        details={"time_slot": request.time_slot, "car_model": request.car_model.value},
    )


def _insert_booking(request: BookingCreateRequest, actor: str) -> BookingOut:
    with SessionLocal() as db:
        try:
            with db.begin():
                _lock_car_day(db, branch=request.branch, date=request.date, car_model=request.car_model)

                existing = db.scalar(
                    active_booking_query(
                        branch=request.branch,
                        date=request.date,
                        time_slot=request.time_slot,
                        car_model=request.car_model,
                    )
                )
                if existing:
                    raise _already_booked(request)

                block = db.scalar(
                    covering_block_query(
                        branch=request.branch,
                        date=request.date,
                        time_slot=request.time_slot,
                        car_model=request.car_model,
                    )
                )
                if block:
                    reason = f" ({block.reason})" if block.reason else ""
                    raise ConflictError(
                        ConflictKind.CAR_UNAVAILABLE,
                        f"{request.car_model.value} is unavailable from {block.start_time} "
                        f"to {block.end_time} on {request.date.isoformat()}{reason}.",
                        details={
                            "block_id": str(block.id),
                            "start_time": block.start_time,
                            "end_time": block.end_time,
                            "reason": block.reason,
                        },
                    )

                booking = Booking(
                    branch=request.branch,
                    date=request.date,
                    time_slot=request.time_slot,
                    car_model=request.car_model,
                    customer_name=request.customer_name,
                    phone_number=request.phone_number,
                    salesperson=request.salesperson,
                    notes=request.notes,
                    status=ACTIVE_STATUS,
                    created_by=actor,
                )
                db.add(booking)
                db.flush()
                return _booking_out(booking)
        except IntegrityError as exc:
            if not is_active_cell_violation(exc):
                raise
            raise _already_booked(request) from exc


def create_booking(payload: BookingCreateRequest | dict[str, Any], *, actor: str) -> BookingOut:
    request = _parse(BookingCreateRequest, payload, "booking")
    grid = get_time_grid()
    _require(RuleEngine.check_car_model(request.car_model))
    _require(RuleEngine.check_time_slot(request.time_slot, grid))

    try:
        booking = with_db_retry("create_booking", lambda: _insert_booking(request, actor))
    except ConflictError as exc:
        logger.info("Booking rejected: %s", exc.message, extra={"event": "booking_conflict", "code": exc.code})
        raise

    logger.info(
        "Booking %s created for %s %s %s at %s by %s",
        booking.id,
        booking.branch.value,
        booking.car_model.value,
        booking.date.isoformat(),
        booking.time_slot,
        actor,
    )
    return booking


def _insert_block(request: UnavailabilityCreateRequest, start_time: str, end_time: str, actor: str) -> UnavailabilityBlockOut:
    with SessionLocal() as db:
        with db.begin():
            _lock_car_day(db, branch=request.branch, date=request.date, car_model=request.car_model)

            booking = db.scalar(
                bookings_in_range_query(
                    branch=request.branch,
                    date=request.date,
                    car_model=request.car_model,
                    start_time=start_time,
                    end_time=end_time,
                )
            )
            if booking:
                raise ConflictError(
                    ConflictKind.BOOKING_EXISTS_IN_RANGE,
                    f"{request.car_model.value} has a test drive booked at {booking.time_slot} "
                    f"on {request.date.isoformat()}; cancel it before marking the car unavailable.",
                    details={
                        "booking_id": str(booking.id),
                        "time_slot": booking.time_slot,
                        "customer_name": booking.customer_name,
                    },
                )

            block = UnavailabilityBlock(
                branch=request.branch,
                date=request.date,
                car_model=request.car_model,
                start_time=start_time,
                end_time=end_time,
                reason=request.reason,
                created_by=actor,
            )
            db.add(block)
            db.flush()
            return _block_out(block)


def create_unavailability_block(
    payload: UnavailabilityCreateRequest | dict[str, Any],
    *,
    actor: str,
) -> UnavailabilityBlockOut:
    request = _parse(UnavailabilityCreateRequest, payload, "unavailability")
    grid = get_time_grid()
    _require(RuleEngine.check_car_model(request.car_model))
    bounds, period_check = RuleEngine.resolve_period(request.period, grid)
    _require(period_check)
    start_time, end_time = bounds

    try:
        block = with_db_retry(
            "create_unavailability_block",
            lambda: _insert_block(request, start_time, end_time, actor),
        )
    except ConflictError as exc:
        logger.info("Unavailability rejected: %s", exc.message, extra={"event": "block_conflict", "code": exc.code})
        raise

    logger.info(
        "Unavailability %s created for %s %s %s %s-%s by %s",
        block.id,
        block.branch.value,
        block.car_model.value,
        block.date.isoformat(),
        block.start_time,
        block.end_time,
        actor,
    )
    return block


def _cancel_booking(booking_id: uuid.UUID, actor: str) -> None:
    with SessionLocal() as db:
        with db.begin():
            booking = db.scalar(select(Booking).where(Booking.id == booking_id).with_for_update())
            if not booking or booking.status != ACTIVE_STATUS:
                raise NotFoundError("Booking not found.", details={"id": str(booking_id)})

            booking.status = CANCELLED_STATUS
            booking.cancelled_by = actor
            booking.cancelled_at = dt.datetime.now(dt.timezone.utc)


def delete_booking(booking_id, *, actor: str) -> None:
    parsed_id = _parse_id(booking_id, "Booking")
    with_db_retry("delete_booking", lambda: _cancel_booking(parsed_id, actor))
    logger.info("Booking %s cancelled by %s", parsed_id, actor)


def _remove_block(block_id: uuid.UUID) -> None:
    with SessionLocal() as db:
        with db.begin():
            block = db.scalar(select(UnavailabilityBlock).where(UnavailabilityBlock.id == block_id).with_for_update())
            if not block:
                raise NotFoundError("Unavailability block not found.", details={"id": str(block_id)})
            db.delete(block)


def delete_unavailability_block(block_id, *, actor: str) -> None:
    parsed_id = _parse_id(block_id, "Unavailability block")
    with_db_retry("delete_unavailability_block", lambda: _remove_block(parsed_id))
    logger.info("Unavailability %s deleted by %s", parsed_id, actor)


def _read_day(branch: Branch, date: dt.date) -> tuple[list[Booking], list[UnavailabilityBlock]]:
    with snapshot_session() as db:
        bookings = list(db.scalars(day_bookings_query(branch=branch, date=date)))
        blocks = list(db.scalars(day_blocks_query(branch=branch, date=date)))
        db.expunge_all()
        return bookings, blocks


def _ordered(models) -> list[CarModel]:
    return [model for model in CarModel if model in models]


def get_day_view(branch: Branch, date: dt.date) -> DayView:
    branch = Branch(branch)
    bookings, blocks = with_db_retry("get_day_view", lambda: _read_day(branch, date))
    grid = get_time_grid()
    free = resolve_day(branch, date, bookings, blocks, grid=grid)

    slots: list[SlotView] = []
    for slot in grid.all_slots():
        slots.append(
            SlotView(
                time_slot=slot,
                booked=[
                    BookedEntry(
                        booking_id=booking.id,
                        customer_name=booking.customer_name,
                        phone_number=booking.phone_number,
                        car_model=booking.car_model,
                        salesperson=booking.salesperson,
                        notes=booking.notes,
                    )
                    for booking in bookings
                    if booking.time_slot == slot
                ],
                unavailable=[
                    UnavailableEntry(
                        block_id=block.id,
                        car_model=block.car_model,
                        start_time=block.start_time,
                        end_time=block.end_time,
                        reason=block.reason,
                    )
                    for block in blocks
                    if block.start_time <= slot < block.end_time
                ],
                available=_ordered(free[slot]),
            )
        )
    return DayView(branch=branch, date=date, slots=slots)


def get_slot_availability(branch: Branch, date: dt.date, time_slot: str) -> SlotAvailabilityOut:
    branch = Branch(branch)
    grid = get_time_grid()
    _require(RuleEngine.check_time_slot(time_slot, grid))
    bookings, blocks = with_db_retry("get_slot_availability", lambda: _read_day(branch, date))
    available = resolve_slot(branch, date, time_slot, bookings, blocks, grid=grid)
    return SlotAvailabilityOut(branch=branch, date=date, time_slot=time_slot, available=_ordered(available))


def list_bookings(branch: Branch, date: dt.date | None = None) -> list[BookingOut]:
    stmt = (
        select(Booking)
        .where(Booking.branch == Branch(branch), Booking.status == ACTIVE_STATUS)
        .order_by(Booking.date.asc(), Booking.time_slot.asc(), Booking.car_model.asc())
    )
    if date is not None:
        stmt = stmt.where(Booking.date == date)

    def _read() -> list[BookingOut]:
        with snapshot_session() as db:
            return [_booking_out(booking) for booking in db.scalars(stmt)]

    return with_db_retry("list_bookings", _read)


def list_unavailability(branch: Branch, from_date: dt.date | None = None) -> list[UnavailabilityBlockOut]:
    """Blocks on or after ``from_date``, which defaults to today in ``BRANCH_TIMEZONE``."""
    from_date = from_date or branch_today()
    stmt = (
        select(UnavailabilityBlock)
        .where(UnavailabilityBlock.branch == Branch(branch), UnavailabilityBlock.date >= from_date)
        .order_by(
            UnavailabilityBlock.date.asc(),
            UnavailabilityBlock.start_time.asc(),
            UnavailabilityBlock.car_model.asc(),
        )
    )

    def _read() -> list[UnavailabilityBlockOut]:
        with snapshot_session() as db:
            return [_block_out(block) for block in db.scalars(stmt)]

    return with_db_retry("list_unavailability", _read)


def get_catalog() -> CatalogOut:
    grid = get_time_grid()
    periods: list[PeriodBounds] = []
    for period in Period:
        start_time, end_time = grid.period_bounds(period)
        periods.append(PeriodBounds(period=period, start_time=start_time, end_time=end_time))

    return CatalogOut(
        branches=list(Branch),
        car_models=list(CarModel),
        time_slots=list(grid.all_slots()),
        slot_length_minutes=grid.slot_length_minutes,
        periods=periods,
    )
