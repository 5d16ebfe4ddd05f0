from __future__ import annotations

import datetime as dt
import hmac
import logging
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import configure_logging, get_settings
from db.session import validate_db_compatibility
from testdrive.engine import (
    create_booking,
    create_unavailability_block,
    delete_booking,
    delete_unavailability_block,
    get_catalog,
    get_day_view,
    get_slot_availability,
    list_bookings,
    list_unavailability,
)
from testdrive.errors import BookingError, ValidationError
from testdrive.schema import (
    BookingCreateRequest,
    BookingOut,
    CatalogOut,
    DayView,
    SlotAvailabilityOut,
    UnavailabilityBlockOut,
    UnavailabilityCreateRequest,
)
from testdrive.timegrid import Branch

settings = get_settings()
configure_logging(settings)

logger = logging.getLogger(__name__)

APP_NAME = settings.app_name
APP_VERSION = settings.app_version
API_KEY_HEADER = "X-API-Key"
ACTOR_HEADER = "X-Actor-Id"


def verify_api_key(x_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER)):
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")


def require_actor(x_actor_id: Optional[str] = Header(default=None, alias=ACTOR_HEADER)) -> str:
    actor = (x_actor_id or "").strip()
    if not actor:
        raise HTTPException(status_code=401, detail=f"Missing {ACTOR_HEADER} header.")
    return actor


class HealthResponse(BaseModel):
    status: Literal["ok", "error"]
    service: str
    version: str


app = FastAPI(title=APP_NAME, version=APP_VERSION)


@app.on_event("startup")
def startup_checks():
    validate_db_compatibility()
    logger.info("%s %s started", APP_NAME, APP_VERSION)


@app.exception_handler(BookingError)
def handle_booking_error(request: Request, exc: BookingError):
    http_exc = exc.to_http_exception()
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


@app.exception_handler(RequestValidationError)
def handle_request_validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {key: error[key] for key in ("type", "loc", "msg") if key in error}
        for error in exc.errors()
    ]
    return handle_booking_error(
        request,
        ValidationError("Invalid request.", details={"errors": jsonable_encoder(errors)}),
    )


@app.get("/health/live", response_model=HealthResponse)
def health_live():
    return HealthResponse(status="ok", service=APP_NAME, version=APP_VERSION)


@app.get("/health/ready", response_model=HealthResponse)
def health_ready():
    try:
        validate_db_compatibility()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return HealthResponse(status="ok", service=APP_NAME, version=APP_VERSION)


@app.get("/v1/catalog", response_model=CatalogOut, dependencies=[Depends(verify_api_key)])
def catalog():
    return get_catalog()


@app.get("/v1/day-view", response_model=DayView, dependencies=[Depends(verify_api_key)])
def day_view(branch: Branch, date: dt.date):
    return get_day_view(branch, date)


@app.get("/v1/availability", response_model=SlotAvailabilityOut, dependencies=[Depends(verify_api_key)])
def slot_availability(branch: Branch, date: dt.date, time_slot: str):
    return get_slot_availability(branch, date, time_slot)


@app.get("/v1/bookings", response_model=list[BookingOut], dependencies=[Depends(verify_api_key)])
def branch_bookings(branch: Branch, date: Optional[dt.date] = None):
    return list_bookings(branch, date)


@app.post("/v1/bookings", response_model=BookingOut, status_code=201, dependencies=[Depends(verify_api_key)])
def add_booking(request: BookingCreateRequest, actor: str = Depends(require_actor)):
    return create_booking(request, actor=actor)


@app.delete("/v1/bookings/{booking_id}", status_code=204, dependencies=[Depends(verify_api_key)])
def remove_booking(booking_id: str, actor: str = Depends(require_actor)):
    delete_booking(booking_id, actor=actor)
    return Response(status_code=204)


@app.get(
    "/v1/unavailability",
    response_model=list[UnavailabilityBlockOut],
    dependencies=[Depends(verify_api_key)],
)
def upcoming_unavailability(branch: Branch, from_date: Optional[dt.date] = None):
    return list_unavailability(branch, from_date)


@app.post(
    "/v1/unavailability",
    response_model=UnavailabilityBlockOut,
    status_code=201,
    dependencies=[Depends(verify_api_key)],
)
def add_unavailability(request: UnavailabilityCreateRequest, actor: str = Depends(require_actor)):
    return create_unavailability_block(request, actor=actor)


@app.delete("/v1/unavailability/{block_id}", status_code=204, dependencies=[Depends(verify_api_key)])
def remove_unavailability(block_id: str, actor: str = Depends(require_actor)):
    delete_unavailability_block(block_id, actor=actor)
    return Response(status_code=204)
