from datetime import date, time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital_backend.auth.dependencies import SessionContext, require_doctor
from hospital_backend.core import config
from hospital_backend.core.errors import SchedulingError, to_http_exception
from hospital_backend.database import get_db
from hospital_backend.models.availability import AvailabilityWindow
from hospital_backend.models.user import Doctor
from hospital_backend.routes.common import database_unavailable, ensure_database_ready
from hospital_backend.services.availability import (
    WEEKLY_ENTRY_DAYS,
    get_doctor,
    list_upcoming_windows,
    upsert_weekly_windows,
    upsert_window,
)
from hospital_backend.services.scheduling import Slot, list_available_slots

router = APIRouter(tags=['availability'])

MAX_SLOT_DURATION_MINUTES = 8 * 60


class DoctorOption(BaseModel):
    id: int
    name: str
    specialization: str | None = None

    class Config:
        from_attributes = True


class WindowHours(BaseModel):
    start_time: time
    end_time: time

    @model_validator(mode='after')
    def validate_order(self) -> 'WindowHours':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class UpsertWindowRequest(WindowHours):
    date: date


class WeeklyAvailabilityRequest(BaseModel):
    days: dict[str, WindowHours | None]

    @field_validator('days')
    @classmethod
    def validate_days(cls, value: dict[str, WindowHours | None]) -> dict[str, WindowHours | None]:
        normalized = {day.strip().capitalize(): hours for day, hours in value.items()}
        unknown = sorted(set(normalized) - set(WEEKLY_ENTRY_DAYS))
        if unknown:
            raise ValueError(f'Unknown or unsupported days: {", ".join(unknown)}.')
        return normalized


class WindowResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: str | None = None
    date: date
    start_time: time
    end_time: time


def to_window_response(window: AvailabilityWindow) -> WindowResponse:
    return WindowResponse(
        id=window.id,
        doctor_id=window.doctor_id,
        day_of_week=window.day_of_week,
        date=window.available_date,
        start_time=window.start_time,
        end_time=window.end_time,
    )


@router.get('/doctors', response_model=list[DoctorOption])
def list_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(Doctor).order_by(Doctor.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/windows', response_model=WindowResponse)
def save_window(
    data: UpsertWindowRequest,
    context: SessionContext = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        window = upsert_window(db, context.doctor_id, data.date, data.start_time, data.end_time)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_window_response(window)


@router.put('/windows/weekly', response_model=list[WindowResponse])
def save_weekly_windows(
    data: WeeklyAvailabilityRequest,
    context: SessionContext = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    entries = {
        day: (hours.start_time, hours.end_time) if hours is not None else None
        for day, hours in data.days.items()
    }
    try:
        windows = upsert_weekly_windows(db, context.doctor_id, entries, today=date.today())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [to_window_response(window) for window in windows]


@router.get('/doctors/{doctor_id}/windows', response_model=list[WindowResponse])
def list_doctor_windows(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        get_doctor(db, doctor_id)
        windows = list_upcoming_windows(db, doctor_id, today=date.today())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [to_window_response(window) for window in windows]


@router.get('/doctors/{doctor_id}/slots', response_model=list[Slot])
def list_doctor_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    duration_minutes: int = Query(default=config.DEFAULT_APPOINTMENT_MINUTES, ge=1, le=MAX_SLOT_DURATION_MINUTES),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return list_available_slots(db, doctor_id, slot_date, duration_minutes)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
