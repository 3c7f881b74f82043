"""Bookable slot computation: declared windows minus active commitments."""

import logging
from datetime import date, datetime, time, timedelta

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital_backend.core import config
from hospital_backend.core.errors import TransactionFailed, ValidationError
from hospital_backend.services.availability import get_doctor, get_windows
from hospital_backend.services.commitments import find_overlapping, intervals_overlap

logger = logging.getLogger(__name__)


class Slot(BaseModel):
    doctor_id: int
    date: date
    start_time: time
    end_time: time


def iterate_slot_starts(
    window_start: datetime,
    window_end: datetime,
    duration_minutes: int,
    step_minutes: int = config.SLOT_STEP_MINUTES,
) -> list[datetime]:
    if duration_minutes <= 0:
        raise ValidationError('Slot duration must be positive.')
    if step_minutes <= 0:
        raise ValidationError('Slot step must be positive.')

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    starts: list[datetime] = []
    current = window_start
    while current + duration <= window_end:
        starts.append(current)
        current += step

    return starts


def is_slot_free(db: Session, doctor_id: int, start: datetime, end: datetime) -> bool:
    return not find_overlapping(db, doctor_id, start, end)


def list_available_slots(
    db: Session,
    doctor_id: int,
    slot_date: date,
    duration_minutes: int = config.DEFAULT_APPOINTMENT_MINUTES,
    step_minutes: int = config.SLOT_STEP_MINUTES,
) -> list[Slot]:
    if slot_date is None:
        raise ValidationError('Date is required.')
    if duration_minutes <= 0:
        raise ValidationError('Slot duration must be positive.')
    if step_minutes <= 0:
        raise ValidationError('Slot step must be positive.')

    duration = timedelta(minutes=duration_minutes)

    try:
        get_doctor(db, doctor_id)
        slots: list[Slot] = []

        for window in get_windows(db, doctor_id, slot_date):
            window_start = datetime.combine(slot_date, window.start_time)
            window_end = datetime.combine(slot_date, window.end_time)
            starts = iterate_slot_starts(window_start, window_end, duration_minutes, step_minutes)
            if not starts:
                continue

            commitments = find_overlapping(db, doctor_id, window_start, window_end)
            for start in starts:
                end = start + duration
                if any(intervals_overlap(start, end, commitment.start, commitment.end) for commitment in commitments):
                    continue
                slots.append(
                    Slot(
                        doctor_id=doctor_id,
                        date=slot_date,
                        start_time=start.time(),
                        end_time=end.time(),
                    )
                )

        return slots
    except SQLAlchemyError as exc:
        logger.exception('Loading slots failed for doctor %s on %s', doctor_id, slot_date)
        raise TransactionFailed() from exc
