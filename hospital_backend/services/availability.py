"""Doctor availability windows: one open interval per doctor and calendar date."""

import logging
from datetime import date, time, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hospital_backend.core.errors import NotFound, TransactionFailed, ValidationError
from hospital_backend.models.availability import AvailabilityWindow
from hospital_backend.models.user import Doctor

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
WEEKLY_ENTRY_DAYS = WEEKDAY_NAMES[:6]


def validate_window_times(start_time: time, end_time: time) -> None:
    if start_time is None or end_time is None:
        raise ValidationError('Start and end times are required.')
    if start_time >= end_time:
        raise ValidationError('Start time must be before end time.')


def next_or_same_weekday(today: date, weekday_name: str) -> date:
    try:
        weekday = WEEKDAY_NAMES.index(weekday_name)
    except ValueError as exc:
        raise ValidationError(f'Unknown day of week: {weekday_name}.') from exc
    return today + timedelta(days=(weekday - today.weekday()) % 7)


def get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if doctor is None:
        raise NotFound('Doctor not found.')
    return doctor


def get_windows(db: Session, doctor_id: int, window_date: date) -> list[AvailabilityWindow]:
    return db.query(AvailabilityWindow).filter(
        AvailabilityWindow.doctor_id == doctor_id,
        AvailabilityWindow.available_date == window_date,
    ).order_by(AvailabilityWindow.start_time.asc()).all()


def list_upcoming_windows(db: Session, doctor_id: int, today: date) -> list[AvailabilityWindow]:
    return db.query(AvailabilityWindow).filter(
        AvailabilityWindow.doctor_id == doctor_id,
        AvailabilityWindow.available_date >= today,
    ).order_by(AvailabilityWindow.available_date.asc()).all()


def _apply_window(
    db: Session,
    doctor_id: int,
    window_date: date,
    start_time: time,
    end_time: time,
) -> AvailabilityWindow:
    window = db.query(AvailabilityWindow).filter(
        AvailabilityWindow.doctor_id == doctor_id,
        AvailabilityWindow.available_date == window_date,
    ).first()

    if window is None:
        window = AvailabilityWindow(doctor_id=doctor_id, available_date=window_date)
        db.add(window)

    window.day_of_week = WEEKDAY_NAMES[window_date.weekday()]
    window.start_time = start_time
    window.end_time = end_time
    return window


def upsert_window(
    db: Session,
    doctor_id: int,
    window_date: date,
    start_time: time,
    end_time: time,
) -> AvailabilityWindow:
    if window_date is None:
        raise ValidationError('Date is required.')
    validate_window_times(start_time, end_time)

    try:
        get_doctor(db, doctor_id)
        window = _apply_window(db, doctor_id, window_date, start_time, end_time)
        db.commit()
    except IntegrityError:
        # A concurrent request inserted the same (doctor, date) first; update that row instead.
        db.rollback()
        try:
            window = _apply_window(db, doctor_id, window_date, start_time, end_time)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception('Saving availability failed for doctor %s on %s', doctor_id, window_date)
            raise TransactionFailed() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Saving availability failed for doctor %s on %s', doctor_id, window_date)
        raise TransactionFailed() from exc

    db.refresh(window)
    return window


def upsert_weekly_windows(
    db: Session,
    doctor_id: int,
    entries: dict[str, tuple[time, time] | None],
    today: date,
) -> list[AvailabilityWindow]:
    """Store Monday to Saturday hours for the coming week.

    Each named day is resolved to its next-or-same date from ``today`` and
    saved as a dated window; days mapped to ``None`` are skipped. All days are
    written in one transaction.
    """
    resolved: list[tuple[date, time, time]] = []
    for day_name, hours in entries.items():
        if hours is None:
            continue
        if day_name not in WEEKLY_ENTRY_DAYS:
            raise ValidationError(f'Availability can only be entered for {", ".join(WEEKLY_ENTRY_DAYS)}.')
        start_time, end_time = hours
        validate_window_times(start_time, end_time)
        resolved.append((next_or_same_weekday(today, day_name), start_time, end_time))

    try:
        get_doctor(db, doctor_id)
        windows = [
            _apply_window(db, doctor_id, window_date, start_time, end_time)
            for window_date, start_time, end_time in sorted(resolved)
        ]
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Saving weekly availability failed for doctor %s', doctor_id)
        raise TransactionFailed() from exc

    for window in windows:
        db.refresh(window)
    return windows
