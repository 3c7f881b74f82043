"""Booking transactions and commitment lifecycle.

Every booking and reschedule re-checks availability and inserts (or moves) the
commitment inside one transaction that holds the schedule lock for the
doctor's day. The lock is a process-local mutex plus a ``schedule_locks`` row
that is written before the check, so other sessions block on the row until
the holder commits. Partial unique indexes on active slots back this up: a
duplicate that still slips through surfaces as ``SlotUnavailable``.

Notifications are sent only after commit and never affect the outcome.
"""

import logging
import secrets
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from threading import Lock
from zoneinfo import ZoneInfo

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hospital_backend.core import config
from hospital_backend.core.errors import (
    NotFound,
    PermissionDenied,
    SchedulingError,
    SlotUnavailable,
    TransactionFailed,
    ValidationError,
)
from hospital_backend.models.appointment import Appointment, AppointmentStatus, DoctorPatientAssignment
from hospital_backend.models.availability import ScheduleLock
from hospital_backend.models.user import Doctor, Patient
from hospital_backend.models.video_call import VideoCallAppointment, VideoCallStatus
from hospital_backend.services import notifications
from hospital_backend.services.availability import get_doctor, get_windows
from hospital_backend.services.commitments import (
    APPOINTMENT_KIND,
    find_overlapping,
    insert_appointment,
    insert_video_call,
    reschedule,
    update_status,
    video_call_duration,
)
from hospital_backend.services.notifications import Notifier

logger = logging.getLogger(__name__)

SLOT_TAKEN_DETAIL = 'Doctor unavailable at selected time.'
OUTSIDE_AVAILABILITY_DETAIL = 'Doctor is not available at the selected time.'

# Keys share a fixed pool of locks, so unrelated days may wait on each other briefly.
_process_locks = [Lock() for _ in range(config.SCHEDULE_LOCK_STRIPES)]


def _process_lock_for(doctor_id: int, lock_date: date) -> Lock:
    return _process_locks[hash((doctor_id, lock_date)) % len(_process_locks)]


def _claim_lock_row(db: Session, doctor_id: int, lock_date: date) -> None:
    dialect = db.get_bind().dialect.name
    values = {'doctor_id': doctor_id, 'lock_date': lock_date, 'version': 0}

    if dialect == 'postgresql':
        db.execute(postgresql.insert(ScheduleLock).values(**values).on_conflict_do_nothing())
    elif dialect == 'sqlite':
        db.execute(sqlite.insert(ScheduleLock).values(**values).on_conflict_do_nothing())
    elif db.get(ScheduleLock, (doctor_id, lock_date)) is None:
        db.add(ScheduleLock(**values))
        db.flush()

    db.query(ScheduleLock).filter(
        ScheduleLock.doctor_id == doctor_id,
        ScheduleLock.lock_date == lock_date,
    ).update({ScheduleLock.version: ScheduleLock.version + 1}, synchronize_session=False)


@contextmanager
def schedule_lock(db: Session, doctor_id: int, lock_date: date):
    """Hold the doctor's day exclusively until the caller commits or rolls back."""
    with _process_lock_for(doctor_id, lock_date):
        try:
            _claim_lock_row(db, doctor_id, lock_date)
            yield
        except BaseException:
            db.rollback()
            raise


def to_clinic_time(value: datetime) -> datetime:
    """Naive clinic-local time for ``value``; aware values are converted first."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(config.CLINIC_TIMEZONE)).replace(tzinfo=None)


def _get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if patient is None:
        raise NotFound('Patient not found.')
    return patient


def _ensure_within_availability(db: Session, doctor_id: int, start: datetime, end: datetime) -> None:
    for window in get_windows(db, doctor_id, start.date()):
        window_start = datetime.combine(start.date(), window.start_time)
        window_end = datetime.combine(start.date(), window.end_time)
        if window_start <= start and end <= window_end:
            return
    raise SlotUnavailable(OUTSIDE_AVAILABILITY_DETAIL)


def _ensure_free(
    db: Session,
    doctor_id: int,
    start: datetime,
    end: datetime,
    exclude: tuple[str, int] | None = None,
) -> None:
    if find_overlapping(db, doctor_id, start, end, exclude=exclude):
        raise SlotUnavailable(SLOT_TAKEN_DETAIL)


def _run_in_transaction(db: Session, action: str, work):
    try:
        return work()
    except SchedulingError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.info('%s rejected by unique slot constraint: %s', action, exc.orig)
        raise SlotUnavailable(SLOT_TAKEN_DETAIL) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('%s failed and was rolled back', action)
        raise TransactionFailed() from exc


def book_appointment(
    db: Session,
    doctor_id: int,
    patient_id: int,
    appointment_date: date,
    start_time: time,
    end_time: time | None = None,
    notifier: Notifier | None = None,
) -> Appointment:
    if doctor_id is None or patient_id is None or appointment_date is None or start_time is None:
        raise ValidationError('Doctor, patient, date and start time are required.')

    start = datetime.combine(appointment_date, start_time)
    if end_time is None:
        end = start + timedelta(minutes=config.DEFAULT_APPOINTMENT_MINUTES)
        if end.date() != appointment_date:
            raise ValidationError('Appointments must end on the day they start.')
    else:
        end = datetime.combine(appointment_date, end_time)
    if start >= end:
        raise ValidationError('Start time must be before end time.')

    def work() -> tuple[Appointment, Doctor, Patient]:
        doctor = get_doctor(db, doctor_id)
        patient = _get_patient(db, patient_id)
        with schedule_lock(db, doctor_id, appointment_date):
            _ensure_within_availability(db, doctor_id, start, end)
            _ensure_free(db, doctor_id, start, end)
            appointment = insert_appointment(
                db,
                doctor_id=doctor_id,
                patient_id=patient_id,
                appointment_date=appointment_date,
                start_time=start.time(),
                end_time=end.time(),
            )
            db.add(
                DoctorPatientAssignment(
                    doctor_id=doctor_id,
                    patient_id=patient_id,
                    appointment_id=appointment.id,
                )
            )
            db.commit()
        return appointment, doctor, patient

    appointment, doctor, patient = _run_in_transaction(db, 'Appointment booking', work)
    db.refresh(appointment)
    logger.info(
        'Appointment %s booked: doctor %s, patient %s, %s %s-%s',
        appointment.id,
        doctor_id,
        patient_id,
        appointment.appointment_date,
        appointment.start_time,
        appointment.end_time,
    )

    notifications.deliver(
        notifier,
        notifications.new_appointment_request(doctor.name, doctor.email, patient.name, appointment),
    )
    return appointment


def book_video_call(
    db: Session,
    doctor_id: int,
    patient_id: int,
    appointment_time: datetime,
    notifier: Notifier | None = None,
) -> VideoCallAppointment:
    if doctor_id is None or patient_id is None or appointment_time is None:
        raise ValidationError('Doctor, patient, date and time are required.')

    start = to_clinic_time(appointment_time)
    end = start + video_call_duration()

    def work() -> tuple[VideoCallAppointment, Doctor, Patient]:
        doctor = get_doctor(db, doctor_id)
        patient = _get_patient(db, patient_id)
        with schedule_lock(db, doctor_id, start.date()):
            _ensure_within_availability(db, doctor_id, start, end)
            _ensure_free(db, doctor_id, start, end)
            video_call = insert_video_call(db, doctor_id=doctor_id, patient_id=patient_id, appointment_time=start)
            db.commit()
        return video_call, doctor, patient

    video_call, doctor, patient = _run_in_transaction(db, 'Video call booking', work)
    db.refresh(video_call)
    logger.info('Video call %s booked: doctor %s, patient %s at %s', video_call.id, doctor_id, patient_id, start)

    notifications.deliver(
        notifier,
        notifications.new_video_call_request(doctor.name, doctor.email, patient.name, video_call),
    )
    return video_call


def _get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def _get_video_call(db: Session, video_call_id: int) -> VideoCallAppointment:
    video_call = db.query(VideoCallAppointment).filter(VideoCallAppointment.id == video_call_id).first()
    if video_call is None:
        raise NotFound('Video call appointment not found.')
    return video_call


def _check_owner(commitment, doctor_id: int | None, patient_id: int | None, action: str) -> None:
    if doctor_id is not None and commitment.doctor_id == doctor_id:
        return
    if patient_id is not None and commitment.patient_id == patient_id:
        return
    raise PermissionDenied(f'Only the doctor or patient on this appointment can {action} it.')


def update_appointment_status(
    db: Session,
    appointment_id: int,
    new_status: str,
    doctor_id: int,
    notifier: Notifier | None = None,
) -> Appointment:
    """Doctor-driven status change (accept, reject, complete or cancel)."""
    def work() -> Appointment:
        appointment = _get_appointment(db, appointment_id)
        if appointment.doctor_id != doctor_id:
            raise PermissionDenied('Only the assigned doctor can update this appointment.')
        update_status(db, appointment, new_status)
        db.commit()
        return appointment

    appointment = _run_in_transaction(db, 'Appointment status update', work)
    db.refresh(appointment)
    logger.info('Appointment %s is now %s', appointment.id, appointment.status)

    patient = db.query(Patient).filter(Patient.id == appointment.patient_id).first()
    if patient is not None:
        notifications.deliver(
            notifier,
            notifications.appointment_status_changed(patient.name, patient.email, appointment),
        )
    return appointment


def cancel_appointment(
    db: Session,
    appointment_id: int,
    doctor_id: int | None = None,
    patient_id: int | None = None,
    notifier: Notifier | None = None,
) -> Appointment:
    def work() -> Appointment:
        appointment = _get_appointment(db, appointment_id)
        _check_owner(appointment, doctor_id, patient_id, 'cancel')
        update_status(db, appointment, AppointmentStatus.CANCELLED.value)
        db.commit()
        return appointment

    appointment = _run_in_transaction(db, 'Appointment cancellation', work)
    db.refresh(appointment)
    logger.info('Appointment %s cancelled', appointment.id)

    if doctor_id is not None and appointment.doctor_id == doctor_id:
        patient = db.query(Patient).filter(Patient.id == appointment.patient_id).first()
        if patient is not None:
            notifications.deliver(
                notifier,
                notifications.appointment_status_changed(patient.name, patient.email, appointment),
            )
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date: date,
    doctor_id: int,
    notifier: Notifier | None = None,
) -> Appointment:
    """Move an active appointment to ``new_date``, keeping its times and status."""
    if new_date is None:
        raise ValidationError('New date is required.')

    def work() -> Appointment:
        appointment = _get_appointment(db, appointment_id)
        if appointment.doctor_id != doctor_id:
            raise PermissionDenied('Only the assigned doctor can reschedule this appointment.')
        if appointment.status not in (AppointmentStatus.PENDING.value, AppointmentStatus.ACCEPTED.value):
            raise ValidationError(f'A {appointment.status} appointment cannot be rescheduled.')

        start = datetime.combine(new_date, appointment.start_time)
        end = datetime.combine(new_date, appointment.end_time)
        with schedule_lock(db, doctor_id, new_date):
            _ensure_within_availability(db, doctor_id, start, end)
            _ensure_free(db, doctor_id, start, end, exclude=(APPOINTMENT_KIND, appointment.id))
            reschedule(db, appointment, new_date)
            db.commit()
        return appointment

    appointment = _run_in_transaction(db, 'Appointment reschedule', work)
    db.refresh(appointment)
    logger.info('Appointment %s rescheduled to %s', appointment.id, appointment.appointment_date)

    patient = db.query(Patient).filter(Patient.id == appointment.patient_id).first()
    if patient is not None:
        notifications.deliver(
            notifier,
            notifications.appointment_rescheduled(patient.name, patient.email, appointment),
        )
    return appointment


def generate_meeting_link() -> str:
    return f'{config.MEETING_LINK_BASE_URL.rstrip("/")}/Meet-{secrets.token_urlsafe(9)}'


def respond_to_video_call(
    db: Session,
    video_call_id: int,
    doctor_id: int,
    accept: bool,
    notifier: Notifier | None = None,
) -> VideoCallAppointment:
    def work() -> VideoCallAppointment:
        video_call = _get_video_call(db, video_call_id)
        if video_call.doctor_id != doctor_id:
            raise PermissionDenied('Only the assigned doctor can respond to this video call.')
        new_status = VideoCallStatus.ACCEPTED.value if accept else VideoCallStatus.REJECTED.value
        update_status(db, video_call, new_status)
        video_call.meeting_link = generate_meeting_link() if accept else None
        db.commit()
        return video_call

    video_call = _run_in_transaction(db, 'Video call response', work)
    db.refresh(video_call)
    logger.info('Video call %s is now %s', video_call.id, video_call.status)

    if accept:
        doctor = db.query(Doctor).filter(Doctor.id == video_call.doctor_id).first()
        patient = db.query(Patient).filter(Patient.id == video_call.patient_id).first()
        for person in (patient, doctor):
            if person is not None:
                notifications.deliver(notifier, notifications.video_call_confirmed(person.email, video_call))
    return video_call


def cancel_video_call(
    db: Session,
    video_call_id: int,
    doctor_id: int | None = None,
    patient_id: int | None = None,
) -> VideoCallAppointment:
    def work() -> VideoCallAppointment:
        video_call = _get_video_call(db, video_call_id)
        _check_owner(video_call, doctor_id, patient_id, 'cancel')
        update_status(db, video_call, VideoCallStatus.CANCELLED.value)
        db.commit()
        return video_call

    video_call = _run_in_transaction(db, 'Video call cancellation', work)
    db.refresh(video_call)
    logger.info('Video call %s cancelled', video_call.id)
    return video_call
