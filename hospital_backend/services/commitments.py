"""Commitment store: standard appointments and video calls on one doctor time axis."""

from datetime import date, datetime, time, timedelta
from typing import Literal

from pydantic import BaseModel
from sqlalchemy.orm import Session

from hospital_backend.core import config
from hospital_backend.core.errors import ValidationError
from hospital_backend.models.appointment import (
    INACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentStatus,
)
from hospital_backend.models.video_call import (
    INACTIVE_VIDEO_CALL_STATUSES,
    VideoCallAppointment,
    VideoCallStatus,
)

APPOINTMENT_KIND = 'appointment'
VIDEO_CALL_KIND = 'video_call'

APPOINTMENT_TRANSITIONS = {
    AppointmentStatus.PENDING.value: {
        AppointmentStatus.ACCEPTED.value,
        AppointmentStatus.REJECTED.value,
        AppointmentStatus.CANCELLED.value,
    },
    AppointmentStatus.ACCEPTED.value: {
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.COMPLETED.value,
    },
}

VIDEO_CALL_TRANSITIONS = {
    VideoCallStatus.PENDING.value: {
        VideoCallStatus.ACCEPTED.value,
        VideoCallStatus.REJECTED.value,
        VideoCallStatus.CANCELLED.value,
    },
    VideoCallStatus.ACCEPTED.value: {
        VideoCallStatus.CANCELLED.value,
    },
}


class Commitment(BaseModel):
    kind: Literal['appointment', 'video_call']
    id: int
    doctor_id: int
    patient_id: int
    start: datetime
    end: datetime
    status: str


def video_call_duration() -> timedelta:
    return timedelta(minutes=config.VIDEO_CALL_DURATION_MINUTES)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def appointment_interval(appointment: Appointment) -> tuple[datetime, datetime]:
    return (
        datetime.combine(appointment.appointment_date, appointment.start_time),
        datetime.combine(appointment.appointment_date, appointment.end_time),
    )


def video_call_interval(video_call: VideoCallAppointment) -> tuple[datetime, datetime]:
    return video_call.appointment_time, video_call.appointment_time + video_call_duration()


def _dates_between(start: datetime, end: datetime) -> list[date]:
    last = (end - timedelta(microseconds=1)).date() if end > start else start.date()
    days = []
    current = start.date()
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days


def find_overlapping(
    db: Session,
    doctor_id: int,
    start: datetime,
    end: datetime,
    exclude: tuple[str, int] | None = None,
) -> list[Commitment]:
    """Active commitments of either kind whose interval overlaps ``[start, end)``."""
    overlapping: list[Commitment] = []

    appointments = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date.in_(_dates_between(start, end)),
        Appointment.status.not_in(INACTIVE_APPOINTMENT_STATUSES),
    ).all()
    for appointment in appointments:
        if exclude == (APPOINTMENT_KIND, appointment.id):
            continue
        appointment_start, appointment_end = appointment_interval(appointment)
        if intervals_overlap(start, end, appointment_start, appointment_end):
            overlapping.append(
                Commitment(
                    kind=APPOINTMENT_KIND,
                    id=appointment.id,
                    doctor_id=appointment.doctor_id,
                    patient_id=appointment.patient_id,
                    start=appointment_start,
                    end=appointment_end,
                    status=appointment.status,
                )
            )

    video_calls = db.query(VideoCallAppointment).filter(
        VideoCallAppointment.doctor_id == doctor_id,
        VideoCallAppointment.appointment_time < end,
        VideoCallAppointment.appointment_time > start - video_call_duration(),
        VideoCallAppointment.status.not_in(INACTIVE_VIDEO_CALL_STATUSES),
    ).all()
    for video_call in video_calls:
        if exclude == (VIDEO_CALL_KIND, video_call.id):
            continue
        call_start, call_end = video_call_interval(video_call)
        overlapping.append(
            Commitment(
                kind=VIDEO_CALL_KIND,
                id=video_call.id,
                doctor_id=video_call.doctor_id,
                patient_id=video_call.patient_id,
                start=call_start,
                end=call_end,
                status=video_call.status,
            )
        )

    return sorted(overlapping, key=lambda commitment: commitment.start)


def insert_appointment(
    db: Session,
    doctor_id: int,
    patient_id: int,
    appointment_date: date,
    start_time: time,
    end_time: time,
    status: str = AppointmentStatus.PENDING.value,
) -> Appointment:
    appointment = Appointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        appointment_date=appointment_date,
        start_time=start_time,
        end_time=end_time,
        status=status,
    )
    db.add(appointment)
    db.flush()
    return appointment


def insert_video_call(
    db: Session,
    doctor_id: int,
    patient_id: int,
    appointment_time: datetime,
    status: str = VideoCallStatus.PENDING.value,
) -> VideoCallAppointment:
    video_call = VideoCallAppointment(
        doctor_id=doctor_id,
        patient_id=patient_id,
        appointment_time=appointment_time,
        status=status,
    )
    db.add(video_call)
    db.flush()
    return video_call


def check_transition(current_status: str, new_status: str, transitions: dict[str, set[str]]) -> None:
    if new_status not in transitions.get(current_status, set()):
        raise ValidationError(f'Cannot change status from {current_status} to {new_status}.')


def update_status(db: Session, commitment: Appointment | VideoCallAppointment, new_status: str) -> None:
    transitions = APPOINTMENT_TRANSITIONS if isinstance(commitment, Appointment) else VIDEO_CALL_TRANSITIONS
    check_transition(commitment.status, new_status, transitions)
    commitment.status = new_status
    db.flush()


def reschedule(db: Session, appointment: Appointment, new_date: date) -> None:
    appointment.appointment_date = new_date
    db.flush()
