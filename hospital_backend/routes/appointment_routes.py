from datetime import date, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital_backend.auth.dependencies import SessionContext, get_current_user, require_doctor, require_patient
from hospital_backend.core.errors import SchedulingError, to_http_exception
from hospital_backend.database import get_db
from hospital_backend.models.appointment import Appointment, AppointmentStatus
from hospital_backend.models.user import Doctor, Patient
from hospital_backend.routes.common import database_unavailable, ensure_database_ready
from hospital_backend.services.booking import (
    book_appointment,
    cancel_appointment,
    reschedule_appointment,
    update_appointment_status,
)
from hospital_backend.services.notifications import Notifier, get_notifier

router = APIRouter(tags=['appointments'])

DOCTOR_STATUS_CHOICES = {
    AppointmentStatus.ACCEPTED.value,
    AppointmentStatus.REJECTED.value,
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.COMPLETED.value,
}


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    date: date
    start_time: time
    end_time: time | None = None

    @model_validator(mode='after')
    def validate_times(self) -> 'CreateAppointmentRequest':
        if self.end_time is not None and self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class UpdateStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().capitalize()
        if normalized not in DOCTOR_STATUS_CHOICES:
            raise ValueError('Status must be Accepted, Rejected, Cancelled or Completed.')
        return normalized


class RescheduleRequest(BaseModel):
    new_date: date


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    doctor_name: str | None = None
    patient_id: int
    patient_name: str | None = None
    date: date
    start_time: time
    end_time: time
    status: str


def to_appointment_response(db: Session, appointment: Appointment) -> AppointmentResponse:
    doctor = db.query(Doctor).filter(Doctor.id == appointment.doctor_id).first()
    patient = db.query(Patient).filter(Patient.id == appointment.patient_id).first()
    return AppointmentResponse(
        id=appointment.id,
        doctor_id=appointment.doctor_id,
        doctor_name=doctor.name if doctor else None,
        patient_id=appointment.patient_id,
        patient_name=patient.name if patient else None,
        date=appointment.appointment_date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        status=appointment.status,
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    context: SessionContext = Depends(require_patient),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = book_appointment(
            db,
            doctor_id=data.doctor_id,
            patient_id=context.patient_id,
            appointment_date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            notifier=notifier,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_appointment_response(db, appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_my_appointments(
    context: SessionContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(Appointment)
        if context.doctor_id is not None:
            query = query.filter(Appointment.doctor_id == context.doctor_id)
        elif context.patient_id is not None:
            query = query.filter(Appointment.patient_id == context.patient_id)
        else:
            return []

        appointments = query.order_by(
            Appointment.appointment_date.asc(),
            Appointment.start_time.asc(),
        ).all()
        return [to_appointment_response(db, appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def change_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    context: SessionContext = Depends(require_doctor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = update_appointment_status(db, appointment_id, data.status, context.doctor_id, notifier)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_appointment_response(db, appointment)


@router.patch('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def change_appointment_date(
    appointment_id: int,
    data: RescheduleRequest,
    context: SessionContext = Depends(require_doctor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = reschedule_appointment(db, appointment_id, data.new_date, context.doctor_id, notifier)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_appointment_response(db, appointment)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_my_appointment(
    appointment_id: int,
    context: SessionContext = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        appointment = cancel_appointment(
            db,
            appointment_id,
            doctor_id=context.doctor_id,
            patient_id=context.patient_id,
            notifier=notifier,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_appointment_response(db, appointment)
