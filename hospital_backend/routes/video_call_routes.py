from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hospital_backend.auth.dependencies import SessionContext, get_current_user, require_doctor, require_patient
from hospital_backend.core import config
from hospital_backend.core.errors import SchedulingError, to_http_exception
from hospital_backend.database import get_db
from hospital_backend.models.appointment import DoctorPatientAssignment
from hospital_backend.models.user import Doctor
from hospital_backend.models.video_call import VideoCallAppointment
from hospital_backend.routes.availability_routes import DoctorOption
from hospital_backend.routes.common import database_unavailable, ensure_database_ready
from hospital_backend.services.booking import book_video_call, cancel_video_call, respond_to_video_call
from hospital_backend.services.notifications import Notifier, get_notifier
from hospital_backend.services.scheduling import Slot, list_available_slots

router = APIRouter(tags=['video-calls'])


class CreateVideoCallRequest(BaseModel):
    doctor_id: int
    appointment_time: datetime


class RespondVideoCallRequest(BaseModel):
    accept: bool


class VideoCallResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    appointment_time: datetime
    duration_minutes: int
    status: str
    meeting_link: str | None = None


def to_video_call_response(video_call: VideoCallAppointment) -> VideoCallResponse:
    return VideoCallResponse(
        id=video_call.id,
        doctor_id=video_call.doctor_id,
        patient_id=video_call.patient_id,
        appointment_time=video_call.appointment_time,
        duration_minutes=config.VIDEO_CALL_DURATION_MINUTES,
        status=video_call.status,
        meeting_link=video_call.meeting_link,
    )


@router.get('/assigned-doctors', response_model=list[DoctorOption])
def list_assigned_doctors(
    context: SessionContext = Depends(require_patient),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return db.query(Doctor).join(
            DoctorPatientAssignment,
            DoctorPatientAssignment.doctor_id == Doctor.id,
        ).filter(
            DoctorPatientAssignment.patient_id == context.patient_id,
        ).distinct().order_by(Doctor.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots', response_model=list[Slot])
def list_video_call_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return list_available_slots(db, doctor_id, slot_date, config.VIDEO_CALL_DURATION_MINUTES)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('', response_model=VideoCallResponse, status_code=status.HTTP_201_CREATED)
def create_video_call(
    data: CreateVideoCallRequest,
    context: SessionContext = Depends(require_patient),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        video_call = book_video_call(
            db,
            doctor_id=data.doctor_id,
            patient_id=context.patient_id,
            appointment_time=data.appointment_time,
            notifier=notifier,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_video_call_response(video_call)


@router.get('', response_model=list[VideoCallResponse])
def list_my_video_calls(
    status_filter: str | None = Query(default=None, alias='status'),
    context: SessionContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(VideoCallAppointment)
        if context.doctor_id is not None:
            query = query.filter(VideoCallAppointment.doctor_id == context.doctor_id)
        elif context.patient_id is not None:
            query = query.filter(VideoCallAppointment.patient_id == context.patient_id)
        else:
            return []

        if status_filter:
            query = query.filter(VideoCallAppointment.status == status_filter.strip().upper())

        video_calls = query.order_by(VideoCallAppointment.appointment_time.asc()).all()
        return [to_video_call_response(video_call) for video_call in video_calls]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{video_call_id}/respond', response_model=VideoCallResponse)
def respond_video_call(
    video_call_id: int,
    data: RespondVideoCallRequest,
    context: SessionContext = Depends(require_doctor),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        video_call = respond_to_video_call(db, video_call_id, context.doctor_id, data.accept, notifier)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_video_call_response(video_call)


@router.post('/{video_call_id}/cancel', response_model=VideoCallResponse)
def cancel_my_video_call(
    video_call_id: int,
    context: SessionContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        video_call = cancel_video_call(
            db,
            video_call_id,
            doctor_id=context.doctor_id,
            patient_id=context.patient_id,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return to_video_call_response(video_call)
