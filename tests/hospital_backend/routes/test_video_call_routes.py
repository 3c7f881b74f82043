from datetime import date, datetime, time

import pytest
from fastapi import HTTPException

from hospital_backend.auth.dependencies import SessionContext
from hospital_backend.routes.appointment_routes import CreateAppointmentRequest, create_appointment
from hospital_backend.routes.video_call_routes import (
    CreateVideoCallRequest,
    RespondVideoCallRequest,
    cancel_my_video_call,
    create_video_call,
    list_assigned_doctors,
    list_my_video_calls,
    list_video_call_slots,
    respond_video_call,
)

DAY = date(2024, 6, 1)


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('hospital_backend.routes.video_call_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('hospital_backend.routes.appointment_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def open_day(scheduling_db, doctor, make_window):
    return make_window(scheduling_db, doctor.id, DAY, time(9, 0), time(12, 0))


def _doctor_context(doctor) -> SessionContext:
    return SessionContext(user_id=doctor.user_id, email=doctor.email, role='doctor', doctor_id=doctor.id)


def _patient_context(patient) -> SessionContext:
    return SessionContext(user_id=patient.user_id, email=patient.email, role='patient', patient_id=patient.id)


def _request_call(db, doctor, patient, notifier, at: datetime):
    return create_video_call(
        data=CreateVideoCallRequest(doctor_id=doctor.id, appointment_time=at),
        context=_patient_context(patient),
        db=db,
        notifier=notifier,
    )


def test_assigned_doctors_come_from_booked_appointments(
    scheduling_db, doctor, other_doctor, patient, open_day, notifier
) -> None:
    assert list_assigned_doctors(context=_patient_context(patient), db=scheduling_db) == []

    create_appointment(
        data=CreateAppointmentRequest(doctor_id=doctor.id, date=DAY, start_time=time(9, 0)),
        context=_patient_context(patient),
        db=scheduling_db,
        notifier=notifier,
    )

    assigned = list_assigned_doctors(context=_patient_context(patient), db=scheduling_db)
    assert [entry.id for entry in assigned] == [doctor.id]


def test_video_call_slots_use_call_length(scheduling_db, doctor, open_day) -> None:
    slots = list_video_call_slots(doctor_id=doctor.id, slot_date=DAY, db=scheduling_db)

    assert [slot.start_time for slot in slots] == [time(9, 0), time(9, 30), time(10, 0), time(10, 30), time(11, 0)]


def test_create_video_call_returns_pending_call(scheduling_db, doctor, patient, open_day, notifier) -> None:
    response = _request_call(scheduling_db, doctor, patient, notifier, datetime(2024, 6, 1, 9, 0))

    assert response.status == 'PENDING'
    assert response.duration_minutes == 60
    assert response.meeting_link is None


def test_create_video_call_returns_conflict_for_taken_hour(
    scheduling_db, doctor, patient, other_patient, open_day, notifier
) -> None:
    _request_call(scheduling_db, doctor, patient, notifier, datetime(2024, 6, 1, 9, 0))

    with pytest.raises(HTTPException) as exception_info:
        _request_call(scheduling_db, doctor, other_patient, notifier, datetime(2024, 6, 1, 9, 30))

    assert exception_info.value.status_code == 409


def test_list_my_video_calls_filters_by_status(
    scheduling_db, doctor, patient, other_patient, open_day, notifier
) -> None:
    first = _request_call(scheduling_db, doctor, patient, notifier, datetime(2024, 6, 1, 9, 0))
    _request_call(scheduling_db, doctor, other_patient, notifier, datetime(2024, 6, 1, 10, 0))
    respond_video_call(
        video_call_id=first.id,
        data=RespondVideoCallRequest(accept=True),
        context=_doctor_context(doctor),
        db=scheduling_db,
        notifier=notifier,
    )

    pending = list_my_video_calls(status_filter='pending', context=_doctor_context(doctor), db=scheduling_db)
    mine = list_my_video_calls(status_filter=None, context=_patient_context(patient), db=scheduling_db)

    assert [call.appointment_time for call in pending] == [datetime(2024, 6, 1, 10, 0)]
    assert [call.status for call in mine] == ['ACCEPTED']
    assert mine[0].meeting_link is not None


def test_respond_video_call_is_forbidden_for_other_doctor(
    scheduling_db, doctor, other_doctor, patient, open_day, notifier
) -> None:
    call = _request_call(scheduling_db, doctor, patient, notifier, datetime(2024, 6, 1, 9, 0))

    with pytest.raises(HTTPException) as exception_info:
        respond_video_call(
            video_call_id=call.id,
            data=RespondVideoCallRequest(accept=True),
            context=_doctor_context(other_doctor),
            db=scheduling_db,
            notifier=notifier,
        )

    assert exception_info.value.status_code == 403


def test_cancel_my_video_call_by_patient(scheduling_db, doctor, patient, open_day, notifier) -> None:
    call = _request_call(scheduling_db, doctor, patient, notifier, datetime(2024, 6, 1, 9, 0))

    response = cancel_my_video_call(video_call_id=call.id, context=_patient_context(patient), db=scheduling_db)

    assert response.status == 'CANCELLED'


def test_cancel_my_video_call_returns_not_found_when_missing(scheduling_db, patient) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_my_video_call(video_call_id=999, context=_patient_context(patient), db=scheduling_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Video call appointment not found.'
