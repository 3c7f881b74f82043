import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError

from hospital_backend.auth import jwt_handler
from hospital_backend.auth.dependencies import get_current_user, require_doctor, require_patient
from hospital_backend.models.user import Doctor, Patient, User
from hospital_backend.routes.auth_routes import LoginRequest, SignupRequest, login, me, signup


def _signup_request(**overrides) -> SignupRequest:
    fields = {
        'email': ' Meredith@Hospital.Test ',
        'password': 'correct-horse',
        'role': 'Doctor',
        'name': ' Meredith Grey ',
        'specialization': 'General Surgery',
    }
    fields.update(overrides)
    return SignupRequest(**fields)


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_signup_request_normalizes_fields() -> None:
    request = _signup_request()

    assert request.email == 'meredith@hospital.test'
    assert request.role == 'doctor'
    assert request.name == 'Meredith Grey'


@pytest.mark.parametrize(
    'overrides',
    [
        {'password': 'short'},
        {'role': 'admin'},
        {'email': 'not-an-email'},
        {'name': '   '},
    ],
)
def test_signup_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        _signup_request(**overrides)


def test_signup_creates_user_and_doctor_profile(scheduling_db) -> None:
    response = signup(data=_signup_request(), db=scheduling_db)

    assert response.role == 'doctor'
    user = scheduling_db.query(User).filter(User.email == 'meredith@hospital.test').one()
    assert user.hashed_password != 'correct-horse'
    doctor = scheduling_db.query(Doctor).filter(Doctor.user_id == user.id).one()
    assert doctor.specialization == 'General Surgery'
    assert jwt_handler.decode_access_token(response.access_token)['sub'] == 'meredith@hospital.test'


def test_signup_creates_patient_profile(scheduling_db) -> None:
    signup(
        data=_signup_request(email='alex@example.test', role='patient', name='Alex Karev', phone='+15550100'),
        db=scheduling_db,
    )

    patient = scheduling_db.query(Patient).filter(Patient.email == 'alex@example.test').one()
    assert patient.phone == '+15550100'


def test_signup_rejects_duplicate_email(scheduling_db) -> None:
    signup(data=_signup_request(), db=scheduling_db)

    with pytest.raises(HTTPException) as exception_info:
        signup(data=_signup_request(), db=scheduling_db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Email is already registered.'


def test_login_returns_token_for_valid_password(scheduling_db) -> None:
    signup(data=_signup_request(), db=scheduling_db)

    response = login(data=LoginRequest(email='MEREDITH@hospital.test', password='correct-horse'), db=scheduling_db)

    assert response.token_type == 'bearer'
    assert jwt_handler.decode_access_token(response.access_token)['role'] == 'doctor'


def test_login_rejects_wrong_password(scheduling_db) -> None:
    signup(data=_signup_request(), db=scheduling_db)

    with pytest.raises(HTTPException) as exception_info:
        login(data=LoginRequest(email='meredith@hospital.test', password='wrong-password'), db=scheduling_db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid email or password.'


def test_current_user_resolves_doctor_context(scheduling_db) -> None:
    token = signup(data=_signup_request(), db=scheduling_db).access_token

    context = get_current_user(credentials=_bearer(token), db=scheduling_db)

    assert context.role == 'doctor'
    assert context.doctor_id is not None
    assert context.patient_id is None
    assert require_doctor(context) is context
    assert me(current_user=context) is context
    with pytest.raises(HTTPException) as exception_info:
        require_patient(context)
    assert exception_info.value.status_code == 403


def test_current_user_rejects_garbage_token(scheduling_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_bearer('not-a-jwt'), db=scheduling_db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_current_user_rejects_unknown_subject(scheduling_db) -> None:
    token = jwt_handler.create_access_token(subject='ghost@hospital.test', role='patient')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=_bearer(token), db=scheduling_db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User not found'
