import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from hospital_backend.auth import jwt_handler
from hospital_backend.auth.dependencies import SessionContext, get_current_user
from hospital_backend.database import get_db
from hospital_backend.models.user import ROLE_DOCTOR, ROLE_PATIENT, Doctor, Patient, User

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
SIGNUP_ROLES = {ROLE_DOCTOR, ROLE_PATIENT}


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized or '@' not in normalized:
        raise ValueError('A valid email is required.')
    return normalized


class SignupRequest(BaseModel):
    email: str
    password: str
    role: str
    name: str
    specialization: str | None = None
    phone: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        return value

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in SIGNUP_ROLES:
            raise ValueError('Role must be doctor or patient.')
        return normalized

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _normalize_email(value)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    role: str


@router.post('/signup', response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(data: SignupRequest, db: Session = Depends(get_db)):
    try:
        if db.query(User).filter(User.email == data.email).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Email is already registered.')

        user = User(email=data.email, hashed_password=generate_password_hash(data.password), role=data.role)
        db.add(user)
        db.flush()

        if data.role == ROLE_DOCTOR:
            db.add(Doctor(user_id=user.id, name=data.name, email=data.email, specialization=data.specialization))
        else:
            db.add(Patient(user_id=user.id, name=data.name, email=data.email, phone=data.phone))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Email is already registered.') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Signup failed for %s', data.email)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc

    logger.info('Registered %s account for %s', data.role, data.email)
    return TokenResponse(access_token=jwt_handler.create_access_token(subject=data.email, role=data.role), role=data.role)


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc

    if user is None or not user.hashed_password or not check_password_hash(user.hashed_password, data.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password.')

    return TokenResponse(access_token=jwt_handler.create_access_token(subject=user.email, role=user.role), role=user.role)


@router.get('/me', response_model=SessionContext)
def me(current_user: SessionContext = Depends(get_current_user)):
    return current_user
