from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from hospital_backend.auth import jwt_handler
from hospital_backend.database import get_db
from hospital_backend.models.user import Doctor, Patient, User

security = HTTPBearer()


class SessionContext(BaseModel):
    """Identity of the caller, resolved per request from the bearer token."""
    user_id: int
    email: str
    role: str
    doctor_id: int | None = None
    patient_id: int | None = None


def build_session_context(db: Session, user: User) -> SessionContext:
    doctor = db.query(Doctor).filter(Doctor.user_id == user.id).first()
    patient = db.query(Patient).filter(Patient.user_id == user.id).first()
    return SessionContext(
        user_id=user.id,
        email=user.email,
        role=user.role,
        doctor_id=doctor.id if doctor else None,
        patient_id=patient.id if patient else None,
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> SessionContext:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return build_session_context(db, user)


def require_doctor(context: SessionContext = Depends(get_current_user)) -> SessionContext:
    if context.doctor_id is None:
        raise HTTPException(status_code=403, detail="Only doctors can perform this action.")
    return context


def require_patient(context: SessionContext = Depends(get_current_user)) -> SessionContext:
    if context.patient_id is None:
        raise HTTPException(status_code=403, detail="Only patients can perform this action.")
    return context
