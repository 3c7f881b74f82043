"""User and profile model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from hospital_backend.database import Base

ROLE_DOCTOR = 'doctor'
ROLE_PATIENT = 'patient'
ROLE_ADMIN = 'admin'


class User(Base):
    """Represents an application login."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String)  # doctor/patient/admin


class Doctor(Base):
    """Doctor profile linked to a login."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True)
    name = Column(String, nullable=False)
    email = Column(String)
    specialization = Column(String)


class Patient(Base):
    """Patient profile linked to a login."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True)
    name = Column(String, nullable=False)
    email = Column(String)
    phone = Column(String)
