"""Appointment model definitions."""

import enum

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, text
from sqlalchemy.sql import func
from hospital_backend.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = 'Pending'
    ACCEPTED = 'Accepted'
    REJECTED = 'Rejected'
    CANCELLED = 'Cancelled'
    COMPLETED = 'Completed'


INACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.CANCELLED.value, AppointmentStatus.REJECTED.value)
_ACTIVE_SLOT_PREDICATE = text("status NOT IN ('Cancelled', 'Rejected')")


class Appointment(Base):
    """Represents a standard in-person appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_doctor_date', 'doctor_id', 'appointment_date', 'start_time'),
        Index(
            'uq_appointments_active_slot',
            'doctor_id',
            'appointment_date',
            'start_time',
            unique=True,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.PENDING.value)


class DoctorPatientAssignment(Base):
    """Links a patient to the doctor they booked with."""
    __tablename__ = "doctor_patient_assignments"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"))
    assigned_at = Column(DateTime, server_default=func.now())
