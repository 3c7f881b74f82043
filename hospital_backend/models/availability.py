"""Availability model definitions."""

from sqlalchemy import Column, Date, ForeignKey, Integer, String, Time, UniqueConstraint
from hospital_backend.database import Base


class AvailabilityWindow(Base):
    """Open interval a doctor declared for one calendar date."""
    __tablename__ = "doctor_availability"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'available_date', name='uq_doctor_availability_doctor_date'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = Column(String)
    available_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class ScheduleLock(Base):
    """One row per doctor and date, claimed while a booking is checked and inserted."""
    __tablename__ = "schedule_locks"

    doctor_id = Column(Integer, ForeignKey("doctors.id"), primary_key=True)
    lock_date = Column(Date, primary_key=True)
    version = Column(Integer, nullable=False, default=0)
