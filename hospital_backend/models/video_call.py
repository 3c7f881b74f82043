"""Video-call appointment model definitions."""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.sql import func
from hospital_backend.database import Base


class VideoCallStatus(str, enum.Enum):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'
    CANCELLED = 'CANCELLED'


INACTIVE_VIDEO_CALL_STATUSES = (VideoCallStatus.CANCELLED.value, VideoCallStatus.REJECTED.value)
_ACTIVE_SLOT_PREDICATE = text("status NOT IN ('CANCELLED', 'REJECTED')")


class VideoCallAppointment(Base):
    """Represents a one-hour video consultation."""
    __tablename__ = "video_call_appointments"
    __table_args__ = (
        Index('idx_video_calls_doctor_time', 'doctor_id', 'appointment_time'),
        Index(
            'uq_video_calls_active_slot',
            'doctor_id',
            'appointment_time',
            unique=True,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    appointment_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=VideoCallStatus.PENDING.value)
    meeting_link = Column(String)
    created_at = Column(DateTime, server_default=func.now())
