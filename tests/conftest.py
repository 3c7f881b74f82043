import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from hospital_backend.database import Base  # noqa: E402
from hospital_backend.models import appointment, availability, user, video_call  # noqa: E402,F401
from hospital_backend.models.availability import AvailabilityWindow  # noqa: E402
from hospital_backend.models.user import ROLE_DOCTOR, ROLE_PATIENT, Doctor, Patient, User  # noqa: E402
from hospital_backend.services.notifications import Notifier  # noqa: E402


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def send(self, notification) -> None:
        self.sent.append(notification)


class FailingNotifier(Notifier):
    def send(self, notification) -> None:
        raise ConnectionError('SMTP server unreachable')


def add_doctor(db, name: str, email: str, specialization: str = 'Cardiology') -> Doctor:
    login = User(email=email, hashed_password='', role=ROLE_DOCTOR)
    db.add(login)
    db.flush()
    doctor = Doctor(user_id=login.id, name=name, email=email, specialization=specialization)
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


def add_patient(db, name: str, email: str) -> Patient:
    login = User(email=email, hashed_password='', role=ROLE_PATIENT)
    db.add(login)
    db.flush()
    patient = Patient(user_id=login.id, name=name, email=email, phone='+15550100')
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


def add_window(db, doctor_id: int, window_date: date, start: time, end: time) -> AvailabilityWindow:
    window = AvailabilityWindow(
        doctor_id=doctor_id,
        available_date=window_date,
        day_of_week=window_date.strftime('%A'),
        start_time=start,
        end_time=end,
    )
    db.add(window)
    db.commit()
    db.refresh(window)
    return window


@pytest.fixture
def scheduling_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def doctor(scheduling_db) -> Doctor:
    return add_doctor(scheduling_db, 'Dr. Grey', 'grey@hospital.test')


@pytest.fixture
def other_doctor(scheduling_db) -> Doctor:
    return add_doctor(scheduling_db, 'Dr. Shepherd', 'shepherd@hospital.test', specialization='Neurology')


@pytest.fixture
def patient(scheduling_db) -> Patient:
    return add_patient(scheduling_db, 'Alex Karev', 'alex@example.test')


@pytest.fixture
def other_patient(scheduling_db) -> Patient:
    return add_patient(scheduling_db, 'Izzie Stevens', 'izzie@example.test')


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()


@pytest.fixture
def make_doctor():
    return add_doctor


@pytest.fixture
def make_patient():
    return add_patient


@pytest.fixture
def make_window():
    return add_window
