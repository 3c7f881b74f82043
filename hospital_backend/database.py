from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from hospital_backend.core import config


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args = {
            'check_same_thread': False,
            'timeout': config.SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    return create_engine(database_url, connect_args=connect_args)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False
_video_call_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'doctor_availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('doctor_availability')}
        migration_steps = [
            ('day_of_week', 'ALTER TABLE doctor_availability ADD COLUMN day_of_week VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_doctor_availability_doctor_date '
                    'ON doctor_availability(doctor_id, available_date)'
                )
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date '
                    'ON appointments(doctor_id, appointment_date, start_time)'
                )
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    'ON appointments(doctor_id, appointment_date, start_time) '
                    "WHERE status NOT IN ('Cancelled', 'Rejected')"
                )
            )

        _appointment_schema_checked = True


def ensure_video_call_schema() -> None:
    global _video_call_schema_checked

    if _video_call_schema_checked:
        return

    with _schema_lock:
        if _video_call_schema_checked:
            return

        inspector = inspect(engine)

        if 'video_call_appointments' not in inspector.get_table_names():
            _video_call_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('video_call_appointments')}
        migration_steps = [
            ('meeting_link', 'ALTER TABLE video_call_appointments ADD COLUMN meeting_link VARCHAR'),
            ('created_at', 'ALTER TABLE video_call_appointments ADD COLUMN created_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_video_calls_doctor_time '
                    'ON video_call_appointments(doctor_id, appointment_time)'
                )
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_video_calls_active_slot '
                    'ON video_call_appointments(doctor_id, appointment_time) '
                    "WHERE status NOT IN ('CANCELLED', 'REJECTED')"
                )
            )

        _video_call_schema_checked = True
