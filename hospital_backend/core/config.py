import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hospital.db")
SQLITE_BUSY_TIMEOUT_SECONDS = int(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))
DEFAULT_APPOINTMENT_MINUTES = int(os.getenv("DEFAULT_APPOINTMENT_MINUTES", "60"))
VIDEO_CALL_DURATION_MINUTES = int(os.getenv("VIDEO_CALL_DURATION_MINUTES", "60"))
MEETING_LINK_BASE_URL = os.getenv("MEETING_LINK_BASE_URL", "https://meet.jit.si")
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")
SCHEDULE_LOCK_STRIPES = int(os.getenv("SCHEDULE_LOCK_STRIPES", "64"))

HOSPITAL_NAME = os.getenv("HOSPITAL_NAME", "City Hospital")
NOTIFICATIONS_ENABLED = _get_bool(os.getenv("NOTIFICATIONS_ENABLED"), default=True)
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_USE_TLS = _get_bool(os.getenv("SMTP_USE_TLS"), default=True)
SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "15"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if SLOT_STEP_MINUTES <= 0 or DEFAULT_APPOINTMENT_MINUTES <= 0 or VIDEO_CALL_DURATION_MINUTES <= 0:
        raise RuntimeError("Slot step and appointment durations must be positive.")
    if SCHEDULE_LOCK_STRIPES <= 0:
        raise RuntimeError("SCHEDULE_LOCK_STRIPES must be positive.")
