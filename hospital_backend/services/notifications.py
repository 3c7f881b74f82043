"""Best-effort email notifications for bookings and status changes."""

import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from pydantic import BaseModel

from hospital_backend.core import config

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    subject: str
    body: str
    recipient: str


class Notifier(ABC):
    @abstractmethod
    def send(self, notification: Notification) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Used when SMTP is not configured; records what would have been sent."""

    def send(self, notification: Notification) -> None:
        logger.info('Email skipped (SMTP not configured): %r to %s', notification.subject, notification.recipient)


class EmailNotifier(Notifier):
    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        username: str = config.SMTP_USERNAME,
        password: str = config.SMTP_PASSWORD,
        use_tls: bool = config.SMTP_USE_TLS,
        timeout: int = config.SMTP_TIMEOUT_SECONDS,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, notification: Notification) -> MIMEMultipart:
        message = MIMEMultipart()
        message['From'] = f'{config.HOSPITAL_NAME} <{self.username}>'
        message['To'] = notification.recipient
        message['Subject'] = notification.subject
        message.attach(MIMEText(notification.body, 'plain'))
        return message

    def send(self, notification: Notification) -> None:
        message = self.build_message(notification)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            server.login(self.username, self.password)
            server.sendmail(self.username, [notification.recipient], message.as_string())
        logger.info('Email sent to %s', notification.recipient)


def get_notifier() -> Notifier:
    if config.NOTIFICATIONS_ENABLED and config.SMTP_USERNAME and config.SMTP_PASSWORD:
        return EmailNotifier()
    return LoggingNotifier()


def deliver(notifier: Notifier | None, notification: Notification) -> bool:
    """Send ``notification``; failures are logged and never raised."""
    if notifier is None:
        return False
    if not notification.recipient:
        logger.warning('Email skipped, no recipient for %r', notification.subject)
        return False

    try:
        notifier.send(notification)
    except Exception:
        logger.exception('Failed to send email to %s', notification.recipient)
        return False
    return True


def new_appointment_request(doctor_name: str, doctor_email: str, patient_name: str, appointment) -> Notification:
    return Notification(
        subject=f'New Appointment Request from {patient_name}',
        body=(
            f'Dear Dr. {doctor_name},\n\n'
            'You have a new appointment request:\n\n'
            f'Patient: {patient_name}\n'
            f'Date: {appointment.appointment_date.isoformat()}\n'
            f'Time: {appointment.start_time:%H:%M} - {appointment.end_time:%H:%M}\n\n'
            'Please review it in your dashboard.\n\n'
            f'Regards,\n{config.HOSPITAL_NAME}'
        ),
        recipient=doctor_email or '',
    )


def appointment_status_changed(patient_name: str, patient_email: str, appointment) -> Notification:
    status_text = appointment.status.lower()
    return Notification(
        subject=f'Your Appointment Has Been {appointment.status}',
        body=(
            f'Dear {patient_name},\n\n'
            f'Your appointment scheduled for {appointment.appointment_date.isoformat()} '
            f'at {appointment.start_time:%H:%M} has been {status_text} by the doctor.\n\n'
            f'Best regards,\n{config.HOSPITAL_NAME}'
        ),
        recipient=patient_email or '',
    )


def appointment_rescheduled(patient_name: str, patient_email: str, appointment) -> Notification:
    return Notification(
        subject='Your Appointment Has Been Rescheduled',
        body=(
            f'Dear {patient_name},\n\n'
            f'Your appointment has been moved to {appointment.appointment_date.isoformat()} '
            f'at {appointment.start_time:%H:%M}.\n\n'
            f'Best regards,\n{config.HOSPITAL_NAME}'
        ),
        recipient=patient_email or '',
    )


def new_video_call_request(doctor_name: str, doctor_email: str, patient_name: str, video_call) -> Notification:
    return Notification(
        subject=f'New Video Call Request from {patient_name}',
        body=(
            f'Dear Dr. {doctor_name},\n\n'
            f'{patient_name} requested a video consultation on '
            f'{video_call.appointment_time:%Y-%m-%d at %H:%M}.\n\n'
            f'Regards,\n{config.HOSPITAL_NAME}'
        ),
        recipient=doctor_email or '',
    )


def video_call_confirmed(recipient: str, video_call) -> Notification:
    return Notification(
        subject='Video Call Appointment Confirmed',
        body=(
            f'Your appointment is scheduled for {video_call.appointment_time:%Y-%m-%d %H:%M}\n'
            f'Join via: {video_call.meeting_link}'
        ),
        recipient=recipient or '',
    )
