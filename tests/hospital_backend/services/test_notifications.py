from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from hospital_backend.core import config
from hospital_backend.services import notifications
from hospital_backend.services.notifications import (
    EmailNotifier,
    LoggingNotifier,
    Notification,
    deliver,
    get_notifier,
)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        self.calls.append(('starttls',))

    def login(self, username, password):
        self.calls.append(('login', username, password))

    def sendmail(self, sender, recipients, message):
        self.calls.append(('sendmail', sender, recipients, message))


def test_email_notifier_sends_through_smtp(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeSMTP.instances = []
    monkeypatch.setattr(notifications.smtplib, 'SMTP', FakeSMTP)
    notifier = EmailNotifier(host='smtp.test', port=587, username='desk@hospital.test', password='secret')

    notifier.send(Notification(subject='Hello', body='Body text', recipient='alex@example.test'))

    server = FakeSMTP.instances[0]
    assert (server.host, server.port) == ('smtp.test', 587)
    assert server.calls[0] == ('starttls',)
    assert server.calls[1] == ('login', 'desk@hospital.test', 'secret')
    _, sender, recipients, message = server.calls[2]
    assert sender == 'desk@hospital.test'
    assert recipients == ['alex@example.test']
    assert 'Subject: Hello' in message


def test_deliver_swallows_send_errors(failing_notifier) -> None:
    sent = deliver(failing_notifier, Notification(subject='Hello', body='Body', recipient='alex@example.test'))

    assert sent is False


def test_deliver_skips_missing_recipient(notifier) -> None:
    assert deliver(notifier, Notification(subject='Hello', body='Body', recipient='')) is False
    assert deliver(None, Notification(subject='Hello', body='Body', recipient='alex@example.test')) is False
    assert notifier.sent == []


def test_get_notifier_falls_back_to_logging_without_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'NOTIFICATIONS_ENABLED', True)
    monkeypatch.setattr(config, 'SMTP_USERNAME', '')

    assert isinstance(get_notifier(), LoggingNotifier)


def test_get_notifier_uses_smtp_when_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'NOTIFICATIONS_ENABLED', True)
    monkeypatch.setattr(config, 'SMTP_USERNAME', 'desk@hospital.test')
    monkeypatch.setattr(config, 'SMTP_PASSWORD', 'secret')

    assert isinstance(get_notifier(), EmailNotifier)


def test_status_change_message_names_new_status() -> None:
    appointment = SimpleNamespace(
        appointment_date=date(2024, 6, 1),
        start_time=time(10, 0),
        end_time=time(11, 0),
        status='Rejected',
    )

    message = notifications.appointment_status_changed('Alex Karev', 'alex@example.test', appointment)

    assert message.subject == 'Your Appointment Has Been Rejected'
    assert '2024-06-01 at 10:00 has been rejected' in message.body


def test_video_call_confirmation_includes_link() -> None:
    video_call = SimpleNamespace(
        appointment_time=datetime(2024, 6, 1, 9, 0),
        meeting_link='https://meet.jit.si/Meet-abc123',
    )

    message = notifications.video_call_confirmed('alex@example.test', video_call)

    assert message.body == (
        'Your appointment is scheduled for 2024-06-01 09:00\n'
        'Join via: https://meet.jit.si/Meet-abc123'
    )


def test_notifier_subclass_must_implement_send() -> None:
    class SilentNotifier(notifications.Notifier):
        pass

    with pytest.raises(TypeError):
        SilentNotifier()
