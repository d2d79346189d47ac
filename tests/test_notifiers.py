import smtplib
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests
from twilio.base.exceptions import TwilioRestException

from power_monitor.config import (
    EmailConfig,
    NtfyConfig,
    PushoverConfig,
    TelegramConfig,
    TwilioConfig,
    WebhookConfig,
)
from power_monitor.console_notifier import ConsoleNotifier
from power_monitor.email_notifier import EmailNotifier
from power_monitor.models import DeliveryError, EventKind, NotificationEvent, Reading
from power_monitor.ntfy_notifier import NtfyNotifier
from power_monitor.pushover_notifier import PushoverNotifier
from power_monitor.telegram_notifier import TelegramNotifier
from power_monitor.twilio_notifier import TwilioNotifier
from power_monitor.webhook_notifier import WebhookNotifier

NOW = datetime(2024, 3, 1, 9, 0)


def low_balance_event():
    reading = Reading(Decimal("4.20"), Decimal("6.00"), "220407", fetched_at=NOW)
    return NotificationEvent.low_balance(reading, NOW)


def login_failure_event():
    return NotificationEvent.login_failure("invalid password", NOW)


def ok_response(json_data=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.is_redirect = False
    response.json.return_value = json_data or {}
    response.raise_for_status.return_value = None
    return response


def test_console_prints_title_and_reading(capsys):
    ConsoleNotifier().send(low_balance_event())
    out = capsys.readouterr().out
    assert "[Low Power Warning]" in out
    assert "Money: 4.20 CNY" in out


def test_console_skips_unformattable_event(capsys):
    ConsoleNotifier().send(NotificationEvent(kind=EventKind.heartbeat, created_at=NOW))
    assert capsys.readouterr().out == ""


def test_webhook_posts_json_with_event_header():
    session = MagicMock()
    session.post.return_value = ok_response()
    WebhookNotifier(WebhookConfig(url="https://hooks.example.com/x"), session=session).send(low_balance_event())

    args, kwargs = session.post.call_args
    assert args[0] == "https://hooks.example.com/x"
    assert kwargs["headers"] == {"X-Event-Type": "low_balance"}
    assert kwargs["json"]["remaining_money"] == 4.2
    assert kwargs["json"]["room_display_name"] == "220407"
    assert kwargs["json"]["severity"] == "warning"


def test_webhook_error_payload_carries_message():
    session = MagicMock()
    session.post.return_value = ok_response()
    WebhookNotifier(WebhookConfig(url="https://hooks.example.com/x"), session=session).send(login_failure_event())
    payload = session.post.call_args.kwargs["json"]
    assert payload["message"] == "invalid password"
    assert "remaining_money" not in payload


def test_webhook_raises_on_http_error():
    session = MagicMock()
    response = ok_response(status_code=500)
    response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    session.post.return_value = response
    with pytest.raises(requests.HTTPError):
        WebhookNotifier(WebhookConfig(url="https://hooks.example.com/x"), session=session).send(low_balance_event())


def test_telegram_sends_message_text():
    session = MagicMock()
    session.post.return_value = ok_response({"ok": True})
    TelegramNotifier(TelegramConfig(bot_token="123:abc", chat_id="42"), session=session).send(low_balance_event())

    args, kwargs = session.post.call_args
    assert args[0] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert kwargs["data"]["chat_id"] == "42"
    assert kwargs["data"]["text"].startswith("⚠️ [Low Power Warning]")


def test_telegram_api_rejection_raises():
    session = MagicMock()
    session.post.return_value = ok_response({"ok": False, "description": "chat not found"})
    notifier = TelegramNotifier(TelegramConfig(bot_token="123:abc", chat_id="42"), session=session)
    with pytest.raises(DeliveryError, match="chat not found"):
        notifier.send(login_failure_event())


def test_telegram_transport_error_hides_token():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("https://api.telegram.org/bot123:abc/sendMessage")
    notifier = TelegramNotifier(TelegramConfig(bot_token="123:abc", chat_id="42"), session=session)
    with pytest.raises(DeliveryError) as excinfo:
        notifier.send(low_balance_event())
    assert "123:abc" not in str(excinfo.value)


def test_telegram_http_error_keeps_api_description():
    response = ok_response({"ok": False, "error_code": 400, "description": "Bad Request: chat not found"}, 400)
    response.raise_for_status.side_effect = requests.HTTPError(
        "400 Client Error for url: https://api.telegram.org/bot123:abc/sendMessage", response=response
    )
    session = MagicMock()
    session.post.return_value = response
    notifier = TelegramNotifier(TelegramConfig(bot_token="123:abc", chat_id="42"), session=session)
    with pytest.raises(DeliveryError, match="chat not found") as excinfo:
        notifier.send(low_balance_event())
    assert "123:abc" not in str(excinfo.value)


def test_pushover_emergency_includes_retry_and_expire():
    session = MagicMock()
    session.post.return_value = ok_response({"status": 1})
    config = PushoverConfig(api_token="tok", user_key="user", priority=2, retry=60, expire=3600)
    PushoverNotifier(config, session=session).send(low_balance_event())

    data = session.post.call_args.kwargs["data"]
    assert data["token"] == "tok"
    assert data["user"] == "user"
    assert data["title"] == "Low Power Warning"
    assert data["priority"] == 2
    assert data["retry"] == 60
    assert data["expire"] == 3600


def test_pushover_normal_priority_omits_retry():
    session = MagicMock()
    session.post.return_value = ok_response({"status": 1})
    PushoverNotifier(PushoverConfig(api_token="tok", user_key="user"), session=session).send(low_balance_event())
    data = session.post.call_args.kwargs["data"]
    assert "retry" not in data
    assert "expire" not in data


def test_pushover_rejection_raises_with_errors():
    session = MagicMock()
    session.post.return_value = ok_response({"status": 0, "errors": ["user key is invalid"]}, status_code=400)
    notifier = PushoverNotifier(PushoverConfig(api_token="tok", user_key="bad"), session=session)
    with pytest.raises(DeliveryError, match="user key is invalid"):
        notifier.send(low_balance_event())


def test_ntfy_sets_headers_by_severity():
    session = MagicMock()
    session.post.return_value = ok_response()
    config = NtfyConfig(topic_url="https://ntfy.sh/dorm", priority=4, token="tk_secret")
    NtfyNotifier(config, session=session).send(login_failure_event())

    args, kwargs = session.post.call_args
    assert args[0] == "https://ntfy.sh/dorm"
    assert kwargs["headers"]["Title"] == "Login Failed"
    assert kwargs["headers"]["Priority"] == "4"
    assert kwargs["headers"]["Tags"] == "rotating_light"
    assert kwargs["headers"]["Authorization"] == "Bearer tk_secret"
    assert kwargs["allow_redirects"] is False
    assert b"invalid password" in kwargs["data"]


def test_ntfy_redirect_is_a_failure():
    session = MagicMock()
    response = ok_response(status_code=302)
    response.is_redirect = True
    response.headers = {"Location": "http://10.0.0.1/"}
    session.post.return_value = response
    with pytest.raises(DeliveryError):
        NtfyNotifier(NtfyConfig(topic_url="https://ntfy.sh/dorm"), session=session).send(low_balance_event())


def make_email_notifier(security="starttls", username="monitor@example.com"):
    config = EmailConfig(
        smtp_server="smtp.example.com",
        username=username,
        password="app-password",
        from_address="monitor@example.com",
        to_addresses="a@example.com,b@example.com",
        security=security,
    )
    return EmailNotifier(config, ["a@example.com", "b@example.com"])


def test_email_starttls_flow():
    with patch("power_monitor.email_notifier.smtplib.SMTP") as smtp_cls:
        server = smtp_cls.return_value
        make_email_notifier().send(low_balance_event())

    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("monitor@example.com", "app-password")
    msg = server.send_message.call_args.args[0]
    assert msg["Subject"] == "[Power Monitor] Low Power Warning"
    assert msg["To"] == "a@example.com, b@example.com"
    server.__exit__.assert_called_once()


def test_email_ssl_uses_smtp_ssl():
    with patch("power_monitor.email_notifier.smtplib.SMTP_SSL") as smtp_ssl_cls:
        make_email_notifier(security="ssl").send(low_balance_event())
    smtp_ssl_cls.assert_called_once_with("smtp.example.com", 465, timeout=30)


def test_email_plain_without_credentials_skips_login():
    with patch("power_monitor.email_notifier.smtplib.SMTP") as smtp_cls:
        server = smtp_cls.return_value
        make_email_notifier(security="none", username="").send(low_balance_event())
    smtp_cls.assert_called_once_with("smtp.example.com", 25, timeout=30)
    server.starttls.assert_not_called()
    server.login.assert_not_called()


def test_email_auth_failure_propagates():
    with patch("power_monitor.email_notifier.smtplib.SMTP") as smtp_cls:
        server = smtp_cls.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        with pytest.raises(smtplib.SMTPAuthenticationError):
            make_email_notifier().send(low_balance_event())
        server.__exit__.assert_called_once()


def test_email_starttls_failure_closes_connection():
    with patch("power_monitor.email_notifier.smtplib.SMTP") as smtp_cls:
        server = smtp_cls.return_value
        server.starttls.side_effect = smtplib.SMTPNotSupportedError("STARTTLS extension not supported by server.")
        with pytest.raises(smtplib.SMTPNotSupportedError):
            make_email_notifier().send(low_balance_event())
    server.close.assert_called_once()
    server.login.assert_not_called()
    server.send_message.assert_not_called()


def test_sms_sends_via_twilio_client():
    client = MagicMock()
    client.messages.create.return_value.sid = "SM123"
    config = TwilioConfig(account_sid="AC1", auth_token="t", from_number="+15550001", to_number="+15550002")
    TwilioNotifier(config, client=client).send(low_balance_event())

    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["from_"] == "+15550001"
    assert kwargs["to"] == "+15550002"
    assert kwargs["body"].startswith("[Low Power Warning]")


def test_sms_error_propagates():
    client = MagicMock()
    client.messages.create.side_effect = TwilioRestException(401, "https://api.twilio.com", msg="Authenticate", code=20003)
    config = TwilioConfig(account_sid="AC1", auth_token="t", from_number="+1", to_number="+2")
    with pytest.raises(TwilioRestException):
        TwilioNotifier(config, client=client).send(login_failure_event())
