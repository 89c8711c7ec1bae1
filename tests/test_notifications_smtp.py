"""Unit tests for the SMTP and dry-run transports.

Tests the SMTPTransport for:
- Connection handling (SMTP and SMTP_SSL)
- STARTTLS negotiation
- Authentication (with and without credentials)
- Message delivery and error wrapping
- Probe results
- Recipient normalization and sender address building
"""

import smtplib
from unittest.mock import MagicMock

import pytest

from task_notifier.config.environment import EnvironmentConfig
from task_notifier.notifications.models import TransportError
from task_notifier.notifications.smtp_client import (
    SMTPTransport,
    build_sender_address,
    normalize_recipients,
)
from task_notifier.notifications.transport import LoggingTransport


@pytest.fixture
def env_config_with_auth():
    """Environment config with SMTP authentication."""
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="user@example.com",
        smtp_pass="secret123",
        smtp_sender_name="Tasko",
    )


@pytest.fixture
def env_config_without_auth():
    """Environment config without SMTP authentication."""
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=25,
        smtp_sender_email="tasks@example.com",
    )


@pytest.fixture
def env_config_implicit_tls():
    """Environment config for implicit TLS (port 465)."""
    return EnvironmentConfig(
        smtp_host="smtp.gmail.com",
        smtp_port=465,
        smtp_user="user@gmail.com",
        smtp_pass="apppassword",
    )


@pytest.fixture
def smtp_instance():
    instance = MagicMock()
    instance.noop.return_value = (250, b"OK")
    return instance


@pytest.fixture
def smtp_factory(smtp_instance):
    return MagicMock(return_value=smtp_instance)


def make_transport(env_config, smtp_factory, **kwargs):
    return SMTPTransport(env_config, smtp_factory=smtp_factory, smtp_ssl_factory=smtp_factory, **kwargs)


class TestSend:
    def test_starttls_and_login(self, env_config_with_auth, smtp_factory, smtp_instance):
        transport = make_transport(env_config_with_auth, smtp_factory, timeout=15)

        transport.send("alex@example.com", "Subject line", "<p>Hello</p>", "Hello")

        smtp_factory.assert_called_once_with("smtp.example.com", 587, timeout=15)
        smtp_instance.starttls.assert_called_once()
        smtp_instance.login.assert_called_once_with("user@example.com", "secret123")
        smtp_instance.send_message.assert_called_once()
        smtp_instance.quit.assert_called_once()

    def test_message_has_text_and_html_parts(self, env_config_with_auth, smtp_factory, smtp_instance):
        transport = make_transport(env_config_with_auth, smtp_factory)

        transport.send("alex@example.com", "Subject line", "<p>Hello</p>", "Hello")

        message = smtp_instance.send_message.call_args[0][0]
        assert message["To"] == "alex@example.com"
        assert message["From"] == "Tasko <user@example.com>"
        assert message["Subject"] == "Subject line"
        assert message.get_body(preferencelist=("plain",)).get_content().strip() == "Hello"
        assert "<p>Hello</p>" in message.get_body(preferencelist=("html",)).get_content()

    def test_no_tls_and_no_login(self, env_config_without_auth, smtp_factory, smtp_instance):
        transport = make_transport(env_config_without_auth, smtp_factory, use_tls=False)

        transport.send("alex@example.com", "s", "<p>h</p>", "h")

        smtp_instance.starttls.assert_not_called()
        smtp_instance.login.assert_not_called()

    def test_implicit_tls_uses_ssl_factory(self, env_config_implicit_tls, smtp_instance):
        plain_factory = MagicMock()
        ssl_factory = MagicMock(return_value=smtp_instance)
        transport = SMTPTransport(
            env_config_implicit_tls, smtp_factory=plain_factory, smtp_ssl_factory=ssl_factory
        )

        transport.send("alex@example.com", "s", "<p>h</p>", "h")

        plain_factory.assert_not_called()
        args, kwargs = ssl_factory.call_args
        assert args == ("smtp.gmail.com", 465)
        assert kwargs["timeout"] == 30
        assert "context" in kwargs
        smtp_instance.starttls.assert_not_called()

    def test_smtp_error_is_wrapped(self, env_config_with_auth, smtp_factory, smtp_instance):
        smtp_instance.send_message.side_effect = smtplib.SMTPRecipientsRefused(
            {"alex@example.com": (550, b"unknown user")}
        )
        transport = make_transport(env_config_with_auth, smtp_factory)

        with pytest.raises(TransportError, match="SMTP error") as exc_info:
            transport.send("alex@example.com", "s", "<p>h</p>", "h")

        assert exc_info.value.recipient == "alex@example.com"
        smtp_instance.quit.assert_called_once()

    def test_network_error_is_wrapped(self, env_config_with_auth):
        factory = MagicMock(side_effect=ConnectionRefusedError("refused"))
        transport = make_transport(env_config_with_auth, factory)

        with pytest.raises(TransportError, match="Network error"):
            transport.send("alex@example.com", "s", "<p>h</p>", "h")

    def test_quit_failure_is_ignored(self, env_config_with_auth, smtp_factory, smtp_instance):
        smtp_instance.quit.side_effect = smtplib.SMTPServerDisconnected("gone")
        transport = make_transport(env_config_with_auth, smtp_factory)

        transport.send("alex@example.com", "s", "<p>h</p>", "h")


class TestProbe:
    def test_healthy(self, env_config_with_auth, smtp_factory, smtp_instance):
        assert make_transport(env_config_with_auth, smtp_factory).probe() is True
        smtp_instance.noop.assert_called_once()

    def test_unexpected_code(self, env_config_with_auth, smtp_factory, smtp_instance):
        smtp_instance.noop.return_value = (421, b"closing")

        assert make_transport(env_config_with_auth, smtp_factory).probe() is False

    def test_login_failure(self, env_config_with_auth, smtp_factory, smtp_instance):
        smtp_instance.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        assert make_transport(env_config_with_auth, smtp_factory).probe() is False

    def test_unreachable(self, env_config_with_auth):
        factory = MagicMock(side_effect=OSError("no route to host"))

        assert make_transport(env_config_with_auth, factory).probe() is False


class TestHelpers:
    def test_normalize_recipients(self):
        recipients = normalize_recipients(
            ["alex@example.com", None, "", "  ", "bad-address", "Sam@Example.com", "alex@example.com"]
        )

        assert recipients == ["alex@example.com", "Sam@example.com"]

    def test_build_sender_address(self, env_config_with_auth):
        assert build_sender_address(env_config_with_auth) == "Tasko <user@example.com>"

    def test_build_sender_address_fallback(self):
        env_config = EnvironmentConfig(smtp_host="mail.example.com")

        assert build_sender_address(env_config) == "Tasko <noreply@mail.example.com>"


def test_logging_transport_records_messages():
    transport = LoggingTransport()

    assert transport.probe() is True
    transport.send("alex@example.com", "Subject", "<p>x</p>", "x")

    assert transport.sent == [("alex@example.com", "Subject")]
