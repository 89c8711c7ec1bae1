"""SMTP transport for email delivery.

Thin wrapper around smtplib: one connection per message, TLS/SSL
negotiation, optional authentication and a guaranteed ``quit``.
"""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from typing import Callable, Iterable, List, Optional

from email_validator import EmailNotValidError, validate_email

from ..config.environment import EnvironmentConfig
from ..logging import get_logger
from .models import TransportError
from .transport import Transport

logger = get_logger(__name__, component="smtp")

IMPLICIT_TLS_PORT = 465


class SMTPTransport(Transport):
    """Transport that delivers through an SMTP server.

    Designed to be mockable: the ``smtplib`` classes are injected.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        timeout: float = 30,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """
        Args:
            env_config: SMTP host, port, credentials and sender settings
            use_tls: Upgrade plain connections with STARTTLS
            timeout: Socket timeout in seconds
            smtp_factory: Factory for SMTP instances (for mocking)
            smtp_ssl_factory: Factory for SMTP_SSL instances (for mocking)
        """
        self.env_config = env_config
        self.use_tls = use_tls
        self.timeout = timeout
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.sender = build_sender_address(env_config)

    def _connect(self):
        host, port = self.env_config.smtp_host, self.env_config.smtp_port

        if port == IMPLICIT_TLS_PORT:
            logger.debug(f"Connecting to {host}:{port} with implicit TLS")
            return self.smtp_ssl_factory(
                host, port, timeout=self.timeout, context=ssl.create_default_context()
            )

        logger.debug(f"Connecting to {host}:{port}")
        smtp = self.smtp_factory(host, port, timeout=self.timeout)
        if self.use_tls:
            smtp.starttls(context=ssl.create_default_context())
        return smtp

    def _authenticate(self, smtp) -> None:
        if self.env_config.smtp_user and self.env_config.smtp_pass:
            smtp.login(self.env_config.smtp_user, self.env_config.smtp_pass)

    @staticmethod
    def _close(smtp) -> None:
        if smtp is None:
            return
        try:
            smtp.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(
                f"Error closing SMTP connection: {e}",
                extra={"event": "smtp.close_failed"},
            )

    def probe(self) -> bool:
        """Connect, authenticate and issue NOOP.

        Returns:
            True if the server answered NOOP with 250
        """
        smtp = None
        try:
            smtp = self._connect()
            self._authenticate(smtp)
            code, _ = smtp.noop()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                f"SMTP probe failed: {e}",
                extra={"event": "smtp.probe_failed", "smtp_host": self.env_config.smtp_host},
            )
            return False
        finally:
            self._close(smtp)

        healthy = code == 250
        logger.info(
            "SMTP probe completed",
            extra={"event": "smtp.probe", "healthy": healthy, "response_code": code},
        )
        return healthy

    def build_message(self, recipient: str, subject: str, html: str, text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    def send(self, recipient: str, subject: str, html: str, text: str) -> None:
        """Deliver one message over a fresh connection.

        Raises:
            TransportError: On any SMTP or network failure
        """
        message = self.build_message(recipient, subject, html, text)
        smtp = None
        try:
            smtp = self._connect()
            self._authenticate(smtp)
            smtp.send_message(message)
        except smtplib.SMTPException as e:
            raise TransportError(f"SMTP error: {e}", recipient=recipient) from e
        except OSError as e:
            raise TransportError(f"Network error: {e}", recipient=recipient) from e
        finally:
            self._close(smtp)

        logger.debug(
            f"Message sent to {recipient}",
            extra={"event": "smtp.sent", "recipient": recipient},
        )


def normalize_recipients(addresses: Iterable[Optional[str]]) -> List[str]:
    """Validate and normalize addresses, dropping blanks, invalid ones and repeats.

    Args:
        addresses: Candidate addresses (None and empty strings allowed)

    Returns:
        Normalized addresses in order of first appearance
    """
    recipients: List[str] = []
    for address in addresses:
        if not address or not address.strip():
            continue
        try:
            normalized = validate_email(address.strip(), check_deliverability=False).normalized
        except EmailNotValidError as e:
            logger.warning(
                f"Dropping invalid recipient address '{address}': {e}",
                extra={"event": "smtp.recipient_invalid"},
            )
            continue
        if normalized not in recipients:
            recipients.append(normalized)
    return recipients


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' header, e.g. ``Tasko <noreply@example.com>``.

    Falls back to ``noreply@<smtp host>`` when no sender address is set.
    """
    sender_email = env_config.smtp_sender_email or f"noreply@{env_config.smtp_host}"
    return formataddr((env_config.smtp_sender_name, sender_email))
