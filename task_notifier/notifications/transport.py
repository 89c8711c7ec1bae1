"""Mail transport interface and the dry-run implementation."""

import threading
from abc import ABC, abstractmethod
from typing import List, Tuple

from ..logging import get_logger

logger = get_logger(__name__, component="transport")


class Transport(ABC):
    """Hands one rendered message to one recipient.

    Implementations must be safe to call from several threads at once; the
    queue fans a job out to its recipients in parallel.
    """

    @abstractmethod
    def probe(self) -> bool:
        """Check that the transport is reachable and authenticated."""

    @abstractmethod
    def send(self, recipient: str, subject: str, html: str, text: str) -> None:
        """Deliver a message.

        Raises:
            TransportError: If the message could not be handed off
        """


class LoggingTransport(Transport):
    """Transport for dry runs: logs every message instead of sending it.

    Sent messages are also kept in ``sent`` as ``(recipient, subject)`` pairs.
    """

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def probe(self) -> bool:
        return True

    def send(self, recipient: str, subject: str, html: str, text: str) -> None:
        with self._lock:
            self.sent.append((recipient, subject))
        logger.info(
            f"[dry-run] Would send '{subject}' to {recipient}",
            extra={
                "event": "transport.dry_run",
                "recipient": recipient,
                "subject": subject,
                "text_length": len(text),
            },
        )
