"""Rendering and delivery of task-status notifications."""

from .models import (
    DeliveryJob,
    JobPriority,
    JobStatus,
    NotificationError,
    NotificationTemplateError,
    QueueStats,
    RecipientResult,
    RenderedMessage,
    TemplateInput,
    TemplateKind,
    TransportError,
)
from .queue import DeliveryQueue
from .smtp_client import SMTPTransport, build_sender_address, normalize_recipients
from .templates import (
    TemplateRenderer,
    html_to_text,
    render_preview,
    transition_message,
    validate_template_input,
)
from .transport import LoggingTransport, Transport

__all__ = [
    "DeliveryJob",
    "DeliveryQueue",
    "JobPriority",
    "JobStatus",
    "LoggingTransport",
    "NotificationError",
    "NotificationTemplateError",
    "QueueStats",
    "RecipientResult",
    "RenderedMessage",
    "SMTPTransport",
    "TemplateInput",
    "TemplateKind",
    "TemplateRenderer",
    "Transport",
    "TransportError",
    "build_sender_address",
    "html_to_text",
    "normalize_recipients",
    "render_preview",
    "transition_message",
    "validate_template_input",
]
