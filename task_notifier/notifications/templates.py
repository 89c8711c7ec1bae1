"""Template rendering for task-status emails using Jinja2.

Bodies live in ``email_templates/`` and extend ``base.html.j2``. Subjects are
built here since they are one-liners. The plain-text body is always derived
from the rendered HTML with ``html_to_text`` so both versions say the same
thing.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from ..logging import get_logger
from ..utils.timestamps import ensure_utc, utc_now
from .models import NotificationTemplateError, RenderedMessage, TemplateInput, TemplateKind

logger = get_logger(__name__, component="templates")

BRAND = "Tasko"


@dataclass(frozen=True)
class StatusLabel:
    label: str
    color: str
    emoji: str


STATUS_LABELS: Dict[str, StatusLabel] = {
    "ASSIGNED": StatusLabel("Assigned", "#6c757d", "📋"),
    "IN_PROGRESS": StatusLabel("In progress", "#007bff", "⚡"),
    "WAITING_CONFIRM": StatusLabel("Awaiting confirmation", "#ffc107", "⏳"),
    "APPROVED": StatusLabel("Approved", "#28a745", "✅"),
    "REJECTED": StatusLabel("Rejected", "#dc3545", "❌"),
}

DEFAULT_TRANSITION_MESSAGE = "The task status has changed."

TRANSITION_MESSAGES: Dict[tuple, str] = {
    ("ASSIGNED", "IN_PROGRESS"): "Work on the task has started.",
    ("IN_PROGRESS", "WAITING_CONFIRM"): "The task is complete and awaiting confirmation.",
    ("IN_PROGRESS", "ASSIGNED"): "The task has been moved back to assigned.",
    ("WAITING_CONFIRM", "APPROVED"): "The task has been approved! 🎉",
    ("WAITING_CONFIRM", "REJECTED"): "The task was rejected and needs changes.",
    ("WAITING_CONFIRM", "IN_PROGRESS"): "The task has been moved back to in progress.",
    ("APPROVED", "IN_PROGRESS"): "The approved task needs additional work.",
    ("REJECTED", "IN_PROGRESS"): "Work on the rejected task has resumed.",
    ("REJECTED", "ASSIGNED"): "The task has been moved back to assigned.",
}

REQUIRED_FIELDS = (
    "task_id",
    "task_title",
    "project_title",
    "old_status",
    "new_status",
    "changed_by",
    "changed_at",
    "task_url",
)

_BODY_BY_STATUS = {
    "ASSIGNED": "assigned.html.j2",
    "APPROVED": "approved.html.j2",
    "REJECTED": "rejected.html.j2",
}
_GENERIC_BODY = "status_change.html.j2"

_BLOCK_RE = re.compile(r"<(style|script|head)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_ENTITY_RE = re.compile(r"&(amp|lt|gt|quot|#39|#34|nbsp);")
_ENTITIES = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "#39": "'",
    "#34": '"',
    "nbsp": " ",
}
_WS_RE = re.compile(r"\s+")

_url_adapter = TypeAdapter(AnyHttpUrl)


def status_label(status: Optional[str]) -> StatusLabel:
    """Display label for a task state; unknown states show their raw name."""
    key = status or ""
    return STATUS_LABELS.get(key, StatusLabel(key or "Unknown", "#6c757d", "📄"))


def transition_message(old_status: Optional[str], new_status: Optional[str]) -> str:
    return TRANSITION_MESSAGES.get((old_status, new_status), DEFAULT_TRANSITION_MESSAGE)


def html_to_text(html: str) -> str:
    """Reduce an HTML document to a single line of plain text.

    Tags are stripped, entities unescaped until none remain, stray angle
    brackets replaced by spaces and whitespace collapsed. The result never
    contains ``<`` or ``>`` and ``html_to_text(html_to_text(x)) ==
    html_to_text(x)``.
    """
    text = _BLOCK_RE.sub(" ", html or "")
    text = _TAG_RE.sub(" ", text)

    while True:
        unescaped = _ENTITY_RE.sub(lambda m: _ENTITIES[m.group(1)], text)
        if unescaped == text:
            break
        text = unescaped

    text = text.replace("<", " ").replace(">", " ")
    return _WS_RE.sub(" ", text).strip()


def validate_template_input(template_input: TemplateInput) -> List[str]:
    """List the problems that make an input unrenderable.

    Returns:
        Names of missing required fields, plus ``"task_url (invalid URL)"``
        when the link is present but malformed. Empty when the input is fine.
    """
    problems = []
    for name in REQUIRED_FIELDS:
        value = getattr(template_input, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            problems.append(name)

    if "task_url" not in problems:
        try:
            _url_adapter.validate_python(template_input.task_url)
        except ValidationError:
            problems.append("task_url (invalid URL)")

    return problems


def _format_changed_at(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M UTC")


class TemplateRenderer:
    """Renders task-status emails.

    Pure apart from the template loader's cache: the same kind and input
    always produce the same message.
    """

    def __init__(self, template_dir: str = "email_templates"):
        """
        Args:
            template_dir: Directory name within the task_notifier.notifications package
        """
        self.env = Environment(
            loader=PackageLoader("task_notifier.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
        )

    def render(self, kind: Union[TemplateKind, str], template_input: TemplateInput) -> RenderedMessage:
        """Render subject, HTML and plain text for one message.

        Args:
            kind: Which message to produce
            template_input: Render data; must pass ``validate_template_input``

        Returns:
            RenderedMessage

        Raises:
            NotificationTemplateError: On an unknown kind, invalid input or
                a template failure
        """
        try:
            kind = TemplateKind(kind)
        except ValueError as e:
            raise NotificationTemplateError(f"Unknown template kind: {kind!r}") from e

        problems = validate_template_input(template_input)
        if problems:
            raise NotificationTemplateError(
                f"Cannot render {kind.value}: invalid fields {', '.join(problems)}"
            )

        context = self._build_context(template_input)
        template_name = self._body_template(kind, template_input.new_status)

        try:
            html = self.env.get_template(template_name).render(context)
        except TemplateError as e:
            logger.error(
                f"Template rendering failed: {e}",
                extra={"event": "templates.render_failed", "template": template_name},
                exc_info=True,
            )
            raise NotificationTemplateError(f"Template rendering failed: {e}") from e

        subject = self._subject(kind, template_input).replace("\n", " ").strip()
        return RenderedMessage(subject=subject, html=html, text=html_to_text(html))

    @staticmethod
    def _body_template(kind: TemplateKind, new_status: Optional[str]) -> str:
        if kind is TemplateKind.TASK_ASSIGNED:
            return _BODY_BY_STATUS["ASSIGNED"]
        if kind is TemplateKind.TASK_APPROVED:
            return _BODY_BY_STATUS["APPROVED"]
        if kind is TemplateKind.TASK_REJECTED:
            return _BODY_BY_STATUS["REJECTED"]
        if kind is TemplateKind.TASK_WAITING_CONFIRM:
            return _GENERIC_BODY
        return _BODY_BY_STATUS.get(new_status or "", _GENERIC_BODY)

    @staticmethod
    def _subject(kind: TemplateKind, data: TemplateInput) -> str:
        title = data.task_title
        if kind is TemplateKind.TASK_ASSIGNED:
            return f"[{BRAND}] 📋 New task assigned: {title}"
        if kind is TemplateKind.TASK_APPROVED:
            return f"[{BRAND}] 🎉 Task approved: {title}"
        if kind is TemplateKind.TASK_REJECTED:
            return f"[{BRAND}] ❌ Changes requested: {title}"
        if kind is TemplateKind.TASK_WAITING_CONFIRM:
            return f"[{BRAND}] ⏳ Confirmation requested: {title}"
        label = status_label(data.new_status)
        return f"[{BRAND}] {title} - {label.emoji} {label.label}"

    @staticmethod
    def _build_context(data: TemplateInput) -> Dict[str, Any]:
        context = data.model_dump()
        context.update(
            brand=BRAND,
            changed_at_display=_format_changed_at(data.changed_at),
            old_label=status_label(data.old_status),
            new_label=status_label(data.new_status),
            transition_message=transition_message(data.old_status, data.new_status),
        )
        return context


def sample_template_input(now: Optional[datetime] = None) -> TemplateInput:
    """Fixed, realistic render data for previews."""
    return TemplateInput(
        task_id="sample-task-123",
        task_title="Review the dashboard UI design",
        task_description="Review the new dashboard UI design and leave feedback.",
        project_title="Patent Search Platform",
        old_status="IN_PROGRESS",
        new_status="WAITING_CONFIRM",
        changed_by="Dana Developer",
        changed_at=now or utc_now(),
        task_url="http://localhost:5173/tasks/sample-task-123",
        assigner_name="Morgan Manager",
        assignee_name="Riley Designer",
    )


def render_preview(
    kind: Union[TemplateKind, str],
    renderer: Optional[TemplateRenderer] = None,
    now: Optional[datetime] = None,
) -> RenderedMessage:
    """Render ``kind`` against the built-in sample data."""
    renderer = renderer or TemplateRenderer()
    return renderer.render(kind, sample_template_input(now))
