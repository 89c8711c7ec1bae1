"""Tests for template rendering and the HTML-to-text conversion."""

from datetime import datetime, timezone

import pytest

from task_notifier.notifications.models import NotificationTemplateError, TemplateInput, TemplateKind
from task_notifier.notifications.templates import (
    DEFAULT_TRANSITION_MESSAGE,
    html_to_text,
    render_preview,
    sample_template_input,
    status_label,
    transition_message,
    validate_template_input,
)


class TestSubjects:
    @pytest.mark.parametrize(
        "kind, expected",
        [
            (TemplateKind.TASK_ASSIGNED, "[Tasko] 📋 New task assigned: Write release notes"),
            (TemplateKind.TASK_APPROVED, "[Tasko] 🎉 Task approved: Write release notes"),
            (TemplateKind.TASK_REJECTED, "[Tasko] ❌ Changes requested: Write release notes"),
            (TemplateKind.TASK_WAITING_CONFIRM, "[Tasko] ⏳ Confirmation requested: Write release notes"),
        ],
    )
    def test_dedicated_subjects(self, renderer, template_input, kind, expected):
        assert renderer.render(kind, template_input).subject == expected

    def test_generic_subject_uses_new_status_label(self, renderer, template_input):
        message = renderer.render(TemplateKind.TASK_STATUS_CHANGE, template_input)

        assert message.subject == "[Tasko] Write release notes - ⏳ Awaiting confirmation"

    def test_subject_has_no_line_breaks(self, renderer, template_input):
        data = template_input.model_copy(update={"task_title": "Line one\nline two"})

        subject = renderer.render(TemplateKind.TASK_APPROVED, data).subject

        assert "\n" not in subject
        assert subject.endswith("Line one line two")

    def test_kind_accepts_string_value(self, renderer, template_input):
        message = renderer.render("task_approved", template_input)

        assert message.subject.startswith("[Tasko] 🎉")


class TestBodies:
    def test_status_change_body_includes_details(self, renderer, template_input):
        message = renderer.render(TemplateKind.TASK_STATUS_CHANGE, template_input)

        assert "Write release notes" in message.text
        assert "Website relaunch" in message.text
        assert "The task is complete and awaiting confirmation." in message.text
        assert "In progress" in message.text
        assert "Awaiting confirmation" in message.text
        assert "Alex Kim" in message.text
        assert "2026-03-02 09:00 UTC" in message.text
        assert 'href="http://localhost:5173/tasks/task-1"' in message.html

    def test_generic_kind_picks_body_by_new_status(self, renderer, template_input):
        data = template_input.model_copy(update={"old_status": "ASSIGNED", "new_status": "APPROVED"})

        message = renderer.render(TemplateKind.TASK_STATUS_CHANGE, data)

        assert DEFAULT_TRANSITION_MESSAGE not in message.text
        assert "Your task has been approved!" in message.text

    def test_generic_body_default_message(self, renderer, template_input):
        data = template_input.model_copy(update={"old_status": "ASSIGNED", "new_status": "ARCHIVED"})

        message = renderer.render(TemplateKind.TASK_STATUS_CHANGE, data)

        assert DEFAULT_TRANSITION_MESSAGE in message.text
        assert "ARCHIVED" in message.text

    def test_assigned_body(self, renderer, template_input):
        message = renderer.render(TemplateKind.TASK_ASSIGNED, template_input)

        assert "A new task has been assigned to you" in message.text
        assert "Sam Lee" in message.text
        assert "Start task" in message.text

    def test_rejected_body(self, renderer, template_input):
        message = renderer.render(TemplateKind.TASK_REJECTED, template_input)

        assert "Task review result" in message.text
        assert "Read feedback" in message.text

    def test_waiting_confirm_uses_generic_body(self, renderer, template_input):
        message = renderer.render(TemplateKind.TASK_WAITING_CONFIRM, template_input)

        assert "Task status update" in message.text

    def test_user_content_is_escaped(self, renderer, template_input):
        data = template_input.model_copy(update={"task_title": "<script>alert(1)</script>"})

        message = renderer.render(TemplateKind.TASK_STATUS_CHANGE, data)

        assert "<script>alert(1)</script>" not in message.html
        assert "&lt;script&gt;" in message.html
        assert "<" not in message.text and ">" not in message.text

    def test_render_is_deterministic(self, renderer, template_input):
        first = renderer.render(TemplateKind.TASK_STATUS_CHANGE, template_input)
        second = renderer.render(TemplateKind.TASK_STATUS_CHANGE, template_input)

        assert first == second

    def test_text_is_html_to_text_of_html(self, renderer, template_input):
        message = renderer.render(TemplateKind.TASK_APPROVED, template_input)

        assert message.text == html_to_text(message.html)
        assert "font-family" not in message.text


class TestRenderErrors:
    def test_unknown_kind(self, renderer, template_input):
        with pytest.raises(NotificationTemplateError, match="Unknown template kind"):
            renderer.render("task_deleted", template_input)

    def test_missing_fields(self, renderer):
        with pytest.raises(NotificationTemplateError, match="task_title"):
            renderer.render(TemplateKind.TASK_STATUS_CHANGE, TemplateInput(task_id="task-1"))


class TestValidation:
    def test_valid_input(self, template_input):
        assert validate_template_input(template_input) == []

    def test_lists_every_missing_field(self):
        problems = validate_template_input(TemplateInput(task_id="task-1", task_title="  "))

        assert problems == [
            "task_title",
            "project_title",
            "old_status",
            "new_status",
            "changed_by",
            "changed_at",
            "task_url",
        ]

    def test_invalid_url(self, template_input):
        data = template_input.model_copy(update={"task_url": "not a url"})

        assert validate_template_input(data) == ["task_url (invalid URL)"]

    def test_optional_fields_not_required(self, template_input):
        data = template_input.model_copy(
            update={"assigner_name": None, "assignee_name": None, "task_description": None}
        )

        assert validate_template_input(data) == []


class TestHtmlToText:
    def test_strips_tags_and_collapses_whitespace(self):
        assert html_to_text("<p>Hello\n   <b>world</b></p>") == "Hello world"

    def test_unescapes_entities(self):
        assert html_to_text("Tom &amp; Jerry &quot;quoted&quot; it&#39;s") == "Tom & Jerry \"quoted\" it's"

    def test_nested_entities_never_leave_angle_brackets(self):
        text = html_to_text("&amp;lt;script&amp;gt;x")

        assert "<" not in text and ">" not in text
        assert "script" in text

    def test_drops_style_and_script_blocks(self):
        html = "<head><style>p { color: red; }</style></head><script>var a = 1;</script><p>Body</p>"

        assert html_to_text(html) == "Body"

    def test_empty_input(self):
        assert html_to_text("") == ""
        assert html_to_text(None) == ""

    @pytest.mark.parametrize(
        "html",
        [
            "<p>a &amp;amp; b</p>",
            "&lt;b&gt;bold&lt;/b&gt;",
            "x &nbsp;&nbsp; y",
            "plain text",
        ],
    )
    def test_idempotent(self, html):
        once = html_to_text(html)

        assert html_to_text(once) == once


class TestLabelsAndPreview:
    def test_known_status_label(self):
        assert status_label("APPROVED").label == "Approved"

    def test_unknown_status_label_shows_raw_name(self):
        label = status_label("ARCHIVED")

        assert label.label == "ARCHIVED"
        assert status_label(None).label == "Unknown"

    def test_transition_message_lookup(self):
        assert transition_message("ASSIGNED", "IN_PROGRESS") == "Work on the task has started."
        assert transition_message("APPROVED", "ASSIGNED") == DEFAULT_TRANSITION_MESSAGE

    @pytest.mark.parametrize("kind", list(TemplateKind))
    def test_preview_renders_every_kind(self, renderer, kind):
        now = datetime(2026, 1, 15, 12, 30, tzinfo=timezone.utc)

        message = render_preview(kind, renderer=renderer, now=now)

        assert "Review the dashboard UI design" in message.subject
        assert "2026-01-15 12:30 UTC" in message.text

    def test_sample_input_is_valid(self):
        assert validate_template_input(sample_template_input()) == []
