"""Message text builders for records, drafts and the admin roster."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

from .conversation import DATE_FORMAT, RecordDraft
from .database import Admin, DebtRecord
from .localization import get_text


def format_due(value: Optional[datetime], language: str) -> str:
    if value is None:
        return get_text("not_specified", language)
    return value.strftime(DATE_FORMAT)


def date_example(now: datetime, days_ahead: int = 0) -> str:
    """Return a sample due date in the accepted input format."""

    return (now + timedelta(days=days_ahead)).strftime(DATE_FORMAT)


def _value(value: Optional[str], language: str) -> str:
    return value if value else get_text("not_specified", language)


def format_record(record: DebtRecord, language: str, *, show_owner: bool = False) -> str:
    """Render a stored record as a card.

    ``show_owner`` switches the name line to include the owner's user ID,
    which is what admins see in the full listing.
    """

    if show_owner:
        name_line = get_text("field_student", language).format(
            value=_value(record.full_name, language), user_id=record.user_id
        )
    else:
        name_line = get_text("field_full_name", language).format(
            value=_value(record.full_name, language)
        )
    status_key = "status_completed" if record.is_completed else "status_pending"
    lines = [
        get_text("record_title", language).format(id=record.id),
        name_line,
        get_text("field_group", language).format(value=_value(record.group_name, language)),
        get_text("field_subject", language).format(value=_value(record.subject, language)),
        get_text("field_task", language).format(
            value=_value(record.task_description, language)
        ),
        get_text("field_due", language).format(value=format_due(record.due_at, language)),
        get_text("field_status", language).format(value=get_text(status_key, language)),
    ]
    return "\n".join(lines)


def format_draft_confirmation(draft: RecordDraft, language: str) -> str:
    lines = [
        get_text("confirm_prompt", language),
        "",
        get_text("field_full_name", language).format(value=_value(draft.full_name, language)),
        get_text("field_group", language).format(value=_value(draft.group_name, language)),
        get_text("field_subject", language).format(value=_value(draft.subject, language)),
        get_text("field_task", language).format(
            value=_value(draft.task_description, language)
        ),
        get_text("field_due", language).format(value=format_due(draft.due_at, language)),
    ]
    return "\n".join(lines)


def format_admin_list(admins: Sequence[Admin], language: str) -> str:
    if not admins:
        return get_text("admin_list_empty", language)
    lines = [get_text("admin_list_header", language)]
    lines.extend(
        get_text("admin_list_item", language).format(user_id=admin.user_id)
        for admin in admins
    )
    return "\n".join(lines)


def compose_help(language: str, is_admin: bool) -> str:
    text = get_text("help_text", language)
    if is_admin:
        text = f"{text}\n\n{get_text('help_admin_text', language)}"
    return text
