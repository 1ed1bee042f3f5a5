"""Keyboard helpers for DebtBot."""
from __future__ import annotations

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
)

from .database import DebtRecord
from .localization import get_text

CONFIRM_CALLBACK = "confirm"
ADD_ADMIN_CALLBACK = "add_admin"
REMOVE_ADMIN_CALLBACK = "remove_admin"
LIST_ADMINS_CALLBACK = "list_admins"
TOGGLE_PREFIX = "toggle_"
DELETE_PREFIX = "delete_"


def main_menu_keyboard(language: str, is_admin: bool) -> ReplyKeyboardMarkup:
    """Return the reply keyboard shown with the main menu.

    Admin-only buttons are left out for regular users.
    """

    rows = [
        [
            KeyboardButton(get_text("btn_new_record", language)),
            KeyboardButton(get_text("btn_my_records", language)),
        ]
    ]
    if is_admin:
        rows.append(
            [
                KeyboardButton(get_text("btn_all_records", language)),
                KeyboardButton(get_text("btn_manage_admins", language)),
            ]
        )
    rows.append([KeyboardButton(get_text("btn_help", language))])
    return ReplyKeyboardMarkup(rows, resize_keyboard=True)


def cancel_keyboard(language: str) -> ReplyKeyboardMarkup:
    """Reply keyboard with a single cancel button, shown during dialogues."""

    return ReplyKeyboardMarkup(
        [[KeyboardButton(get_text("btn_cancel", language))]], resize_keyboard=True
    )


def confirm_keyboard(language: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(
                    get_text("btn_confirm", language), callback_data=CONFIRM_CALLBACK
                )
            ]
        ]
    )


def record_actions_keyboard(record: DebtRecord, language: str) -> InlineKeyboardMarkup:
    """Inline keyboard with the toggle and delete actions for one record."""

    toggle_label = "btn_mark_pending" if record.is_completed else "btn_mark_done"
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(
                    get_text(toggle_label, language),
                    callback_data=f"{TOGGLE_PREFIX}{record.id}",
                ),
                InlineKeyboardButton(
                    get_text("btn_delete", language),
                    callback_data=f"{DELETE_PREFIX}{record.id}",
                ),
            ]
        ]
    )


def admin_management_keyboard(language: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton(
                    get_text("btn_add_admin", language),
                    callback_data=ADD_ADMIN_CALLBACK,
                ),
                InlineKeyboardButton(
                    get_text("btn_remove_admin", language),
                    callback_data=REMOVE_ADMIN_CALLBACK,
                ),
            ],
            [
                InlineKeyboardButton(
                    get_text("btn_list_admins", language),
                    callback_data=LIST_ADMINS_CALLBACK,
                )
            ],
        ]
    )
