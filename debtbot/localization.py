"""Localization utilities for DebtBot."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

DEFAULT_LANGUAGE = "ru"

# Button labels double as commands, so the router matches them exactly.
MENU_LABEL_KEYS = (
    "btn_new_record",
    "btn_my_records",
    "btn_all_records",
    "btn_manage_admins",
    "btn_help",
    "btn_cancel",
)


@dataclass(frozen=True)
class LanguagePack:
    code: str
    texts: Dict[str, str]

    def get(self, key: str) -> str:
        return self.texts.get(key, key)


_LANGUAGES = {
    "ru": LanguagePack(
        code="ru",
        texts={
            "btn_new_record": "📝 Новая запись",
            "btn_my_records": "📋 Мои записи",
            "btn_all_records": "👑 Все записи",
            "btn_manage_admins": "👥 Управление админами",
            "btn_help": "ℹ️ Помощь",
            "btn_cancel": "❌ Отмена",
            "main_menu": "Главное меню:",
            "action_cancelled": "❌ Действие отменено",
            "unknown_command": "Выберите действие в меню ниже.",
            "enter_full_name": "👤 Введите ваше ФИО полностью:",
            "enter_group": "📚 Введите вашу группу:",
            "enter_subject": "📖 Введите предмет:",
            "enter_task": "📝 Введите задание:",
            "enter_due_date": "📅 Введите дату и время сдачи (ДД.ММ.ГГГГ ЧЧ:мм)\nПример: {example}",
            "invalid_full_name": "❌ ФИО должно содержать от {min} до {max} символов",
            "invalid_date_format": "❌ Неверный формат! Используйте ДД.ММ.ГГГГ ЧЧ:мм\nПример: {example}",
            "date_not_in_future": "❌ Дата должна быть в будущем!",
            "invalid_user_id": "❌ Неверный формат ID. Введите числовой идентификатор",
            "confirm_prompt": "Подтвердите запись:",
            "btn_confirm": "✅ Подтвердить",
            "record_saved": "✅ Запись успешно сохранена!",
            "record_title": "📌 Запись #{id}",
            "field_full_name": "👤 ФИО: {value}",
            "field_student": "👤 Студент: {value} (ID: {user_id})",
            "field_group": "📚 Группа: {value}",
            "field_subject": "📖 Предмет: {value}",
            "field_task": "📝 Задание: {value}",
            "field_due": "📅 Срок: {value}",
            "field_status": "🏷 Статус: {value}",
            "not_specified": "Не указано",
            "status_completed": "✅ Выполнено",
            "status_pending": "🕒 В процессе",
            "btn_mark_done": "✅ Выполнить",
            "btn_mark_pending": "❌ Отметить невыполненным",
            "btn_delete": "🗑 Удалить",
            "no_own_records": "📭 У вас нет активных записей.",
            "no_records": "📭 Нет активных записей.",
            "status_changed_completed": "Статус изменён на «Выполнено»",
            "status_changed_pending": "Статус изменён на «Не выполнено»",
            "record_deleted": "✅ Запись удалена!",
            "record_not_found": "❌ Запись не найдена",
            "confirmation_outdated": "⚠️ Эта запись уже изменена. Подтвердите последнее сообщение.",
            "admin_management": "Управление администраторами:",
            "btn_add_admin": "➕ Добавить админа",
            "btn_remove_admin": "➖ Удалить админа",
            "btn_list_admins": "📜 Список админов",
            "enter_admin_id_add": "Введите ID пользователя для добавления в админы:",
            "enter_admin_id_remove": "Введите ID администратора для удаления:",
            "admin_added": "✅ Пользователь {user_id} добавлен в админы",
            "admin_exists": "❌ Пользователь {user_id} уже является администратором",
            "admin_removed": "✅ Администратор {user_id} удалён",
            "admin_not_found": "❌ Администратор {user_id} не найден",
            "admin_list_header": "👑 Список администраторов:",
            "admin_list_item": "• ID: {user_id}",
            "admin_list_empty": "❌ Список администраторов пуст",
            "help_text": (
                "📌 Основные команды:\n"
                "📝 Новая запись - Создать новую запись\n"
                "📋 Мои записи - Показать мои записи\n"
                "❌ Отмена - Прервать текущее действие"
            ),
            "help_admin_text": (
                "👑 Команды администратора:\n"
                "👑 Все записи - Показать все записи\n"
                "👥 Управление админами - Управление правами администраторов"
            ),
            "internal_error": "❌ Произошла ошибка при обработке запроса. Возвращаемся в главное меню.",
            "store_error": "❌ Не удалось сохранить изменения. Попробуйте ещё раз.",
        },
    ),
    "en": LanguagePack(
        code="en",
        texts={
            "btn_new_record": "📝 New record",
            "btn_my_records": "📋 My records",
            "btn_all_records": "👑 All records",
            "btn_manage_admins": "👥 Manage admins",
            "btn_help": "ℹ️ Help",
            "btn_cancel": "❌ Cancel",
            "main_menu": "Main menu:",
            "action_cancelled": "❌ Action cancelled",
            "unknown_command": "Choose an action from the menu below.",
            "enter_full_name": "👤 Send your full name:",
            "enter_group": "📚 Send your group:",
            "enter_subject": "📖 Send the subject:",
            "enter_task": "📝 Send the assignment:",
            "enter_due_date": "📅 Send the due date and time (DD.MM.YYYY HH:mm)\nExample: {example}",
            "invalid_full_name": "❌ The full name must be {min} to {max} characters long",
            "invalid_date_format": "❌ Wrong format! Use DD.MM.YYYY HH:mm\nExample: {example}",
            "date_not_in_future": "❌ The date must be in the future!",
            "invalid_user_id": "❌ Invalid ID. Send a numeric user ID",
            "confirm_prompt": "Confirm the record:",
            "btn_confirm": "✅ Confirm",
            "record_saved": "✅ Record saved!",
            "record_title": "📌 Record #{id}",
            "field_full_name": "👤 Full name: {value}",
            "field_student": "👤 Student: {value} (ID: {user_id})",
            "field_group": "📚 Group: {value}",
            "field_subject": "📖 Subject: {value}",
            "field_task": "📝 Assignment: {value}",
            "field_due": "📅 Due: {value}",
            "field_status": "🏷 Status: {value}",
            "not_specified": "Not specified",
            "status_completed": "✅ Completed",
            "status_pending": "🕒 In progress",
            "btn_mark_done": "✅ Complete",
            "btn_mark_pending": "❌ Mark as not completed",
            "btn_delete": "🗑 Delete",
            "no_own_records": "📭 You have no records.",
            "no_records": "📭 There are no records.",
            "status_changed_completed": "Status changed to \"Completed\"",
            "status_changed_pending": "Status changed to \"Not completed\"",
            "record_deleted": "✅ Record deleted!",
            "record_not_found": "❌ Record not found",
            "confirmation_outdated": "⚠️ This draft has changed. Please confirm the latest message.",
            "admin_management": "Admin management:",
            "btn_add_admin": "➕ Add admin",
            "btn_remove_admin": "➖ Remove admin",
            "btn_list_admins": "📜 List admins",
            "enter_admin_id_add": "Send the user ID to grant admin rights:",
            "enter_admin_id_remove": "Send the admin ID to remove:",
            "admin_added": "✅ User {user_id} is now an admin",
            "admin_exists": "❌ User {user_id} is already an admin",
            "admin_removed": "✅ Admin {user_id} removed",
            "admin_not_found": "❌ Admin {user_id} not found",
            "admin_list_header": "👑 Admins:",
            "admin_list_item": "• ID: {user_id}",
            "admin_list_empty": "❌ The admin list is empty",
            "help_text": (
                "📌 Commands:\n"
                "📝 New record - Create a new record\n"
                "📋 My records - Show my records\n"
                "❌ Cancel - Abort the current action"
            ),
            "help_admin_text": (
                "👑 Admin commands:\n"
                "👑 All records - Show every record\n"
                "👥 Manage admins - Grant or revoke admin rights"
            ),
            "internal_error": "❌ Something went wrong. Returning to the main menu.",
            "store_error": "❌ Could not save changes. Please try again.",
        },
    ),
}


def get_text(key: str, language: str) -> str:
    """Return the localized text for ``key`` and ``language``."""

    pack = _LANGUAGES.get(language, _LANGUAGES[DEFAULT_LANGUAGE])
    return pack.get(key)


def available_languages() -> Dict[str, str]:
    """Return the available language codes and human-readable titles."""

    return {"ru": "Русский", "en": "English"}


def match_menu_label(text: str) -> Optional[str]:
    """Return the key of the menu button whose label equals ``text`` in any language."""

    for pack in _LANGUAGES.values():
        for key in MENU_LABEL_KEYS:
            if pack.texts[key] == text:
                return key
    return None
