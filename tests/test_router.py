"""End-to-end routing tests against an in-memory responder."""
from __future__ import annotations

import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

from telegram import InlineKeyboardMarkup, ReplyKeyboardMarkup

from debtbot.auth import AdminService
from debtbot.conversation import ConversationEngine, Stage
from debtbot.database import Database
from debtbot.errors import StoreError
from debtbot.localization import get_text
from debtbot.records import RecordService
from debtbot.router import (
    RECORD_CALLBACK_PATTERN,
    CallbackEvent,
    CommandRouter,
    TextEvent,
    normalize_command,
    parse_record_id,
)

NOW = datetime(2026, 10, 19, 12, 0)
ADMIN = 1
STUDENT = 2
LANG = "ru"


def t(key: str) -> str:
    return get_text(key, LANG)


class FakeResponder:
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, object]] = []
        self.edited: list[tuple[int, int, str, object]] = []
        self.deleted: list[tuple[int, int]] = []
        self.answers: list[tuple[str, object]] = []
        self.last_message_id: int | None = None
        self._next_message_id = 100

    async def send(self, chat_id, text, reply_markup=None):
        self.sent.append((chat_id, text, reply_markup))
        self.last_message_id = self._next_message_id
        self._next_message_id += 1
        return self.last_message_id

    async def edit(self, chat_id, message_id, text, reply_markup=None):
        self.edited.append((chat_id, message_id, text, reply_markup))

    async def delete(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))

    async def answer(self, callback_id, text=None):
        self.answers.append((callback_id, text))

    @property
    def last_text(self) -> str:
        return self.sent[-1][1]

    @property
    def last_markup(self):
        return self.sent[-1][2]


def _button_labels(markup) -> list[str]:
    rows = markup.keyboard if isinstance(markup, ReplyKeyboardMarkup) else markup.inline_keyboard
    return [button.text for row in rows for button in row]


class CommandRouterTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmpdir.cleanup)
        self.db = Database(Path(self._tmpdir.name) / "test.db")
        await self.db.initialize()
        self.conversations = ConversationEngine(now=lambda: NOW)
        self.records = RecordService(self.db, self.conversations)
        self.admins = AdminService(self.db)
        await self.admins.ensure_seed_admin(ADMIN)
        self.responder = FakeResponder()
        self.router = CommandRouter(
            self.conversations,
            self.records,
            self.admins,
            self.responder,
            language=LANG,
            now=lambda: NOW,
        )

    async def say(self, user_id: int, text: str) -> None:
        await self.router.handle(TextEvent(chat_id=user_id, user_id=user_id, text=text))

    async def press(self, user_id: int, data: str, message_id: int | None = None) -> None:
        if message_id is None:
            message_id = self.responder.last_message_id or 0
        await self.router.handle(
            CallbackEvent(
                chat_id=user_id,
                user_id=user_id,
                data=data,
                message_id=message_id,
                callback_id=f"cb-{data}",
            )
        )

    async def _create_record(self, user_id: int = STUDENT):
        await self.say(user_id, t("btn_new_record"))
        for text in ("Ivanov Ivan Ivanovich", "CS-101", "Algorithms", "HW3", "31.12.2030 23:59"):
            await self.say(user_id, text)
        await self.press(user_id, "confirm")
        records = await self.records.list_for_user(user_id)
        return records[-1]

    async def test_start_shows_menu_without_admin_buttons_for_students(self):
        await self.say(STUDENT, "/start")

        self.assertEqual(self.responder.last_text, t("main_menu"))
        labels = _button_labels(self.responder.last_markup)
        self.assertIn(t("btn_new_record"), labels)
        self.assertNotIn(t("btn_all_records"), labels)

        await self.say(ADMIN, "/start")
        labels = _button_labels(self.responder.last_markup)
        self.assertIn(t("btn_all_records"), labels)
        self.assertIn(t("btn_manage_admins"), labels)

    async def test_new_record_dialogue_creates_record(self):
        await self.say(STUDENT, t("btn_new_record"))
        self.assertEqual(self.responder.last_text, t("enter_full_name"))
        self.assertEqual(_button_labels(self.responder.last_markup), [t("btn_cancel")])

        await self.say(STUDENT, "Ivanov Ivan Ivanovich")
        self.assertEqual(self.responder.last_text, t("enter_group"))
        await self.say(STUDENT, "CS-101")
        await self.say(STUDENT, "Algorithms")
        await self.say(STUDENT, "HW3")
        self.assertIn("22.10.2026 12:00", self.responder.last_text)

        await self.say(STUDENT, "31.12.2030 23:59")
        self.assertIn("31.12.2030 23:59", self.responder.last_text)
        self.assertIsInstance(self.responder.last_markup, InlineKeyboardMarkup)
        prompt_id = self.responder.last_message_id

        await self.press(STUDENT, "confirm")

        self.assertEqual(self.responder.last_text, t("record_saved"))
        records = await self.records.list_all()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].full_name, "Ivanov Ivan Ivanovich")
        self.assertEqual(records[0].due_at, datetime(2030, 12, 31, 23, 59))
        self.assertFalse(await self.conversations.has_state(STUDENT))
        self.assertEqual(self.responder.edited[-1][1], prompt_id)

    async def test_validation_errors_reprompt_same_stage(self):
        await self.say(STUDENT, t("btn_new_record"))
        await self.say(STUDENT, "Ivan")
        self.assertEqual(
            self.responder.last_text, t("invalid_full_name").format(min=5, max=100)
        )
        self.assertEqual(await self.conversations.stage(STUDENT), Stage.WAITING_FULLNAME)

        for text in ("Ivanov Ivan Ivanovich", "CS-101", "Algorithms", "HW3"):
            await self.say(STUDENT, text)
        await self.say(STUDENT, "2030-12-31 23:59")
        self.assertIn("19.10.2026 12:00", self.responder.last_text)
        await self.say(STUDENT, "01.01.2000 00:00")
        self.assertEqual(self.responder.last_text, t("date_not_in_future"))
        self.assertEqual(await self.conversations.stage(STUDENT), Stage.WAITING_DATE)

    async def test_menu_labels_are_dialogue_input_while_in_dialogue(self):
        await self.say(STUDENT, t("btn_new_record"))
        await self.say(STUDENT, t("btn_my_records"))

        self.assertEqual(self.responder.last_text, t("enter_group"))

    async def test_cancel_clears_dialogue(self):
        await self.say(STUDENT, t("btn_new_record"))
        await self.say(STUDENT, "Ivanov Ivan Ivanovich")

        await self.say(STUDENT, t("btn_cancel"))

        self.assertEqual(self.responder.last_text, t("action_cancelled"))
        self.assertFalse(await self.conversations.has_state(STUDENT))

    async def _reach_stage(self, user_id: int, stage: Stage) -> None:
        if stage is Stage.ADDING_ADMIN:
            await self.press(user_id, "add_admin")
        elif stage is Stage.REMOVING_ADMIN:
            await self.press(user_id, "remove_admin")
        else:
            await self.say(user_id, t("btn_new_record"))
            answers = ("Ivanov Ivan Ivanovich", "CS-101", "Algorithms", "HW3", "31.12.2030 23:59")
            for text in answers:
                if await self.conversations.stage(user_id) is stage:
                    break
                await self.say(user_id, text)
        self.assertEqual(await self.conversations.stage(user_id), stage)

    async def test_cancel_clears_every_dialogue_stage(self):
        stages = [stage for stage in Stage if stage is not Stage.NONE]
        for stage in stages:
            for cancel_text in ("/cancel", t("btn_cancel")):
                with self.subTest(stage=stage, cancel=cancel_text):
                    await self._reach_stage(ADMIN, stage)
                    prompt_id = self.responder.last_message_id

                    await self.say(ADMIN, cancel_text)

                    self.assertEqual(self.responder.last_text, t("action_cancelled"))
                    self.assertFalse(await self.conversations.has_state(ADMIN))
                    if stage is Stage.AWAITING_CONFIRMATION:
                        await self.press(ADMIN, "confirm", message_id=prompt_id)
                        self.assertEqual(await self.records.list_all(), [])
                        self.assertFalse(await self.conversations.has_state(ADMIN))

    async def test_confirm_on_superseded_prompt_is_refused(self):
        await self._reach_stage(STUDENT, Stage.AWAITING_CONFIRMATION)
        first_prompt = self.responder.last_message_id
        await self.say(STUDENT, "01.06.2031 10:30")
        latest_prompt = self.responder.last_message_id

        await self.press(STUDENT, "confirm", message_id=first_prompt)

        self.assertEqual(self.responder.answers[-1], ("cb-confirm", t("confirmation_outdated")))
        self.assertEqual(await self.records.list_all(), [])
        self.assertEqual(await self.conversations.stage(STUDENT), Stage.AWAITING_CONFIRMATION)

        await self.press(STUDENT, "confirm", message_id=latest_prompt)

        records = await self.records.list_all()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].due_at, datetime(2031, 6, 1, 10, 30))
        self.assertEqual(self.responder.edited[-1][1], latest_prompt)

    async def test_confirm_without_draft_apologises_and_resets(self):
        await self.press(STUDENT, "confirm")

        self.assertEqual(self.responder.answers[-1], ("cb-confirm", t("internal_error")))
        self.assertEqual(self.responder.last_text, t("internal_error"))
        self.assertEqual(await self.records.list_all(), [])

    async def test_non_admin_cannot_reach_admin_commands(self):
        with mock.patch.object(self.records, "list_all") as list_all:
            await self.say(STUDENT, t("btn_all_records"))
            await self.say(STUDENT, t("btn_manage_admins"))
        list_all.assert_not_called()
        self.assertEqual(self.responder.sent, [])

    async def test_non_admin_callbacks_are_ignored(self):
        record = await self._create_record()
        self.responder.sent.clear()

        await self.press(STUDENT, f"toggle_{record.id}")
        await self.press(STUDENT, f"delete_{record.id}")
        await self.press(STUDENT, "add_admin")

        self.assertEqual(self.responder.answers[-3:], [
            (f"cb-toggle_{record.id}", None),
            (f"cb-delete_{record.id}", None),
            ("cb-add_admin", None),
        ])
        stored = await self.db.get_record(record.id)
        self.assertFalse(stored.is_completed)
        self.assertFalse(await self.conversations.has_state(STUDENT))

    async def test_admin_sees_all_records_with_actions(self):
        await self._create_record(STUDENT)
        await self._create_record(STUDENT + 1)
        self.responder.sent.clear()

        await self.say(ADMIN, t("btn_all_records"))

        self.assertEqual(len(self.responder.sent), 2)
        for _, text, markup in self.responder.sent:
            self.assertIn("ID:", text)
            self.assertEqual(
                _button_labels(markup), [t("btn_mark_done"), t("btn_delete")]
            )

    async def test_admin_toggle_and_delete(self):
        record = await self._create_record()

        await self.press(ADMIN, f"toggle_{record.id}", message_id=77)
        self.assertEqual(self.responder.answers[-1][1], t("status_changed_completed"))
        _, message_id, text, markup = self.responder.edited[-1]
        self.assertEqual(message_id, 77)
        self.assertIn(t("status_completed"), text)
        self.assertEqual(_button_labels(markup)[0], t("btn_mark_pending"))

        await self.press(ADMIN, f"delete_{record.id}", message_id=77)
        self.assertEqual(self.responder.deleted, [(ADMIN, 77)])
        self.assertEqual(self.responder.answers[-1][1], t("record_deleted"))

        await self.press(ADMIN, f"delete_{record.id}", message_id=77)
        self.assertEqual(self.responder.answers[-1][1], t("record_not_found"))
        self.assertEqual(len(self.responder.deleted), 1)

    async def test_unparsable_record_id_reports_not_found(self):
        await self.press(ADMIN, "toggle_abc")

        self.assertEqual(self.responder.answers[-1], ("cb-toggle_abc", t("record_not_found")))

    async def test_record_id_beyond_sqlite_range_keeps_draft(self):
        await self._reach_stage(ADMIN, Stage.WAITING_GROUP)
        huge = "9" * 20

        await self.press(ADMIN, f"toggle_{huge}")
        self.assertEqual(self.responder.answers[-1], (f"cb-toggle_{huge}", t("record_not_found")))
        await self.press(ADMIN, f"delete_{huge}")
        self.assertEqual(self.responder.answers[-1], (f"cb-delete_{huge}", t("record_not_found")))

        self.assertEqual(await self.conversations.stage(ADMIN), Stage.WAITING_GROUP)

    async def test_admin_id_beyond_sqlite_range_is_invalid(self):
        for flow_callback in ("add_admin", "remove_admin"):
            with self.subTest(flow=flow_callback):
                await self.press(ADMIN, flow_callback)

                await self.say(ADMIN, "9" * 20)

                self.assertEqual(self.responder.last_text, t("invalid_user_id"))
                self.assertFalse(await self.conversations.has_state(ADMIN))
        self.assertEqual([admin.user_id for admin in await self.admins.list_admins()], [ADMIN])

    async def test_add_and_remove_admin_dialogue(self):
        await self.press(ADMIN, "add_admin")
        self.assertEqual(await self.conversations.stage(ADMIN), Stage.ADDING_ADMIN)
        await self.say(ADMIN, str(STUDENT))
        self.assertEqual(self.responder.last_text, t("admin_added").format(user_id=STUDENT))
        self.assertTrue(await self.admins.is_admin(STUDENT))

        await self.press(ADMIN, "add_admin")
        await self.say(ADMIN, str(STUDENT))
        self.assertEqual(self.responder.last_text, t("admin_exists").format(user_id=STUDENT))

        await self.press(ADMIN, "remove_admin")
        await self.say(ADMIN, str(STUDENT))
        self.assertEqual(self.responder.last_text, t("admin_removed").format(user_id=STUDENT))
        self.assertFalse(await self.admins.is_admin(STUDENT))

        await self.press(ADMIN, "remove_admin")
        await self.say(ADMIN, "999")
        self.assertEqual(self.responder.last_text, t("admin_not_found").format(user_id=999))

    async def test_invalid_admin_id_clears_state(self):
        await self.press(ADMIN, "add_admin")

        await self.say(ADMIN, "abc")

        self.assertEqual(self.responder.last_text, t("invalid_user_id"))
        self.assertFalse(await self.conversations.has_state(ADMIN))

    async def test_list_admins(self):
        await self.admins.add_admin(5)

        await self.press(ADMIN, "list_admins")

        self.assertEqual(
            self.responder.last_text,
            "\n".join([t("admin_list_header"), "• ID: 1", "• ID: 5"]),
        )

    async def test_list_admins_store_failure_answers_once(self):
        with mock.patch.object(
            self.db, "list_admins", side_effect=StoreError("disk I/O error")
        ):
            with self.assertLogs("debtbot.router", level="ERROR"):
                await self.press(ADMIN, "list_admins")

        self.assertEqual(self.responder.answers, [("cb-list_admins", t("store_error"))])
        self.assertEqual(self.responder.last_text, t("store_error"))

    async def test_my_records_lists_only_own(self):
        await self._create_record(STUDENT)
        await self._create_record(STUDENT + 1)
        self.responder.sent.clear()

        await self.say(STUDENT, t("btn_my_records"))

        self.assertEqual(len(self.responder.sent), 1)
        self.assertNotIn("ID:", self.responder.last_text)

        await self.say(ADMIN, t("btn_my_records"))
        self.assertEqual(self.responder.last_text, t("no_own_records"))

    async def test_help_includes_admin_section_only_for_admins(self):
        await self.say(STUDENT, "/help")
        self.assertNotIn(t("help_admin_text"), self.responder.last_text)

        await self.say(ADMIN, t("btn_help"))
        self.assertIn(t("help_admin_text"), self.responder.last_text)

    async def test_unknown_text_returns_main_menu(self):
        await self.say(STUDENT, "hello")

        self.assertEqual(self.responder.last_text, t("unknown_command"))

    async def test_store_failure_is_reported_without_advancing(self):
        await self.say(STUDENT, t("btn_new_record"))
        for text in ("Ivanov Ivan Ivanovich", "CS-101", "Algorithms", "HW3", "31.12.2030 23:59"):
            await self.say(STUDENT, text)

        with mock.patch.object(self.db, "add_record", side_effect=StoreError("locked")):
            with self.assertLogs("debtbot.router", level="ERROR"):
                await self.press(STUDENT, "confirm")

        self.assertEqual(self.responder.last_text, t("store_error"))
        self.assertEqual(await self.conversations.stage(STUDENT), Stage.AWAITING_CONFIRMATION)


def test_record_callback_pattern():
    assert RECORD_CALLBACK_PATTERN.fullmatch("toggle_12").group("record_id") == "12"
    assert RECORD_CALLBACK_PATTERN.fullmatch("delete_").group("action") == "delete"
    assert RECORD_CALLBACK_PATTERN.fullmatch("add_admin") is None


def test_parse_record_id():
    assert parse_record_id("42") == 42
    assert parse_record_id("-1") is None
    assert parse_record_id("4x") is None


def test_normalize_command_strips_bot_name():
    assert normalize_command("/start@DebtBot") == "/start"
    assert normalize_command("/HELP now") == "/help"
    assert normalize_command("hello") is None


if __name__ == "__main__":
    unittest.main()
