"""Routing of inbound messages and button callbacks."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, Union

from telegram import InlineKeyboardMarkup, ReplyKeyboardMarkup
from telegram.error import TelegramError

from .auth import AdminService
from .conversation import (
    AdminTargetParsed,
    AdminTargetRejected,
    Advanced,
    ConversationEngine,
    DraftCompleted,
    Flow,
    Rejected,
    Stage,
    StepOutcome,
)
from .errors import (
    AdminNotFoundError,
    RecordNotFoundError,
    StaleConfirmationError,
    StateDesyncError,
    StoreError,
    ValidationError,
)
from .formatting import (
    compose_help,
    date_example,
    format_admin_list,
    format_draft_confirmation,
    format_record,
)
from .keyboards import (
    ADD_ADMIN_CALLBACK,
    CONFIRM_CALLBACK,
    LIST_ADMINS_CALLBACK,
    REMOVE_ADMIN_CALLBACK,
    admin_management_keyboard,
    cancel_keyboard,
    confirm_keyboard,
    main_menu_keyboard,
    record_actions_keyboard,
)
from .database import MAX_SQLITE_INTEGER
from .localization import DEFAULT_LANGUAGE, get_text, match_menu_label
from .records import RecordService

LOGGER = logging.getLogger(__name__)

ReplyMarkup = Union[InlineKeyboardMarkup, ReplyKeyboardMarkup]

RESET_COMMANDS = ("/start", "/cancel")
HELP_COMMAND = "/help"
ADMIN_CALLBACKS = (ADD_ADMIN_CALLBACK, REMOVE_ADMIN_CALLBACK, LIST_ADMINS_CALLBACK)
RECORD_CALLBACK_PATTERN = re.compile(r"^(?P<action>toggle|delete)_(?P<record_id>.*)$")
_RECORD_ID_PATTERN = re.compile(r"^\d+$")
DUE_DATE_EXAMPLE_DAYS = 3

_STAGE_PROMPTS = {
    Stage.WAITING_FULLNAME: "enter_full_name",
    Stage.WAITING_GROUP: "enter_group",
    Stage.WAITING_SUBJECT: "enter_subject",
    Stage.WAITING_TASK: "enter_task",
    Stage.WAITING_DATE: "enter_due_date",
}


@dataclass(frozen=True, slots=True)
class TextEvent:
    chat_id: int
    user_id: int
    text: str


@dataclass(frozen=True, slots=True)
class CallbackEvent:
    chat_id: int
    user_id: int
    data: str
    message_id: int
    callback_id: str


InboundEvent = Union[TextEvent, CallbackEvent]


class Responder(Protocol):
    """Outbound side of the messaging transport."""

    async def send(
        self, chat_id: int, text: str, reply_markup: Optional[ReplyMarkup] = None
    ) -> Optional[int]:
        """Send a message and return its ID when the transport reports one."""

    async def edit(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> None: ...

    async def delete(self, chat_id: int, message_id: int) -> None: ...

    async def answer(self, callback_id: str, text: Optional[str] = None) -> None: ...


def normalize_command(text: str) -> Optional[str]:
    """Return ``/command`` without a ``@botname`` suffix, or ``None`` for plain text."""

    if not text.startswith("/"):
        return None
    return text.split(maxsplit=1)[0].split("@", 1)[0].lower()


def parse_record_id(raw: str) -> Optional[int]:
    if not _RECORD_ID_PATTERN.fullmatch(raw):
        return None
    record_id = int(raw)
    if record_id > MAX_SQLITE_INTEGER:
        return None
    return record_id


class CommandRouter:
    """Single entry point for every inbound event.

    :meth:`handle` never lets an exception escape (task cancellation aside):
    typed errors are turned into replies and anything unexpected is logged.
    """

    def __init__(
        self,
        conversations: ConversationEngine,
        records: RecordService,
        admins: AdminService,
        responder: Responder,
        *,
        language: str = DEFAULT_LANGUAGE,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.conversations = conversations
        self.records = records
        self.admins = admins
        self.responder = responder
        self.language = language
        self._now = now

    def text(self, key: str) -> str:
        return get_text(key, self.language)

    async def handle(self, event: InboundEvent) -> None:
        try:
            if isinstance(event, CallbackEvent):
                await self._handle_callback(event)
            else:
                await self._handle_text(event)
        except StateDesyncError:
            LOGGER.exception("Conversation state out of sync for user %s", event.user_id)
            await self._recover(event, "internal_error")
        except StoreError:
            LOGGER.exception("Storage failure while handling update from user %s", event.user_id)
            await self._report_store_failure(event)
        except TelegramError:
            LOGGER.exception("Transport failure while handling update from user %s", event.user_id)
        except Exception:  # pragma: no cover - last-resort logging
            LOGGER.exception("Unexpected error while handling update from user %s", event.user_id)
            await self._recover(event, "internal_error")

    async def _recover(self, event: InboundEvent, message_key: str) -> None:
        await self.conversations.cancel(event.user_id)
        try:
            if isinstance(event, CallbackEvent):
                await self.responder.answer(event.callback_id, self.text(message_key))
            await self.send_main_menu(event.chat_id, event.user_id, self.text(message_key))
        except (TelegramError, StoreError):
            LOGGER.exception("Could not notify user %s about the failure", event.user_id)

    async def _report_store_failure(self, event: InboundEvent) -> None:
        # The conversation state is left alone so the user can retry.
        message = self.text("store_error")
        try:
            if isinstance(event, CallbackEvent):
                await self.responder.answer(event.callback_id, message)
            await self.responder.send(event.chat_id, message)
        except TelegramError:
            LOGGER.exception("Could not notify user %s about the storage failure", event.user_id)

    async def send_main_menu(self, chat_id: int, user_id: int, text: Optional[str] = None) -> None:
        is_admin = await self.admins.is_admin(user_id)
        await self.responder.send(
            chat_id,
            text or self.text("main_menu"),
            reply_markup=main_menu_keyboard(self.language, is_admin),
        )

    async def _require_admin(self, user_id: int, action: str) -> bool:
        if await self.admins.is_admin(user_id):
            return True
        LOGGER.info("Ignoring %s from non-admin user %s", action, user_id)
        return False

    # ---- Text messages ----

    async def _handle_text(self, event: TextEvent) -> None:
        text = event.text.strip()
        command = normalize_command(text)
        label = match_menu_label(text)

        if command in RESET_COMMANDS or label == "btn_cancel":
            cleared = await self.conversations.cancel(event.user_id)
            key = "action_cancelled" if cleared else "main_menu"
            await self.send_main_menu(event.chat_id, event.user_id, self.text(key))
            return

        async with self.conversations.locked(event.user_id) as slot:
            outcome = slot.step(text) if slot.active else None
        if outcome is not None:
            await self._render_outcome(event, outcome)
            return

        if label == "btn_new_record":
            await self._start_record(event)
        elif label == "btn_my_records":
            await self._show_user_records(event)
        elif label == "btn_all_records":
            await self._show_all_records(event)
        elif label == "btn_manage_admins":
            await self._show_admin_management(event)
        elif label == "btn_help" or command == HELP_COMMAND:
            await self._show_help(event)
        else:
            await self.send_main_menu(
                event.chat_id, event.user_id, self.text("unknown_command")
            )

    def _stage_prompt(self, stage: Stage) -> str:
        return self.text(_STAGE_PROMPTS[stage]).format(
            example=date_example(self._now(), DUE_DATE_EXAMPLE_DAYS)
        )

    def _validation_message(self, error: ValidationError) -> str:
        params = {"example": date_example(self._now())}
        params.update(error.params)
        return self.text(error.message_key).format(**params)

    async def _render_outcome(self, event: TextEvent, outcome: StepOutcome) -> None:
        if isinstance(outcome, Advanced):
            await self.responder.send(event.chat_id, self._stage_prompt(outcome.stage))
        elif isinstance(outcome, Rejected):
            await self.responder.send(event.chat_id, self._validation_message(outcome.error))
        elif isinstance(outcome, DraftCompleted):
            message_id = await self.responder.send(
                event.chat_id,
                format_draft_confirmation(outcome.draft, self.language),
                reply_markup=confirm_keyboard(self.language),
            )
            if message_id is not None:
                await self.conversations.remember_confirmation(event.user_id, message_id)
        elif isinstance(outcome, AdminTargetRejected):
            await self.send_main_menu(
                event.chat_id, event.user_id, self._validation_message(outcome.error)
            )
        elif isinstance(outcome, AdminTargetParsed):
            await self._apply_admin_change(event, outcome)

    async def _apply_admin_change(self, event: TextEvent, outcome: AdminTargetParsed) -> None:
        if not await self._require_admin(event.user_id, outcome.flow.value):
            await self.send_main_menu(event.chat_id, event.user_id)
            return
        target = outcome.target_user_id
        if outcome.flow is Flow.ADD_ADMIN:
            added = await self.admins.add_admin(target)
            key = "admin_added" if added else "admin_exists"
        else:
            try:
                await self.admins.remove_admin(target)
            except AdminNotFoundError:
                key = "admin_not_found"
            else:
                key = "admin_removed"
        await self.send_main_menu(
            event.chat_id, event.user_id, self.text(key).format(user_id=target)
        )

    async def _start_record(self, event: TextEvent) -> None:
        await self.conversations.begin(event.user_id, Flow.RECORD)
        await self.responder.send(
            event.chat_id,
            self._stage_prompt(Stage.WAITING_FULLNAME),
            reply_markup=cancel_keyboard(self.language),
        )

    async def _show_user_records(self, event: TextEvent) -> None:
        records = await self.records.list_for_user(event.user_id)
        if not records:
            await self.send_main_menu(event.chat_id, event.user_id, self.text("no_own_records"))
            return
        menu = main_menu_keyboard(self.language, await self.admins.is_admin(event.user_id))
        for record in records:
            await self.responder.send(
                event.chat_id, format_record(record, self.language), reply_markup=menu
            )

    async def _show_all_records(self, event: TextEvent) -> None:
        if not await self._require_admin(event.user_id, "all records"):
            return
        records = await self.records.list_all()
        if not records:
            await self.send_main_menu(event.chat_id, event.user_id, self.text("no_records"))
            return
        for record in records:
            await self.responder.send(
                event.chat_id,
                format_record(record, self.language, show_owner=True),
                reply_markup=record_actions_keyboard(record, self.language),
            )

    async def _show_admin_management(self, event: TextEvent) -> None:
        if not await self._require_admin(event.user_id, "admin management"):
            return
        await self.responder.send(
            event.chat_id,
            self.text("admin_management"),
            reply_markup=admin_management_keyboard(self.language),
        )

    async def _show_help(self, event: TextEvent) -> None:
        is_admin = await self.admins.is_admin(event.user_id)
        await self.responder.send(
            event.chat_id,
            compose_help(self.language, is_admin),
            reply_markup=main_menu_keyboard(self.language, is_admin),
        )

    # ---- Callbacks ----

    async def _handle_callback(self, event: CallbackEvent) -> None:
        data = event.data
        if data == CONFIRM_CALLBACK:
            await self._confirm(event)
            return

        record_match = RECORD_CALLBACK_PATTERN.fullmatch(data)
        if record_match is None and data not in ADMIN_CALLBACKS:
            LOGGER.warning("Unknown callback %r from user %s", data, event.user_id)
            await self.responder.answer(event.callback_id)
            return
        if not await self._require_admin(event.user_id, data):
            await self.responder.answer(event.callback_id)
            return

        if record_match is not None:
            record_id = parse_record_id(record_match.group("record_id"))
            if record_match.group("action") == "toggle":
                await self._toggle(event, record_id)
            else:
                await self._delete(event, record_id)
        elif data == ADD_ADMIN_CALLBACK:
            await self._begin_admin_flow(event, Flow.ADD_ADMIN, "enter_admin_id_add")
        elif data == REMOVE_ADMIN_CALLBACK:
            await self._begin_admin_flow(event, Flow.REMOVE_ADMIN, "enter_admin_id_remove")
        else:
            admins = await self.admins.list_admins()
            await self.responder.answer(event.callback_id)
            await self.responder.send(event.chat_id, format_admin_list(admins, self.language))

    async def _confirm(self, event: CallbackEvent) -> None:
        try:
            record = await self.records.confirm(event.user_id, event.message_id)
        except StaleConfirmationError:
            LOGGER.info(
                "User %s pressed confirm on superseded message %s",
                event.user_id,
                event.message_id,
            )
            await self.responder.answer(event.callback_id, self.text("confirmation_outdated"))
            return
        await self.responder.answer(event.callback_id)
        await self.responder.edit(
            event.chat_id, event.message_id, format_record(record, self.language)
        )
        await self.send_main_menu(event.chat_id, event.user_id, self.text("record_saved"))

    async def _toggle(self, event: CallbackEvent, record_id: Optional[int]) -> None:
        if record_id is None:
            await self.responder.answer(event.callback_id, self.text("record_not_found"))
            return
        try:
            record = await self.records.toggle(record_id)
        except RecordNotFoundError:
            await self.responder.answer(event.callback_id, self.text("record_not_found"))
            return
        await self.responder.edit(
            event.chat_id,
            event.message_id,
            format_record(record, self.language, show_owner=True),
            reply_markup=record_actions_keyboard(record, self.language),
        )
        key = "status_changed_completed" if record.is_completed else "status_changed_pending"
        await self.responder.answer(event.callback_id, self.text(key))

    async def _delete(self, event: CallbackEvent, record_id: Optional[int]) -> None:
        if record_id is None:
            await self.responder.answer(event.callback_id, self.text("record_not_found"))
            return
        try:
            await self.records.delete(record_id)
        except RecordNotFoundError:
            await self.responder.answer(event.callback_id, self.text("record_not_found"))
            return
        await self.responder.delete(event.chat_id, event.message_id)
        await self.responder.answer(event.callback_id, self.text("record_deleted"))

    async def _begin_admin_flow(self, event: CallbackEvent, flow: Flow, prompt_key: str) -> None:
        await self.conversations.begin(event.user_id, flow)
        await self.responder.answer(event.callback_id)
        await self.responder.send(
            event.chat_id,
            self.text(prompt_key),
            reply_markup=cancel_keyboard(self.language),
        )
