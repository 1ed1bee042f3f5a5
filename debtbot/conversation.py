"""Per-user dialogue state for record creation and admin management."""
from __future__ import annotations

import asyncio
import logging
import re
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Optional, Union

from .database import MAX_SQLITE_INTEGER
from .errors import StaleConfirmationError, StateDesyncError, ValidationError

LOGGER = logging.getLogger(__name__)

DATE_FORMAT = "%d.%m.%Y %H:%M"
FULL_NAME_MIN_LENGTH = 5
FULL_NAME_MAX_LENGTH = 100

_DATE_PATTERN = re.compile(r"^\d{2}\.\d{2}\.\d{4} \d{2}:\d{2}$")
_USER_ID_PATTERN = re.compile(r"^\d+$")


class Stage(str, Enum):
    NONE = "none"
    WAITING_FULLNAME = "waiting_fullname"
    WAITING_GROUP = "waiting_group"
    WAITING_SUBJECT = "waiting_subject"
    WAITING_TASK = "waiting_task"
    WAITING_DATE = "waiting_date"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    ADDING_ADMIN = "adding_admin"
    REMOVING_ADMIN = "removing_admin"


class Flow(Enum):
    RECORD = "record"
    ADD_ADMIN = "add_admin"
    REMOVE_ADMIN = "remove_admin"


_INITIAL_STAGES = {
    Flow.RECORD: Stage.WAITING_FULLNAME,
    Flow.ADD_ADMIN: Stage.ADDING_ADMIN,
    Flow.REMOVE_ADMIN: Stage.REMOVING_ADMIN,
}

_ADMIN_FLOWS = {
    Stage.ADDING_ADMIN: Flow.ADD_ADMIN,
    Stage.REMOVING_ADMIN: Flow.REMOVE_ADMIN,
}


@dataclass(slots=True)
class RecordDraft:
    """A debt record being assembled one field at a time."""

    user_id: int
    full_name: Optional[str] = None
    group_name: Optional[str] = None
    subject: Optional[str] = None
    task_description: Optional[str] = None
    due_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return None not in (
            self.full_name,
            self.group_name,
            self.subject,
            self.task_description,
            self.due_at,
        )


@dataclass(slots=True)
class ConversationState:
    stage: Stage
    draft: Optional[RecordDraft] = None
    confirmation_message_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Advanced:
    """The input was accepted and the dialogue moved on to ``stage``."""

    stage: Stage


@dataclass(frozen=True, slots=True)
class Rejected:
    """The input failed validation; the user stays on ``stage``."""

    stage: Stage
    error: ValidationError


@dataclass(frozen=True, slots=True)
class DraftCompleted:
    """All fields are filled; the draft now waits for confirmation."""

    draft: RecordDraft


@dataclass(frozen=True, slots=True)
class AdminTargetParsed:
    flow: Flow
    target_user_id: int


@dataclass(frozen=True, slots=True)
class AdminTargetRejected:
    flow: Flow
    error: ValidationError


StepOutcome = Union[
    Advanced, Rejected, DraftCompleted, AdminTargetParsed, AdminTargetRejected
]


def parse_full_name(text: str) -> str:
    name = text.strip()
    if not FULL_NAME_MIN_LENGTH <= len(name) <= FULL_NAME_MAX_LENGTH:
        raise ValidationError(
            "invalid_full_name",
            min=FULL_NAME_MIN_LENGTH,
            max=FULL_NAME_MAX_LENGTH,
        )
    return name


def parse_due_date(text: str, now: datetime) -> datetime:
    """Parse ``dd.mm.yyyy hh:mm`` and require a moment after ``now``."""

    cleaned = text.strip()
    if not _DATE_PATTERN.fullmatch(cleaned):
        raise ValidationError("invalid_date_format")
    try:
        due_at = datetime.strptime(cleaned, DATE_FORMAT)
    except ValueError as exc:
        raise ValidationError("invalid_date_format") from exc
    if due_at <= now:
        raise ValidationError("date_not_in_future")
    return due_at


def parse_user_id(text: str) -> int:
    cleaned = text.strip()
    if not _USER_ID_PATTERN.fullmatch(cleaned):
        raise ValidationError("invalid_user_id")
    user_id = int(cleaned)
    if user_id > MAX_SQLITE_INTEGER:
        raise ValidationError("invalid_user_id")
    return user_id


class ConversationSlot:
    """Access to one user's state while that user's lock is held."""

    __slots__ = ("_engine", "_user_id", "_open")

    def __init__(self, engine: "ConversationEngine", user_id: int) -> None:
        self._engine = engine
        self._user_id = user_id
        self._open = True

    def _ensure_open(self) -> None:
        if not self._open:
            raise RuntimeError("Conversation slot used outside of its lock")

    @property
    def user_id(self) -> int:
        return self._user_id

    @property
    def state(self) -> Optional[ConversationState]:
        self._ensure_open()
        return self._engine._states.get(self._user_id)

    @property
    def active(self) -> bool:
        return self.state is not None

    def begin(self, flow: Flow) -> ConversationState:
        self._ensure_open()
        draft = RecordDraft(user_id=self._user_id) if flow is Flow.RECORD else None
        state = ConversationState(stage=_INITIAL_STAGES[flow], draft=draft)
        self._engine._states[self._user_id] = state
        LOGGER.debug("User %s started %s flow", self._user_id, flow.value)
        return state

    def step(self, text: str) -> StepOutcome:
        self._ensure_open()
        return self._engine._transition(self._user_id, text)

    def clear(self) -> bool:
        self._ensure_open()
        return self._engine._states.pop(self._user_id, None) is not None

    def remember_confirmation(self, message_id: int) -> bool:
        """Bind the pending draft to the prompt message carrying its confirm button."""

        state = self.state
        if state is None or state.stage is not Stage.AWAITING_CONFIRMATION:
            return False
        state.confirmation_message_id = message_id
        return True

    def completed_draft(self, message_id: Optional[int] = None) -> RecordDraft:
        """Return the draft waiting for confirmation.

        Raises ``StateDesyncError`` when there is nothing to confirm. When
        ``message_id`` is given it must name the latest confirmation prompt,
        otherwise ``StaleConfirmationError`` is raised and the draft is kept.
        """

        state = self.state
        if (
            state is None
            or state.stage is not Stage.AWAITING_CONFIRMATION
            or state.draft is None
            or not state.draft.is_complete
        ):
            raise StateDesyncError(
                f"User {self._user_id} has no completed draft to confirm"
            )
        if message_id is not None and message_id != state.confirmation_message_id:
            raise StaleConfirmationError(
                f"Message {message_id} is not the current confirmation prompt"
            )
        return replace(state.draft)

    def close(self) -> None:
        self._open = False


class ConversationEngine:
    """Keeps at most one dialogue state per user.

    States are only reachable through :meth:`locked` or the convenience
    coroutines built on it, each of which holds the user's lock for the whole
    read-modify-write sequence.
    """

    def __init__(self, now: Callable[[], datetime] = datetime.now) -> None:
        self._now = now
        self._states: Dict[int, ConversationState] = {}
        # A lock lives only while some coroutine holds or waits on it.
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def locked(self, user_id: int) -> AsyncIterator[ConversationSlot]:
        async with self._lock_for(user_id):
            slot = ConversationSlot(self, user_id)
            try:
                yield slot
            finally:
                slot.close()

    async def begin(self, user_id: int, flow: Flow) -> ConversationState:
        async with self.locked(user_id) as slot:
            return slot.begin(flow)

    async def has_state(self, user_id: int) -> bool:
        async with self.locked(user_id) as slot:
            return slot.active

    async def stage(self, user_id: int) -> Stage:
        async with self.locked(user_id) as slot:
            state = slot.state
            return state.stage if state else Stage.NONE

    async def step(self, user_id: int, text: str) -> StepOutcome:
        async with self.locked(user_id) as slot:
            return slot.step(text)

    async def remember_confirmation(self, user_id: int, message_id: int) -> bool:
        async with self.locked(user_id) as slot:
            return slot.remember_confirmation(message_id)

    async def cancel(self, user_id: int) -> bool:
        async with self.locked(user_id) as slot:
            return slot.clear()

    def _transition(self, user_id: int, text: str) -> StepOutcome:
        state = self._states.get(user_id)
        if state is None:
            raise StateDesyncError(f"User {user_id} has no active dialogue")

        stage = state.stage
        if stage in _ADMIN_FLOWS:
            # One-shot: the state is gone whether or not the ID parses.
            del self._states[user_id]
            flow = _ADMIN_FLOWS[stage]
            try:
                target = parse_user_id(text)
            except ValidationError as exc:
                return AdminTargetRejected(flow=flow, error=exc)
            return AdminTargetParsed(flow=flow, target_user_id=target)

        draft = state.draft
        if draft is None:
            raise StateDesyncError(f"User {user_id} is at {stage.value} without a draft")

        value = text.strip()
        try:
            if stage is Stage.WAITING_FULLNAME:
                draft.full_name = parse_full_name(value)
                state.stage = Stage.WAITING_GROUP
            elif stage is Stage.WAITING_GROUP:
                draft.group_name = value
                state.stage = Stage.WAITING_SUBJECT
            elif stage is Stage.WAITING_SUBJECT:
                draft.subject = value
                state.stage = Stage.WAITING_TASK
            elif stage is Stage.WAITING_TASK:
                draft.task_description = value
                state.stage = Stage.WAITING_DATE
            elif stage in (Stage.WAITING_DATE, Stage.AWAITING_CONFIRMATION):
                draft.due_at = parse_due_date(value, self._now())
                state.stage = Stage.AWAITING_CONFIRMATION
                # Earlier prompts show the old date and must not confirm.
                state.confirmation_message_id = None
                return DraftCompleted(draft=replace(draft))
            else:
                raise StateDesyncError(f"User {user_id} is at unexpected stage {stage.value}")
        except ValidationError as exc:
            return Rejected(stage=stage, error=exc)
        return Advanced(stage=state.stage)
