"""Record lifecycle operations: confirm, toggle, delete and listing."""
from __future__ import annotations

import logging
from typing import List, Optional

from .conversation import ConversationEngine
from .database import Database, DebtRecord
from .errors import RecordNotFoundError

LOGGER = logging.getLogger(__name__)


class RecordService:
    """Applies record mutations to the store.

    Access control is the caller's job; ``list_all``, ``toggle`` and
    ``delete`` must only be reached after an admin check.
    """

    def __init__(self, db: Database, conversations: ConversationEngine) -> None:
        self._db = db
        self._conversations = conversations

    async def confirm(self, user_id: int, message_id: Optional[int] = None) -> DebtRecord:
        """Commit the user's completed draft and end the dialogue.

        The user's conversation lock is held across the insert so a racing
        cancel or step cannot interleave. If the insert fails the draft is
        left in place. ``message_id`` names the prompt whose button was pressed;
        a superseded prompt raises ``StaleConfirmationError``.
        """

        async with self._conversations.locked(user_id) as slot:
            draft = slot.completed_draft(message_id)
            record = await self._db.add_record(
                user_id=draft.user_id,
                full_name=draft.full_name,
                group_name=draft.group_name,
                subject=draft.subject,
                task_description=draft.task_description,
                due_at=draft.due_at,
            )
            slot.clear()
        LOGGER.info("User %s confirmed debt record %s", user_id, record.id)
        return record

    async def toggle(self, record_id: int) -> DebtRecord:
        return await self._db.toggle_record(record_id)

    async def delete(self, record_id: int) -> None:
        if not await self._db.delete_record(record_id):
            raise RecordNotFoundError(record_id)

    async def list_for_user(self, user_id: int) -> List[DebtRecord]:
        return await self._db.list_records(user_id=user_id)

    async def list_all(self) -> List[DebtRecord]:
        return await self._db.list_records()
