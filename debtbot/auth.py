"""Admin authorization and roster management."""
from __future__ import annotations

import logging
from typing import List

from .database import Admin, Database
from .errors import AdminNotFoundError

LOGGER = logging.getLogger(__name__)


class AdminService:
    """Decides who is an admin and edits the roster.

    Nothing is cached: every check reads the store, so adding or removing an
    admin affects the very next decision.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def is_admin(self, user_id: int) -> bool:
        return await self._db.is_admin(user_id)

    async def add_admin(self, user_id: int) -> bool:
        """Grant admin rights, returning ``False`` if ``user_id`` already had them."""

        return await self._db.add_admin(user_id)

    async def remove_admin(self, user_id: int) -> None:
        if not await self._db.remove_admin(user_id):
            raise AdminNotFoundError(user_id)

    async def list_admins(self) -> List[Admin]:
        return await self._db.list_admins()

    async def ensure_seed_admin(self, user_id: int) -> None:
        if not await self._db.ensure_seed_admin(user_id):
            LOGGER.debug("Admin roster already populated; seed %s not inserted", user_id)
