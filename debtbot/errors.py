"""Exception types shared across DebtBot components."""
from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """Raised when user input fails validation for the current stage.

    ``message_key`` names the localized text shown to the user and
    ``params`` holds the values used to format it.
    """

    def __init__(self, message_key: str, **params: Any) -> None:
        super().__init__(message_key)
        self.message_key = message_key
        self.params = params


class NotFoundError(LookupError):
    """Raised when a referenced record or admin does not exist."""


class RecordNotFoundError(NotFoundError):
    """Raised when a debt record ID is unknown."""


class AdminNotFoundError(NotFoundError):
    """Raised when removing a user ID that is not an admin."""


class StateDesyncError(RuntimeError):
    """Raised when the conversation state does not match the requested action."""


class StoreError(RuntimeError):
    """Raised when a persistence call fails."""


class StaleConfirmationError(RuntimeError):
    """Raised when a confirm button belongs to a superseded confirmation prompt."""
