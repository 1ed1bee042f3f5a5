"""Configuration loading for DebtBot."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .localization import DEFAULT_LANGUAGE, available_languages

DEFAULT_SECRETS_FILE = Path(__file__).resolve().parent.parent / "secrets.json"
DEFAULT_CONCURRENT_UPDATES = 16


def load_secrets(file_path: str | os.PathLike[str] | None = None) -> None:
    """Copy values from a JSON secrets file into ``os.environ``.

    Variables that are already set win over the file, so the hosting
    environment can override anything stored on disk.
    """

    path = Path(file_path) if file_path is not None else DEFAULT_SECRETS_FILE
    if not path.exists():
        return

    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:  # pragma: no cover - configuration guard
        raise RuntimeError(f"Could not parse secrets file: {path}") from exc

    if not isinstance(data, dict):
        raise RuntimeError("Secrets file must contain a JSON object at the top level")

    for key, value in data.items():
        if value is not None:
            os.environ.setdefault(str(key), str(value))


@dataclass(slots=True)
class BotConfig:
    token: str
    seed_admin_id: int
    database_path: str = "debts.db"
    log_file: str = "debt_bot.log"
    language: str = DEFAULT_LANGUAGE
    concurrent_updates: Optional[int] = DEFAULT_CONCURRENT_UPDATES

    @classmethod
    def from_env(cls) -> "BotConfig":
        token = os.getenv("BOT_TOKEN")
        if not token:
            raise RuntimeError("BOT_TOKEN environment variable is required")
        seed_admin = os.getenv("SEED_ADMIN_ID")
        if not seed_admin:
            raise RuntimeError("SEED_ADMIN_ID environment variable is required")
        language = os.getenv("BOT_LANGUAGE", DEFAULT_LANGUAGE).strip().lower()
        if language not in available_languages():
            raise ValueError(f"Unsupported BOT_LANGUAGE: {language!r}")
        return cls(
            token=token,
            seed_admin_id=_parse_user_id(seed_admin),
            database_path=os.getenv("DATABASE_PATH", "debts.db"),
            log_file=os.getenv("LOG_FILE", "debt_bot.log"),
            language=language,
            concurrent_updates=_parse_optional_positive_int(
                os.getenv("CONCURRENT_UPDATES"),
                default=DEFAULT_CONCURRENT_UPDATES,
            ),
        )


def load_config(secrets_file: str | os.PathLike[str] | None = None) -> BotConfig:
    load_secrets(secrets_file)
    return BotConfig.from_env()


def _parse_user_id(value: str) -> int:
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid SEED_ADMIN_ID value: {value!r}") from exc
    if parsed <= 0:
        raise ValueError(f"SEED_ADMIN_ID must be positive, got {parsed}")
    return parsed


def _parse_optional_positive_int(value: Optional[str], *, default: Optional[int]) -> Optional[int]:
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value: {value!r}") from exc
    if parsed <= 0:
        return None
    return parsed
