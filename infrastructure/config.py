from __future__ import annotations

import os
from datetime import timedelta
from typing import FrozenSet, Mapping, Optional

from dotenv import load_dotenv

from application.settings import (
    SESSION_MAX_AGE_SECONDS,
    SESSION_UPDATE_AGE_SECONDS,
    Settings,
)


def _split_ids(value: Optional[str]) -> FrozenSet[str]:
    if not value:
        return frozenset()
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from exc


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build `Settings` from environment variables.

    When `environ` is omitted the process environment is used, after loading
    a `.env` file if one is present.
    """

    if environ is None:
        load_dotenv()
        environ = os.environ

    return Settings(
        super_admin_user_id=environ.get("SUPER_ADMIN_USER_ID") or None,
        resource_admin_role_ids=_split_ids(environ.get("RESOURCE_ADMIN_ROLE_IDS")),
        target_edit_role_ids=_split_ids(environ.get("TARGET_EDIT_ROLE_IDS")),
        primary_server_id=environ.get("DISCORD_GUILD_ID") or None,
        session_max_age=timedelta(
            seconds=_int_env(environ, "SESSION_MAX_AGE_SECONDS", SESSION_MAX_AGE_SECONDS)
        ),
        session_update_age=timedelta(
            seconds=_int_env(environ, "SESSION_UPDATE_AGE_SECONDS", SESSION_UPDATE_AGE_SECONDS)
        ),
        discord_token=environ.get("DISCORD_TOKEN") or None,
        db_path=environ.get("DB_PATH", "guilds.db"),
        database_url=environ.get("DATABASE_URL") or None,
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
    )
