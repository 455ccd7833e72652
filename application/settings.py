from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import FrozenSet, Optional


SESSION_MAX_AGE_SECONDS = 4 * 60 * 60
SESSION_UPDATE_AGE_SECONDS = 30 * 60


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration for the access layer and the companion bot.

    Built once at startup (see `infrastructure.config.load_settings`) and
    passed to the objects that need it; nothing in the application layer
    reads the environment directly.
    """

    super_admin_user_id: Optional[str] = None
    resource_admin_role_ids: FrozenSet[str] = field(default_factory=frozenset)
    target_edit_role_ids: FrozenSet[str] = field(default_factory=frozenset)
    primary_server_id: Optional[str] = None
    session_max_age: timedelta = timedelta(seconds=SESSION_MAX_AGE_SECONDS)
    session_update_age: timedelta = timedelta(seconds=SESSION_UPDATE_AGE_SECONDS)
    discord_token: Optional[str] = None
    db_path: str = "guilds.db"
    database_url: Optional[str] = None
    log_level: str = "INFO"
