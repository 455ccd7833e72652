from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from domain.errors import StoreUnavailableError
from domain.models import Guild
from domain.repositories import GuildRepository


_COLUMNS = (
    "id, discord_server_id, title, leader_id, "
    "member_role_id, officer_role_id, leader_role_id, "
    "access_roles, officer_roles, default_role_id, "
    "open_access, created_at"
)


class SqliteGuildRepository(GuildRepository):
    """
    SQLite-backed implementation of `GuildRepository`.

    Manages the `guilds` table. Legacy role lists are kept as the raw JSON
    text they were written with; parsing happens when access is evaluated.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_table(self) -> None:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS guilds (
                        id TEXT PRIMARY KEY,
                        discord_server_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        leader_id TEXT,
                        member_role_id TEXT,
                        officer_role_id TEXT,
                        leader_role_id TEXT,
                        access_roles TEXT,
                        officer_roles TEXT,
                        default_role_id TEXT,
                        open_access INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL
                    )
                    """
                )
                cur.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_guilds_discord_server_id
                    ON guilds (discord_server_id)
                    """
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot initialize guild store: {exc}") from exc

    @staticmethod
    def _to_domain(row: tuple) -> Guild:
        created_at = datetime.fromisoformat(row[11])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return Guild(
            id=str(row[0]),
            discord_server_id=str(row[1]),
            title=row[2],
            leader_id=row[3],
            member_role_id=row[4],
            officer_role_id=row[5],
            leader_role_id=row[6],
            access_roles=row[7],
            officer_roles=row[8],
            default_role_id=row[9],
            open_access=bool(row[10]),
            created_at=created_at,
        )

    def find_guild_by_id(self, guild_id: str) -> Optional[Guild]:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(f"SELECT {_COLUMNS} FROM guilds WHERE id = ?", (guild_id,))
                row = cur.fetchone()
                return self._to_domain(row) if row else None
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot read guild {guild_id}: {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise StoreUnavailableError(f"Corrupt row for guild {guild_id}: {exc}") from exc

    def find_guilds_by_discord_server(self, discord_server_id: str) -> List[Guild]:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM guilds
                    WHERE discord_server_id = ?
                    ORDER BY created_at, id
                    """,
                    (discord_server_id,),
                )
                rows = cur.fetchall()
                return [self._to_domain(row) for row in rows]
        except sqlite3.Error as exc:
            raise StoreUnavailableError(
                f"Cannot list guilds for server {discord_server_id}: {exc}"
            ) from exc
        except (TypeError, ValueError) as exc:
            raise StoreUnavailableError(
                f"Corrupt guild row on server {discord_server_id}: {exc}"
            ) from exc

    def add_guild(self, guild: Guild) -> None:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    f"""
                    INSERT INTO guilds ({_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        guild.id,
                        guild.discord_server_id,
                        guild.title,
                        guild.leader_id,
                        guild.member_role_id,
                        guild.officer_role_id,
                        guild.leader_role_id,
                        guild.access_roles,
                        guild.officer_roles,
                        guild.default_role_id,
                        int(guild.open_access),
                        guild.created_at.isoformat(),
                    ),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot add guild {guild.id}: {exc}") from exc

    def update_role_configuration(
        self,
        guild_id: str,
        member_role_id: Optional[str],
        officer_role_id: Optional[str],
        leader_role_id: Optional[str],
        leader_id: Optional[str] = None,
    ) -> None:
        try:
            with self._get_connection() as conn:
                cur = conn.cursor()
                cur.execute(
                    """
                    UPDATE guilds
                    SET member_role_id = ?,
                        officer_role_id = ?,
                        leader_role_id = ?,
                        leader_id = ?
                    WHERE id = ?
                    """,
                    (member_role_id, officer_role_id, leader_role_id, leader_id, guild_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot update guild {guild_id}: {exc}") from exc
