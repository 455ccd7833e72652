from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

import psycopg2

from domain.errors import StoreUnavailableError
from domain.models import Guild
from domain.repositories import GuildRepository


_COLUMNS = (
    "id, discord_server_id, title, leader_id, "
    "member_role_id, officer_role_id, leader_role_id, "
    "access_roles, officer_roles, default_role_id, "
    "open_access, created_at"
)


class PostgresGuildRepository(GuildRepository):
    """
    Postgres-backed implementation of `GuildRepository`.

    Shares the `guilds` table layout with `SqliteGuildRepository`, using
    native BOOLEAN and TIMESTAMPTZ columns. Driver errors are re-raised as
    `StoreUnavailableError` so the access layer can fail closed.
    """

    def __init__(self, db_params: dict) -> None:
        self._db_params = db_params
        self._ensure_table()

    def _get_connection(self):
        return psycopg2.connect(**self._db_params)

    def _ensure_table(self) -> None:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
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
                            open_access BOOLEAN NOT NULL DEFAULT FALSE,
                            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
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
        except psycopg2.Error as exc:
            raise StoreUnavailableError(f"Cannot initialize guild store: {exc}") from exc

    @staticmethod
    def _to_domain(row: tuple) -> Guild:
        created_at = row[11]
        if not isinstance(created_at, datetime):
            raise TypeError(f"created_at is {created_at!r}, expected a timestamp")
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
                with conn.cursor() as cur:
                    cur.execute(f"SELECT {_COLUMNS} FROM guilds WHERE id = %s", (guild_id,))
                    row = cur.fetchone()
                    return self._to_domain(row) if row else None
        except psycopg2.Error as exc:
            raise StoreUnavailableError(f"Cannot read guild {guild_id}: {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise StoreUnavailableError(f"Corrupt row for guild {guild_id}: {exc}") from exc

    def find_guilds_by_discord_server(self, discord_server_id: str) -> List[Guild]:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        SELECT {_COLUMNS}
                        FROM guilds
                        WHERE discord_server_id = %s
                        ORDER BY created_at, id
                        """,
                        (discord_server_id,),
                    )
                    rows = cur.fetchall()
                    return [self._to_domain(row) for row in rows]
        except psycopg2.Error as exc:
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
                with conn.cursor() as cur:
                    cur.execute(
                        f"""
                        INSERT INTO guilds ({_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
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
                            guild.open_access,
                            guild.created_at,
                        ),
                    )
                    conn.commit()
        except psycopg2.Error as exc:
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
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE guilds
                        SET member_role_id = %s,
                            officer_role_id = %s,
                            leader_role_id = %s,
                            leader_id = %s
                        WHERE id = %s
                        """,
                        (member_role_id, officer_role_id, leader_role_id, leader_id, guild_id),
                    )
                    conn.commit()
        except psycopg2.Error as exc:
            raise StoreUnavailableError(f"Cannot update guild {guild_id}: {exc}") from exc
