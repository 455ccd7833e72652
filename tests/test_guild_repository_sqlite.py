import os
import sqlite3
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from application.access import GuildAccessResolver
from application.settings import Settings
from domain.errors import StoreUnavailableError
from domain.models import Guild
from infrastructure.db.guild_repository_sqlite import SqliteGuildRepository


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class SqliteGuildRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmpdir.name, "guilds.db")
        self.repo = SqliteGuildRepository(self.db_path)

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def test_add_and_find_by_id(self):
        guild = Guild(
            id="house-melange",
            discord_server_id="S1",
            title="House Melange",
            leader_id="u42",
            member_role_id="M",
            officer_role_id="O",
            leader_role_id="L",
            access_roles='["A1", "A2"]',
            officer_roles="not json",
            default_role_id="D",
            open_access=True,
            created_at=BASE_TIME,
        )
        self.repo.add_guild(guild)

        stored = self.repo.find_guild_by_id("house-melange")
        self.assertEqual(stored, guild)

    def test_missing_guild(self):
        self.assertIsNone(self.repo.find_guild_by_id("ghost-guild"))

    def test_find_by_server_is_ordered_and_scoped(self):
        self.repo.add_guild(Guild("b", "S1", "B", created_at=BASE_TIME + timedelta(days=2)))
        self.repo.add_guild(Guild("a", "S1", "A", created_at=BASE_TIME + timedelta(days=2)))
        self.repo.add_guild(Guild("c", "S1", "C", created_at=BASE_TIME))
        self.repo.add_guild(Guild("d", "S2", "D", created_at=BASE_TIME))

        guilds = self.repo.find_guilds_by_discord_server("S1")
        self.assertEqual([g.id for g in guilds], ["c", "a", "b"])
        self.assertEqual(self.repo.find_guilds_by_discord_server("S3"), [])

    def test_update_role_configuration(self):
        self.repo.add_guild(Guild("g", "S1", "G", member_role_id="old", created_at=BASE_TIME))
        self.repo.update_role_configuration("g", "M", "O", None, leader_id="u1")

        stored = self.repo.find_guild_by_id("g")
        self.assertEqual(stored.member_role_id, "M")
        self.assertEqual(stored.officer_role_id, "O")
        self.assertIsNone(stored.leader_role_id)
        self.assertEqual(stored.leader_id, "u1")

    def test_resolver_over_sqlite_store(self):
        self.repo.add_guild(Guild("g1", "S1", "G1", member_role_id="R1", created_at=BASE_TIME))
        self.repo.add_guild(
            Guild("g2", "S1", "G2", leader_id="u42", created_at=BASE_TIME + timedelta(hours=1))
        )
        resolver = GuildAccessResolver(self.repo, Settings())

        self.assertEqual(resolver.get_accessible_guilds("S1", ["R1"], "u1"), ["g1"])
        self.assertEqual(resolver.get_accessible_guilds("S1", [], "u42"), ["g2"])
        self.assertTrue(resolver.can_access_guild("g1", ["R1"]))

    def _insert_raw_created_at(self, guild_id, created_at):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                "INSERT INTO guilds (id, discord_server_id, title, member_role_id, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (guild_id, "S1", guild_id, "R1", created_at),
            )
            conn.commit()
        finally:
            conn.close()

    def test_corrupt_created_at_is_unavailable(self):
        self.repo.add_guild(Guild("g1", "S1", "G1", member_role_id="R1", created_at=BASE_TIME))
        self._insert_raw_created_at("g2", "yesterday")

        with self.assertRaises(StoreUnavailableError):
            self.repo.find_guilds_by_discord_server("S1")
        with self.assertRaises(StoreUnavailableError):
            self.repo.find_guild_by_id("g2")
        self.assertEqual(self.repo.find_guild_by_id("g1").id, "g1")

    def test_resolver_fails_closed_on_corrupt_row(self):
        self._insert_raw_created_at("g2", "yesterday")
        resolver = GuildAccessResolver(self.repo, Settings())

        with self.assertLogs("application.access", level="ERROR"):
            self.assertEqual(resolver.get_accessible_guilds("S1", ["R1"], "u1"), [])
        with self.assertLogs("application.access", level="ERROR"):
            self.assertFalse(resolver.can_access_guild("g2", ["R1"]))


class UnreadableSqliteStoreTests(unittest.TestCase):
    def test_unopenable_database_is_unavailable(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            # A directory cannot be opened as a database file.
            with self.assertRaises(StoreUnavailableError):
                SqliteGuildRepository(tmpdir)


if __name__ == "__main__":
    unittest.main()
