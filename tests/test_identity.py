import unittest
from datetime import datetime, timedelta, timezone

from application.identity import (
    IdentityContext,
    has_global_access,
    has_target_edit_access,
    refresh_identity_context,
)
from application.settings import Settings
from domain.errors import IdentityProviderError
from domain.repositories import IdentityProvider
from infrastructure.config import load_settings


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeIdentityProvider(IdentityProvider):
    def __init__(self, user=None, servers=None, members=None):
        self.user = user or {"id": "u1", "username": "paul"}
        self.servers = servers if servers is not None else []
        self.members = members or {}
        self.fail_servers = False
        self.fail_user = False
        self.member_calls = []

    def fetch_user(self, access_token):
        if self.fail_user:
            raise IdentityProviderError("401 Unauthorized")
        return self.user

    def fetch_user_servers(self, access_token):
        if self.fail_servers:
            raise IdentityProviderError("503 Service Unavailable")
        return self.servers

    def fetch_member(self, access_token, server_id):
        self.member_calls.append(server_id)
        return self.members.get(server_id)


class IdentityContextTests(unittest.TestCase):
    def test_lifetime_and_refresh_age(self):
        context = IdentityContext(user_id="u1", issued_at=NOW, refreshed_at=NOW)
        self.assertFalse(context.needs_refresh(NOW + timedelta(minutes=29)))
        self.assertTrue(context.needs_refresh(NOW + timedelta(minutes=30)))
        self.assertFalse(context.is_expired(NOW + timedelta(hours=3, minutes=59)))
        self.assertTrue(context.is_expired(NOW + timedelta(hours=4)))

    def test_roles_and_ownership_are_per_server(self):
        context = IdentityContext(
            user_id="u1",
            owned_server_ids=["S1"],
            admin_server_ids=["S2"],
            server_roles={"S1": ["R1"]},
        )
        self.assertEqual(context.roles_on("S1"), ["R1"])
        self.assertEqual(context.roles_on("S3"), [])
        self.assertTrue(context.is_owner_or_admin("S1"))
        self.assertTrue(context.is_owner_or_admin("S2"))
        self.assertFalse(context.is_owner_or_admin("S3"))


class GlobalAccessTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = Settings(
            resource_admin_role_ids=frozenset({"ADMIN"}),
            target_edit_role_ids=frozenset({"TARGETS"}),
        )

    def test_resource_admin_role(self):
        self.assertTrue(has_global_access(["X", "ADMIN"], self.settings))
        self.assertFalse(has_global_access(["TARGETS"], self.settings))
        self.assertFalse(has_global_access([], self.settings))

    def test_server_owner(self):
        self.assertTrue(has_global_access([], self.settings, is_server_owner=True))
        self.assertTrue(has_target_edit_access([], self.settings, is_server_owner=True))

    def test_target_edit_access(self):
        self.assertTrue(has_target_edit_access(["TARGETS"], self.settings))
        self.assertTrue(has_target_edit_access(["ADMIN"], self.settings))
        self.assertFalse(has_target_edit_access(["X"], self.settings))


class RefreshIdentityContextTests(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = Settings(primary_server_id="S1")
        self.provider = FakeIdentityProvider(
            servers=[
                {"id": "S1", "owner": False, "permissions": "0"},
                {"id": "S2", "owner": True, "permissions": "2147483647"},
                {"id": "S3", "owner": False, "permissions": str(0x8 | 0x10)},
                {"id": "S4", "owner": False, "permissions": "garbage"},
            ],
            members={"S1": {"roles": ["R1", 222], "nick": "Paulie"}},
        )

    def test_first_refresh_builds_full_context(self):
        context = refresh_identity_context(self.provider, "token", self.settings, now=NOW)
        self.assertEqual(context.user_id, "u1")
        self.assertEqual(context.server_ids, ["S1", "S2", "S3", "S4"])
        self.assertEqual(context.owned_server_ids, ["S2"])
        self.assertEqual(context.admin_server_ids, ["S2", "S3"])
        self.assertEqual(context.roles_on("S1"), ["R1", "222"])
        self.assertEqual(context.nickname, "Paulie")
        self.assertEqual(context.issued_at, NOW)
        self.assertEqual(self.provider.member_calls, ["S1"])

    def test_refresh_keeps_issue_time(self):
        first = refresh_identity_context(self.provider, "token", self.settings, now=NOW)
        later = NOW + timedelta(minutes=45)
        second = refresh_identity_context(
            self.provider, "token", self.settings, previous=first, now=later
        )
        self.assertEqual(second.issued_at, NOW)
        self.assertEqual(second.refreshed_at, later)
        self.assertFalse(second.needs_refresh(later))

    def test_member_roles_skipped_without_primary_server(self):
        context = refresh_identity_context(self.provider, "token", Settings(), now=NOW)
        self.assertEqual(context.server_roles, {})
        self.assertEqual(self.provider.member_calls, [])

    def test_not_a_member_of_primary_server(self):
        self.provider.members = {}
        context = refresh_identity_context(self.provider, "token", self.settings, now=NOW)
        self.assertEqual(context.roles_on("S1"), [])
        self.assertIsNone(context.nickname)

    def test_failed_refresh_drops_roles_and_servers(self):
        first = refresh_identity_context(self.provider, "token", self.settings, now=NOW)
        self.provider.fail_servers = True
        with self.assertLogs("application.identity", level="ERROR"):
            second = refresh_identity_context(
                self.provider, "token", self.settings, previous=first, now=NOW
            )
        self.assertEqual(second.user_id, "u1")
        self.assertEqual(second.server_ids, [])
        self.assertEqual(second.owned_server_ids, [])
        self.assertEqual(second.server_roles, {})

    def test_unidentified_user_propagates(self):
        self.provider.fail_user = True
        with self.assertRaises(IdentityProviderError):
            refresh_identity_context(self.provider, "token", self.settings, now=NOW)

    def test_context_uses_configured_lifetimes(self):
        settings = Settings(
            session_max_age=timedelta(hours=1),
            session_update_age=timedelta(minutes=5),
        )
        context = refresh_identity_context(self.provider, "token", settings, now=NOW)
        self.assertTrue(context.is_expired(NOW + timedelta(hours=1)))
        self.assertTrue(context.needs_refresh(NOW + timedelta(minutes=5)))


class LoadSettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = load_settings({})
        self.assertIsNone(settings.super_admin_user_id)
        self.assertEqual(settings.resource_admin_role_ids, frozenset())
        self.assertEqual(settings.session_max_age, timedelta(hours=4))
        self.assertEqual(settings.session_update_age, timedelta(minutes=30))
        self.assertEqual(settings.db_path, "guilds.db")
        self.assertEqual(settings.log_level, "INFO")

    def test_values_from_environment(self):
        settings = load_settings(
            {
                "SUPER_ADMIN_USER_ID": "root",
                "RESOURCE_ADMIN_ROLE_IDS": "111, 222,,",
                "TARGET_EDIT_ROLE_IDS": "333",
                "DISCORD_GUILD_ID": "S1",
                "SESSION_MAX_AGE_SECONDS": "60",
                "DB_PATH": "/tmp/test.db",
                "LOG_LEVEL": "debug",
            }
        )
        self.assertEqual(settings.super_admin_user_id, "root")
        self.assertEqual(settings.resource_admin_role_ids, frozenset({"111", "222"}))
        self.assertEqual(settings.target_edit_role_ids, frozenset({"333"}))
        self.assertEqual(settings.primary_server_id, "S1")
        self.assertEqual(settings.session_max_age, timedelta(seconds=60))
        self.assertEqual(settings.db_path, "/tmp/test.db")
        self.assertEqual(settings.log_level, "DEBUG")

    def test_empty_super_admin_is_unset(self):
        self.assertIsNone(load_settings({"SUPER_ADMIN_USER_ID": ""}).super_admin_user_id)

    def test_invalid_integer(self):
        with self.assertRaises(RuntimeError):
            load_settings({"SESSION_MAX_AGE_SECONDS": "four hours"})


if __name__ == "__main__":
    unittest.main()
