from __future__ import annotations

import logging
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from application.identity import IdentityContext, has_global_access, has_target_edit_access
from application.settings import Settings
from domain.errors import GuildNotFoundError, MalformedConfigurationError, StoreUnavailableError
from domain.models import Guild, GuildMembership, GuildPermissions
from domain.repositories import GuildRepository
from domain.roles import (
    automatic_role_ids,
    legacy_access_role_ids,
    legacy_default_role_ids,
    legacy_officer_role_ids,
    role_requirement,
)

logger = logging.getLogger(__name__)

AccessPredicate = Callable[[Guild, FrozenSet[str], str], bool]


def _holds_any(read: Callable[[Guild], FrozenSet[str]], guild: Guild, roles: FrozenSet[str]) -> bool:
    try:
        role_ids = read(guild)
    except MalformedConfigurationError as exc:
        logger.warning("Ignoring malformed role configuration: %s", exc)
        return False
    return not role_ids.isdisjoint(roles)


def is_designated_leader(guild: Guild, roles: FrozenSet[str], user_id: str) -> bool:
    return bool(guild.leader_id) and guild.leader_id == user_id


def holds_automatic_role(guild: Guild, roles: FrozenSet[str], user_id: str) -> bool:
    return _holds_any(automatic_role_ids, guild, roles)


def holds_legacy_access_role(guild: Guild, roles: FrozenSet[str], user_id: str) -> bool:
    return _holds_any(legacy_access_role_ids, guild, roles)


def holds_legacy_officer_role(guild: Guild, roles: FrozenSet[str], user_id: str) -> bool:
    return _holds_any(legacy_officer_role_ids, guild, roles)


def holds_legacy_default_role(guild: Guild, roles: FrozenSet[str], user_id: str) -> bool:
    return _holds_any(legacy_default_role_ids, guild, roles)


def is_open_guild(guild: Guild, roles: FrozenSet[str], user_id: str) -> bool:
    return guild.open_access


# Each predicate is independent; a guild is accessible iff any one holds.
ACCESS_PREDICATES: Sequence[AccessPredicate] = (
    is_designated_leader,
    holds_automatic_role,
    holds_legacy_access_role,
    holds_legacy_officer_role,
    holds_legacy_default_role,
    is_open_guild,
)


def _creation_order(guild: Guild):
    return (guild.created_at, guild.id)


def membership_for(guild: Guild, roles: FrozenSet[str], user_id: str) -> GuildMembership:
    """Split a user's standing in `guild` into leader/officer/member."""

    def holds(role_id: Optional[str]) -> bool:
        return bool(role_id) and role_id in roles

    return GuildMembership(
        is_leader=is_designated_leader(guild, roles, user_id) or holds(guild.leader_role_id),
        is_officer=holds(guild.officer_role_id) or holds_legacy_officer_role(guild, roles, user_id),
        is_member=(
            holds(guild.member_role_id)
            or holds_legacy_access_role(guild, roles, user_id)
            or holds_legacy_default_role(guild, roles, user_id)
        ),
    )


class GuildAccessResolver:
    """
    Decides which in-game guilds a Discord user may see and manage.

    Precedence, highest first: super admin, Discord server owner/admin,
    global resource admin, guild role match, designated leader, open guild.
    A higher tier that grants access short-circuits the rest; a tier that
    does not grant simply falls through.

    Every failure path denies: an unreadable store yields `False` or an
    empty list, and a malformed role list only disables that one source.
    Only a missing guild is reported differently, via `GuildNotFoundError`.

    The resolver keeps no per-call state and caches nothing, so one instance
    can serve concurrent requests.
    """

    def __init__(
        self,
        guild_repo: GuildRepository,
        settings: Settings,
        predicates: Optional[Sequence[AccessPredicate]] = None,
    ) -> None:
        self._guild_repo = guild_repo
        self._settings = settings
        self._predicates = tuple(predicates if predicates is not None else ACCESS_PREDICATES)

    def is_super_admin(self, user_id: Optional[str]) -> bool:
        super_admin = self._settings.super_admin_user_id
        return bool(super_admin) and user_id == super_admin

    def _load_guild(self, guild_id: str) -> Guild:
        guild = self._guild_repo.find_guild_by_id(guild_id)
        if guild is None:
            logger.warning("Guild not found: %s", guild_id)
            raise GuildNotFoundError(guild_id)
        return guild

    def can_access_guild(
        self,
        guild_id: str,
        roles_on_server: Iterable[str],
        has_global_access: bool = False,
    ) -> bool:
        """
        Check whether a user holding `roles_on_server` may access `guild_id`.

        Raises `GuildNotFoundError` when the guild does not exist and the
        caller has no global access.
        """

        if has_global_access:
            return True

        try:
            guild = self._load_guild(guild_id)
        except StoreUnavailableError:
            logger.exception("Guild store unavailable while checking access to %s", guild_id)
            return False

        roles = frozenset(roles_on_server)
        allowed = role_requirement(guild).admits(roles)
        if not allowed:
            logger.debug("User lacks guild roles for %s (roles=%s)", guild.title, sorted(roles))
        return allowed

    def get_accessible_guilds(
        self,
        discord_server_id: str,
        roles_on_server: Iterable[str],
        user_id: str,
        is_discord_server_owner_or_admin: bool = False,
        has_global_access: bool = False,
    ) -> List[str]:
        """
        Return the IDs of the guilds bound to `discord_server_id` that the
        user may access, oldest guild first.
        """

        try:
            guilds = sorted(
                self._guild_repo.find_guilds_by_discord_server(discord_server_id),
                key=_creation_order,
            )
        except StoreUnavailableError:
            logger.exception("Guild store unavailable while listing server %s", discord_server_id)
            return []

        if self.is_super_admin(user_id):
            logger.info("Super admin access: showing all %d guilds", len(guilds))
            return [g.id for g in guilds]

        if is_discord_server_owner_or_admin or has_global_access:
            logger.info("Server owner/admin access: showing all %d guilds", len(guilds))
            return [g.id for g in guilds]

        roles = frozenset(roles_on_server)
        accessible = [
            g.id for g in guilds
            if any(predicate(g, roles, user_id) for predicate in self._predicates)
        ]

        logger.info(
            "User %s has access to %d/%d guilds in server %s",
            user_id,
            len(accessible),
            len(guilds),
            discord_server_id,
        )
        return accessible

    def get_guild_membership(
        self,
        guild_id: str,
        roles_on_server: Iterable[str],
        user_id: str,
    ) -> GuildMembership:
        try:
            guild = self._load_guild(guild_id)
        except StoreUnavailableError:
            logger.exception("Guild store unavailable while reading membership for %s", guild_id)
            return GuildMembership()
        return membership_for(guild, frozenset(roles_on_server), user_id)

    def get_guild_permissions(
        self,
        identity: IdentityContext,
        guild_id: str,
    ) -> GuildPermissions:
        """
        Resolve everything a session may do with one guild.

        Officers and leaders may manage resources; plain members may only
        view them. Target editing needs global admin or a target-edit role.
        """

        if self.is_super_admin(identity.user_id):
            return GuildPermissions(
                can_access=True,
                can_manage_resources=True,
                can_edit_targets=True,
                is_leader=True,
                is_officer=True,
                is_member=True,
                has_global_admin=True,
                reason="super_admin",
            )

        try:
            guild = self._load_guild(guild_id)
        except StoreUnavailableError:
            logger.exception("Guild store unavailable while reading permissions for %s", guild_id)
            return GuildPermissions.denied("store_unavailable")

        server_id = guild.discord_server_id
        roles = frozenset(identity.roles_on(server_id))
        is_owner = identity.is_owner_or_admin(server_id)
        global_admin = has_global_access(roles, self._settings, is_owner)
        membership = membership_for(guild, roles, identity.user_id)

        if global_admin:
            reason = "global_admin"
        elif membership.has_any:
            reason = "guild_membership"
        elif guild.open_access:
            reason = "open_access"
        else:
            reason = "no_matching_role"

        permissions = GuildPermissions(
            can_access=global_admin or membership.has_any or guild.open_access,
            can_manage_resources=global_admin or membership.is_leader or membership.is_officer,
            can_edit_targets=has_target_edit_access(roles, self._settings, is_owner),
            is_leader=membership.is_leader,
            is_officer=membership.is_officer,
            is_member=membership.is_member,
            has_global_admin=global_admin,
            is_server_owner=is_owner,
            reason=reason,
        )
        logger.debug("Permissions for %s on %s: %s", identity.user_id, guild.title, permissions)
        return permissions
