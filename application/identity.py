from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from application.settings import (
    SESSION_MAX_AGE_SECONDS,
    SESSION_UPDATE_AGE_SECONDS,
    Settings,
)
from domain.errors import IdentityProviderError
from domain.repositories import IdentityProvider

logger = logging.getLogger(__name__)

# Discord's ADMINISTRATOR permission bit.
ADMINISTRATOR = 0x8


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IdentityContext:
    """
    Discord identity data cached for the lifetime of a session.

    Recomputed by `refresh_identity_context`, never per request. Access
    decisions read it but never mutate it.
    """

    user_id: str
    server_ids: List[str] = field(default_factory=list)
    owned_server_ids: List[str] = field(default_factory=list)
    admin_server_ids: List[str] = field(default_factory=list)
    server_roles: Dict[str, List[str]] = field(default_factory=dict)
    nickname: Optional[str] = None
    issued_at: datetime = field(default_factory=_utcnow)
    refreshed_at: datetime = field(default_factory=_utcnow)
    max_age: timedelta = timedelta(seconds=SESSION_MAX_AGE_SECONDS)
    update_age: timedelta = timedelta(seconds=SESSION_UPDATE_AGE_SECONDS)

    def roles_on(self, server_id: str) -> List[str]:
        return list(self.server_roles.get(server_id, []))

    def is_owner_or_admin(self, server_id: str) -> bool:
        return server_id in self.owned_server_ids or server_id in self.admin_server_ids

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        return now - self.issued_at >= self.max_age

    def needs_refresh(self, now: Optional[datetime] = None) -> bool:
        now = now or _utcnow()
        return now - self.refreshed_at >= self.update_age


def has_global_access(
    roles: Iterable[str],
    settings: Settings,
    is_server_owner: bool = False,
) -> bool:
    """
    Whether the user is a resource admin: owns/administers the server or
    holds one of the configured resource-admin roles.
    """

    if is_server_owner:
        return True
    return not settings.resource_admin_role_ids.isdisjoint(roles)


def has_target_edit_access(
    roles: Iterable[str],
    settings: Settings,
    is_server_owner: bool = False,
) -> bool:
    if has_global_access(roles, settings, is_server_owner):
        return True
    return not settings.target_edit_role_ids.isdisjoint(roles)


def _is_administrator(server: Dict[str, Any]) -> bool:
    try:
        permissions = int(server.get("permissions") or 0)
    except (TypeError, ValueError):
        return False
    return bool(permissions & ADMINISTRATOR)


def refresh_identity_context(
    provider: IdentityProvider,
    access_token: str,
    settings: Settings,
    previous: Optional[IdentityContext] = None,
    now: Optional[datetime] = None,
) -> IdentityContext:
    """
    Fetch fresh Discord identity data for a session.

    The first call (no `previous` context) must be able to identify the user;
    if that fails `IdentityProviderError` propagates and the caller treats
    the session as unauthenticated. Later failures while fetching servers or
    member roles produce a context with no servers and no roles, so every
    access decision made from it is a denial.

    Member roles are only fetched for `settings.primary_server_id`, keeping
    the number of Discord API calls per refresh constant.
    """

    now = now or _utcnow()

    if previous is not None:
        user_id = previous.user_id
        issued_at = previous.issued_at
    else:
        user = provider.fetch_user(access_token)
        user_id = str(user["id"])
        issued_at = now

    context = IdentityContext(
        user_id=user_id,
        issued_at=issued_at,
        refreshed_at=now,
        max_age=settings.session_max_age,
        update_age=settings.session_update_age,
    )

    try:
        servers = provider.fetch_user_servers(access_token)

        context.server_ids = [str(s["id"]) for s in servers]
        context.owned_server_ids = [str(s["id"]) for s in servers if s.get("owner") is True]
        context.admin_server_ids = [str(s["id"]) for s in servers if _is_administrator(s)]

        primary = settings.primary_server_id
        if primary:
            member = provider.fetch_member(access_token, primary)
            if member is not None:
                context.server_roles[primary] = [str(r) for r in member.get("roles") or []]
                context.nickname = member.get("nick")
    except IdentityProviderError:
        logger.exception("Failed to refresh Discord identity for user %s", user_id)
        return IdentityContext(
            user_id=user_id,
            issued_at=issued_at,
            refreshed_at=now,
            max_age=settings.session_max_age,
            update_age=settings.session_update_age,
        )

    logger.debug(
        "Refreshed identity for %s: %d servers, %d owned, %d administered",
        user_id,
        len(context.server_ids),
        len(context.owned_server_ids),
        len(context.admin_server_ids),
    )
    return context
