from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from .errors import MalformedConfigurationError
from .models import Guild

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Open:
    """Every user with baseline access may enter the guild."""

    def admits(self, roles: Iterable[str]) -> bool:
        return True


@dataclass(frozen=True)
class RoleSet:
    """Holding any one of `role_ids` grants access."""

    role_ids: FrozenSet[str] = field(default_factory=frozenset)

    def admits(self, roles: Iterable[str]) -> bool:
        return not self.role_ids.isdisjoint(roles)


@dataclass(frozen=True)
class Unconfigured:
    """No roles configured: nobody but admins gets in."""

    def admits(self, roles: Iterable[str]) -> bool:
        return False


RoleRequirement = Union[Open, RoleSet, Unconfigured]


def parse_role_list(raw: Optional[str], guild_id: str, field_name: str) -> List[str]:
    """
    Parse a legacy JSON role list such as ``'["123", "456"]'``.

    Missing or blank values mean "no roles". Anything that is not a JSON
    array of ids raises `MalformedConfigurationError`.
    """

    if raw is None or not raw.strip():
        return []

    try:
        value = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        raise MalformedConfigurationError(guild_id, field_name, str(exc)) from exc

    if not isinstance(value, list):
        raise MalformedConfigurationError(guild_id, field_name, "expected a JSON array")

    role_ids = []
    for item in value:
        # bool is an int subclass; it is never a valid role id.
        if isinstance(item, bool) or not isinstance(item, (str, int)):
            raise MalformedConfigurationError(
                guild_id, field_name, f"unexpected entry {item!r}"
            )
        role_ids.append(str(item))
    return role_ids


def automatic_role_ids(guild: Guild) -> FrozenSet[str]:
    return frozenset(
        role_id
        for role_id in (guild.member_role_id, guild.officer_role_id, guild.leader_role_id)
        if role_id
    )


def legacy_access_role_ids(guild: Guild) -> FrozenSet[str]:
    return frozenset(parse_role_list(guild.access_roles, guild.id, "access_roles"))


def legacy_officer_role_ids(guild: Guild) -> FrozenSet[str]:
    return frozenset(parse_role_list(guild.officer_roles, guild.id, "officer_roles"))


def legacy_default_role_ids(guild: Guild) -> FrozenSet[str]:
    return frozenset([guild.default_role_id]) if guild.default_role_id else frozenset()


ROLE_SOURCES: Tuple[Tuple[str, Callable[[Guild], FrozenSet[str]]], ...] = (
    ("automatic", automatic_role_ids),
    ("access_roles", legacy_access_role_ids),
    ("officer_roles", legacy_officer_role_ids),
    ("default_role", legacy_default_role_ids),
)


def role_sources(guild: Guild) -> Dict[str, FrozenSet[str]]:
    """
    Return the role ids configured on `guild`, keyed by source.

    A source whose stored value cannot be parsed contributes no roles; the
    problem is logged and the remaining sources are still read.
    """

    sources = {}
    for name, read in ROLE_SOURCES:
        try:
            sources[name] = read(guild)
        except MalformedConfigurationError as exc:
            logger.warning("Ignoring role source %s: %s", name, exc)
            sources[name] = frozenset()
    return sources


def role_requirement(guild: Guild) -> RoleRequirement:
    """
    Normalize both stored role schemas into a single requirement.

    An explicit `open_access` flag yields `Open`. Otherwise every configured
    role id, automatic or legacy, lands in one `RoleSet`; with none
    configured the guild is `Unconfigured` and stays closed.
    """

    if guild.open_access:
        return Open()

    role_ids: FrozenSet[str] = frozenset().union(*role_sources(guild).values())
    if not role_ids:
        return Unconfigured()
    return RoleSet(role_ids)
