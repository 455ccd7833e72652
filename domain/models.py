from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Guild:
    """
    Domain representation of an in-game guild.

    A guild is not a Discord server: it is bound to one through
    `discord_server_id`, and the role columns point at roles on that server.

    Two role schemas are carried:
    - automatic roles (`member_role_id`, `officer_role_id`, `leader_role_id`)
      created and assigned by the companion bot;
    - legacy roles (`access_roles`, `officer_roles`, `default_role_id`)
      configured by hand. The list columns are stored as raw JSON text and
      only parsed when access is evaluated.
    """

    id: str
    discord_server_id: str
    title: str
    leader_id: Optional[str] = None
    member_role_id: Optional[str] = None
    officer_role_id: Optional[str] = None
    leader_role_id: Optional[str] = None
    access_roles: Optional[str] = None
    officer_roles: Optional[str] = None
    default_role_id: Optional[str] = None
    open_access: bool = False
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class GuildMembership:
    """Finer-grained standing of a user inside a single guild."""

    is_leader: bool = False
    is_officer: bool = False
    is_member: bool = False

    @property
    def has_any(self) -> bool:
        return self.is_leader or self.is_officer or self.is_member


@dataclass(frozen=True)
class GuildPermissions:
    """
    What a user may do with one guild.

    `can_access` is the binary decision; the membership flags are kept so
    callers (dashboards, bot replies) can make finer-grained choices.
    """

    can_access: bool
    can_manage_resources: bool
    can_edit_targets: bool
    is_leader: bool = False
    is_officer: bool = False
    is_member: bool = False
    has_global_admin: bool = False
    is_server_owner: bool = False
    reason: str = ""

    @classmethod
    def denied(cls, reason: str) -> "GuildPermissions":
        return cls(
            can_access=False,
            can_manage_resources=False,
            can_edit_targets=False,
            reason=reason,
        )
