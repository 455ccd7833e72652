from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from .models import Guild


class GuildRepository(Protocol):
    """
    Abstraction over in-game guild persistence.

    Implementations are responsible for:
    - Mapping between database rows and the `Guild` domain model.
    - Hiding any SQL / driver details from the application layer.
    - Raising `StoreUnavailableError` when the store cannot be read.
    """

    def find_guild_by_id(self, guild_id: str) -> Optional[Guild]:
        """Return the guild with the given ID, or None if not found."""

        ...

    def find_guilds_by_discord_server(self, discord_server_id: str) -> List[Guild]:
        """
        Return every guild bound to a Discord server, oldest first.

        Ties on creation time are broken by guild ID so the order is stable.
        """

        ...

    def add_guild(self, guild: Guild) -> None:
        """Persist a new guild."""

        ...

    def update_role_configuration(
        self,
        guild_id: str,
        member_role_id: Optional[str],
        officer_role_id: Optional[str],
        leader_role_id: Optional[str],
        leader_id: Optional[str] = None,
    ) -> None:
        """Replace a guild's automatic role IDs and designated leader."""

        ...


class IdentityProvider(Protocol):
    """
    Source of Discord identity data for an authenticated session.

    Payloads are the JSON objects returned by Discord's user OAuth endpoints;
    implementations raise `IdentityProviderError` on failure.
    """

    def fetch_user(self, access_token: str) -> Dict[str, Any]:
        ...

    def fetch_user_servers(self, access_token: str) -> List[Dict[str, Any]]:
        """Return the partial server objects the user belongs to."""

        ...

    def fetch_member(self, access_token: str, server_id: str) -> Optional[Dict[str, Any]]:
        """
        Return the user's member object on `server_id`, or None when the
        user is not a member of that server.
        """

        ...
