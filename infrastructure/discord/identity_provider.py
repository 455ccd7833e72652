"""Discord user OAuth client used to refresh session identity data."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from domain.errors import IdentityProviderError
from domain.repositories import IdentityProvider

DISCORD_API_URL = "https://discord.com/api/v10"


class DiscordIdentityProvider(IdentityProvider):
    """Thin HTTP client for the `/users/@me` family of Discord endpoints."""

    def __init__(
        self,
        api_url: str = DISCORD_API_URL,
        timeout: float = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base = api_url.rstrip("/")
        self._http = httpx.Client(base_url=self.base, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    # -- Identity --

    def fetch_user(self, access_token: str) -> Dict[str, Any]:
        """Current user object (`id`, `username`, ...)."""
        return self._get("/users/@me", access_token)

    def fetch_user_servers(self, access_token: str) -> List[Dict[str, Any]]:
        """Partial server objects, including `owner` and `permissions`."""
        return self._get("/users/@me/guilds", access_token)

    def fetch_member(self, access_token: str, server_id: str) -> Optional[Dict[str, Any]]:
        """Member object for the user on `server_id`; None if not a member."""
        return self._get(f"/users/@me/guilds/{server_id}/member", access_token, missing_ok=True)

    # -- Internal --

    def _get(self, path: str, access_token: str, missing_ok: bool = False) -> Any:
        try:
            r = self._http.get(path, headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Discord request to {path} failed: {exc}") from exc

        if missing_ok and r.status_code == 404:
            return None
        try:
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPStatusError, ValueError) as exc:
            raise IdentityProviderError(f"Discord request to {path} failed: {exc}") from exc
