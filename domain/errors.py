class GuildAccessError(Exception):
    """Base class for errors raised while resolving guild access."""


class GuildNotFoundError(GuildAccessError):
    """The referenced in-game guild does not exist."""

    def __init__(self, guild_id: str) -> None:
        super().__init__(f"Guild not found: {guild_id}")
        self.guild_id = guild_id


class MalformedConfigurationError(GuildAccessError):
    """A stored role list could not be parsed."""

    def __init__(self, guild_id: str, field_name: str, detail: str = "") -> None:
        message = f"Malformed {field_name} for guild {guild_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.guild_id = guild_id
        self.field_name = field_name


class StoreUnavailableError(GuildAccessError):
    """The guild store could not be read."""


class IdentityProviderError(GuildAccessError):
    """Discord identity data could not be fetched."""
