import logging

from application.access import GuildAccessResolver
from infrastructure.config import load_settings
from infrastructure.db.guild_repository_postgres import PostgresGuildRepository
from infrastructure.db.guild_repository_sqlite import SqliteGuildRepository
from interfaces.discord.handlers import create_discord_bot


def main() -> None:
    settings = load_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.discord_token:
        raise RuntimeError("DISCORD_TOKEN environment variable is not set.")

    if settings.database_url:
        guild_repo = PostgresGuildRepository({"dsn": settings.database_url})
    else:
        guild_repo = SqliteGuildRepository(settings.db_path)

    resolver = GuildAccessResolver(guild_repo, settings)

    bot = create_discord_bot(resolver, settings)
    bot.run(settings.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
