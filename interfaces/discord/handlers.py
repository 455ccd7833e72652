from __future__ import annotations

import logging

import discord
from discord.ext import commands

from application.access import GuildAccessResolver
from application.identity import IdentityContext, has_global_access
from application.settings import Settings
from domain.errors import GuildNotFoundError

logger = logging.getLogger(__name__)


def _build_identity_context(member: discord.Member, settings: Settings) -> IdentityContext:
    """
    Create an `IdentityContext` from a Discord member.

    The bot sees the member's roles and permissions on the current server
    directly, so no OAuth round-trip is needed here.
    """

    server_id = str(member.guild.id)
    # Skip @everyone; it is held by every member and never configured.
    roles = [str(role.id) for role in member.roles if not role.is_default()]

    return IdentityContext(
        user_id=str(member.id),
        server_ids=[server_id],
        owned_server_ids=[server_id] if member.guild.owner_id == member.id else [],
        admin_server_ids=[server_id] if member.guild_permissions.administrator else [],
        server_roles={server_id: roles},
        nickname=member.nick,
        max_age=settings.session_max_age,
        update_age=settings.session_update_age,
    )


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def create_discord_bot(
    resolver: GuildAccessResolver,
    settings: Settings,
) -> commands.Bot:
    """
    Configure and return a Discord bot that answers guild-access questions
    for the member invoking it: !guilds, !access <guild_id> and !help.
    """

    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.members = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(
            "!guilds               - list the guilds you can access on this server\n"
            "!access <guild_id>    - show your permissions for a guild\n"
        )

    @bot.command(name="guilds")
    async def guilds_cmd(ctx: commands.Context):
        if ctx.guild is None or not isinstance(ctx.author, discord.Member):
            await ctx.send("This command only works inside a server.")
            return

        identity = _build_identity_context(ctx.author, settings)
        server_id = str(ctx.guild.id)
        roles = identity.roles_on(server_id)
        is_owner = identity.is_owner_or_admin(server_id)

        guild_ids = resolver.get_accessible_guilds(
            server_id,
            roles,
            identity.user_id,
            is_owner,
            has_global_access(roles, settings, is_owner),
        )
        if not guild_ids:
            await ctx.send("You don't have access to any guilds on this server.")
            return

        lines = [f"- {guild_id}" for guild_id in guild_ids]
        await ctx.send("Guilds you can access:\n" + "\n".join(lines))

    @bot.command(name="access")
    async def access_cmd(ctx: commands.Context, guild_id: str):
        if ctx.guild is None or not isinstance(ctx.author, discord.Member):
            await ctx.send("This command only works inside a server.")
            return

        identity = _build_identity_context(ctx.author, settings)
        try:
            permissions = resolver.get_guild_permissions(identity, guild_id)
        except GuildNotFoundError:
            await ctx.send(f"Guild `{guild_id}` not found.")
            return

        await ctx.send(
            f"Access to `{guild_id}`: {_yes_no(permissions.can_access)}\n"
            f"Manage resources: {_yes_no(permissions.can_manage_resources)}\n"
            f"Edit targets: {_yes_no(permissions.can_edit_targets)}\n"
            f"Leader: {_yes_no(permissions.is_leader)}, "
            f"Officer: {_yes_no(permissions.is_officer)}, "
            f"Member: {_yes_no(permissions.is_member)}"
        )

    return bot
