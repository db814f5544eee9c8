import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from config import MAX_HOOKS_PER_GUILD
from services.commands import TEXT_CHANNEL_ONLY, CommandResult, ModLogsCommands
from services.permissions import GuildSnapshot

logger = logging.getLogger(__name__)


async def respond(interaction: discord.Interaction, result: CommandResult) -> None:
    """Answer the interaction, through the followup webhook once it was deferred."""
    if interaction.response.is_done():
        await interaction.followup.send(result.content, ephemeral=result.ephemeral)
        return
    await interaction.response.send_message(
        result.content, ephemeral=result.ephemeral
    )


class ModLogs(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def modlogs(self) -> ModLogsCommands:
        return self.bot.modlogs.commands

    def _refusal(self, interaction: discord.Interaction) -> Optional[CommandResult]:
        guild = interaction.guild
        role_ids = (
            [str(role.id) for role in interaction.user.roles]
            if isinstance(interaction.user, discord.Member)
            else []
        )
        return self.modlogs.check_permissions(
            str(interaction.user.id),
            role_ids,
            GuildSnapshot.from_guild(guild) if guild is not None else None,
        )

    @app_commands.command(
        name="add",
        description=f"Adds a new twitch moderation hook to log. You can have a maximum of {MAX_HOOKS_PER_GUILD}",
    )
    @app_commands.describe(
        token="Token from the login.",
        minimal="Minimal mode.",
        channel="Text channel for logging.",
    )
    @app_commands.guild_only()
    async def add(
        self,
        interaction: discord.Interaction,
        token: str,
        minimal: bool = True,
        channel: Optional[discord.TextChannel] = None,
    ):
        refusal = self._refusal(interaction)
        if refusal:
            await respond(interaction, refusal)
            return

        target = channel or interaction.channel
        if not isinstance(target, discord.TextChannel):
            await respond(interaction, CommandResult(TEXT_CHANNEL_ONLY, ephemeral=True))
            return

        # Subscription setup can outlast the 3 s interaction deadline
        await interaction.response.defer(thinking=True)
        await respond(
            interaction,
            await self.modlogs.add(
                str(interaction.guild_id), str(target.id), token, minimal
            ),
        )

    @app_commands.command(
        name="list", description="Shows a list of current hooks in this discord."
    )
    @app_commands.describe(channel="Show hooks for this channel.")
    @app_commands.guild_only()
    async def list_hooks(
        self,
        interaction: discord.Interaction,
        channel: Optional[discord.TextChannel] = None,
    ):
        refusal = self._refusal(interaction)
        if refusal:
            await respond(interaction, refusal)
            return

        await respond(
            interaction,
            await self.modlogs.list(
                str(interaction.guild_id), str(channel.id) if channel else None
            ),
        )

    @app_commands.command(name="delete", description="Deletes a hook from this discord.")
    @app_commands.describe(
        broadcaster="The ID or name of the twitch streamer.",
        channel="Text channel where the hook is active.",
    )
    @app_commands.guild_only()
    async def delete(
        self,
        interaction: discord.Interaction,
        broadcaster: str,
        channel: Optional[discord.TextChannel] = None,
    ):
        refusal = self._refusal(interaction)
        if refusal:
            await respond(interaction, refusal)
            return

        await interaction.response.defer(thinking=True)
        await respond(
            interaction,
            await self.modlogs.delete(
                str(interaction.guild_id),
                broadcaster,
                str(channel.id) if channel else None,
            ),
        )

    @app_commands.command(name="ignore", description="Ignore a user, such as a bot.")
    @app_commands.describe(user="The id or username of the twitch account.")
    @app_commands.guild_only()
    async def ignore(self, interaction: discord.Interaction, user: str):
        refusal = self._refusal(interaction)
        if refusal:
            await respond(interaction, refusal)
            return

        await respond(
            interaction, await self.modlogs.ignore(str(interaction.guild_id), user)
        )

    @app_commands.command(
        name="unignore", description="Unignore a user that was previously ignored"
    )
    @app_commands.describe(user="The id or username of the twitch account.")
    @app_commands.guild_only()
    async def unignore(self, interaction: discord.Interaction, user: str):
        refusal = self._refusal(interaction)
        if refusal:
            await respond(interaction, refusal)
            return

        await respond(
            interaction, await self.modlogs.unignore(str(interaction.guild_id), user)
        )

    @app_commands.command(name="ignored", description="Shows a list of ignored users.")
    @app_commands.guild_only()
    async def ignored(self, interaction: discord.Interaction):
        refusal = self._refusal(interaction)
        if refusal:
            await respond(interaction, refusal)
            return

        await respond(interaction, await self.modlogs.ignored(str(interaction.guild_id)))

    @app_commands.command(
        name="link", description="Responds with the invite link and the login link."
    )
    async def link(self, interaction: discord.Interaction):
        await respond(interaction, self.modlogs.link())


async def setup(bot: commands.Bot):
    await bot.add_cog(ModLogs(bot))
