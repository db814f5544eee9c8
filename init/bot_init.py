import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import CategoryChannel, ForumChannel
from discord.abc import PrivateChannel
from discord.ext.commands import Bot

from config import BOT_ADMIN_CHANNEL, DELETE_COMMANDS, REBUILD_COMMANDS

if TYPE_CHECKING:
    from init.services_init import ModLogsServices

logger = logging.getLogger(__name__)


class ModLogsBot(Bot):
    def __init__(self, *, command_prefix: str, intents: discord.Intents) -> None:
        super().__init__(command_prefix=command_prefix, intents=intents)
        self.case_insensitive = True
        self.modlogs: Optional["ModLogsServices"] = None

    async def setup_hook(self) -> None:
        if DELETE_COMMANDS:
            # Syncing a tree without the commands removes them from Discord
            commands = list(self.tree.get_commands())
            self.tree.clear_commands(guild=None)
            await self.tree.sync()
            logger.info(f"Deleted {len(commands)} application command(s)")
            for command in commands:
                self.tree.add_command(command)

        if REBUILD_COMMANDS:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} application command(s)")


bot = ModLogsBot(command_prefix="$", intents=discord.Intents.default())


@bot.event
async def on_ready() -> None:
    logger.info(f"Logged in as {bot.user} in {len(bot.guilds)} guild(s)")

    channel = bot.get_channel(BOT_ADMIN_CHANNEL)
    if channel is None or isinstance(
        channel, (ForumChannel, CategoryChannel, PrivateChannel)
    ):
        return
    await channel.send("Started successfully!")
