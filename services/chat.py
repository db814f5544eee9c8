import io
import logging
from typing import Optional, Union

import discord
import sentry_sdk
from discord import CategoryChannel, Embed, ForumChannel
from discord.abc import PrivateChannel
from discord.ext.commands import Bot

from constants import MAX_MESSAGE_LENGTH
from services.errors import DestinationError

logger = logging.getLogger(__name__)

Sendable = Union[discord.TextChannel, discord.Thread, discord.VoiceChannel]


class DiscordChatClient:
    """Chat delivery on top of the discord.py bot."""

    def __init__(self, bot: Bot, admin_channel_id: int = 0):
        self._bot = bot
        self._admin_channel_id = admin_channel_id

    def is_member(self, guild_id: str) -> bool:
        # Before the guild cache is populated membership can't be judged
        if not self._bot.is_ready():
            return True
        return self._bot.get_guild(int(guild_id)) is not None

    def get_guild(self, guild_id: str) -> Optional[discord.Guild]:
        return self._bot.get_guild(int(guild_id))

    async def _get_channel(self, channel_id: str) -> Sendable:
        channel = self._bot.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self._bot.fetch_channel(int(channel_id))
            except (discord.NotFound, discord.Forbidden) as e:
                raise DestinationError(channel_id, f"Channel unavailable: {e}") from e
            except discord.HTTPException as e:
                raise DestinationError(
                    channel_id, f"Channel lookup failed: {e}", permanent=False
                ) from e

        if isinstance(channel, (ForumChannel, CategoryChannel, PrivateChannel)):
            raise DestinationError(channel_id, "Channel is not a text channel")
        return channel

    async def _send(self, channel_id: str, **kwargs) -> int:
        channel = await self._get_channel(channel_id)
        try:
            return (await channel.send(**kwargs)).id
        except (discord.NotFound, discord.Forbidden) as e:
            raise DestinationError(channel_id, f"Send rejected: {e}") from e
        except discord.HTTPException as e:
            raise DestinationError(
                channel_id, f"Send failed: {e}", permanent=False
            ) from e

    @sentry_sdk.trace()
    async def send_message(self, channel_id: str, content: str) -> int:
        return await self._send(channel_id, content=content)

    @sentry_sdk.trace()
    async def send_embed(self, channel_id: str, embed: Embed) -> int:
        return await self._send(channel_id, embed=embed)

    async def report(self, message: str, traceback_text: str) -> None:
        """Post an error report with the traceback attached to the admin channel."""
        if not self._admin_channel_id:
            return
        channel = self._bot.get_channel(self._admin_channel_id)
        if channel is None or isinstance(
            channel, (ForumChannel, CategoryChannel, PrivateChannel)
        ):
            return
        await channel.send(
            content=message[:MAX_MESSAGE_LENGTH],
            file=discord.File(
                io.BytesIO(traceback_text.encode()), filename="traceback.txt"
            ),
        )
