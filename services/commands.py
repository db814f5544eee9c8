import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from constants import HookMode, auth_code_key, ignored_users_key
from models import Hook
from services.errors import ModLogsError
from services.helper.cache_store import CacheStore
from services.helper.helper import handle_error
from services.hooks import HookRepository, UpsertResult
from services.permissions import GuildSnapshot, is_authorized
from services.subscriptions import SubscriptionRegistry
from services.users import UserRepository

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error. Please try again later."
NO_PERMISSION = "You do not have permission to execute that command."
INVALID_TOKEN = (
    "The token you provided is expired or invalid. Please login again to make a new one."
)
UNKNOWN_BROADCASTER = "The specified broadcaster does not exist."
UNKNOWN_USER = "The specified user does not exist."
INVALID_USER = "Please enter a valid user."
TEXT_CHANNEL_ONLY = "Logs can only be outputted into a text channel."
NO_HOOKS = "No hooks were found"
NO_SUCH_HOOK = "That hook doesn't exist"
NO_IGNORED_USERS = "There are no ignored users."


@dataclass
class CommandResult:
    content: str
    ephemeral: bool = False


def _channel_mention(channel_id: str) -> str:
    return f"<#{channel_id}>"


def _twitch_link(login: str) -> str:
    return f"<https://twitch.tv/{login}>"


class ModLogsCommands:
    """Operator commands, independent from the chat library that invokes them."""

    def __init__(
        self,
        hooks: HookRepository,
        users: UserRepository,
        registry: SubscriptionRegistry,
        cache: CacheStore,
        admins: Iterable[str],
        max_hooks_per_guild: int,
        app_url: str,
    ):
        self._hooks = hooks
        self._users = users
        self._registry = registry
        self._cache = cache
        self._admins = frozenset(admins)
        self._max_hooks = max_hooks_per_guild
        self._app_url = app_url

    async def _internal_error(self, e: Exception, context: str) -> CommandResult:
        await handle_error(e, context)
        return CommandResult(INTERNAL_ERROR, ephemeral=True)

    def check_permissions(
        self,
        user_id: str,
        member_role_ids: Iterable[str],
        guild: Optional[GuildSnapshot],
    ) -> Optional[CommandResult]:
        """None when the user may run guarded commands, else the refusal."""
        if guild is None and user_id not in self._admins:
            logger.error(f"Guild of user {user_id} is not cached")
            return CommandResult(INTERNAL_ERROR, ephemeral=True)
        if not is_authorized(user_id, member_role_ids, guild, self._admins):
            return CommandResult(NO_PERMISSION, ephemeral=True)
        return None

    async def add(
        self, guild_id: str, channel_id: str, token: str, minimal: bool = True
    ) -> CommandResult:
        mode = HookMode.Minimal if minimal else HookMode.Embed
        try:
            user_id = await self._cache.consume(auth_code_key(token.strip()))
            if user_id is None:
                return CommandResult(INVALID_TOKEN, ephemeral=True)

            user = await self._users.resolve(user_id)
            if user is None:
                return CommandResult(UNKNOWN_BROADCASTER, ephemeral=True)

            hook = Hook(
                guild_id=guild_id, channel_id=channel_id, streamer_id=user.id, mode=mode
            )
            target = f"{_twitch_link(user.login)}, into {_channel_mention(channel_id)}"

            if await self._hooks.get(guild_id, channel_id, user.id) is not None:
                await self._hooks.upsert(hook)
                return CommandResult(f"ModLogs hook updated for {target}")

            count = await self._hooks.count_by_guild(guild_id)
            if self._max_hooks != -1 and count >= self._max_hooks:
                return CommandResult(
                    f"There are too many hooks in this discord. ({count}/{self._max_hooks})",
                    ephemeral=True,
                )

            if await self._hooks.upsert(hook) == UpsertResult.Created:
                await self._registry.hook_added(hook)
        except ModLogsError as e:
            return await self._internal_error(e, f"Adding hook in guild {guild_id}")

        logger.info(f"Hook added guild={guild_id}, channel={channel_id}, streamer={user.id}")
        return CommandResult(f"ModLogs hook added for {target}")

    async def list(self, guild_id: str, channel_id: Optional[str] = None) -> CommandResult:
        try:
            hooks = await self._hooks.find_by_guild(guild_id, channel_id)
            by_streamer: Dict[str, List[Hook]] = {}
            for hook in hooks:
                by_streamer.setdefault(hook.streamer_id, []).append(hook)
            users = await self._users.resolve_many(by_streamer)
        except ModLogsError as e:
            return await self._internal_error(e, f"Listing hooks of guild {guild_id}")

        lines = []
        for user in users:
            channels = ", ".join(
                f"{_channel_mention(hook.channel_id)} - {hook.mode.name.lower()}"
                for hook in by_streamer[user.id]
            )
            lines.append(f"{_twitch_link(user.login)} -> {channels}")

        return CommandResult("\n".join(lines) if lines else NO_HOOKS)

    async def delete(
        self, guild_id: str, broadcaster: str, channel_id: Optional[str] = None
    ) -> CommandResult:
        broadcaster = broadcaster.strip()
        try:
            streamer_id = broadcaster
            removed = await self._hooks.delete(guild_id, streamer_id, channel_id)
            if not removed:
                user = await self._users.resolve(broadcaster)
                if user is None:
                    return CommandResult(UNKNOWN_USER, ephemeral=True)
                streamer_id = user.id
                removed = await self._hooks.delete(guild_id, streamer_id, channel_id)
        except ModLogsError as e:
            return await self._internal_error(e, f"Deleting hook in guild {guild_id}")

        if not removed:
            return CommandResult(NO_SUCH_HOOK, ephemeral=True)

        try:
            await self._registry.hooks_removed(streamer_id, removed)
        except ModLogsError as e:
            # The rows are gone; reconcile at next startup settles the upstream side
            await handle_error(e, f"Releasing subscriptions of streamer {streamer_id}")

        plural = "s have" if removed > 1 else " has"
        return CommandResult(f"The hook{plural} been removed.")

    async def ignore(self, guild_id: str, user_input: str) -> CommandResult:
        return await self._toggle_ignore(guild_id, user_input, ignore=True)

    async def unignore(self, guild_id: str, user_input: str) -> CommandResult:
        return await self._toggle_ignore(guild_id, user_input, ignore=False)

    async def _toggle_ignore(
        self, guild_id: str, user_input: str, ignore: bool
    ) -> CommandResult:
        if not user_input.strip():
            return CommandResult(INVALID_USER, ephemeral=True)

        try:
            user = await self._users.resolve(user_input)
            if user is None:
                return CommandResult(UNKNOWN_USER, ephemeral=True)
            key = ignored_users_key(guild_id)
            if ignore:
                await self._cache.sadd(key, user.id)
            else:
                await self._cache.srem(key, user.id)
        except ModLogsError as e:
            return await self._internal_error(e, f"Updating ignore list of guild {guild_id}")

        verb = "ignored" if ignore else "unignored"
        return CommandResult(f"Successfully {verb} `{user.name}`.")

    async def ignored(self, guild_id: str) -> CommandResult:
        try:
            ids = await self._cache.smembers(ignored_users_key(guild_id))
            if not ids:
                return CommandResult(NO_IGNORED_USERS, ephemeral=True)
            users = await self._users.resolve_many(sorted(ids))
        except ModLogsError as e:
            return await self._internal_error(e, f"Listing ignored users of guild {guild_id}")

        return CommandResult(f"Ignored Users: {', '.join(user.name for user in users)}")

    def link(self) -> CommandResult:
        return CommandResult(
            f"This bot can be invited to a server by going to <{self._app_url}/login>."
        )
