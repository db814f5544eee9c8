from dataclasses import dataclass

from discord.ext.commands import Bot

from config import (
    ADMINS,
    APP_URL,
    DATA_DIR,
    BOT_ADMIN_CHANNEL,
    DISPATCH_WORKERS,
    EVENT_QUEUE_SIZE,
    MAX_HOOKS_PER_GUILD,
    REDIS_URL,
    TWITCH_CLIENT_ID,
    TWITCH_CLIENT_SECRET,
    TWITCH_REDIRECT_URI,
)
from services.chat import DiscordChatClient
from services.commands import ModLogsCommands
from services.dedup import DeduplicationGate
from services.dispatcher import Dispatcher
from services.helper.cache_store import CacheStore
from services.helper.document_store import DocumentStore
from services.helper.http_client import http_client
from services.hooks import SCHEMAS, HookRepository
from services.login import LoginFlow
from services.rate_limiter import RateLimiter
from services.subscriptions import SubscriptionRegistry
from services.twitch.api import TwitchApi
from services.twitch.token_manager import TokenCache
from services.users import UserRepository


@dataclass
class ModLogsServices:
    store: DocumentStore
    cache: CacheStore
    twitch: TwitchApi
    hooks: HookRepository
    users: UserRepository
    registry: SubscriptionRegistry
    dedup: DeduplicationGate
    dispatcher: Dispatcher
    commands: ModLogsCommands
    login: LoginFlow
    chat: DiscordChatClient

    async def start(self) -> None:
        self.store.start()
        self.dispatcher.start()

    async def stop(self) -> None:
        await self.dispatcher.stop()
        await self.store.stop()
        await self.cache.close()
        await http_client.close()


def build_services(bot: Bot) -> ModLogsServices:
    store = DocumentStore(DATA_DIR, SCHEMAS)
    cache = CacheStore(REDIS_URL)
    token_cache = TokenCache(TWITCH_CLIENT_ID, TWITCH_CLIENT_SECRET)
    twitch = TwitchApi(
        TWITCH_CLIENT_ID, TWITCH_CLIENT_SECRET, TWITCH_REDIRECT_URI, token_cache
    )
    hooks = HookRepository(store)
    users = UserRepository(store, twitch)
    registry = SubscriptionRegistry(cache, hooks, twitch, APP_URL)
    chat = DiscordChatClient(bot, BOT_ADMIN_CHANNEL)
    dispatcher = Dispatcher(
        hooks,
        registry,
        cache,
        chat,
        RateLimiter(),
        workers=DISPATCH_WORKERS,
        queue_size=EVENT_QUEUE_SIZE,
    )
    commands = ModLogsCommands(
        hooks, users, registry, cache, ADMINS, MAX_HOOKS_PER_GUILD, APP_URL
    )
    login = LoginFlow(TWITCH_CLIENT_ID, TWITCH_REDIRECT_URI, twitch, users, cache)

    return ModLogsServices(
        store=store,
        cache=cache,
        twitch=twitch,
        hooks=hooks,
        users=users,
        registry=registry,
        dedup=DeduplicationGate(cache),
        dispatcher=dispatcher,
        commands=commands,
        login=login,
        chat=chat,
    )
