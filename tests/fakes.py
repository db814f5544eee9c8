import asyncio
from typing import Dict, Iterable, List, Optional, Set, Tuple

from models import Subscription, User, UserTokenResponse
from services.errors import DestinationError, PersistenceError, UpstreamProviderError


class FakeCacheStore:
    """In-memory stand-in for CacheStore with the same typed surface."""

    def __init__(self) -> None:
        self.values: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.unavailable = False
        self.closed = False

    def _check(self) -> None:
        if self.unavailable:
            raise PersistenceError("cache unavailable")

    async def close(self) -> None:
        self.closed = True

    async def incr(self, key: str) -> int:
        return await self.decr_by(key, -1)

    async def decr_by(self, key: str, amount: int) -> int:
        self._check()
        value = int(self.values.get(key, "0")) - amount
        self.values[key] = str(value)
        return value

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check()
        self.values[key] = value

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        self._check()
        if key in self.values:
            return False
        self.values[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            for store in (self.values, self.hashes, self.sets):
                if key in store:
                    del store[key]
                    removed += 1
        return removed

    async def consume(self, key: str) -> Optional[str]:
        self._check()
        return self.values.pop(key, None)

    async def hget(self, key: str, field: str) -> Optional[str]:
        self._check()
        return self.hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: str) -> None:
        self._check()
        self.hashes.setdefault(key, {})[field] = value

    async def sadd(self, key: str, member: str) -> bool:
        self._check()
        members = self.sets.setdefault(key, set())
        added = member not in members
        members.add(member)
        return added

    async def srem(self, key: str, member: str) -> bool:
        self._check()
        members = self.sets.get(key, set())
        removed = member in members
        members.discard(member)
        return removed

    async def smembers(self, key: str) -> Set[str]:
        self._check()
        return set(self.sets.get(key, set()))

    async def sismember(self, key: str, member: str) -> bool:
        self._check()
        return member in self.sets.get(key, set())


class FakeTwitchApi:
    def __init__(self, users: Iterable[User] = ()) -> None:
        self.users: Dict[str, User] = {user.id: user for user in users}
        self.created: List[Tuple[str, str, str, str]] = []
        self.deleted: List[str] = []
        self.subscriptions: List[Subscription] = []
        self.failing_types: Set[str] = set()
        self.failing_deletes: Set[str] = set()
        self.user_lookups: List[Tuple[List[str], List[str]]] = []
        self.tokens: Dict[str, str] = {}
        self.token_owners: Dict[str, User] = {}

    async def create_subscription(
        self, event_type: str, streamer_id: str, secret: str, callback: str
    ) -> Optional[Subscription]:
        # Yield so that concurrent callers interleave like real requests
        await asyncio.sleep(0)
        if event_type in self.failing_types:
            raise UpstreamProviderError(f"create {event_type} failed", 400, "{}")
        self.created.append((event_type, streamer_id, secret, callback))
        return Subscription(
            id=f"sub-{event_type}-{streamer_id}",
            status="webhook_callback_verification_pending",
            type=event_type,
            version="1",
            condition={"broadcaster_user_id": streamer_id},
        )

    async def delete_subscription(self, subscription_id: str) -> None:
        await asyncio.sleep(0)
        if subscription_id in self.failing_deletes:
            raise UpstreamProviderError(f"delete {subscription_id} failed", 500, "{}")
        self.deleted.append(subscription_id)

    async def get_subscriptions(self) -> List[Subscription]:
        return list(self.subscriptions)

    async def get_users(
        self,
        ids: Iterable[str] = (),
        logins: Iterable[str] = (),
        oauth: Optional[str] = None,
    ) -> List[User]:
        ids, logins = list(ids), list(logins)
        if not ids and not logins and oauth is not None:
            owner = self.token_owners.get(oauth)
            return [owner] if owner else []
        self.user_lookups.append((ids, logins))
        return [
            user
            for user in self.users.values()
            if user.id in ids or user.login in logins
        ]

    async def exchange_code(self, code: str) -> UserTokenResponse:
        """`tokens` maps an authorization code to the access token it yields."""
        if code not in self.tokens:
            raise UpstreamProviderError("invalid code", 400, "{}")
        return UserTokenResponse(
            access_token=self.tokens[code],
            expires_in=1000,
            refresh_token="refresh",
            scope=["channel:moderate", "moderation:read"],
            token_type="bearer",
        )

    def created_types(self, streamer_id: str) -> List[str]:
        return [t for t, s, _, _ in self.created if s == streamer_id]


class FakeChatClient:
    def __init__(self, guilds: Iterable[str] = ()) -> None:
        self.guilds: Set[str] = set(guilds)
        self.messages: List[Tuple[str, str]] = []
        self.embeds: List[Tuple[str, object]] = []
        self.failures: Dict[str, DestinationError] = {}
        self.reports: List[Tuple[str, str]] = []

    def is_member(self, guild_id: str) -> bool:
        return guild_id in self.guilds

    async def send_message(self, channel_id: str, content: str) -> int:
        if channel_id in self.failures:
            raise self.failures[channel_id]
        self.messages.append((channel_id, content))
        return len(self.messages)

    async def send_embed(self, channel_id: str, embed) -> int:
        if channel_id in self.failures:
            raise self.failures[channel_id]
        self.embeds.append((channel_id, embed))
        return len(self.embeds)

    async def report(self, message: str, traceback_text: str) -> None:
        self.reports.append((message, traceback_text))


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += max(seconds, 0)
        await asyncio.sleep(0)
