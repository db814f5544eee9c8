import logging
from typing import Optional, Set

import redis.asyncio as redis
from redis.exceptions import RedisError

from services.errors import PersistenceError

logger = logging.getLogger(__name__)

# GET then DEL in one step, so a one-time value can only be read once.
CONSUME_LUA_SCRIPT = """
local value = redis.call("GET", KEYS[1])
if not value then
    return false
end
redis.call("DEL", KEYS[1])
return value
"""


class CacheStore:
    """
    Typed access to the redis cache/lock store.

    Every redis failure surfaces as PersistenceError and every reply is
    converted to a plain Python type here, so callers never inspect raw
    replies.
    """

    def __init__(self, url: str):
        self._client = redis.from_url(url, decode_responses=True)
        self._consume_script = self._client.register_script(CONSUME_LUA_SCRIPT)

    async def close(self) -> None:
        await self._client.aclose()

    async def incr(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except RedisError as e:
            raise PersistenceError(f"INCR {key} failed: {e}") from e

    async def decr_by(self, key: str, amount: int) -> int:
        try:
            return int(await self._client.decrby(key, amount))
        except RedisError as e:
            raise PersistenceError(f"DECRBY {key} failed: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise PersistenceError(f"GET {key} failed: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value)
        except RedisError as e:
            raise PersistenceError(f"SET {key} failed: {e}") from e

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """SET NX EX. Returns False when the key already existed."""
        try:
            return bool(await self._client.set(key, value, nx=True, ex=ttl))
        except RedisError as e:
            raise PersistenceError(f"SET NX {key} failed: {e}") from e

    async def delete(self, *keys: str) -> int:
        try:
            return int(await self._client.delete(*keys))
        except RedisError as e:
            raise PersistenceError(f"DEL {keys} failed: {e}") from e

    async def consume(self, key: str) -> Optional[str]:
        """Atomically read and delete a key."""
        try:
            value = await self._consume_script(keys=[key])
        except RedisError as e:
            raise PersistenceError(f"Consume {key} failed: {e}") from e
        return value if isinstance(value, str) else None

    async def hget(self, key: str, field: str) -> Optional[str]:
        try:
            return await self._client.hget(key, field)
        except RedisError as e:
            raise PersistenceError(f"HGET {key} {field} failed: {e}") from e

    async def hset(self, key: str, field: str, value: str) -> None:
        try:
            await self._client.hset(key, field, value)
        except RedisError as e:
            raise PersistenceError(f"HSET {key} {field} failed: {e}") from e

    async def sadd(self, key: str, member: str) -> bool:
        try:
            return bool(await self._client.sadd(key, member))
        except RedisError as e:
            raise PersistenceError(f"SADD {key} failed: {e}") from e

    async def srem(self, key: str, member: str) -> bool:
        try:
            return bool(await self._client.srem(key, member))
        except RedisError as e:
            raise PersistenceError(f"SREM {key} failed: {e}") from e

    async def smembers(self, key: str) -> Set[str]:
        try:
            return set(await self._client.smembers(key))
        except RedisError as e:
            raise PersistenceError(f"SMEMBERS {key} failed: {e}") from e

    async def sismember(self, key: str, member: str) -> bool:
        try:
            return bool(await self._client.sismember(key, member))
        except RedisError as e:
            raise PersistenceError(f"SISMEMBER {key} failed: {e}") from e
