import logging
from enum import Enum

from constants import DEDUP_TTL, dedup_key
from services.helper.cache_store import CacheStore

logger = logging.getLogger(__name__)


class ClaimResult(str, Enum):
    Claimed = "claimed"
    Duplicate = "duplicate"


class DeduplicationGate:
    """Idempotency records for at-least-once webhook deliveries."""

    def __init__(self, cache: CacheStore, ttl: int = DEDUP_TTL):
        self._cache = cache
        self._ttl = ttl

    async def claim(
        self, event_type: str, streamer_id: str, message_id: str
    ) -> ClaimResult:
        """Record the first sighting of a message. Store failures propagate."""
        key = dedup_key(event_type, streamer_id, message_id)
        if await self._cache.set_if_absent(key, "1", self._ttl):
            return ClaimResult.Claimed
        logger.warning(f"Duplicated key={key}")
        return ClaimResult.Duplicate

    async def release(self, event_type: str, streamer_id: str, message_id: str) -> None:
        """Forget a message so that a redelivery gets processed again."""
        await self._cache.delete(dedup_key(event_type, streamer_id, message_id))
