import asyncio
import logging
from enum import Enum
from typing import List, Optional

from discord import Embed

from constants import MAX_MESSAGE_LENGTH, HookMode, ignored_users_key
from models import Hook, ModerationEvent
from services.errors import DestinationError
from services.helper.cache_store import CacheStore
from services.helper.helper import handle_error
from services.hooks import HookRepository
from services.rate_limiter import RateLimiter, never_merge
from services.render import create_embed, create_minimal_text
from services.subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    Delivered = "delivered"
    Merged = "merged"
    Ignored = "ignored"
    Evicted = "evicted"
    Failed = "failed"


class PendingText:
    """Minimal mode text of one destination, grown by merges while it waits."""

    def __init__(self, text: str):
        self.text = text

    def merge(self, other: str) -> bool:
        merged = f"{self.text}\n{other}"
        if len(merged) >= MAX_MESSAGE_LENGTH:
            return False
        self.text = merged
        return True


class Dispatcher:
    """
    Fans normalized events out to every hook of the streamer.

    Events are queued by the webhook handler and drained by a fixed pool of
    worker tasks. Each destination is delivered independently; a destination
    that is gone for good loses its hook.
    """

    def __init__(
        self,
        hooks: HookRepository,
        registry: SubscriptionRegistry,
        cache: CacheStore,
        chat,
        limiter: RateLimiter,
        workers: int = 4,
        queue_size: int = 1000,
    ):
        self._hooks = hooks
        self._registry = registry
        self._cache = cache
        self._chat = chat
        self._limiter = limiter
        self._worker_count = workers
        self._queue: asyncio.Queue[ModerationEvent] = asyncio.Queue(maxsize=queue_size)
        self._workers: List[asyncio.Task] = []

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"dispatch-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info(f"Started {self._worker_count} dispatch worker(s)")

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    def submit(self, event: ModerationEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                f"Event queue full, dropping {event.action.value} of streamer {event.broadcaster_id}"
            )
            return False
        return True

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await handle_error(
                    e, f"Dispatch failed for streamer {event.broadcaster_id}"
                )
            finally:
                self._queue.task_done()

    async def dispatch(self, event: ModerationEvent) -> List[DeliveryOutcome]:
        hooks = await self._hooks.find_by_streamer(event.broadcaster_id)
        if not hooks:
            logger.info(f"No hooks for streamer {event.broadcaster_id}")
            return []

        text = create_minimal_text(event)
        embed = (
            create_embed(event)
            if any(hook.mode == HookMode.Embed for hook in hooks)
            else None
        )

        results = await asyncio.gather(
            *(self._deliver(hook, event, text, embed) for hook in hooks),
            return_exceptions=True,
        )

        outcomes: List[DeliveryOutcome] = []
        for hook, result in zip(hooks, results):
            if isinstance(result, Exception):
                await handle_error(
                    result,
                    f"Delivery failed for guild={hook.guild_id}, channel={hook.channel_id}, "
                    f"streamer={hook.streamer_id}, action={event.action.value}",
                )
                outcomes.append(DeliveryOutcome.Failed)
            else:
                outcomes.append(result)
        return outcomes

    async def _deliver(
        self, hook: Hook, event: ModerationEvent, text: str, embed: Optional[Embed]
    ) -> DeliveryOutcome:
        if not self._chat.is_member(hook.guild_id):
            await self._evict(hook, "bot is no longer in the guild")
            return DeliveryOutcome.Evicted

        if await self._cache.sismember(
            ignored_users_key(hook.guild_id), event.executor_id
        ):
            return DeliveryOutcome.Ignored

        try:
            if hook.mode == HookMode.Embed:
                await self._limiter.limit(hook.channel_id, None, never_merge)
                await self._chat.send_embed(hook.channel_id, embed)
            else:
                pending = PendingText(text)
                if not await self._limiter.limit(hook.channel_id, text, pending.merge):
                    return DeliveryOutcome.Merged
                await self._chat.send_message(hook.channel_id, pending.text)
        except DestinationError as e:
            if not e.permanent:
                logger.warning(
                    f"Transient delivery failure for guild={hook.guild_id}, "
                    f"channel={hook.channel_id}: {e}"
                )
                return DeliveryOutcome.Failed
            await self._evict(hook, str(e))
            return DeliveryOutcome.Evicted

        return DeliveryOutcome.Delivered

    async def _evict(self, hook: Hook, reason: str) -> None:
        logger.warning(
            f"Removing hook guild={hook.guild_id}, channel={hook.channel_id}, "
            f"streamer={hook.streamer_id}: {reason}"
        )
        removed = await self._hooks.delete_one(hook)
        await self._registry.hooks_removed(hook.streamer_id, removed)
