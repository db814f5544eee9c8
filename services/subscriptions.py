import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from constants import (
    ALL_EVENT_TYPES,
    WEBHOOK_SECRET_BYTES,
    EventType,
    streamer_count_key,
    webhook_secret_key,
)
from models import Hook
from services.errors import SubscriptionError
from services.helper.cache_store import CacheStore
from services.helper.helper import generate_random_string
from services.hooks import HookRepository
from services.twitch.api import TwitchApi

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    deleted: List[str] = field(default_factory=list)
    created: Dict[str, List[str]] = field(default_factory=dict)
    dropped: List[str] = field(default_factory=list)
    counters: Dict[str, int] = field(default_factory=dict)
    errors: List[SubscriptionError] = field(default_factory=list)


class SubscriptionRegistry:
    """
    Keeps upstream webhook subscriptions in step with the local hooks.

    A per-streamer counter in the cache store tracks how many hooks point at
    the streamer. The transition 0 -> 1 creates the subscriptions for every
    event type and 1 -> 0 revokes them. Each streamer's counter change and
    the create or revoke it triggers run under that streamer's lock, so a
    revoke never interleaves with the creation that follows a re-add. The
    counter key is kept at 0 rather than deleted.
    """

    def __init__(
        self,
        cache: CacheStore,
        hooks: HookRepository,
        twitch: TwitchApi,
        app_url: str,
    ):
        self._cache = cache
        self._hooks = hooks
        self._twitch = twitch
        self._app_url = app_url
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def callback_url(self, event_type: str, streamer_id: str) -> str:
        return f"{self._app_url}/webhook/{event_type}/{streamer_id}"

    async def _create_one(self, event_type: str, streamer_id: str, secret: str) -> None:
        key = webhook_secret_key(event_type, streamer_id)
        # The secret must be readable before the verification challenge arrives
        await self._cache.hset(key, "secret", secret)
        subscription = await self._twitch.create_subscription(
            event_type, streamer_id, secret, self.callback_url(event_type, streamer_id)
        )
        if subscription is not None:
            await self._cache.hset(key, "id", subscription.id)

    async def create_subscriptions(
        self, streamer_id: str, event_types: Optional[Iterable[str]] = None
    ) -> None:
        """Create subscriptions sharing one fresh secret. Failures are aggregated."""
        types = [EventType(t).value for t in (event_types or ALL_EVENT_TYPES)]
        secret = generate_random_string(WEBHOOK_SECRET_BYTES)

        results = await asyncio.gather(
            *(self._create_one(t, streamer_id, secret) for t in types),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            raise SubscriptionError(streamer_id, errors)
        logger.info(f"Created {len(types)} subscription(s) for streamer {streamer_id}")

    async def _revoke_one(self, event_type: str, streamer_id: str) -> None:
        key = webhook_secret_key(event_type, streamer_id)
        subscription_id = await self._cache.hget(key, "id")
        if subscription_id:
            await self._twitch.delete_subscription(subscription_id)
        else:
            logger.warning(f"No subscription id stored for {event_type} of {streamer_id}")
        await self._cache.delete(key)

    async def revoke_subscriptions(self, streamer_id: str) -> None:
        results = await asyncio.gather(
            *(self._revoke_one(t.value, streamer_id) for t in ALL_EVENT_TYPES),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            raise SubscriptionError(streamer_id, errors)
        logger.info(f"Revoked subscriptions for streamer {streamer_id}")

    async def hook_added(self, hook: Hook) -> None:
        """
        Count a newly created hook; the first hook of a streamer creates the
        upstream subscriptions.

        On failure the counter and the hook row are rolled back before the
        error is re-raised.
        """
        key = streamer_count_key(hook.streamer_id)
        async with self._locks[hook.streamer_id]:
            count = await self._cache.incr(key)
            if count != 1:
                return

            try:
                await self.create_subscriptions(hook.streamer_id)
            except Exception:
                logger.error(
                    f"Subscription creation failed for streamer {hook.streamer_id}, rolling back hook {hook.id}"
                )
                remaining = await self._cache.decr_by(key, 1)
                await self._hooks.delete_one(hook)
                if remaining == 0:
                    await self._revoke_quietly(hook.streamer_id)
                raise

    async def hooks_removed(self, streamer_id: str, count: int) -> None:
        """Account for `count` deleted hooks; the last one revokes the subscriptions."""
        if count <= 0:
            return

        async with self._locks[streamer_id]:
            remaining = await self._cache.decr_by(streamer_count_key(streamer_id), count)
            if remaining > 0:
                return
            if remaining < 0:
                logger.warning(
                    f"Hook counter of streamer {streamer_id} went negative ({remaining})"
                )
                return

            await self.revoke_subscriptions(streamer_id)

    async def _revoke_quietly(self, streamer_id: str) -> None:
        try:
            await self.revoke_subscriptions(streamer_id)
        except SubscriptionError as e:
            logger.warning(f"Cleanup after failed creation incomplete: {e}")

    async def reconcile(self) -> ReconcileReport:
        """
        Bring upstream subscriptions and counters back in line with the hooks.

        Subscriptions for streamers without hooks, or not enabled, are
        deleted; missing event types are created; a streamer whose creation
        fails loses its hooks. Every counter is then reset to the row count.
        Failed upstream calls are collected per streamer in `errors`.
        """
        report = ReconcileReport()
        counts = await self._hooks.streamer_counts()
        active: Dict[str, set] = {streamer_id: set() for streamer_id in counts}
        delete_failures: Dict[str, List[Exception]] = defaultdict(list)

        for subscription in await self._twitch.get_subscriptions():
            streamer_id = subscription.condition.broadcaster_user_id
            if not streamer_id:
                continue

            if streamer_id not in active or subscription.status != "enabled":
                try:
                    await self._twitch.delete_subscription(subscription.id)
                    report.deleted.append(subscription.id)
                except Exception as e:
                    logger.error(f"Failed to delete subscription {subscription.id}: {e}")
                    delete_failures[streamer_id].append(e)
                if streamer_id not in active:
                    await self._cache.delete(
                        webhook_secret_key(subscription.type, streamer_id),
                        streamer_count_key(streamer_id),
                    )
                continue

            active[streamer_id].add(subscription.type)

        report.errors.extend(
            SubscriptionError(streamer_id, errors)
            for streamer_id, errors in delete_failures.items()
        )

        for streamer_id, present in active.items():
            missing = [t.value for t in ALL_EVENT_TYPES if t.value not in present]
            if not missing:
                continue
            async with self._locks[streamer_id]:
                try:
                    await self.create_subscriptions(streamer_id, missing)
                    report.created[streamer_id] = missing
                except SubscriptionError as e:
                    logger.error(f"Reconcile could not restore subscriptions: {e}")
                    report.errors.append(e)
                    await self._hooks.delete_by_streamer(streamer_id)
                    await self._cache.delete(streamer_count_key(streamer_id))
                    await self._revoke_quietly(streamer_id)
                    report.dropped.append(streamer_id)
                    counts.pop(streamer_id, None)

        for streamer_id, count in counts.items():
            await self._cache.set(streamer_count_key(streamer_id), str(count))
            report.counters[streamer_id] = count

        logger.info(
            f"Reconciled subscriptions: deleted={len(report.deleted)}, "
            f"created={len(report.created)}, dropped={len(report.dropped)}, "
            f"errors={len(report.errors)}"
        )
        return report
