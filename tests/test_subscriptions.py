import asyncio
import tempfile
import unittest

from constants import ALL_EVENT_TYPES, HookMode, streamer_count_key, webhook_secret_key
from models import Hook, Subscription
from services.errors import SubscriptionError
from services.helper.document_store import DocumentStore
from services.hooks import SCHEMAS, HookRepository
from services.subscriptions import SubscriptionRegistry
from tests.fakes import FakeCacheStore, FakeTwitchApi

APP_URL = "https://modlogs.example"


def make_hook(guild: str = "g1", channel: str = "c1", streamer: str = "42") -> Hook:
    return Hook(guild_id=guild, channel_id=channel, streamer_id=streamer, mode=HookMode.Minimal)


def upstream(sub_id: str, event_type: str, streamer: str, status: str = "enabled") -> Subscription:
    return Subscription(
        id=sub_id,
        status=status,
        type=event_type,
        version="1",
        condition={"broadcaster_user_id": streamer},
    )


class YieldingCacheStore(FakeCacheStore):
    """Suspends before every counter or key change, like a network round trip."""

    async def decr_by(self, key: str, amount: int) -> int:
        await asyncio.sleep(0)
        return await super().decr_by(key, amount)

    async def delete(self, *keys: str) -> int:
        await asyncio.sleep(0)
        return await super().delete(*keys)

    async def hset(self, key: str, field: str, value: str) -> None:
        await asyncio.sleep(0)
        await super().hset(key, field, value)


class SubscriptionRegistryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.store = DocumentStore(self.tmpdir.name, SCHEMAS)
        self.hooks = HookRepository(self.store)
        self.cache = FakeCacheStore()
        self.twitch = FakeTwitchApi()
        self.registry = SubscriptionRegistry(self.cache, self.hooks, self.twitch, APP_URL)

    async def asyncTearDown(self) -> None:
        self.tmpdir.cleanup()

    async def add(self, hook: Hook) -> None:
        await self.hooks.upsert(hook)
        await self.registry.hook_added(hook)

    async def counter(self, streamer: str) -> int:
        return int(await self.cache.get(streamer_count_key(streamer)) or 0)

    async def test_first_hook_creates_all_subscriptions_with_one_secret(self) -> None:
        await self.add(make_hook())

        self.assertEqual(
            sorted(self.twitch.created_types("42")),
            sorted(t.value for t in ALL_EVENT_TYPES),
        )
        secrets = {secret for _, _, secret, _ in self.twitch.created}
        self.assertEqual(len(secrets), 1)
        callbacks = {callback for _, _, _, callback in self.twitch.created}
        self.assertIn(f"{APP_URL}/webhook/channel.ban/42", callbacks)
        stored = self.cache.hashes[webhook_secret_key("channel.ban", "42")]
        self.assertEqual(stored["secret"], secrets.pop())
        self.assertEqual(stored["id"], "sub-channel.ban-42")
        self.assertEqual(await self.counter("42"), 1)

    async def test_second_hook_only_counts(self) -> None:
        await self.add(make_hook(channel="c1"))
        await self.add(make_hook(channel="c2"))

        self.assertEqual(len(self.twitch.created), len(ALL_EVENT_TYPES))
        self.assertEqual(await self.counter("42"), 2)

    async def test_concurrent_adds_create_once(self) -> None:
        first, second = make_hook(guild="g1"), make_hook(guild="g2")
        await self.hooks.upsert(first)
        await self.hooks.upsert(second)

        await asyncio.gather(
            self.registry.hook_added(first), self.registry.hook_added(second)
        )

        self.assertEqual(len(self.twitch.created), len(ALL_EVENT_TYPES))
        self.assertEqual(await self.counter("42"), 2)

    async def test_last_remove_racing_new_add_keeps_counter_and_secret(self) -> None:
        self.cache = YieldingCacheStore()
        self.registry = SubscriptionRegistry(self.cache, self.hooks, self.twitch, APP_URL)
        old, new = make_hook(channel="old"), make_hook(channel="new")
        await self.add(old)
        removed = await self.hooks.delete("g1", "42", "old")
        await self.hooks.upsert(new)

        await asyncio.gather(
            self.registry.hooks_removed("42", removed), self.registry.hook_added(new)
        )

        rows = len(await self.hooks.find_by_streamer("42"))
        self.assertEqual(await self.counter("42"), rows)
        for event_type in ALL_EVENT_TYPES:
            stored = self.cache.hashes.get(webhook_secret_key(event_type.value, "42"), {})
            self.assertIn("secret", stored)
            self.assertIn("id", stored)

        self.twitch.deleted.clear()
        await self.hooks.delete("g1", "42", "new")
        await self.registry.hooks_removed("42", 1)
        self.assertEqual(await self.counter("42"), 0)
        self.assertEqual(len(self.twitch.deleted), len(ALL_EVENT_TYPES))

    async def test_failed_creation_rolls_back(self) -> None:
        self.twitch.failing_types = {"channel.unban", "channel.moderator.add"}
        hook = make_hook()

        with self.assertRaises(SubscriptionError) as ctx:
            await self.add(hook)

        self.assertEqual(len(ctx.exception.errors), 2)
        self.assertEqual(await self.counter("42"), 0)
        self.assertEqual(await self.hooks.find_by_streamer("42"), [])
        # The two subscriptions that did get created are cleaned up again
        self.assertEqual(
            sorted(self.twitch.deleted),
            ["sub-channel.ban-42", "sub-channel.moderator.remove-42"],
        )

    async def test_revoke_only_when_last_hook_goes(self) -> None:
        await self.add(make_hook(channel="c1"))
        await self.add(make_hook(channel="c2"))

        removed = await self.hooks.delete("g1", "42", "c1")
        await self.registry.hooks_removed("42", removed)
        self.assertEqual(self.twitch.deleted, [])
        self.assertEqual(await self.counter("42"), 1)

        removed = await self.hooks.delete("g1", "42")
        await self.registry.hooks_removed("42", removed)
        self.assertEqual(
            sorted(self.twitch.deleted),
            sorted(f"sub-{t.value}-42" for t in ALL_EVENT_TYPES),
        )
        self.assertNotIn(webhook_secret_key("channel.ban", "42"), self.cache.hashes)
        self.assertEqual(await self.cache.get(streamer_count_key("42")), "0")

    async def test_counter_matches_rows_through_add_and_remove(self) -> None:
        for channel in ("c1", "c2", "c3"):
            await self.add(make_hook(channel=channel))
        removed = await self.hooks.delete("g1", "42", "c2")
        await self.registry.hooks_removed("42", removed)

        rows = len(await self.hooks.find_by_streamer("42"))
        self.assertEqual(await self.counter("42"), rows)

    async def test_reconcile(self) -> None:
        await self.hooks.upsert(make_hook(streamer="42"))
        await self.hooks.upsert(make_hook(streamer="43"))
        await self.cache.set(streamer_count_key("42"), "7")
        self.twitch.subscriptions = [
            upstream("a", "channel.ban", "42"),
            upstream("b", "channel.unban", "42"),
            upstream("c", "channel.moderator.add", "42", status="notification_failures_exceeded"),
            upstream("d", "channel.moderator.remove", "42"),
            upstream("e", "channel.ban", "99"),
        ]

        report = await self.registry.reconcile()

        self.assertEqual(sorted(report.deleted), ["c", "e"])
        self.assertEqual(report.created["42"], ["channel.moderator.add"])
        self.assertEqual(len(report.created["43"]), len(ALL_EVENT_TYPES))
        self.assertEqual(await self.counter("42"), 1)
        self.assertEqual(await self.counter("43"), 1)

    async def test_reconcile_drops_hooks_it_cannot_restore(self) -> None:
        await self.hooks.upsert(make_hook(streamer="42"))
        self.twitch.failing_types = {"channel.ban"}

        report = await self.registry.reconcile()

        self.assertEqual(report.dropped, ["42"])
        self.assertEqual(await self.hooks.find_by_streamer("42"), [])
        self.assertIsNone(await self.cache.get(streamer_count_key("42")))

    async def test_reconcile_reports_failed_deletes(self) -> None:
        await self.hooks.upsert(make_hook(streamer="42"))
        self.twitch.subscriptions = [
            upstream(f"ok-{t.value}", t.value, "42") for t in ALL_EVENT_TYPES
        ] + [
            upstream("stuck", "channel.ban", "99"),
            upstream("gone", "channel.unban", "99"),
        ]
        self.twitch.failing_deletes = {"stuck"}

        report = await self.registry.reconcile()

        self.assertEqual(report.deleted, ["gone"])
        self.assertEqual(len(report.errors), 1)
        self.assertIsInstance(report.errors[0], SubscriptionError)
        self.assertEqual(report.errors[0].streamer_id, "99")
        self.assertEqual(len(report.errors[0].errors), 1)
        self.assertEqual(await self.counter("42"), 1)


if __name__ == "__main__":
    unittest.main()
