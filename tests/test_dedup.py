import unittest

from constants import DEDUP_TTL, dedup_key
from services.dedup import ClaimResult, DeduplicationGate
from services.errors import PersistenceError
from tests.fakes import FakeCacheStore


class DeduplicationGateTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.cache = FakeCacheStore()
        self.gate = DeduplicationGate(self.cache)

    async def test_redelivery_within_ttl_is_duplicate(self) -> None:
        first = await self.gate.claim("channel.ban", "42", "msg-1")
        second = await self.gate.claim("channel.ban", "42", "msg-1")

        self.assertEqual(first, ClaimResult.Claimed)
        self.assertEqual(second, ClaimResult.Duplicate)
        key = dedup_key("channel.ban", "42", "msg-1")
        self.assertEqual(self.cache.values[key], "1")
        self.assertEqual(self.cache.ttls[key], DEDUP_TTL)

    async def test_key_covers_type_and_streamer(self) -> None:
        await self.gate.claim("channel.ban", "42", "msg-1")

        self.assertEqual(
            await self.gate.claim("channel.unban", "42", "msg-1"), ClaimResult.Claimed
        )
        self.assertEqual(
            await self.gate.claim("channel.ban", "43", "msg-1"), ClaimResult.Claimed
        )

    async def test_release_allows_reprocessing(self) -> None:
        await self.gate.claim("channel.ban", "42", "msg-1")
        await self.gate.release("channel.ban", "42", "msg-1")

        self.assertEqual(
            await self.gate.claim("channel.ban", "42", "msg-1"), ClaimResult.Claimed
        )

    async def test_store_failure_propagates(self) -> None:
        self.cache.unavailable = True
        with self.assertRaises(PersistenceError):
            await self.gate.claim("channel.ban", "42", "msg-1")


if __name__ == "__main__":
    unittest.main()
