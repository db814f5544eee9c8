import unittest

import pendulum

from models import ModerationAction
from services.errors import MalformedEventError
from services.normalizer import normalize_event

CREATED_AT = pendulum.datetime(2024, 5, 1, 12, 0, 0, tz="UTC")


def ban_event(**overrides) -> dict:
    event = {
        "broadcaster_user_id": "42",
        "broadcaster_user_name": "Streamer",
        "user_name": "Troll",
        "reason": "spam",
        "moderator_user_name": "Mod",
        "moderator_user_id": "7",
        "is_permanent": True,
        "ends_at": None,
    }
    event.update(overrides)
    return event


class NormalizeEventTests(unittest.TestCase):
    def test_permanent_ban(self) -> None:
        event = normalize_event("channel.ban", "42", ban_event(), CREATED_AT)

        self.assertEqual(event.action, ModerationAction.Ban)
        self.assertEqual(event.broadcaster_id, "42")
        self.assertEqual(event.broadcaster_name, "Streamer")
        self.assertEqual(event.target_user_name, "Troll")
        self.assertEqual(event.moderator_name, "Mod")
        self.assertEqual(event.executor_id, "7")
        self.assertEqual(event.reason, "spam")
        self.assertIsNone(event.expires_at)
        self.assertEqual(event.created_at, CREATED_AT)

    def test_timeout_sets_expiry(self) -> None:
        event = normalize_event(
            "channel.ban",
            "42",
            ban_event(is_permanent=False, ends_at="2024-05-01T12:10:00Z"),
            CREATED_AT,
        )
        self.assertEqual(event.expires_at, CREATED_AT.add(minutes=10))

    def test_timeout_without_ends_at_is_rejected(self) -> None:
        with self.assertRaises(MalformedEventError):
            normalize_event("channel.ban", "42", ban_event(is_permanent=False), CREATED_AT)

    def test_ban_without_moderator_name_is_rejected(self) -> None:
        body = ban_event()
        del body["moderator_user_name"]
        with self.assertRaises(MalformedEventError) as ctx:
            normalize_event("channel.ban", "42", body, CREATED_AT)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_ban_with_non_string_reason_is_rejected(self) -> None:
        with self.assertRaises(MalformedEventError):
            normalize_event("channel.ban", "42", ban_event(reason=None), CREATED_AT)

    def test_unban_does_not_need_reason(self) -> None:
        body = ban_event()
        del body["reason"]
        event = normalize_event("channel.unban", "42", body, CREATED_AT)
        self.assertEqual(event.action, ModerationAction.Unban)
        self.assertEqual(event.reason, "")

    def test_moderator_add_uses_broadcaster_as_executor(self) -> None:
        event = normalize_event(
            "channel.moderator.add",
            "42",
            {"broadcaster_user_name": "Streamer", "user_name": "NewMod"},
            CREATED_AT,
        )
        self.assertEqual(event.action, ModerationAction.ModAdd)
        self.assertIsNone(event.moderator_name)
        self.assertEqual(event.executor_name, "Streamer")
        self.assertEqual(event.executor_id, "42")

    def test_unknown_type_is_rejected(self) -> None:
        with self.assertRaises(MalformedEventError):
            normalize_event("channel.follow", "42", ban_event(), CREATED_AT)

    def test_missing_body_is_rejected(self) -> None:
        with self.assertRaises(MalformedEventError):
            normalize_event("channel.moderator.remove", "42", None, CREATED_AT)


if __name__ == "__main__":
    unittest.main()
