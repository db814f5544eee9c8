import unittest

import pendulum

from models import ModerationAction, ModerationEvent
from services.render import (
    create_embed,
    create_minimal_text,
    get_command,
    timeout_seconds,
)

CREATED_AT = pendulum.datetime(2024, 5, 1, 12, 0, 0, tz="UTC")


def make_event(**overrides) -> ModerationEvent:
    fields = {
        "broadcaster_id": "42",
        "broadcaster_name": "Streamer",
        "moderator_id": "7",
        "moderator_name": "Mod",
        "target_user_name": "Troll",
        "reason": "",
        "action": ModerationAction.Ban,
        "created_at": CREATED_AT,
    }
    fields.update(overrides)
    return ModerationEvent(**fields)


class RenderTests(unittest.TestCase):
    def test_ten_minute_timeout(self) -> None:
        event = make_event(expires_at=CREATED_AT.add(seconds=600))

        self.assertEqual(timeout_seconds(event), 601)
        self.assertEqual(get_command(event), "timeout Troll 601")
        embed = create_embed(event)
        self.assertEqual(embed.title, "User Timeout Event")
        self.assertEqual(embed.colour.value, 13632027)
        fields = {field.name: field.value for field in embed.fields}
        self.assertEqual(fields["Reason"], "None Provided")
        self.assertEqual(fields["Expires"], "Wed May 1 12:10:00 2024")

    def test_fractional_timeout_rounds_up(self) -> None:
        event = make_event(expires_at=CREATED_AT.add(seconds=59, microseconds=200000))
        self.assertEqual(timeout_seconds(event), 61)

    def test_ban_with_reason(self) -> None:
        event = make_event(reason="spam links")

        self.assertEqual(get_command(event), "ban Troll spam links")
        self.assertEqual(
            create_minimal_text(event),
            "**User Ban Event: #Streamer** - `Mod` executed `/ban Troll spam links`",
        )

    def test_backticks_are_stripped(self) -> None:
        event = make_event(moderator_name="M`od", reason="``code``")
        self.assertEqual(
            create_minimal_text(event),
            "**User Ban Event: #Streamer** - `Mod` executed `/ban Troll code`",
        )

    def test_embed_layout(self) -> None:
        embed = create_embed(make_event(reason="spam"))

        self.assertEqual(embed.description, "_ _")
        self.assertEqual(embed.footer.text, "ModLogs")
        self.assertEqual(embed.timestamp, CREATED_AT)
        self.assertEqual(
            [field.name for field in embed.fields],
            ["Broadcaster", "User", "Moderator", "Reason"],
        )

    def test_unban(self) -> None:
        event = make_event(action=ModerationAction.Unban)
        embed = create_embed(event)

        self.assertEqual(embed.title, "User Unban Event")
        self.assertEqual(embed.colour.value, 8311585)
        self.assertEqual(
            [field.name for field in embed.fields], ["Broadcaster", "User", "Moderator"]
        )
        self.assertEqual(get_command(event), "unban Troll")

    def test_moderator_changes_use_broadcaster_as_executor(self) -> None:
        added = make_event(
            action=ModerationAction.ModAdd, moderator_id=None, moderator_name=None
        )
        removed = make_event(
            action=ModerationAction.ModRemove, moderator_id=None, moderator_name=None
        )

        self.assertEqual(
            create_minimal_text(added),
            "**User Mod Event: #Streamer** - `Streamer` executed `/mod Troll`",
        )
        self.assertEqual(create_embed(added).colour.value, 9442302)
        self.assertEqual(create_embed(removed).title, "User Unmod Event")
        self.assertEqual(create_embed(removed).colour.value, 16312092)
        self.assertEqual(
            [field.name for field in create_embed(removed).fields], ["Broadcaster", "User"]
        )


if __name__ == "__main__":
    unittest.main()
