import math
from typing import NamedTuple

import discord

from constants import EMBED_FOOTER, EXPIRES_FORMAT, NO_REASON
from models import ModerationAction, ModerationEvent


class ActionStyle(NamedTuple):
    title: str
    colour: int


STYLES = {
    ModerationAction.Ban: ActionStyle("User Ban Event", 13632027),
    ModerationAction.Unban: ActionStyle("User Unban Event", 8311585),
    ModerationAction.ModAdd: ActionStyle("User Mod Event", 9442302),
    ModerationAction.ModRemove: ActionStyle("User Unmod Event", 16312092),
}

TIMEOUT_STYLE = ActionStyle("User Timeout Event", 13632027)


def get_style(event: ModerationEvent) -> ActionStyle:
    if event.action == ModerationAction.Ban and event.expires_at is not None:
        return TIMEOUT_STYLE
    return STYLES[event.action]


def timeout_seconds(event: ModerationEvent) -> int:
    """Displayed timeout length. Cosmetic only."""
    if event.expires_at is None:
        return 0
    return math.ceil((event.expires_at - event.created_at).total_seconds()) + 1


def get_command(event: ModerationEvent) -> str:
    """The chat command equivalent to the event, e.g. `timeout user 601 spam`."""
    user = event.target_user_name
    match event.action:
        case ModerationAction.Ban:
            if event.expires_at is None:
                command = f"ban {user}"
            else:
                command = f"timeout {user} {timeout_seconds(event)}"
            return f"{command} {event.reason}" if event.reason else command
        case ModerationAction.Unban:
            return f"unban {user}"
        case ModerationAction.ModAdd:
            return f"mod {user}"
        case ModerationAction.ModRemove:
            return f"unmod {user}"


def create_minimal_text(event: ModerationEvent) -> str:
    title = get_style(event).title
    executor = event.executor_name.replace("`", "")
    command = get_command(event).replace("`", "")
    return f"**{title}: #{event.broadcaster_name}** - `{executor}` executed `/{command}`"


def create_embed(event: ModerationEvent) -> discord.Embed:
    style = get_style(event)
    embed = discord.Embed(
        title=style.title,
        description="_ _",
        color=style.colour,
        timestamp=event.created_at,
    ).add_field(name="Broadcaster", value=event.broadcaster_name, inline=False)

    embed.add_field(name="User", value=event.target_user_name, inline=False)

    if event.action in (ModerationAction.Ban, ModerationAction.Unban):
        embed.add_field(name="Moderator", value=event.moderator_name, inline=False)

    if event.action == ModerationAction.Ban:
        embed.add_field(name="Reason", value=event.reason or NO_REASON, inline=False)
        if event.expires_at is not None:
            embed.add_field(
                name="Expires",
                value=event.expires_at.format(EXPIRES_FORMAT),
                inline=False,
            )

    return embed.set_footer(text=EMBED_FOOTER)
