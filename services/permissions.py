from dataclasses import dataclass, field
from typing import Iterable, Optional

import discord


@dataclass(frozen=True)
class GuildSnapshot:
    owner_id: str
    admin_role_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildSnapshot":
        return cls(
            owner_id=str(guild.owner_id),
            admin_role_ids=frozenset(
                str(role.id) for role in guild.roles if role.permissions.administrator
            ),
        )


def is_authorized(
    user_id: str,
    member_role_ids: Iterable[str],
    guild: Optional[GuildSnapshot],
    admins: Iterable[str],
) -> bool:
    """Guild owner, configured bot admin, or holder of an Administrator role."""
    if user_id in admins:
        return True
    if guild is None:
        return False
    if user_id == guild.owner_id:
        return True
    return any(role_id in guild.admin_role_ids for role_id in member_role_ids)
