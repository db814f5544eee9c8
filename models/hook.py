from pydantic import BaseModel

from constants import HookMode


class Hook(BaseModel):
    guild_id: str
    channel_id: str
    streamer_id: str
    mode: HookMode = HookMode.Minimal

    @property
    def id(self) -> str:
        return f"{self.guild_id}:{self.channel_id}:{self.streamer_id}"

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "guild_id": self.guild_id,
            "channel_id": self.channel_id,
            "streamer_id": self.streamer_id,
            "mode": int(self.mode),
        }


class UserRecord(BaseModel):
    id: str
    name: str
    login: str
