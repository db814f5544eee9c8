from enum import Enum
from typing import Optional

from pendulum import DateTime
from pydantic import BaseModel, ConfigDict


class ModerationAction(str, Enum):
    Ban = "ban"
    Unban = "unban"
    ModAdd = "mod_add"
    ModRemove = "mod_remove"


class ModerationEvent(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    broadcaster_id: str
    broadcaster_name: str
    moderator_id: Optional[str] = None
    moderator_name: Optional[str] = None
    target_user_name: str
    reason: str = ""
    action: ModerationAction
    expires_at: Optional[DateTime] = None
    created_at: DateTime

    @property
    def executor_name(self) -> str:
        return self.moderator_name or self.broadcaster_name

    @property
    def executor_id(self) -> str:
        return self.moderator_id or self.broadcaster_id
