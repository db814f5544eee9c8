from typing import Any, Optional

from pydantic import BaseModel


class CallbackSubscription(BaseModel):
    id: str
    status: str
    type: str
    version: Optional[str] = None
    condition: dict[str, Any] = {}


class WebhookCallback(BaseModel):
    challenge: Optional[str] = None
    subscription: CallbackSubscription
    event: Optional[dict[str, Any]] = None
