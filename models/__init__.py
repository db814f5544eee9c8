from .auth.auth_response import AuthResponse, UserTokenResponse
from .hook import Hook, UserRecord
from .moderation_event import ModerationAction, ModerationEvent
from .twitch_api_responses.subscription import (
    Subscription,
    SubscriptionResponse,
)
from .twitch_api_responses.user import User, UserResponse
from .twitch_event_subs.webhook_callback import CallbackSubscription, WebhookCallback

__all__ = [
    "AuthResponse",
    "UserTokenResponse",
    "Hook",
    "UserRecord",
    "ModerationAction",
    "ModerationEvent",
    "Subscription",
    "SubscriptionResponse",
    "User",
    "UserResponse",
    "CallbackSubscription",
    "WebhookCallback",
]
