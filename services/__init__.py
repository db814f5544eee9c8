from .commands import CommandResult, ModLogsCommands
from .dedup import ClaimResult, DeduplicationGate
from .dispatcher import DeliveryOutcome, Dispatcher
from .hooks import HookRepository, UpsertResult
from .normalizer import normalize_event
from .permissions import GuildSnapshot, is_authorized
from .rate_limiter import RateLimiter
from .render import create_embed, create_minimal_text
from .signature import verify_webhook
from .subscriptions import ReconcileReport, SubscriptionRegistry
from .users import UserRepository

__all__ = [
    "CommandResult",
    "ModLogsCommands",
    "ClaimResult",
    "DeduplicationGate",
    "DeliveryOutcome",
    "Dispatcher",
    "HookRepository",
    "UpsertResult",
    "normalize_event",
    "GuildSnapshot",
    "is_authorized",
    "RateLimiter",
    "create_embed",
    "create_minimal_text",
    "verify_webhook",
    "ReconcileReport",
    "SubscriptionRegistry",
    "UserRepository",
]
