from enum import Enum, IntEnum
from typing import TypedDict

TWITCH_MESSAGE_ID = "Twitch-Eventsub-Message-Id"
TWITCH_MESSAGE_TYPE = "Twitch-Eventsub-Message-Type"
TWITCH_MESSAGE_TIMESTAMP = "Twitch-Eventsub-Message-Timestamp"
TWITCH_MESSAGE_SIGNATURE = "Twitch-Eventsub-Message-Signature"
HMAC_PREFIX = "sha256="

TWITCH_API_URL = "https://api.twitch.tv/helix"
TWITCH_OAUTH_URL = "https://id.twitch.tv/oauth2"
TWITCH_LOGIN_SCOPES = ["channel:moderate", "moderation:read"]

COGS = ["cogs.modlogs"]

# Seconds
MESSAGE_MAX_AGE = 10 * 60
DEDUP_TTL = 30 * 60
AUTH_CODE_TTL = 300
CSRF_COOKIE_TTL = 300
TOKEN_MAX_LIFETIME = 3600
TOKEN_LIFETIME_RATIO = 0.75
STREAMER_TOKEN_LIFETIME_RATIO = 0.7

HTTP_TIMEOUT = 10.0
HTTP_MAX_RETRIES = 3
HTTP_RETRY_DELAY = 1

RATE_LIMIT_CAPACITY = 5
RATE_LIMIT_PERIOD = 10.0
MAX_MESSAGE_LENGTH = 2000

WEBHOOK_SECRET_BYTES = 64
USERS_BATCH_SIZE = 100

HOOKS_FILE = "hooks.parquet"
USERS_FILE = "users.parquet"

EMBED_FOOTER = "ModLogs"
NO_REASON = "None Provided"
EXPIRES_FORMAT = "ddd MMM D HH:mm:ss YYYY"

CSRF_COOKIE = "csrf_token"


class EventType(str, Enum):
    Ban = "channel.ban"
    Unban = "channel.unban"
    ModeratorAdd = "channel.moderator.add"
    ModeratorRemove = "channel.moderator.remove"


SUBSCRIPTION_VERSION = "1"
ALL_EVENT_TYPES = list(EventType)


class HookMode(IntEnum):
    Minimal = 0
    Embed = 1


class ErrorDetails(TypedDict):
    type: str
    message: str
    args: tuple
    traceback: str


def streamer_count_key(streamer_id: str) -> str:
    return f"streamers:{streamer_id}"


def webhook_secret_key(event_type: str, streamer_id: str) -> str:
    return f"webhook:twitch:{event_type}:{streamer_id}"


def dedup_key(event_type: str, streamer_id: str, message_id: str) -> str:
    return f"twitch:events:{event_type}:{streamer_id}:{message_id}"


def ignored_users_key(guild_id: str) -> str:
    return f"ignored-users:{guild_id}"


def auth_code_key(code: str) -> str:
    return f"temp:codes:{code}"


STREAMER_OAUTH_KEY = "oauth:streamer"
