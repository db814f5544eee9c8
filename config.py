import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    return int(value)


def _get_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def _get_list(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
DISCORD_INVITE = os.getenv("DISCORD_INVITE", "")

TWITCH_CLIENT_ID = os.getenv("TWITCH_CLIENT_ID", "")
TWITCH_CLIENT_SECRET = os.getenv("TWITCH_CLIENT_SECRET", "")
TWITCH_REDIRECT_URI = os.getenv("TWITCH_REDIRECT_URI", "")

APP_URL = os.getenv("APP_URL", "").rstrip("/")
COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN") or None

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
DATA_DIR = os.getenv("DATA_DIR", "data")

ADMINS = _get_list("ADMINS")
MAX_HOOKS_PER_GUILD = _get_int("MAX_HOOKS_PER_GUILD", 10)
REBUILD_COMMANDS = _get_bool("REBUILD_COMMANDS")
DELETE_COMMANDS = _get_bool("DELETE_COMMANDS")
BOT_ADMIN_CHANNEL = _get_int("BOT_ADMIN_CHANNEL", 0)

SENTRY_DSN = os.getenv("SENTRY_DSN")

DISPATCH_WORKERS = _get_int("DISPATCH_WORKERS", 4)
EVENT_QUEUE_SIZE = _get_int("EVENT_QUEUE_SIZE", 1000)

HOST = os.getenv("HOST", "0.0.0.0")
PORT = _get_int("PORT", 8000)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
