import base64
import hashlib
import hmac
import logging
import secrets
import traceback
from typing import Awaitable, Callable, Optional

import pendulum
import sentry_sdk
from pendulum import DateTime

from constants import HMAC_PREFIX, ErrorDetails

logger = logging.getLogger(__name__)

ErrorReporter = Callable[[str, str], Awaitable[None]]

_error_reporter: Optional[ErrorReporter] = None


def set_error_reporter(reporter: Optional[ErrorReporter]) -> None:
    """Register the coroutine used to forward error reports to the admin channel."""
    global _error_reporter
    _error_reporter = reporter


def get_error_details(e: Exception) -> ErrorDetails:
    return {
        "type": type(e).__name__,
        "message": str(e),
        "args": e.args,
        "traceback": "".join(
            traceback.format_exception(type(e), e, e.__traceback__)
        ),
    }


async def handle_error(e: Exception, context: str) -> None:
    error_details = get_error_details(e)
    error_msg = f"{context} - Type: {error_details['type']}, Message: {error_details['message']}, Args: {error_details['args']}"
    logger.error(f"{error_msg}\nTraceback:\n{error_details['traceback']}")
    sentry_sdk.capture_exception(e)

    if _error_reporter is None:
        return
    try:
        await _error_reporter(error_msg, error_details["traceback"])
    except Exception as report_error:
        logger.warning(f"Failed to forward error report: {report_error}")


def get_hmac_message(
    twitch_message_id: str, twitch_message_timestamp: str, body: bytes
) -> bytes:
    return (
        twitch_message_id.encode("utf-8")
        + twitch_message_timestamp.encode("utf-8")
        + body
    )


def get_hmac(secret: str, message: bytes) -> str:
    return HMAC_PREFIX + hmac.new(
        secret.encode("utf-8"), message, hashlib.sha256
    ).hexdigest()


def verify_message(hmac_str: str, verify_signature: str) -> bool:
    return hmac.compare_digest(hmac_str.encode("utf-8"), verify_signature.encode("utf-8"))


def parse_rfc3339(date_str: str) -> DateTime:
    """
    Parse an RFC3339 / ISO-8601 timestamp (e.g. '2025-05-31T12:34:56Z')
    and return a timezone-aware DateTime.
    """
    parsed = pendulum.parse(date_str)
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Expected DateTime string, got: {date_str}")
    return parsed


def generate_random_string(size: int) -> str:
    """URL-safe base64 of `size` securely generated random bytes."""
    return base64.urlsafe_b64encode(secrets.token_bytes(size)).decode("ascii")
