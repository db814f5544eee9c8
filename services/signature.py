import logging
from typing import Optional

import pendulum
from pendulum import DateTime

from constants import MESSAGE_MAX_AGE, webhook_secret_key
from services.errors import (
    MalformedEventError,
    SignatureMismatchError,
    StaleMessageError,
    UnknownSubscriptionError,
)
from services.helper.cache_store import CacheStore
from services.helper.helper import (
    get_hmac,
    get_hmac_message,
    parse_rfc3339,
    verify_message,
)

logger = logging.getLogger(__name__)


async def verify_webhook(
    cache: CacheStore,
    event_type: str,
    streamer_id: str,
    body: bytes,
    message_id: str,
    timestamp: str,
    signature: str,
    now: Optional[DateTime] = None,
) -> DateTime:
    """
    Check a webhook delivery against the secret stored for its subscription.

    Returns the parsed message timestamp. Raises UnknownSubscriptionError
    (404) when no secret is stored, StaleMessageError (400) for a missing or
    old timestamp, MalformedEventError (400) without a message id and
    SignatureMismatchError (403) when the HMAC differs. Nothing is written.
    """
    secret = await cache.hget(webhook_secret_key(event_type, streamer_id), "secret")
    if not secret:
        raise UnknownSubscriptionError(
            f"No subscription for {event_type} on {streamer_id}"
        )

    try:
        sent_at = parse_rfc3339(timestamp)
    except (ValueError, TypeError) as e:
        raise StaleMessageError(f"Invalid message timestamp: {timestamp!r}") from e

    now = now or pendulum.now("UTC")
    if sent_at < now.subtract(seconds=MESSAGE_MAX_AGE):
        raise StaleMessageError(f"Message timestamp {timestamp} is too old")

    if not message_id:
        raise MalformedEventError("Missing message id")

    expected = get_hmac(secret, get_hmac_message(message_id, timestamp, body))
    if not verify_message(expected, signature or ""):
        logger.warning(
            f"403: Forbidden. Signature does not match for {event_type} on {streamer_id}"
        )
        raise SignatureMismatchError("Signature does not match")

    return sent_at
