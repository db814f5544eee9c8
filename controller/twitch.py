import html
import logging
from typing import Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from pendulum import DateTime
from pydantic import ValidationError as PydanticValidationError

from config import APP_URL, COOKIE_DOMAIN
from constants import (
    CSRF_COOKIE,
    CSRF_COOKIE_TTL,
    TWITCH_MESSAGE_ID,
    TWITCH_MESSAGE_SIGNATURE,
    TWITCH_MESSAGE_TIMESTAMP,
    webhook_secret_key,
)
from models import WebhookCallback
from services.dedup import ClaimResult
from services.errors import (
    MalformedEventError,
    ModLogsError,
    PersistenceError,
    UpstreamProviderError,
    ValidationError,
)
from services.helper.helper import generate_random_string, handle_error
from services.normalizer import normalize_event
from services.signature import verify_webhook

logger = logging.getLogger(__name__)

twitch_router = APIRouter()

LOGIN_PAGE = """<style>
.json-key {{ color: brown; }}
.json-value {{ color: green; }}
.json-string {{ color: teal; }}
</style><pre><code>{{
  <span class="json-key">"status"</span>: <span class="json-value">200</span>,
  <span class="json-key">"message"</span>: <span class="json-string">Everything went as planned, to add the bot to your discord you can use the invite link, and then type the command in the channel you want the logs to appear in, the command will expire in 300 seconds.</span>,
  <span class="json-key">"command"</span>: <span class="json-string">/add token: {code}</span>,
  <span class="json-key">"link"</span>: <a href="{link}">{link}</a>
}}</code></pre>"""


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"status": status_code, "message": message}, status_code=status_code)


@twitch_router.get("/login")
async def login(request: Request) -> Response:
    state = generate_random_string(64)
    response = RedirectResponse(request.app.state.modlogs.login.authorize_url(state))
    response.set_cookie(
        CSRF_COOKIE, state, max_age=CSRF_COOKIE_TTL, domain=COOKIE_DOMAIN
    )
    return response


@twitch_router.get("/login/callback")
async def login_callback(
    request: Request, code: Optional[str] = None, state: Optional[str] = None
) -> Response:
    if not state:
        return error_response(400, "Invalid response from twitch, missing state parameter.")

    session_state = request.cookies.get(CSRF_COOKIE)
    if not session_state:
        return error_response(400, "Invalid response from session store.")
    if state != session_state:
        return error_response(400, "Invalid response from twitch, csrf_token token mismatch.")
    if not code:
        return error_response(400, "Invalid response from twitch, missing code parameter.")

    try:
        _, auth_code = await request.app.state.modlogs.login.complete(code)
    except UpstreamProviderError as e:
        logger.error(f"Login failed: {e}")
        return error_response(
            400, "Invalid response from twitch, failed to convert code to user account."
        )
    except PersistenceError as e:
        await handle_error(e, "500: Internal server error on /login/callback")
        return error_response(500, "Failed to save login.")

    link = html.escape(APP_URL)
    response = HTMLResponse(LOGIN_PAGE.format(code=html.escape(auth_code), link=link))
    response.delete_cookie(CSRF_COOKIE, domain=COOKIE_DOMAIN)
    return response


async def process_delivery(
    request: Request,
    event_type: str,
    streamer_id: str,
    body: bytes,
    created_at: DateTime,
) -> Response:
    """Handle a verified, first-seen delivery."""
    services = request.app.state.modlogs

    try:
        callback = WebhookCallback.model_validate_json(body)
    except PydanticValidationError as e:
        raise MalformedEventError(f"Invalid webhook body: {e}") from e

    if callback.subscription.status == "authorization_revoked":
        logger.warning(f"Authorization revoked for {event_type} of streamer {streamer_id}")
        await services.cache.delete(webhook_secret_key(event_type, streamer_id))
        return Response(status_code=200)

    if callback.challenge:
        await services.cache.hset(
            webhook_secret_key(event_type, streamer_id), "id", callback.subscription.id
        )
        logger.info(f"Subscription {event_type} verified for streamer {streamer_id}")
        return PlainTextResponse(callback.challenge)

    if callback.subscription.type != event_type:
        raise MalformedEventError(
            f"Subscription type {callback.subscription.type} does not match {event_type}"
        )

    event = normalize_event(event_type, streamer_id, callback.event, created_at)
    if not services.dispatcher.submit(event):
        return Response(status_code=500)
    return Response(status_code=200)


@twitch_router.post("/webhook/{event_type}/{streamer_id}")
async def twitch_webhook(event_type: str, streamer_id: str, request: Request) -> Response:
    services = request.app.state.modlogs
    headers = request.headers
    message_id = headers.get(TWITCH_MESSAGE_ID, "")
    body = await request.body()

    try:
        created_at = await verify_webhook(
            services.cache,
            event_type,
            streamer_id,
            body,
            message_id,
            headers.get(TWITCH_MESSAGE_TIMESTAMP, ""),
            headers.get(TWITCH_MESSAGE_SIGNATURE, ""),
        )
        if await services.dedup.claim(event_type, streamer_id, message_id) == ClaimResult.Duplicate:
            return Response(status_code=200)
    except ValidationError as e:
        logger.info(f"{e.status_code}: rejected webhook {event_type}/{streamer_id}: {e}")
        return Response(status_code=e.status_code)
    except Exception as e:
        await handle_error(e, f"500: Internal server error on /webhook/{event_type}")
        return Response(status_code=500)

    try:
        response = await process_delivery(request, event_type, streamer_id, body, created_at)
    except ValidationError as e:
        logger.warning(f"{e.status_code}: invalid webhook {event_type}/{streamer_id}: {e}")
        response = Response(status_code=e.status_code)
    except Exception as e:
        await handle_error(e, f"500: Internal server error on /webhook/{event_type}")
        response = Response(status_code=500)

    if response.status_code != 200:
        try:
            await services.dedup.release(event_type, streamer_id, message_id)
        except ModLogsError as e:
            logger.error(f"Failed to release idempotency record {message_id}: {e}")
    return response
