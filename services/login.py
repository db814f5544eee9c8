import logging
import math
import uuid
from urllib.parse import urlencode

import pendulum

from constants import (
    AUTH_CODE_TTL,
    STREAMER_OAUTH_KEY,
    STREAMER_TOKEN_LIFETIME_RATIO,
    TWITCH_LOGIN_SCOPES,
    TWITCH_OAUTH_URL,
    auth_code_key,
)
from models import UserRecord
from services.errors import PersistenceError, UpstreamProviderError
from services.helper.cache_store import CacheStore
from services.twitch.api import TwitchApi
from services.users import UserRepository

logger = logging.getLogger(__name__)


class LoginFlow:
    """Streamer login: Twitch authorization, then a one-time code for `/add`."""

    def __init__(
        self,
        client_id: str,
        redirect_uri: str,
        twitch: TwitchApi,
        users: UserRepository,
        cache: CacheStore,
    ):
        self._client_id = client_id
        self._redirect_uri = redirect_uri
        self._twitch = twitch
        self._users = users
        self._cache = cache

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": " ".join(TWITCH_LOGIN_SCOPES),
            "state": state,
        }
        return f"{TWITCH_OAUTH_URL}/authorize?{urlencode(params)}"

    async def complete(self, code: str) -> tuple[UserRecord, str]:
        """
        Exchange the authorization code and issue a one-time code for the
        streamer. Returns the streamer and that code.
        """
        token = await self._twitch.exchange_code(code)

        users = await self._twitch.get_users(oauth=token.access_token)
        if len(users) != 1:
            raise UpstreamProviderError(
                f"Expected one authenticated user, got {len(users)}"
            )
        user = (await self._users.save_users(users))[0]

        lifetime = math.floor(token.expires_in * STREAMER_TOKEN_LIFETIME_RATIO)
        expires_at = pendulum.now("UTC").int_timestamp + lifetime
        await self._cache.hset(
            STREAMER_OAUTH_KEY, user.id, f"{expires_at} {token.model_dump_json()}"
        )

        auth_code = str(uuid.uuid4())
        if not await self._cache.set_if_absent(
            auth_code_key(auth_code), user.id, AUTH_CODE_TTL
        ):
            raise PersistenceError("Generated auth code already exists")

        logger.info(f"Streamer {user.login} ({user.id}) logged in")
        return user, auth_code
