import asyncio
import logging
import time
from typing import Callable, Optional

from constants import TOKEN_LIFETIME_RATIO, TOKEN_MAX_LIFETIME, TWITCH_OAUTH_URL
from models import AuthResponse
from services.errors import UpstreamProviderError
from services.helper.http_client import SharedHttpClient, http_client

logger = logging.getLogger(__name__)


class TokenCache:
    """
    App access token obtained through the client-credentials grant.

    Concurrent callers that arrive while a fetch is running all await the
    same in-flight future, so the token endpoint is hit once per refresh.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http: SharedHttpClient = http_client,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._http = http
        self._clock = clock
        self._token: str = ""
        self._expires_at: float = 0.0
        self._inflight: Optional[asyncio.Future] = None

    @property
    def cached(self) -> bool:
        return bool(self._token) and self._clock() < self._expires_at

    async def get(self) -> str:
        if self.cached:
            return self._token

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch())
            self._inflight.add_done_callback(self._clear_inflight)
        return await asyncio.shield(self._inflight)

    def invalidate(self) -> None:
        self._token = ""
        self._expires_at = 0.0

    def _clear_inflight(self, _: asyncio.Future) -> None:
        self._inflight = None

    async def _fetch(self) -> str:
        params = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
        }
        response = await self._http.request(
            "POST", f"{TWITCH_OAUTH_URL}/token", params=params
        )

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"App token fetch failed with status={response.status_code}")
            raise UpstreamProviderError(
                "Failed to fetch app access token",
                response.status_code,
                response.text,
            )

        auth_response = AuthResponse.model_validate(response.json())
        if auth_response.token_type.lower() != "bearer":
            raise UpstreamProviderError(
                f"Unexpected token type received: {auth_response.token_type}"
            )

        lifetime = min(auth_response.expires_in * TOKEN_LIFETIME_RATIO, TOKEN_MAX_LIFETIME)
        self._token = auth_response.access_token
        self._expires_at = self._clock() + lifetime
        logger.info(f"App access token refreshed, valid for {int(lifetime)}s")
        return self._token
