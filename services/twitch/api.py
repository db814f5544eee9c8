import itertools
import logging
from typing import Iterable, List, Literal, Optional

import httpx

from constants import (
    SUBSCRIPTION_VERSION,
    TWITCH_API_URL,
    TWITCH_OAUTH_URL,
    USERS_BATCH_SIZE,
)
from models import (
    Subscription,
    SubscriptionResponse,
    User,
    UserResponse,
    UserTokenResponse,
)
from services.errors import UpstreamProviderError
from services.helper.http_client import SharedHttpClient, http_client
from services.twitch.token_manager import TokenCache

logger = logging.getLogger(__name__)

Method = Literal["GET", "POST", "DELETE"]


def _ensure_success(response: httpx.Response, action: str) -> None:
    if response.status_code < 200 or response.status_code >= 400:
        logger.error(
            f"{action} failed with status={response.status_code}, body={response.text}"
        )
        raise UpstreamProviderError(
            f"{action} failed with status {response.status_code}",
            response.status_code,
            response.text,
        )


class TwitchApi:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_cache: TokenCache,
        http: SharedHttpClient = http_client,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._tokens = token_cache
        self._http = http

    async def _send(
        self,
        method: Method,
        url: str,
        token: str,
        params=None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        headers = {
            "Client-ID": self._client_id,
            "Authorization": f"Bearer {token}",
        }
        return await self._http.request(
            method, url, headers=headers, params=params, json=json
        )

    async def call_twitch(
        self,
        method: Method,
        url: str,
        params=None,
        json: Optional[dict] = None,
        oauth: Optional[str] = None,
    ) -> httpx.Response:
        """
        Call the Helix API with the app token, or with `oauth` when given.

        A 401 on the app token invalidates it and retries once with a fresh
        one; a 401 on a caller supplied token is returned as is.
        """
        token = oauth or await self._tokens.get()
        response = await self._send(method, url, token, params, json)

        if response.status_code == 401 and oauth is None:
            logger.warning("Unauthorized request, refreshing app token...")
            self._tokens.invalidate()
            token = await self._tokens.get()
            response = await self._send(method, url, token, params, json)

        return response

    async def get_users(
        self,
        ids: Iterable[str] = (),
        logins: Iterable[str] = (),
        oauth: Optional[str] = None,
    ) -> List[User]:
        """Look users up by id and/or login; with only `oauth`, return its owner."""
        queries = [("id", value) for value in ids] + [
            ("login", value) for value in logins
        ]

        if not queries:
            if oauth is None:
                return []
            response = await self.call_twitch("GET", f"{TWITCH_API_URL}/users", oauth=oauth)
            _ensure_success(response, "Fetching authenticated user")
            return UserResponse.model_validate(response.json()).data

        users: List[User] = []
        for batch in itertools.batched(queries, USERS_BATCH_SIZE):
            response = await self.call_twitch(
                "GET", f"{TWITCH_API_URL}/users", params=list(batch), oauth=oauth
            )
            _ensure_success(response, "Fetching users")
            users.extend(UserResponse.model_validate(response.json()).data)
        return users

    async def get_subscriptions(self) -> List[Subscription]:
        subscriptions: List[Subscription] = []
        cursor: Optional[str] = None

        while True:
            params = {"after": cursor} if cursor else None
            response = await self.call_twitch(
                "GET", f"{TWITCH_API_URL}/eventsub/subscriptions", params=params
            )
            _ensure_success(response, "Listing subscriptions")
            page = SubscriptionResponse.model_validate(response.json())
            subscriptions.extend(page.data)

            cursor = page.pagination.cursor
            if not cursor or not page.data:
                return subscriptions

    async def create_subscription(
        self, event_type: str, streamer_id: str, secret: str, callback: str
    ) -> Optional[Subscription]:
        body = {
            "type": event_type,
            "version": SUBSCRIPTION_VERSION,
            "condition": {"broadcaster_user_id": streamer_id},
            "transport": {
                "method": "webhook",
                "callback": callback,
                "secret": secret,
            },
        }
        response = await self.call_twitch(
            "POST", f"{TWITCH_API_URL}/eventsub/subscriptions", json=body
        )
        _ensure_success(response, f"Creating {event_type} subscription for {streamer_id}")
        page = SubscriptionResponse.model_validate(response.json())
        return page.data[0] if page.data else None

    async def delete_subscription(self, subscription_id: str) -> None:
        response = await self.call_twitch(
            "DELETE",
            f"{TWITCH_API_URL}/eventsub/subscriptions",
            params={"id": subscription_id},
        )
        _ensure_success(response, f"Deleting subscription {subscription_id}")

    async def exchange_code(self, code: str) -> UserTokenResponse:
        params = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self._redirect_uri,
        }
        response = await self._http.request(
            "POST", f"{TWITCH_OAUTH_URL}/token", params=params
        )
        _ensure_success(response, "Exchanging authorization code")
        return UserTokenResponse.model_validate(response.json())
