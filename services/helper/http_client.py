import asyncio
import logging
from typing import Optional

import httpx
import sentry_sdk

from constants import HTTP_MAX_RETRIES, HTTP_RETRY_DELAY, HTTP_TIMEOUT
from services.errors import UpstreamProviderError

logger = logging.getLogger(__name__)


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_keepalive_connections=20, max_connections=50, keepalive_expiry=30.0
        ),
        timeout=httpx.Timeout(HTTP_TIMEOUT),
        http2=True,
        follow_redirects=True,
    )


class SharedHttpClient:
    """
    One pooled AsyncClient for every outbound call of the process.

    Transport failures (connect errors, timeouts) are retried with
    exponential backoff; any response, whatever its status, is returned to
    the caller untouched.
    """

    _instance: Optional["SharedHttpClient"] = None
    _client: Optional[httpx.AsyncClient] = None
    _lock: Optional[asyncio.Lock] = None

    def __new__(cls) -> "SharedHttpClient":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def _get_client(self) -> httpx.AsyncClient:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._client is None:
                self._client = _build_client()
                logger.info("Shared HTTP client initialized")
        return self._client

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await client.aclose()
        logger.info("Shared HTTP client closed")

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict] = None,
        params=None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        attempt = 0
        while True:
            try:
                return await client.request(
                    method, url, headers=headers, params=params, json=json
                )
            except httpx.TransportError as e:
                attempt += 1
                if attempt >= HTTP_MAX_RETRIES:
                    logger.error(f"HTTP request failed: {method} {url} - {e}")
                    sentry_sdk.capture_exception(e)
                    raise UpstreamProviderError(f"{method} {url} failed: {e}") from e
                wait_time = HTTP_RETRY_DELAY * 2 ** (attempt - 1)
                logger.warning(
                    f"Connection error on attempt {attempt} for {method} {url}, retrying in {wait_time}s: {e}"
                )
                await asyncio.sleep(wait_time)


http_client = SharedHttpClient()
