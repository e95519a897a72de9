"""
Transport HTTP pour le bot
Client aiohttp qui passe par le proxy sortant, avec retry exponentiel
sur les erreurs de connexion uniquement.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

import aiohttp

logger = logging.getLogger("transport")

# Connection-level failures (reset, refused, timeout). HTTP status errors are not in here.
CONNECTION_ERRORS: Tuple[Type[BaseException], ...] = (
    aiohttp.ClientConnectionError,
    asyncio.TimeoutError,
)

DEFAULT_HEADERS = {
    "Connection": "keep-alive",
    "Keep-Alive": "timeout=5, max=1000",
}


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay schedule shared by every retrying call site."""
    base: float = 1.0
    multiplier: float = 2.0
    cap: float = 5.0
    max_retries: int = 3
    jitter: float = 0.0

    def delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        delay = min(self.base * (self.multiplier ** (attempt - 1)), self.cap)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay


PROXY_POLICY = BackoffPolicy(base=1.0, multiplier=2.0, cap=5.0, max_retries=3)


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    policy: BackoffPolicy,
    retry_on: Tuple[Type[BaseException], ...] = CONNECTION_ERRORS,
    label: str = "request",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """
    Runs `operation` and retries it on `retry_on` errors following `policy`.
    Any other exception propagates immediately. After the last retry the
    original error is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except retry_on as e:
            attempt += 1
            if attempt > policy.max_retries:
                raise
            delay = policy.delay(attempt)
            logger.warning(
                f"[RETRY] {label} failed (attempt {attempt}/{policy.max_retries}): {e!r}. "
                f"Retrying in {delay:.1f}s..."
            )
            await sleep(delay)


class ProxyHttpClient:
    """
    Async HTTP client routed through a forward proxy.

    Certificate validation is disabled (the upstream proxy re-signs TLS).
    Every request has a fixed total timeout. Connection failures are retried
    with exponential backoff; HTTP error statuses raise immediately.
    """

    def __init__(
        self,
        proxy_url: Optional[str] = None,
        proxy_username: str = "",
        proxy_password: str = "",
        timeout: float = 10.0,
        policy: BackoffPolicy = PROXY_POLICY,
        session: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.proxy_url = proxy_url or None
        self.proxy_auth = None
        if self.proxy_url and proxy_username:
            self.proxy_auth = aiohttp.BasicAuth(proxy_username, proxy_password)
        self.timeout = timeout
        self.policy = policy
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep

    def _get_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=False),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=DEFAULT_HEADERS,
            )
        return self._session

    async def post(self, url: str, body: Any, headers: Optional[Dict[str, str]] = None) -> Any:
        merged = {"Content-Type": "application/json"}
        merged.update(headers or {})
        return await self._request("POST", url, json=body, headers=merged)

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        return await self._request("GET", url, headers=headers or {})

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        async def attempt():
            session = self._get_session()
            async with session.request(
                method,
                url,
                proxy=self.proxy_url,
                proxy_auth=self.proxy_auth,
                ssl=False,
                **kwargs,
            ) as response:
                response.raise_for_status()
                return await response.json(content_type=None)

        return await retry_async(
            attempt,
            self.policy,
            retry_on=CONNECTION_ERRORS,
            label=f"{method} {url}",
            sleep=self._sleep,
        )

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
