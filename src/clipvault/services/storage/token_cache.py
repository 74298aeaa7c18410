"""Time-boxed bearer token cache with single-flight refresh."""

import asyncio
import time
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

TokenFetcher = Callable[[], Awaitable[tuple[str, int]]]


class BearerTokenCache:
    """Owns one bearer token and its expiry.

    The token is refreshed ``margin_seconds`` before the provider-reported expiry.
    At most one refresh runs at a time: callers arriving while a refresh is in
    flight await that same refresh, and all of them see its result or its error.

    Example:
        cache = BearerTokenCache(fetch=client.fetch_token, margin_seconds=300)
        token = await cache.get_token()
    """

    def __init__(
        self,
        fetch: TokenFetcher,
        margin_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache.

        Args:
            fetch: Coroutine returning (access_token, expires_in_seconds)
            margin_seconds: Refresh this long before the reported expiry
            clock: Monotonic clock (injectable for tests)
        """
        self._fetch = fetch
        self._margin = margin_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._refresh_task: asyncio.Task[str] | None = None
        self.refresh_count = 0

    def _is_fresh(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    async def get_token(self) -> str:
        """Return a valid token, refreshing it if needed."""
        if self._is_fresh():
            return self._token  # type: ignore[return-value]

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh())
            self._refresh_task.add_done_callback(self._on_refresh_done)

        # Shield so one cancelled caller does not cancel the refresh for everyone else
        return await asyncio.shield(self._refresh_task)

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after the provider rejected it)."""
        self._token = None
        self._expires_at = 0.0

    async def _refresh(self) -> str:
        logger.info("token_cache.refreshing")
        token, expires_in = await self._fetch()
        self._token = token
        self._expires_at = self._clock() + max(expires_in - self._margin, 0)
        self.refresh_count += 1
        logger.info("token_cache.refreshed", expires_in=expires_in, margin=self._margin)
        return token

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        self._refresh_task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "token_cache.refresh_failed",
                error=str(task.exception()),
                error_type=type(task.exception()).__name__,
            )
