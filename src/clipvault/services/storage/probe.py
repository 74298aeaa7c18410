"""Pre-flight connectivity probe."""

import httpx
import structlog

from clipvault.services.exceptions import OfflineError

logger = structlog.get_logger(__name__)


class ConnectivityProbe:
    """One short request made before any upload starts.

    Any HTTP response counts as online; only a transport failure means offline.
    An empty URL disables the probe.
    """

    def __init__(
        self, url: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def check(self) -> None:
        """Raise OfflineError when the probe URL is unreachable."""
        if not self.url:
            return

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                await client.get(self.url)
        except httpx.HTTPError as e:
            logger.warning("submission.preflight.offline", url=self.url, error=str(e))
            raise OfflineError(
                "You appear to be offline. Please reconnect and try again.", detail=str(e)
            ) from e
