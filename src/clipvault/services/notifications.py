"""Submission confirmation notifications."""

from typing import Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)


class ConfirmationNotifier(Protocol):
    async def notify(self, email: str, first_name: str, last_name: str) -> bool: ...


class LogNotifier:
    """Records the confirmation in the log only (no delivery channel configured)."""

    async def notify(self, email: str, first_name: str, last_name: str) -> bool:
        logger.info("notification.confirmation.logged", email=email, first_name=first_name)
        return True


class WebhookNotifier:
    """Posts the confirmation to a webhook that sends the actual email.

    Failures are reported as False and never raised: a confirmation that could
    not be sent must not affect a recorded submission.
    """

    def __init__(
        self, url: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def notify(self, email: str, first_name: str, last_name: str) -> bool:
        payload = {"email": email, "firstName": first_name, "lastName": last_name}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("notification.confirmation.failed", email=email, error=str(e))
            return False

        logger.info("notification.confirmation.sent", email=email)
        return True
