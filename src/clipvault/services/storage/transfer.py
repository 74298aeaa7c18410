"""Shared HTTP transfer helpers for storage clients.

- Byte-level progress reporting for streamed request bodies
- File-like upload bodies that report progress as httpx reads them
- Provider status-code classification into the service error hierarchy
"""

import io
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

import httpx

from clipvault.services.exceptions import (
    StorageAuthError,
    StorageNetworkError,
    StorageQuotaError,
    StorageRateLimitError,
    StorageTimeoutError,
    StorageValidationError,
)
from clipvault.services.storage.base import ProgressCallback

STREAM_CHUNK_SIZE = 256 * 1024

QUOTA_MARKERS = ("insufficient_space", "too large", "quota", "payload too large")


async def stream_with_progress(
    segments: Sequence[bytes],
    on_progress: ProgressCallback | None = None,
    chunk_size: int = STREAM_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """Yield request body chunks, reporting percent sent after each chunk is consumed.

    The transport pulls the next chunk only after writing the previous one, so the
    reported value tracks bytes actually handed to the network.

    Args:
        segments: Body pieces in order (e.g. multipart head, file data, multipart tail)
        on_progress: Called with 0-100, never decreasing
        chunk_size: Maximum bytes per yielded chunk
    """
    total = sum(len(segment) for segment in segments)
    sent = 0
    last_reported = -1

    if on_progress:
        on_progress(0)
        last_reported = 0

    for segment in segments:
        view = memoryview(segment)
        for start in range(0, len(view), chunk_size):
            chunk = bytes(view[start : start + chunk_size])
            yield chunk
            sent += len(chunk)
            if on_progress and total:
                percent = min(100, (sent * 100) // total)
                if percent > last_reported:
                    on_progress(percent)
                    last_reported = percent

    if on_progress and last_reported < 100:
        on_progress(100)


class ProgressReader(io.BytesIO):
    """In-memory file that reports percent read, for httpx multipart ``files=`` uploads.

    httpx pulls file fields in fixed-size chunks while writing the request, so
    reads track bytes handed to the network. Reported values never decrease,
    including when a retried request rewinds the file.
    """

    def __init__(self, data: bytes, on_progress: ProgressCallback | None = None):
        super().__init__(data)
        self._total = len(data)
        self._on_progress = on_progress
        self._last_reported = -1
        self._report(0)

    def read(self, size: int | None = -1) -> bytes:
        chunk = super().read(size)
        if self._total:
            self._report(min(100, (self.tell() * 100) // self._total))
        else:
            self._report(100)
        return chunk

    def _report(self, percent: int) -> None:
        if self._on_progress and percent > self._last_reported:
            self._on_progress(percent)
            self._last_reported = percent


def raise_for_provider_status(provider: str, response: httpx.Response) -> None:
    """Classify a non-success provider response.

    Classification rules:
        - 429 → StorageRateLimitError (transient)
        - 500/502/503/504 → StorageNetworkError (transient)
        - 401/403 → StorageAuthError (permanent)
        - 413 or quota/insufficient-space text → StorageQuotaError (permanent)
        - other 4xx → StorageValidationError (permanent)

    Raises:
        ServiceError subclass describing the failure
    """
    if response.is_success:
        return

    status = response.status_code
    body = response.text[:1000]
    body_lower = body.lower()

    if status == 429:
        raise StorageRateLimitError(
            f"{provider} is rate limiting uploads, try again shortly",
            provider=provider,
            detail=body,
        )
    if status in (500, 502, 503, 504):
        raise StorageNetworkError(
            f"{provider} is temporarily unavailable ({status})", provider=provider, detail=body
        )
    if status in (401, 403):
        raise StorageAuthError(
            f"{provider} rejected our credentials ({status})", provider=provider, detail=body
        )
    if status == 413 or any(marker in body_lower for marker in QUOTA_MARKERS):
        raise StorageQuotaError(
            f"{provider} refused the file: it is too large or storage is full",
            provider=provider,
            detail=body,
        )
    if 400 <= status < 500:
        raise StorageValidationError(
            f"{provider} rejected the request ({status})", provider=provider, detail=body
        )

    raise StorageNetworkError(
        f"{provider} returned unexpected status {status}", provider=provider, detail=body
    )


@asynccontextmanager
async def translate_transport_errors(provider: str) -> AsyncIterator[None]:
    """Translate httpx transport exceptions into storage errors.

    HTTP status errors are classified separately by ``raise_for_provider_status``.
    """
    try:
        yield
    except httpx.TimeoutException as e:
        raise StorageTimeoutError(
            f"{provider} request timed out", provider=provider, detail=str(e)
        ) from e
    except httpx.HTTPError as e:
        raise StorageNetworkError(
            f"Network error talking to {provider}", provider=provider, detail=str(e)
        ) from e
