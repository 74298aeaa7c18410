"""Object bucket client for the record store (Supabase Storage REST API)."""

from urllib.parse import quote

import httpx
import structlog

from clipvault.services.storage.base import MediaFile, ProgressCallback, UploadResult
from clipvault.services.storage.transfer import (
    raise_for_provider_status,
    stream_with_progress,
    translate_transport_errors,
)

logger = structlog.get_logger(__name__)

PROVIDER = "record_bucket"


class BucketClient:
    """Record-store object bucket holding signatures and companion artifacts.

    Capabilities: upload, public URL resolution. Uploads upsert, so re-running
    a slot overwrites the same object instead of creating a copy.
    """

    name = PROVIDER

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "submissions",
        *,
        timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout
        self._transport = transport

    def _object_path(self, folder: str | None, filename: str) -> str:
        prefix = (folder or "").strip("/")
        return f"{prefix}/{filename}" if prefix else filename

    async def upload(
        self, file: MediaFile, folder: str | None = None, on_progress: ProgressCallback | None = None
    ) -> UploadResult:
        """Upload (upsert) an object under ``folder``.

        Returns:
            UploadResult with the bucket key as locator and path, plus its public URL
        """
        object_path = self._object_path(folder, file.filename)
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(object_path)}"

        async with translate_transport_errors(PROVIDER):
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.service_key}",
                        "apikey": self.service_key,
                        "x-upsert": "true",
                        "Content-Type": file.content_type,
                        "Content-Length": str(file.size),
                    },
                    content=stream_with_progress([file.data], on_progress),
                )
        raise_for_provider_status(PROVIDER, response)

        key = response.json().get("Key", f"{self.bucket}/{object_path}")
        logger.info("storage.bucket.upload_completed", path=object_path, key=key)
        return UploadResult(
            locator=key, path=object_path, public_url=self.get_public_url(object_path)
        )

    def get_public_url(self, path: str) -> str:
        """Public URL for an object in the bucket."""
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path.lstrip('/'))}"
