"""Cloudinary client for the media store (unsigned video uploads)."""

import httpx
import structlog

from clipvault.services.exceptions import StorageAuthError, StorageValidationError
from clipvault.services.storage.base import MediaFile, ProgressCallback, UploadResult
from clipvault.services.storage.transfer import (
    ProgressReader,
    raise_for_provider_status,
    translate_transport_errors,
)

logger = structlog.get_logger(__name__)

PROVIDER = "media_store"


class CloudinaryClient:
    """Media store client using Cloudinary's unsigned upload preset.

    Capabilities: upload only. Cloudinary organises files by its own public ids,
    so no folder provisioning is needed.
    """

    name = PROVIDER

    def __init__(
        self,
        cloud_name: str,
        upload_preset: str = "ml_default",
        api_key: str = "",
        *,
        timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Cloudinary client.

        Args:
            cloud_name: Cloudinary cloud name (from CLOUDINARY_CLOUD_NAME)
            upload_preset: Unsigned upload preset (default: ml_default)
            api_key: Optional API key sent along with the upload
            timeout: Upload timeout in seconds
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self.upload_url = f"https://api.cloudinary.com/v1_1/{cloud_name}/video/upload"

    async def upload(
        self, file: MediaFile, folder: str | None = None, on_progress: ProgressCallback | None = None
    ) -> UploadResult:
        """Upload a video, reporting byte-level progress.

        Args:
            file: Video to upload
            folder: Optional Cloudinary folder (the submission namespace name)
            on_progress: Called with 0-100 as bytes are sent

        Returns:
            UploadResult with public_id as locator and secure_url as public URL

        Raises:
            TransientError: Network timeout, rate limit (429), service unavailable (5xx)
            PermanentError: Invalid preset (401/403), file too large, bad request (400)
        """
        if not self.cloud_name:
            raise StorageAuthError("Media store cloud name is not configured", provider=PROVIDER)

        fields = {"upload_preset": self.upload_preset}
        if self.api_key:
            fields["api_key"] = self.api_key
        if folder:
            fields["folder"] = folder.strip("/")

        logger.info(
            "storage.media.upload_started",
            filename=file.filename,
            size=file.size,
            progress_source="transfer",
        )
        async with translate_transport_errors(PROVIDER):
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.upload_url,
                    data=fields,
                    files={
                        "file": (
                            file.filename,
                            ProgressReader(file.data, on_progress),
                            file.content_type,
                        )
                    },
                )
        raise_for_provider_status(PROVIDER, response)

        payload = response.json()
        public_id = payload.get("public_id")
        if not public_id:
            raise StorageValidationError(
                "Media store accepted the upload but returned no public id",
                provider=PROVIDER,
                detail=response.text[:1000],
            )

        logger.info("storage.media.upload_completed", public_id=public_id)
        return UploadResult(locator=public_id, public_url=payload.get("secure_url"))

    def get_video_url(self, public_id: str) -> str:
        """Build the delivery URL for an uploaded video."""
        return f"https://res.cloudinary.com/{self.cloud_name}/video/upload/{public_id}"
