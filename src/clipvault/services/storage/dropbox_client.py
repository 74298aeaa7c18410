"""Dropbox client for the backup object store (folders, uploads, moves, health)."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from clipvault.services.exceptions import (
    ServiceError,
    StorageAuthError,
    StorageValidationError,
)
from clipvault.services.storage.base import MediaFile, ProgressCallback, UploadResult
from clipvault.services.storage.token_cache import BearerTokenCache
from clipvault.services.storage.transfer import (
    raise_for_provider_status,
    stream_with_progress,
    translate_transport_errors,
)

logger = structlog.get_logger(__name__)

PROVIDER = "backup_store"

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"
OAUTH_URL = "https://api.dropboxapi.com/oauth2/token"

QUOTA_WARNING_RATIO = 0.9


@dataclass
class StorageHealth:
    """Result of a backup-store health check."""

    status: str  # healthy | warning | error
    message: str
    token_valid: bool = False
    folder_access: bool = False
    quota_ok: bool = False
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DropboxClient:
    """Backup object store client using the Dropbox HTTP API.

    Capabilities: upload, create_folder, move. Access tokens come from the
    refresh-token grant and are cached by ``BearerTokenCache``.
    """

    name = PROVIDER

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        *,
        upload_timeout: float = 600.0,
        api_timeout: float = 30.0,
        token_refresh_margin: int = 300,
        session_threshold: int = 150 * 1024 * 1024,
        chunk_size: int = 8 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Dropbox client.

        Args:
            client_id: Dropbox app key
            client_secret: Dropbox app secret
            refresh_token: Long-lived refresh token
            upload_timeout: Timeout for content uploads (seconds)
            api_timeout: Timeout for metadata calls (seconds)
            token_refresh_margin: Refresh the access token this long before expiry
            session_threshold: Files above this size use an upload session
            chunk_size: Bytes per upload-session request
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.upload_timeout = upload_timeout
        self.api_timeout = api_timeout
        self.session_threshold = session_threshold
        self.chunk_size = chunk_size
        self._transport = transport
        self.tokens = BearerTokenCache(self._fetch_token, margin_seconds=token_refresh_margin)

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _fetch_token(self) -> tuple[str, int]:
        if not (self.client_id and self.client_secret and self.refresh_token):
            raise StorageAuthError(
                "Backup store credentials are not configured", provider=PROVIDER
            )

        async with translate_transport_errors(PROVIDER):
            async with self._client(self.api_timeout) as client:
                response = await client.post(
                    OAUTH_URL,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self.refresh_token,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                )
        raise_for_provider_status(PROVIDER, response)

        payload = response.json()
        return payload["access_token"], int(payload.get("expires_in", 14400))

    async def get_access_token(self) -> str:
        """Return a cached or freshly refreshed access token."""
        return await self.tokens.get_token()

    async def _send(
        self,
        url: str,
        timeout: float,
        json_body: dict[str, Any] | None,
        headers: dict[str, str] | None,
        content: Any,
    ) -> httpx.Response:
        token = await self.get_access_token()
        request_headers = {"Authorization": f"Bearer {token}", **(headers or {})}
        async with translate_transport_errors(PROVIDER):
            async with self._client(timeout) as client:
                return await client.post(url, headers=request_headers, json=json_body, content=content)

    async def _post(
        self,
        url: str,
        *,
        timeout: float,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        content: Any = None,
    ) -> httpx.Response:
        """POST with bearer auth; a rejected token is dropped and the call retried once.

        Streamed bodies cannot be replayed, so those are not retried.
        """
        response = await self._send(url, timeout, json_body, headers, content)
        if response.status_code == 401 and not hasattr(content, "__aiter__"):
            logger.warning("storage.backup.token_rejected", url=url)
            self.tokens.invalidate()
            response = await self._send(url, timeout, json_body, headers, content)

        raise_for_provider_status(PROVIDER, response)
        return response

    async def create_folder(self, path: str) -> bool:
        """Create a folder, letting Dropbox auto-rename on conflict.

        Failures are logged and reported as False; uploads target the intended
        path regardless, since Dropbox creates missing parent folders on upload.
        """
        try:
            response = await self._post(
                f"{API_URL}/files/create_folder_v2",
                timeout=self.api_timeout,
                json_body={"path": path, "autorename": True},
            )
        except ServiceError as e:
            logger.warning(
                "storage.backup.folder_failed",
                path=path,
                error=e.message,
                error_type=type(e).__name__,
                detail=e.detail,
            )
            return False

        created_path = response.json().get("metadata", {}).get("path_display", path)
        logger.info("storage.backup.folder_created", path=path, created_path=created_path)
        return True

    async def upload(
        self, file: MediaFile, folder: str | None = None, on_progress: ProgressCallback | None = None
    ) -> UploadResult:
        """Upload a file into ``folder``.

        Files above the session threshold go through an upload session so each
        chunk is a separate request with its own acknowledgement.

        Returns:
            UploadResult with the Dropbox file id as locator and the stored path

        Raises:
            TransientError: Network failure, timeout, rate limit, 5xx
            PermanentError: Auth failure, quota exhausted, rejected request
        """
        path = f"{folder.rstrip('/')}/{file.filename}" if folder else f"/{file.filename}"

        if file.size > self.session_threshold:
            metadata = await self._upload_session(file, path, on_progress)
        else:
            metadata = await self._upload_single(file, path, on_progress)

        return UploadResult(
            locator=metadata.get("id", metadata.get("path_display", path)),
            path=metadata.get("path_display", path),
        )

    async def _upload_single(
        self, file: MediaFile, path: str, on_progress: ProgressCallback | None
    ) -> dict[str, Any]:
        arg = {"path": path, "mode": "add", "autorename": True, "mute": False}
        logger.info(
            "storage.backup.upload_started",
            path=path,
            size=file.size,
            progress_source="transfer",
        )
        response = await self._post(
            f"{CONTENT_URL}/files/upload",
            timeout=self.upload_timeout,
            headers={
                "Dropbox-API-Arg": json.dumps(arg),
                "Content-Type": "application/octet-stream",
                "Content-Length": str(file.size),
            },
            content=stream_with_progress([file.data], on_progress),
        )
        metadata = response.json()
        logger.info("storage.backup.upload_completed", path=metadata.get("path_display", path))
        return metadata

    async def _upload_session(
        self, file: MediaFile, path: str, on_progress: ProgressCallback | None
    ) -> dict[str, Any]:
        """Chunked upload: start, append_v2 per chunk, finish with the last chunk."""
        view = memoryview(file.data)
        total = file.size
        chunk = self.chunk_size
        offsets = list(range(0, total, chunk))
        logger.info(
            "storage.backup.upload_started",
            path=path,
            size=total,
            chunks=len(offsets),
            progress_source="session_chunks",
        )

        def report(sent: int) -> None:
            if on_progress:
                on_progress(min(100, (sent * 100) // total))

        report(0)
        first = bytes(view[0:chunk])
        response = await self._post(
            f"{CONTENT_URL}/files/upload_session/start",
            timeout=self.upload_timeout,
            headers={
                "Dropbox-API-Arg": json.dumps({"close": False}),
                "Content-Type": "application/octet-stream",
            },
            content=first,
        )
        session_id = response.json()["session_id"]
        sent = len(first)
        report(sent)

        for offset in offsets[1:-1]:
            body = bytes(view[offset : offset + chunk])
            await self._post(
                f"{CONTENT_URL}/files/upload_session/append_v2",
                timeout=self.upload_timeout,
                headers={
                    "Dropbox-API-Arg": json.dumps(
                        {"cursor": {"session_id": session_id, "offset": offset}, "close": False}
                    ),
                    "Content-Type": "application/octet-stream",
                },
                content=body,
            )
            sent += len(body)
            report(sent)

        last = bytes(view[offsets[-1] :]) if len(offsets) > 1 else b""
        finish_arg = {
            "cursor": {"session_id": session_id, "offset": sent},
            "commit": {"path": path, "mode": "add", "autorename": True, "mute": False},
        }
        response = await self._post(
            f"{CONTENT_URL}/files/upload_session/finish",
            timeout=self.upload_timeout,
            headers={
                "Dropbox-API-Arg": json.dumps(finish_arg),
                "Content-Type": "application/octet-stream",
            },
            content=last,
        )
        sent += len(last)
        report(sent)

        metadata = response.json()
        logger.info(
            "storage.backup.upload_completed",
            path=metadata.get("path_display", path),
            session_id=session_id,
            progress_source="session_chunks",
        )
        return metadata

    async def move(self, from_path: str, to_path: str) -> bool:
        """Move a file, creating missing parent folders at the destination.

        A move whose source is gone but whose destination exists is treated as
        already done, so repeating a relocation is safe.

        Returns:
            True once the file is at ``to_path``

        Raises:
            ServiceError: Move failed (classified by cause)
        """
        try:
            await self._post(
                f"{API_URL}/files/move_v2",
                timeout=self.api_timeout,
                json_body={
                    "from_path": from_path,
                    "to_path": to_path,
                    "autorename": False,
                    "allow_ownership_transfer": False,
                },
            )
        except StorageValidationError as e:
            if "from_lookup/not_found" in (e.detail or "") and await self.exists(to_path):
                logger.info("storage.backup.move_already_done", from_path=from_path, to_path=to_path)
                return True
            raise

        logger.info("storage.backup.moved", from_path=from_path, to_path=to_path)
        return True

    async def exists(self, path: str) -> bool:
        """Check whether a file or folder exists at ``path``."""
        try:
            await self._post(
                f"{API_URL}/files/get_metadata",
                timeout=self.api_timeout,
                json_body={"path": path},
            )
        except StorageValidationError as e:
            if "not_found" in (e.detail or ""):
                return False
            raise
        return True

    async def list_folder(self, path: str) -> list[dict[str, Any]]:
        """List the direct children of a folder, following pagination cursors."""
        response = await self._post(
            f"{API_URL}/files/list_folder",
            timeout=self.api_timeout,
            json_body={"path": path, "recursive": False},
        )
        payload = response.json()
        entries = list(payload.get("entries", []))

        while payload.get("has_more"):
            response = await self._post(
                f"{API_URL}/files/list_folder/continue",
                timeout=self.api_timeout,
                json_body={"cursor": payload["cursor"]},
            )
            payload = response.json()
            entries.extend(payload.get("entries", []))

        return entries

    async def check_health(self) -> StorageHealth:
        """Check token refresh, root folder access and remaining quota.

        Never raises: every failure is folded into the returned status.
        """
        try:
            await self.get_access_token()
        except ServiceError as e:
            logger.warning("storage.backup.health_token_failed", error=e.message)
            return StorageHealth(status="error", message=f"Failed to get access token: {e.message}")

        folder_access = await self._probe_folder_access()
        quota_ok = await self._probe_quota()

        if not folder_access and not quota_ok:
            status, message = "error", "Backup store has critical issues"
        elif not folder_access or not quota_ok:
            status, message = "warning", "Backup store has some issues"
        else:
            status, message = "healthy", "Backup store is healthy"

        logger.info(
            "storage.backup.health_checked",
            status=status,
            folder_access=folder_access,
            quota_ok=quota_ok,
        )
        return StorageHealth(
            status=status,
            message=message,
            token_valid=True,
            folder_access=folder_access,
            quota_ok=quota_ok,
        )

    async def _probe_folder_access(self) -> bool:
        try:
            await self._post(
                f"{API_URL}/files/list_folder",
                timeout=self.api_timeout,
                json_body={"path": "", "recursive": False},
            )
        except ServiceError as e:
            logger.warning("storage.backup.health_folder_failed", error=e.message)
            return False
        return True

    async def _probe_quota(self) -> bool:
        try:
            response = await self._post(f"{API_URL}/users/get_space_usage", timeout=self.api_timeout)
        except ServiceError as e:
            logger.warning("storage.backup.health_quota_failed", error=e.message)
            return False

        usage = response.json()
        used = usage.get("used", 0)
        allocated = usage.get("allocation", {}).get("allocated", 0)
        if not allocated:
            return True
        return used / allocated < QUOTA_WARNING_RATIO
