"""Storage provider client tests against ``httpx.MockTransport``.

Tests cover:
- Status-code classification into the service error hierarchy
- Dropbox token refresh, single and session uploads, moves and health checks
- Cloudinary multipart uploads with byte-level progress
- Record-store bucket uploads and public URLs
- Connectivity probe and webhook notifier failure handling
"""

import json

import httpx
import pytest

from clipvault.services.exceptions import (
    OfflineError,
    StorageAuthError,
    StorageNetworkError,
    StorageQuotaError,
    StorageRateLimitError,
    StorageTimeoutError,
    StorageValidationError,
)
from clipvault.services.notifications import WebhookNotifier
from clipvault.services.storage.base import FolderProvisioner, MediaFile, ObjectMover
from clipvault.services.storage.bucket_client import BucketClient
from clipvault.services.storage.cloudinary_client import CloudinaryClient
from clipvault.services.storage.dropbox_client import DropboxClient
from clipvault.services.storage.probe import ConnectivityProbe
from clipvault.services.storage.transfer import (
    ProgressReader,
    raise_for_provider_status,
    stream_with_progress,
)

VIDEO = MediaFile(filename="clip.mp4", content_type="video/mp4", data=b"v" * 1000)


def dropbox_handler(routes: dict, seen: list | None = None):
    """Build a MockTransport handler serving the token endpoint plus ``routes``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path == "/oauth2/token":
            return httpx.Response(200, json={"access_token": "token-1", "expires_in": 14400})
        route = routes[request.url.path]
        return route(request) if callable(route) else route

    return handler


def make_dropbox(handler, **kwargs) -> DropboxClient:
    return DropboxClient(
        "app-key", "app-secret", "refresh-token", transport=httpx.MockTransport(handler), **kwargs
    )


# ====================
# Status classification
# ====================


@pytest.mark.parametrize(
    ("status", "body", "expected"),
    [
        (429, "slow down", StorageRateLimitError),
        (503, "unavailable", StorageNetworkError),
        (401, "expired_access_token", StorageAuthError),
        (403, "forbidden", StorageAuthError),
        (413, "too big", StorageQuotaError),
        (409, '{"error_summary": "path/insufficient_space/"}', StorageQuotaError),
        (400, "bad preset", StorageValidationError),
    ],
)
def test_raise_for_provider_status(status, body, expected):
    response = httpx.Response(status, text=body)

    with pytest.raises(expected) as excinfo:
        raise_for_provider_status("backup_store", response)

    assert excinfo.value.provider == "backup_store"
    assert excinfo.value.detail == body
    assert body not in excinfo.value.message


@pytest.mark.asyncio
async def test_stream_with_progress_reports_monotonic_to_100():
    reported: list[int] = []

    chunks = [c async for c in stream_with_progress([b"a" * 10, b"b" * 25], reported.append, chunk_size=7)]

    assert b"".join(chunks) == b"a" * 10 + b"b" * 25
    assert reported[0] == 0
    assert reported[-1] == 100
    assert reported == sorted(reported)


def test_progress_reader_reports_reads_and_ignores_rewind():
    reported: list[int] = []
    reader = ProgressReader(b"x" * 100, reported.append)

    assert reader.read(25) == b"x" * 25
    reader.read(50)
    reader.seek(0)
    reader.read(10)
    reader.read()

    assert reported == [0, 25, 75, 100]


# ====================
# Dropbox
# ====================


def test_dropbox_capabilities():
    client = make_dropbox(dropbox_handler({}))

    assert isinstance(client, FolderProvisioner)
    assert isinstance(client, ObjectMover)


@pytest.mark.asyncio
async def test_dropbox_single_upload_with_progress():
    seen: list[httpx.Request] = []

    def upload(request: httpx.Request) -> httpx.Response:
        arg = json.loads(request.headers["Dropbox-API-Arg"])
        assert request.headers["Authorization"] == "Bearer token-1"
        assert request.content == VIDEO.data
        return httpx.Response(200, json={"id": "id:abc", "path_display": arg["path"]})

    client = make_dropbox(dropbox_handler({"/2/files/upload": upload}, seen))
    progress: list[int] = []

    result = await client.upload(VIDEO, "/submissions/ns", progress.append)

    assert result.locator == "id:abc"
    assert result.path == "/submissions/ns/clip.mp4"
    assert progress[-1] == 100
    assert progress == sorted(progress)
    assert [r.url.path for r in seen] == ["/oauth2/token", "/2/files/upload"]


@pytest.mark.asyncio
async def test_dropbox_session_upload_for_large_files():
    calls: list[tuple[str, dict, bytes]] = []

    def record(response_json):
        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(
                (request.url.path, json.loads(request.headers["Dropbox-API-Arg"]), request.content)
            )
            return httpx.Response(200, json=response_json)

        return handler

    routes = {
        "/2/files/upload_session/start": record({"session_id": "sess-1"}),
        "/2/files/upload_session/append_v2": record(None),
        "/2/files/upload_session/finish": record({"id": "id:big", "path_display": "/s/ns/big.mp4"}),
    }
    client = make_dropbox(dropbox_handler(routes), session_threshold=10, chunk_size=4)
    big = MediaFile(filename="big.mp4", content_type="video/mp4", data=b"0123456789")
    progress: list[int] = []

    result = await client.upload(big, "/s/ns", progress.append)

    assert [path for path, _, _ in calls] == [
        "/2/files/upload_session/start",
        "/2/files/upload_session/append_v2",
        "/2/files/upload_session/finish",
    ]
    assert [body for _, _, body in calls] == [b"0123", b"4567", b"89"]
    assert calls[1][1]["cursor"] == {"session_id": "sess-1", "offset": 4}
    assert calls[2][1]["cursor"]["offset"] == 8
    assert calls[2][1]["commit"]["path"] == "/s/ns/big.mp4"
    assert result.locator == "id:big"
    assert progress == [0, 40, 80, 100]


@pytest.mark.asyncio
async def test_dropbox_retries_once_after_rejected_token():
    token_requests = 0
    folder_requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal token_requests
        if request.url.path == "/oauth2/token":
            token_requests += 1
            return httpx.Response(200, json={"access_token": f"token-{token_requests}", "expires_in": 14400})
        folder_requests.append(request.headers["Authorization"])
        if request.headers["Authorization"] == "Bearer token-1":
            return httpx.Response(401, json={"error_summary": "expired_access_token/"})
        return httpx.Response(200, json={"metadata": {"path_display": "/submissions/ns"}})

    client = make_dropbox(handler)

    assert await client.create_folder("/submissions/ns") is True
    assert folder_requests == ["Bearer token-1", "Bearer token-2"]
    assert token_requests == 2


@pytest.mark.asyncio
async def test_dropbox_create_folder_failure_returns_false():
    client = make_dropbox(
        dropbox_handler({"/2/files/create_folder_v2": httpx.Response(503, text="unavailable")})
    )

    assert await client.create_folder("/submissions/ns") is False


@pytest.mark.asyncio
async def test_dropbox_upload_classifies_errors():
    rate_limited = make_dropbox(
        dropbox_handler({"/2/files/upload": httpx.Response(429, text="too_many_requests")})
    )
    with pytest.raises(StorageRateLimitError):
        await rate_limited.upload(VIDEO, "/submissions/ns")

    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    timing_out = make_dropbox(dropbox_handler({"/2/files/upload": timeout}))
    with pytest.raises(StorageTimeoutError):
        await timing_out.upload(VIDEO, "/submissions/ns")


@pytest.mark.asyncio
async def test_dropbox_missing_credentials():
    client = DropboxClient("", "", "", transport=httpx.MockTransport(dropbox_handler({})))

    with pytest.raises(StorageAuthError, match="not configured"):
        await client.get_access_token()


@pytest.mark.asyncio
async def test_dropbox_move_is_idempotent_when_already_moved():
    routes = {
        "/2/files/move_v2": httpx.Response(
            409, json={"error_summary": "from_lookup/not_found/.."}
        ),
        "/2/files/get_metadata": httpx.Response(200, json={".tag": "file"}),
    }
    client = make_dropbox(dropbox_handler(routes))

    assert await client.move("/submissions/ns/clip.mp4", "/Approved Videos/ns/clip.mp4") is True


@pytest.mark.asyncio
async def test_dropbox_move_failure_raises():
    routes = {
        "/2/files/move_v2": httpx.Response(409, json={"error_summary": "to/conflict/file/.."}),
    }
    client = make_dropbox(dropbox_handler(routes))

    with pytest.raises(StorageValidationError):
        await client.move("/submissions/ns/clip.mp4", "/Approved Videos/ns/clip.mp4")


@pytest.mark.asyncio
async def test_dropbox_list_folder_follows_cursor():
    routes = {
        "/2/files/list_folder": httpx.Response(
            200, json={"entries": [{"name": "a"}], "has_more": True, "cursor": "c1"}
        ),
        "/2/files/list_folder/continue": httpx.Response(
            200, json={"entries": [{"name": "b"}], "has_more": False}
        ),
    }
    client = make_dropbox(dropbox_handler(routes))

    entries = await client.list_folder("/submissions")

    assert [e["name"] for e in entries] == ["a", "b"]


@pytest.mark.asyncio
async def test_dropbox_health_warns_on_quota():
    routes = {
        "/2/files/list_folder": httpx.Response(200, json={"entries": [], "has_more": False}),
        "/2/users/get_space_usage": httpx.Response(
            200, json={"used": 95, "allocation": {"allocated": 100}}
        ),
    }
    client = make_dropbox(dropbox_handler(routes))

    health = await client.check_health()

    assert health.status == "warning"
    assert health.token_valid is True
    assert health.folder_access is True
    assert health.quota_ok is False


@pytest.mark.asyncio
async def test_dropbox_health_reports_token_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    health = await make_dropbox(handler).check_health()

    assert health.status == "error"
    assert "access token" in health.message


# ====================
# Cloudinary
# ====================


@pytest.mark.asyncio
async def test_cloudinary_upload_streams_multipart():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1_1/demo/video/upload"
        assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
        body = request.content
        assert b'name="upload_preset"\r\n\r\nml_default' in body
        assert b'name="folder"\r\n\r\nsubmissions/ns' in body
        assert b'name="file"; filename="clip.mp4"' in body
        assert b"Content-Type: video/mp4" in body
        assert VIDEO.data in body
        return httpx.Response(
            200,
            json={"public_id": "submissions/ns/clip", "secure_url": "https://res.test/clip.mp4"},
        )

    client = CloudinaryClient("demo", transport=httpx.MockTransport(handler))
    progress: list[int] = []

    result = await client.upload(VIDEO, "/submissions/ns", progress.append)

    assert result.locator == "submissions/ns/clip"
    assert result.public_url == "https://res.test/clip.mp4"
    assert progress[0] == 0 and progress[-1] == 100
    assert progress == sorted(set(progress))


@pytest.mark.asyncio
async def test_cloudinary_errors():
    bad_request = CloudinaryClient(
        "demo",
        transport=httpx.MockTransport(lambda r: httpx.Response(400, json={"error": {"message": "Upload preset not found"}})),
    )
    with pytest.raises(StorageValidationError):
        await bad_request.upload(VIDEO)

    no_public_id = CloudinaryClient(
        "demo", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))
    )
    with pytest.raises(StorageValidationError, match="no public id"):
        await no_public_id.upload(VIDEO)

    with pytest.raises(StorageAuthError):
        await CloudinaryClient("").upload(VIDEO)


# ====================
# Record-store bucket
# ====================


@pytest.mark.asyncio
async def test_bucket_upload_upserts_and_resolves_public_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/storage/v1/object/submissions/submissions/ns/signature.png"
        assert request.headers["x-upsert"] == "true"
        assert request.headers["apikey"] == "service-key"
        return httpx.Response(200, json={"Key": "submissions/submissions/ns/signature.png"})

    client = BucketClient(
        "https://project.supabase.test/", "service-key", transport=httpx.MockTransport(handler)
    )
    signature = MediaFile(filename="signature.png", content_type="image/png", data=b"png")

    result = await client.upload(signature, "/submissions/ns")

    assert result.path == "submissions/ns/signature.png"
    assert result.public_url == (
        "https://project.supabase.test/storage/v1/object/public/submissions/submissions/ns/signature.png"
    )


# ====================
# Probe and notifier
# ====================


@pytest.mark.asyncio
async def test_probe_offline_on_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route to host", request=request)

    probe = ConnectivityProbe("https://probe.test/generate_204", transport=httpx.MockTransport(handler))

    with pytest.raises(OfflineError):
        await probe.check()


@pytest.mark.asyncio
async def test_probe_any_response_is_online():
    probe = ConnectivityProbe(
        "https://probe.test/generate_204",
        transport=httpx.MockTransport(lambda r: httpx.Response(500)),
    )

    await probe.check()
    await ConnectivityProbe("").check()


@pytest.mark.asyncio
async def test_webhook_notifier_reports_failure_without_raising():
    payloads: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        payloads.append(json.loads(request.content))
        return httpx.Response(502)

    notifier = WebhookNotifier("https://hooks.test/confirm", transport=httpx.MockTransport(handler))

    assert await notifier.notify("j@x.com", "Jane", "Doe") is False
    assert payloads == [{"email": "j@x.com", "firstName": "Jane", "lastName": "Doe"}]
