"""Tests for the Google Drive backend using httpx.MockTransport."""

import asyncio
import re
from dataclasses import dataclass, field

import httpx
import pytest

from event_vault.adapters.google_drive_storage import GoogleDriveStorageBackend
from event_vault.adapters.retry import RetryPolicy
from event_vault.domain.errors import ObjectNotFound, QuotaExceeded
from event_vault.domain.storage import BackendKind
from event_vault.services.quota import QuotaTracker

_NAME_QUERY = re.compile(r"name = '(.+?)' and")
_METADATA_NAME = re.compile(rb'"name": "([^"]+)"')


@dataclass
class FakeDrive:
    files: dict[str, dict[str, object]] = field(default_factory=dict)
    contents: dict[str, bytes] = field(default_factory=dict)
    token_requests: int = 0
    unauthorized_once: bool = False
    upload_error: httpx.Response | None = None
    uploads: list[tuple[str, str]] = field(default_factory=list)

    def add(self, name: str, content: bytes) -> str:
        file_id = f"id-{len(self.files) + 1}"
        self.files[name] = {"id": file_id, "name": name, "size": str(len(content))}
        self.contents[file_id] = content
        return file_id

    def handler(self, request: httpx.Request) -> httpx.Response:  # noqa: PLR0911
        url = str(request.url)
        if url.startswith("https://oauth2.googleapis.com/token"):
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": f"tok-{self.token_requests}"})
        if self.unauthorized_once:
            self.unauthorized_once = False
            return httpx.Response(401, json={"error": {"message": "expired"}})
        path = request.url.path
        if path.startswith("/upload/drive/v3/files"):
            if self.upload_error is not None:
                return self.upload_error
            self.uploads.append((request.method, path))
            match = _METADATA_NAME.search(request.content)
            assert match is not None
            name = match.group(1).decode()
            file_id = self.add(name, request.content)
            return httpx.Response(
                200,
                json={"id": file_id, "webViewLink": f"https://drive.test/{file_id}"},
            )
        if path == "/drive/v3/about":
            return httpx.Response(
                200, json={"storageQuota": {"usage": "1024", "limit": "4096"}}
            )
        if path == "/drive/v3/files":
            query = request.url.params.get("q", "")
            name_match = _NAME_QUERY.search(query)
            if name_match:
                found = self.files.get(name_match.group(1))
                return httpx.Response(200, json={"files": [found] if found else []})
            return httpx.Response(200, json={"files": list(self.files.values())})
        file_id = path.rsplit("/", 1)[-1]
        if request.method == "DELETE":
            self.files = {
                name: item for name, item in self.files.items() if item["id"] != file_id
            }
            return httpx.Response(204)
        if request.url.params.get("alt") == "media":
            return httpx.Response(200, content=self.contents[file_id])
        return httpx.Response(404, json={"error": {"message": "unknown route"}})


async def _no_sleep(_delay: float) -> None:
    return None


def _backend(drive: FakeDrive) -> GoogleDriveStorageBackend:
    quota = QuotaTracker()
    quota.register(BackendKind.SECONDARY, "Google Drive", 4096)
    return GoogleDriveStorageBackend(
        client_id="client",
        client_secret="secret",
        refresh_token="refresh",
        folder_id="folder-1",
        quota=quota,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(drive.handler)),
        retry=RetryPolicy(sleep=_no_sleep),
    )


def test_put_creates_file_in_folder() -> None:
    drive = FakeDrive()
    backend = _backend(drive)

    url = asyncio.run(backend.put("events/E1/photos/p1.jpg", b"abc", "image/jpeg"))

    assert url.startswith("https://drive.test/")
    assert drive.uploads == [("POST", "/upload/drive/v3/files")]
    assert "events/E1/photos/p1.jpg" in drive.files
    descriptor = backend.quota.descriptor(BackendKind.SECONDARY)
    assert descriptor is not None
    assert descriptor.used_bytes == 3


def test_put_replaces_existing_file() -> None:
    drive = FakeDrive()
    file_id = drive.add("a.jpg", b"old")

    asyncio.run(_backend(drive).put("a.jpg", b"new", "image/jpeg"))

    assert drive.uploads == [("PATCH", f"/upload/drive/v3/files/{file_id}")]


def test_get_and_exists() -> None:
    drive = FakeDrive()
    drive.add("a.jpg", b"content")
    backend = _backend(drive)

    assert asyncio.run(backend.get("a.jpg")) == b"content"
    assert asyncio.run(backend.exists("a.jpg"))
    assert not asyncio.run(backend.exists("b.jpg"))
    with pytest.raises(ObjectNotFound):
        asyncio.run(backend.get("b.jpg"))


def test_delete_removes_file() -> None:
    drive = FakeDrive()
    drive.add("a.jpg", b"content")
    backend = _backend(drive)

    asyncio.run(backend.delete("a.jpg"))

    assert drive.files == {}
    with pytest.raises(ObjectNotFound):
        asyncio.run(backend.delete("a.jpg"))


def test_expired_token_is_refreshed() -> None:
    drive = FakeDrive(unauthorized_once=True)
    drive.add("a.jpg", b"content")
    backend = _backend(drive)

    assert asyncio.run(backend.exists("a.jpg"))
    assert drive.token_requests == 2


def test_storage_quota_error_maps_to_quota_exceeded() -> None:
    drive = FakeDrive(
        upload_error=httpx.Response(
            403,
            json={
                "error": {
                    "message": "The user's Drive storage quota has been exceeded.",
                    "errors": [{"reason": "storageQuotaExceeded"}],
                }
            },
        )
    )

    with pytest.raises(QuotaExceeded):
        asyncio.run(_backend(drive).put("a.jpg", b"abc", "image/jpeg"))


def test_usage_reads_storage_quota() -> None:
    assert asyncio.run(_backend(FakeDrive()).usage()) == (1024, 4096)


def test_list_filters_by_prefix() -> None:
    drive = FakeDrive()
    drive.add("events/E1/a.jpg", b"a")
    drive.add("events/E2/b.jpg", b"bb")

    objects = asyncio.run(_backend(drive).list("events/E1/"))

    assert [(item.key, item.size_bytes) for item in objects] == [("events/E1/a.jpg", 1)]


def test_location_url_points_at_folder() -> None:
    backend = _backend(FakeDrive())

    assert backend.location_url("events/E1/") == (
        "https://drive.google.com/drive/folders/folder-1"
    )
    asyncio.run(backend.close())
