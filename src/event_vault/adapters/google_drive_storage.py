"""Google Drive archive provider (Drive v3 REST API)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from event_vault.adapters.retry import RetryPolicy
from event_vault.domain.errors import (
    BackendUnavailable,
    ObjectNotFound,
    QuotaExceeded,
    ValidationError,
)
from event_vault.domain.storage import BackendKind, ObjectInfo
from event_vault.services.quota import QuotaTracker

logger = logging.getLogger(__name__)

TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105
API_URL = "https://www.googleapis.com/drive/v3"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
_QUOTA_REASONS = {"storageQuotaExceeded", "quotaExceeded"}
_RETRYABLE_STATUSES = {401, 408, 429, 500, 502, 503, 504}
_PAGE_SIZE = 100


@dataclass
class GoogleDriveStorageBackend:
    """Drive backend storing each object as a file named by its key.

    Files live inside one folder. Access tokens are minted from the refresh
    token and re-minted whenever Drive answers 401.
    """

    client_id: str
    client_secret: str
    refresh_token: str
    folder_id: str
    quota: QuotaTracker
    http_client: httpx.AsyncClient
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    kind: BackendKind = BackendKind.SECONDARY
    name: str = "Google Drive"
    _access_token: str | None = None

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        folder_id: str,
        quota: QuotaTracker,
        retry: RetryPolicy,
    ) -> GoogleDriveStorageBackend:
        """Create a Drive backend with a managed httpx session."""
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            folder_id=folder_id,
            quota=quota,
            http_client=httpx.AsyncClient(timeout=retry.timeout),
            retry=retry,
        )

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload bytes as a file named `key`, replacing any previous copy."""
        existing = await self._find(key)

        async def _put() -> dict[str, object]:
            metadata: dict[str, object] = {"name": key, "mimeType": content_type}
            if existing is None:
                metadata["parents"] = [self.folder_id]
                url = UPLOAD_URL
                method = "POST"
            else:
                url = f"{UPLOAD_URL}/{existing['id']}"
                method = "PATCH"
            files = {
                "metadata": (None, json.dumps(metadata), "application/json"),
                "file": (key.rsplit("/", 1)[-1], data, content_type),
            }
            response = await self._request(
                method,
                url,
                params={"uploadType": "multipart", "fields": "id, size, webViewLink"},
                files=files,
            )
            return response.json()

        uploaded = await self.retry.run(_put, backend=self.name, action="put")
        previous = int(existing.get("size", 0)) if existing else 0
        self.quota.record_usage(self.kind, len(data) - previous)
        logger.info("Uploaded object to Drive", extra={"key": key, "bytes": len(data)})
        link = uploaded.get("webViewLink")
        return str(link) if link else f"https://drive.google.com/file/d/{uploaded['id']}"

    async def get(self, key: str) -> bytes:
        """Download a file's content."""
        existing = await self._find(key)
        if existing is None:
            raise ObjectNotFound(f"{key} not found in {self.name}")

        async def _get() -> bytes:
            response = await self._request(
                "GET", f"{API_URL}/files/{existing['id']}", params={"alt": "media"}
            )
            return response.content

        return await self.retry.run(_get, backend=self.name, action="get")

    async def list(self, prefix: str, limit: int = 100) -> list[ObjectInfo]:
        """List files in the folder whose name starts with `prefix`."""

        async def _list() -> list[ObjectInfo]:
            found: list[ObjectInfo] = []
            page_token: str | None = None
            while len(found) < limit:
                params = {
                    "q": f"'{self.folder_id}' in parents and trashed = false",
                    "fields": "nextPageToken, files(id, name, size, modifiedTime)",
                    "pageSize": str(_PAGE_SIZE),
                    "orderBy": "name",
                }
                if page_token:
                    params["pageToken"] = page_token
                response = await self._request("GET", f"{API_URL}/files", params=params)
                payload = response.json()
                found.extend(
                    _parse_file(item)
                    for item in payload.get("files", [])
                    if str(item.get("name", "")).startswith(prefix)
                )
                page_token = payload.get("nextPageToken")
                if not page_token:
                    break
            return found[:limit]

        return await self.retry.run(_list, backend=self.name, action="list")

    async def delete(self, key: str) -> None:
        """Delete the file named `key`."""
        existing = await self._find(key)
        if existing is None:
            raise ObjectNotFound(f"{key} not found in {self.name}")

        async def _delete() -> None:
            await self._request("DELETE", f"{API_URL}/files/{existing['id']}")

        await self.retry.run(_delete, backend=self.name, action="delete")
        self.quota.record_usage(self.kind, -int(existing.get("size", 0)))

    async def exists(self, key: str) -> bool:
        """Return true when a file named `key` is in the folder."""
        return await self._find(key) is not None

    async def usage(self) -> tuple[int, int]:
        """Return account usage and limit from the `about` endpoint."""

        async def _usage() -> tuple[int, int]:
            response = await self._request(
                "GET", f"{API_URL}/about", params={"fields": "storageQuota"}
            )
            quota = response.json().get("storageQuota", {})
            used = int(quota.get("usage", 0))
            limit = quota.get("limit")
            if limit is None:
                descriptor = self.quota.descriptor(self.kind)
                return used, descriptor.available_bytes if descriptor else 0
            return used, int(limit)

        return await self.retry.run(_usage, backend=self.name, action="usage")

    def location_url(self, prefix: str) -> str:
        """Drive has no key prefixes; objects are referenced via the folder."""
        return f"https://drive.google.com/drive/folders/{self.folder_id}"

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _find(self, key: str) -> dict[str, object] | None:
        async def _lookup() -> dict[str, object] | None:
            escaped = key.replace("\\", "\\\\").replace("'", "\\'")
            response = await self._request(
                "GET",
                f"{API_URL}/files",
                params={
                    "q": (
                        f"name = '{escaped}' and '{self.folder_id}' in parents "
                        "and trashed = false"
                    ),
                    "fields": "files(id, name, size, modifiedTime)",
                    "pageSize": "1",
                },
            )
            files = response.json().get("files", [])
            return files[0] if files else None

        return await self.retry.run(_lookup, backend=self.name, action="lookup")

    async def _token(self) -> str:
        if self._access_token:
            return self._access_token
        try:
            response = await self.http_client.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.TransportError as exc:
            raise BackendUnavailable(f"Drive token refresh failed: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise BackendUnavailable(
                f"Drive token refresh rejected with {response.status_code}"
            )
        self._access_token = str(response.json()["access_token"])
        return self._access_token

    async def _request(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        token = await self._token()
        try:
            response = await self.http_client.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,  # type: ignore[arg-type]
            )
        except httpx.TransportError as exc:
            raise BackendUnavailable(f"Drive request failed: {exc}") from exc
        if response.status_code == httpx.codes.UNAUTHORIZED:
            self._access_token = None
        if response.is_success:
            return response
        raise _translate_status(response)


def _translate_status(response: httpx.Response) -> Exception:
    reasons: set[str] = set()
    message = response.text
    try:
        error = response.json().get("error", {})
    except ValueError:
        error = {}
    if isinstance(error, dict):
        message = str(error.get("message", message))
        reasons = {
            str(item.get("reason"))
            for item in error.get("errors", [])
            if isinstance(item, dict)
        }
    if reasons & _QUOTA_REASONS and "rateLimitExceeded" not in reasons:
        return QuotaExceeded(f"Drive rejected write: {message}")
    if response.status_code in _RETRYABLE_STATUSES or "rateLimitExceeded" in reasons:
        return BackendUnavailable(f"Drive error {response.status_code}: {message}")
    if response.status_code == httpx.codes.NOT_FOUND:
        return ObjectNotFound(f"Drive file not found: {message}")
    if response.status_code == httpx.codes.FORBIDDEN:
        return BackendUnavailable(f"Drive denied access: {message}")
    return ValidationError(f"Drive rejected request ({response.status_code}): {message}")


def _parse_file(item: dict[str, object]) -> ObjectInfo:
    modified_raw = item.get("modifiedTime")
    modified = (
        datetime.fromisoformat(str(modified_raw).replace("Z", "+00:00"))
        if modified_raw
        else None
    )
    return ObjectInfo(
        key=str(item.get("name", "")),
        size_bytes=int(item.get("size", 0) or 0),
        modified_at=modified,
    )
