"""Cloudflare R2 primary object store (S3-compatible API)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

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

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_QUOTA_CODES = {"QuotaExceeded", "StorageLimitExceeded", "InsufficientStorage"}
_BAD_INPUT_CODES = {"InvalidArgument", "InvalidObjectName", "KeyTooLongError"}
_HTTP_CLIENT_ERROR = 400
_HTTP_INSUFFICIENT_STORAGE = 507
_CACHE_CONTROL = "public, max-age=31536000"
_LIST_PAGE_SIZE = 1000


@dataclass
class R2StorageBackend:
    """R2 backend using a boto3 S3 client; blocking calls run in a thread."""

    client: Any
    bucket_name: str
    public_base_url: str
    quota: QuotaTracker
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    kind: BackendKind = BackendKind.PRIMARY
    name: str = "Cloudflare R2"

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        account_id: str,
        access_key_id: str,
        secret_access_key: str,
        bucket_name: str,
        quota: QuotaTracker,
        retry: RetryPolicy,
        public_url: str | None = None,
    ) -> R2StorageBackend:
        """Create an R2 backend with its own S3 client."""
        client = boto3.client(
            "s3",
            endpoint_url=f"https://{account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name="auto",
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                connect_timeout=10,
                read_timeout=retry.timeout,
                retries={"max_attempts": 1},
            ),
        )
        base_url = public_url or f"https://pub-{account_id}.r2.dev"
        return cls(
            client=client,
            bucket_name=bucket_name,
            public_base_url=base_url.rstrip("/"),
            quota=quota,
            retry=retry,
        )

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload bytes and return the public URL."""
        previous = await self._size_or_none(key)

        async def _put() -> None:
            await self._call(
                self.client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=_CACHE_CONTROL,
                Metadata={"upload-timestamp": datetime.now(tz=UTC).isoformat()},
            )

        await self.retry.run(_put, backend=self.name, action="put")
        self.quota.record_usage(self.kind, len(data) - (previous or 0))
        logger.info("Uploaded object to R2", extra={"key": key, "bytes": len(data)})
        return self.location_url(key)

    async def get(self, key: str) -> bytes:
        """Download object bytes."""

        async def _get() -> bytes:
            response = await self._call(
                self.client.get_object, Bucket=self.bucket_name, Key=key
            )
            return await asyncio.to_thread(response["Body"].read)

        return await self.retry.run(_get, backend=self.name, action="get")

    async def list(self, prefix: str, limit: int = 100) -> list[ObjectInfo]:
        """List objects under a prefix."""

        async def _list() -> list[ObjectInfo]:
            response = await self._call(
                self.client.list_objects_v2,
                Bucket=self.bucket_name,
                Prefix=prefix,
                MaxKeys=limit,
            )
            return [_parse_object(item) for item in response.get("Contents", [])]

        return await self.retry.run(_list, backend=self.name, action="list")

    async def delete(self, key: str) -> None:
        """Delete an object if it exists."""
        previous = await self._size_or_none(key)
        if previous is None:
            raise ObjectNotFound(f"{key} not found in {self.name}")

        async def _delete() -> None:
            await self._call(
                self.client.delete_object, Bucket=self.bucket_name, Key=key
            )

        await self.retry.run(_delete, backend=self.name, action="delete")
        self.quota.record_usage(self.kind, -previous)

    async def exists(self, key: str) -> bool:
        """Return true when the key is present."""
        return await self._size_or_none(key) is not None

    async def usage(self) -> tuple[int, int]:
        """Sum object sizes across the bucket; capacity comes from the tracker."""

        async def _usage() -> int:
            total = 0
            token: str | None = None
            while True:
                params: dict[str, object] = {
                    "Bucket": self.bucket_name,
                    "MaxKeys": _LIST_PAGE_SIZE,
                }
                if token:
                    params["ContinuationToken"] = token
                response = await self._call(self.client.list_objects_v2, **params)
                total += sum(
                    int(item.get("Size", 0)) for item in response.get("Contents", [])
                )
                if not response.get("IsTruncated"):
                    return total
                token = response.get("NextContinuationToken")

        used = await self.retry.run(_usage, backend=self.name, action="usage")
        descriptor = self.quota.descriptor(self.kind)
        capacity = descriptor.available_bytes if descriptor else 0
        return used, capacity

    def location_url(self, prefix: str) -> str:
        """Public URL for a key or prefix."""
        return f"{self.public_base_url}/{prefix}"

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        close = getattr(self.client, "close", None)
        if close is not None:
            await asyncio.to_thread(close)

    async def _size_or_none(self, key: str) -> int | None:
        async def _head() -> int | None:
            try:
                response = await self._call(
                    self.client.head_object, Bucket=self.bucket_name, Key=key
                )
            except ObjectNotFound:
                return None
            return int(response.get("ContentLength", 0))

        return await self.retry.run(_head, backend=self.name, action="head")

    async def _call(self, method: Any, **kwargs: object) -> Any:
        try:
            return await asyncio.to_thread(method, **kwargs)
        except ClientError as exc:
            raise _translate_client_error(exc) from exc
        except BotoCoreError as exc:
            raise BackendUnavailable(f"R2 request failed: {exc}") from exc


def _translate_client_error(exc: ClientError) -> Exception:
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    status = int(exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0))
    message = error.get("Message") or code
    if code in _NOT_FOUND_CODES:
        return ObjectNotFound(f"R2 object not found: {message}")
    if code in _QUOTA_CODES or status == _HTTP_INSUFFICIENT_STORAGE:
        return QuotaExceeded(f"R2 rejected write: {message}")
    if code in _BAD_INPUT_CODES:
        return ValidationError(f"R2 rejected request: {message}")
    if status == _HTTP_CLIENT_ERROR:
        return ValidationError(f"R2 rejected request: {message}")
    return BackendUnavailable(f"R2 error {code or status}: {message}")


def _parse_object(item: dict[str, Any]) -> ObjectInfo:
    modified = item.get("LastModified")
    return ObjectInfo(
        key=str(item["Key"]),
        size_bytes=int(item.get("Size", 0)),
        modified_at=modified if isinstance(modified, datetime) else None,
    )
