"""Tiered upload path and backend usage refresh."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import PurePosixPath
from uuid import UUID, uuid4

from event_vault.adapters.storage_backend import RetentionBackend, StorageBackend
from event_vault.domain.errors import (
    BackendUnavailable,
    ObjectNotFound,
    QuotaExceeded,
    StorageError,
    ValidationError,
)
from event_vault.domain.storage import (
    TIER_ORDER,
    BackendKind,
    BackendStatus,
    ObjectMeta,
    StorageObjectRef,
)
from event_vault.services.compression import (
    JPEG_CONTENT_TYPE,
    compress_image,
    create_thumbnail,
)
from event_vault.services.quota import QuotaTracker
from event_vault.services.tiers import TierSelector

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def thumbnail_key(key: str) -> str:
    """Key of the preview stored for an uploaded object."""
    path = PurePosixPath(key)
    return str(path.parent / "thumbnails" / f"thumb_{path.stem}.jpg")


def object_key(meta: ObjectMeta, object_id: UUID, filename: str) -> str:
    """Key for a freshly uploaded object; unique per upload."""
    safe_name = _UNSAFE_CHARS.sub("_", filename) or "photo.jpg"
    unique_name = f"{object_id.hex}_{safe_name}"
    if meta.event_id:
        return f"events/{meta.event_id}/{unique_name}"
    if meta.is_homepage:
        return f"homepage/{unique_name}"
    return f"uploads/{unique_name}"


@dataclass
class UsageReading:
    """Outcome of reading one backend's usage."""

    kind: BackendKind
    ok: bool
    error: str | None = None


@dataclass
class StorageService:
    """Writes objects through the selected tier and keeps quotas current."""

    selector: TierSelector
    quota: QuotaTracker
    backends: dict[BackendKind, StorageBackend] = field(default_factory=dict)
    usage_timeout: float = 30.0

    def backend(self, kind: BackendKind) -> StorageBackend:
        """Return the adapter for a tier."""
        backend = self.backends.get(kind)
        if backend is None:
            raise BackendUnavailable(f"Storage backend {kind} is not configured")
        return backend

    async def store_object(
        self, meta: ObjectMeta, data: bytes, filename: str
    ) -> StorageObjectRef:
        """Place and write a new object, falling back down the tiers."""
        if meta.size_bytes is None:
            meta = ObjectMeta(
                size_bytes=len(data),
                content_type=meta.content_type,
                event_id=meta.event_id,
                is_homepage=meta.is_homepage,
                is_featured=meta.is_featured,
                is_premium=meta.is_premium,
                compression_quality=meta.compression_quality,
            )
        decision = self.selector.select_tier(meta)
        object_id = uuid4()
        key = object_key(meta, object_id, filename)
        start = TIER_ORDER.index(decision.backend)
        quota_failures = 0
        last_error: Exception | None = None
        for kind in TIER_ORDER[start:]:
            backend = self.backends.get(kind)
            if backend is None:
                continue
            quality = decision.compression_quality if kind != BackendKind.LOCAL else None
            payload = await asyncio.to_thread(
                compress_image, data, meta.content_type, quality
            )
            try:
                url = await backend.put(key, payload.data, payload.content_type)
            except QuotaExceeded as exc:
                quota_failures += 1
                last_error = exc
                self.quota.set_status(kind, BackendStatus.DEGRADED)
                logger.warning(
                    "Backend out of space, falling back",
                    extra={"backend": kind.value, "key": key},
                )
                continue
            except BackendUnavailable as exc:
                last_error = exc
                self.quota.set_status(kind, BackendStatus.DEGRADED)
                logger.warning(
                    "Backend unavailable, falling back",
                    extra={"backend": kind.value, "key": key},
                )
                continue
            thumbnail_url = None
            if kind != BackendKind.LOCAL:
                thumbnail_url = await self._store_thumbnail(
                    backend, key, data, meta.content_type
                )
            return StorageObjectRef(
                id=object_id,
                event_id=meta.event_id,
                backend=kind,
                remote_key=key,
                size_bytes=len(payload.data),
                content_type=payload.content_type,
                uploaded_at=datetime.now(tz=UTC),
                url=url,
                thumbnail_url=thumbnail_url,
            )
        if last_error is None:
            raise BackendUnavailable("No storage backend is configured")
        attempted = len([k for k in TIER_ORDER[start:] if k in self.backends])
        if quota_failures == attempted:
            raise QuotaExceeded("All storage tiers are out of space") from last_error
        raise last_error

    async def delete_object(self, ref: StorageObjectRef) -> None:
        """Delete an object through its owning backend."""
        await self.backend(ref.backend).delete(ref.remote_key)

    async def purge_local(self, max_age: timedelta) -> tuple[int, int]:
        """Apply the retention window to the local fallback tier."""
        backend = self.backend(BackendKind.LOCAL)
        if not isinstance(backend, RetentionBackend):
            raise BackendUnavailable(f"{backend.name} does not support retention")
        return await backend.purge_older_than(max_age)

    async def refresh_usage(self) -> list[UsageReading]:
        """Re-read usage from every configured backend."""
        kinds = [kind for kind in TIER_ORDER if kind in self.backends]
        results = await asyncio.gather(
            *(self._refresh_one(kind) for kind in kinds)
        )
        return list(results)

    async def event_storage(self, event_id: str, limit: int = 1000) -> dict[str, object]:
        """Summarize what each backend holds under the event prefix."""
        if not event_id:
            raise ValidationError("Event id is required")
        prefix = f"events/{event_id}/"
        summary: dict[str, object] = {}
        for kind, backend in self.backends.items():
            try:
                objects = await backend.list(prefix, limit)
            except (BackendUnavailable, ObjectNotFound) as exc:
                summary[kind.value] = {"available": False, "error": str(exc)}
                continue
            summary[kind.value] = {
                "available": True,
                "objects": len(objects),
                "bytes": sum(item.size_bytes for item in objects),
            }
        return summary

    async def _store_thumbnail(
        self, backend: StorageBackend, key: str, data: bytes, content_type: str
    ) -> str | None:
        """Write a preview next to a cloud object. Failures only cost the preview."""
        thumbnail = await asyncio.to_thread(create_thumbnail, data, content_type)
        if thumbnail is None:
            return None
        try:
            return await backend.put(
                thumbnail_key(key), thumbnail, JPEG_CONTENT_TYPE
            )
        except StorageError as exc:
            logger.warning(
                "Failed to store thumbnail",
                extra={"backend": backend.kind.value, "key": key, "error": str(exc)},
            )
            return None

    async def _refresh_one(self, kind: BackendKind) -> UsageReading:
        backend = self.backends[kind]
        try:
            used, capacity = await asyncio.wait_for(
                backend.usage(), timeout=self.usage_timeout
            )
        except (TimeoutError, BackendUnavailable) as exc:
            previous = self.quota.descriptor(kind)
            status = (
                BackendStatus.DEGRADED
                if previous and previous.status == BackendStatus.AVAILABLE
                else BackendStatus.UNAVAILABLE
            )
            self.quota.set_status(kind, status)
            logger.warning(
                "Failed to read backend usage",
                extra={"backend": kind.value, "error": str(exc)},
            )
            return UsageReading(kind=kind, ok=False, error=str(exc) or "timed out")
        self.quota.refresh(kind, used, capacity)
        self.quota.set_status(kind, BackendStatus.AVAILABLE)
        return UsageReading(kind=kind, ok=True)
