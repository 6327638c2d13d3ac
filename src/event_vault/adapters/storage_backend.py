"""Uniform capability set exposed by every storage backend."""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol, runtime_checkable

from event_vault.domain.storage import BackendKind, ObjectInfo


class StorageBackend(Protocol):
    """Interface implemented by each concrete storage backend.

    `put` and `delete` report their signed size delta to the quota tracker.
    Failures surface as `BackendUnavailable`, `QuotaExceeded`,
    `ValidationError` or `ObjectNotFound`.
    """

    kind: BackendKind
    name: str

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under `key` and return a URL for the object."""

    async def get(self, key: str) -> bytes:
        """Return the bytes stored under `key`."""

    async def list(self, prefix: str, limit: int = 100) -> list[ObjectInfo]:
        """Return up to `limit` objects whose key starts with `prefix`."""

    async def delete(self, key: str) -> None:
        """Remove the object stored under `key`."""

    async def exists(self, key: str) -> bool:
        """Return true when an object is stored under `key`."""

    async def usage(self) -> tuple[int, int]:
        """Return backend-reported `(used_bytes, capacity_bytes)`."""

    def location_url(self, prefix: str) -> str:
        """Return a reference URL for objects under `prefix`."""

    async def close(self) -> None:
        """Release network resources."""


@runtime_checkable
class RetentionBackend(Protocol):
    """Backend that can drop objects past a retention window."""

    async def purge_older_than(self, max_age: timedelta) -> tuple[int, int]:
        """Delete objects last modified before `now - max_age`.

        Returns `(removed_objects, freed_bytes)`.
        """
