"""Local filesystem fallback backend."""

from __future__ import annotations

import asyncio
import errno
import logging
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

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


@dataclass
class LocalStorageBackend:
    """Stores objects as files under `root`; capacity is the disk itself."""

    root: Path
    quota: QuotaTracker
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    kind: BackendKind = BackendKind.LOCAL
    name: str = "Local disk"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Write bytes to the file for `key`."""
        path = self._path(key)

        async def _put() -> int:
            return await _run_io(_write_file, path, data)

        previous = await self.retry.run(_put, backend=self.name, action="put")
        self.quota.record_usage(self.kind, len(data) - previous)
        logger.info("Stored object locally", extra={"key": key, "bytes": len(data)})
        return self.location_url(key)

    async def get(self, key: str) -> bytes:
        """Read the file for `key`."""
        path = self._path(key)

        async def _get() -> bytes:
            return await _run_io(path.read_bytes)

        return await self.retry.run(_get, backend=self.name, action="get")

    async def list(self, prefix: str, limit: int = 100) -> list[ObjectInfo]:
        """List files whose key starts with `prefix`."""

        async def _list() -> list[ObjectInfo]:
            return await _run_io(_scan, self.root, prefix, limit)

        return await self.retry.run(_list, backend=self.name, action="list")

    async def delete(self, key: str) -> None:
        """Remove the file for `key`."""
        path = self._path(key)

        async def _delete() -> int:
            return await _run_io(_remove_file, path)

        removed = await self.retry.run(_delete, backend=self.name, action="delete")
        self.quota.record_usage(self.kind, -removed)

    async def purge_older_than(self, max_age: timedelta) -> tuple[int, int]:
        """Delete fallback files last modified before `now - max_age`."""
        cutoff = (datetime.now(tz=UTC) - max_age).timestamp()

        async def _purge() -> tuple[int, int]:
            return await _run_io(_purge_files, self.root, cutoff)

        removed, freed = await self.retry.run(_purge, backend=self.name, action="purge")
        if freed:
            self.quota.record_usage(self.kind, -freed)
        logger.info(
            "Purged expired local files",
            extra={"removed": removed, "freed_bytes": freed},
        )
        return removed, freed

    async def exists(self, key: str) -> bool:
        """Return true when the file for `key` exists."""
        return await asyncio.to_thread(self._path(key).is_file)

    async def usage(self) -> tuple[int, int]:
        """Bytes held under `root` and the total size of its disk."""

        async def _usage() -> tuple[int, int]:
            return await _run_io(_disk_usage, self.root)

        return await self.retry.run(_usage, backend=self.name, action="usage")

    def location_url(self, prefix: str) -> str:
        """file:// URL for a key or prefix."""
        return (self.root.resolve() / prefix).as_uri()

    async def close(self) -> None:
        """Nothing to release."""
        return None

    def _path(self, key: str) -> Path:
        if not key or key.startswith("/"):
            raise ValidationError(f"Invalid object key: {key!r}")
        root = self.root.resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise ValidationError(f"Object key escapes storage root: {key!r}")
        return path


async def _run_io(func, *args):  # type: ignore[no-untyped-def]
    try:
        return await asyncio.to_thread(func, *args)
    except FileNotFoundError as exc:
        raise ObjectNotFound(f"Local object not found: {exc.filename}") from exc
    except OSError as exc:
        if exc.errno in {errno.ENOSPC, errno.EDQUOT}:
            raise QuotaExceeded(f"Local disk is full: {exc}") from exc
        raise BackendUnavailable(f"Local storage error: {exc}") from exc


def _write_file(path: Path, data: bytes) -> int:
    previous = path.stat().st_size if path.exists() else 0
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_bytes(data)
    tmp_path.replace(path)
    return previous


def _remove_file(path: Path) -> int:
    size = path.stat().st_size
    path.unlink()
    return size


def _scan(root: Path, prefix: str, limit: int) -> list[ObjectInfo]:
    if not root.exists():
        return []
    results: list[ObjectInfo] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file() or path.name.startswith("."):
            continue
        key = path.relative_to(root).as_posix()
        if not key.startswith(prefix):
            continue
        stat = path.stat()
        results.append(
            ObjectInfo(
                key=key,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            )
        )
        if len(results) >= limit:
            break
    return results


def _disk_usage(root: Path) -> tuple[int, int]:
    root.mkdir(parents=True, exist_ok=True)
    used = sum(path.stat().st_size for path in root.rglob("*") if path.is_file())
    return used, shutil.disk_usage(root).total


def _purge_files(root: Path, cutoff: float) -> tuple[int, int]:
    if not root.exists():
        return 0, 0
    removed = freed = 0
    for path in list(root.rglob("*")):
        try:
            stat = path.stat()
            if not path.is_file() or stat.st_mtime >= cutoff:
                continue
            path.unlink()
        except FileNotFoundError:
            continue
        removed += 1
        freed += stat.st_size
    return removed, freed
