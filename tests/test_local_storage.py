"""Tests for the local filesystem backend."""

import asyncio
import os
from datetime import UTC, datetime, timedelta

import pytest

from event_vault.adapters.local_storage import LocalStorageBackend
from event_vault.domain.errors import ObjectNotFound, ValidationError
from event_vault.domain.storage import BackendKind
from event_vault.services.quota import QuotaTracker


def _backend(tmp_path) -> LocalStorageBackend:  # type: ignore[no-untyped-def]
    quota = QuotaTracker()
    quota.register(BackendKind.LOCAL, "Local disk", 10_000)
    return LocalStorageBackend(root=tmp_path / "store", quota=quota)


def _used(backend: LocalStorageBackend) -> int:
    descriptor = backend.quota.descriptor(BackendKind.LOCAL)
    assert descriptor is not None
    return descriptor.used_bytes


def test_put_get_and_exists(tmp_path) -> None:
    backend = _backend(tmp_path)

    url = asyncio.run(backend.put("events/E1/a.jpg", b"hello", "image/jpeg"))

    assert url.startswith("file://")
    assert asyncio.run(backend.get("events/E1/a.jpg")) == b"hello"
    assert asyncio.run(backend.exists("events/E1/a.jpg"))
    assert not asyncio.run(backend.exists("events/E1/b.jpg"))
    assert _used(backend) == 5


def test_overwrite_records_size_delta(tmp_path) -> None:
    backend = _backend(tmp_path)
    asyncio.run(backend.put("k.bin", b"12345", "application/octet-stream"))

    asyncio.run(backend.put("k.bin", b"12", "application/octet-stream"))

    assert _used(backend) == 2


def test_list_filters_by_prefix(tmp_path) -> None:
    backend = _backend(tmp_path)
    asyncio.run(backend.put("events/E1/a.jpg", b"a", "image/jpeg"))
    asyncio.run(backend.put("events/E1/b.jpg", b"bb", "image/jpeg"))
    asyncio.run(backend.put("events/E2/c.jpg", b"c", "image/jpeg"))

    objects = asyncio.run(backend.list("events/E1/"))

    assert [item.key for item in objects] == ["events/E1/a.jpg", "events/E1/b.jpg"]
    assert [item.size_bytes for item in objects] == [1, 2]
    assert asyncio.run(backend.list("events/", limit=1))[0].key == "events/E1/a.jpg"


def test_delete_removes_file_and_usage(tmp_path) -> None:
    backend = _backend(tmp_path)
    asyncio.run(backend.put("k.bin", b"12345", "application/octet-stream"))

    asyncio.run(backend.delete("k.bin"))

    assert not asyncio.run(backend.exists("k.bin"))
    assert _used(backend) == 0
    with pytest.raises(ObjectNotFound):
        asyncio.run(backend.delete("k.bin"))


def test_get_missing_object_raises(tmp_path) -> None:
    with pytest.raises(ObjectNotFound):
        asyncio.run(_backend(tmp_path).get("missing.jpg"))


@pytest.mark.parametrize("key", ["", "/etc/passwd", "../outside.txt", "a/../../b"])
def test_keys_cannot_escape_root(tmp_path, key) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(_backend(tmp_path).put(key, b"x", "text/plain"))


def test_usage_reports_bytes_and_disk_size(tmp_path) -> None:
    backend = _backend(tmp_path)
    asyncio.run(backend.put("a.bin", b"123", "application/octet-stream"))
    asyncio.run(backend.put("nested/b.bin", b"4567", "application/octet-stream"))

    used, capacity = asyncio.run(backend.usage())

    assert used == 7
    assert capacity > used


def test_purge_removes_only_expired_files(tmp_path) -> None:
    backend = _backend(tmp_path)
    asyncio.run(backend.put("events/E1/old.jpg", b"old-bytes", "image/jpeg"))
    asyncio.run(backend.put("events/E1/new.jpg", b"new", "image/jpeg"))
    expired = (datetime.now(tz=UTC) - timedelta(days=45)).timestamp()
    os.utime(tmp_path / "store" / "events/E1/old.jpg", (expired, expired))

    removed, freed = asyncio.run(backend.purge_older_than(timedelta(days=30)))

    assert (removed, freed) == (1, 9)
    assert not asyncio.run(backend.exists("events/E1/old.jpg"))
    assert asyncio.run(backend.exists("events/E1/new.jpg"))
    assert _used(backend) == 3


def test_purge_of_missing_root_is_a_no_op(tmp_path) -> None:
    backend = _backend(tmp_path)

    assert asyncio.run(backend.purge_older_than(timedelta(days=1))) == (0, 0)
