"""Tests for the event archive lifecycle."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from event_vault.domain.backups import BackupJob, BackupStatus
from event_vault.domain.errors import ObjectNotFound, PreconditionFailed
from event_vault.domain.events import EventArchiveState
from event_vault.services.archive import ArchiveLifecycle
from event_vault.services.status import StatusStore


def _stored_job(store: StatusStore, event_id: str, status: BackupStatus) -> BackupJob:
    job = BackupJob(
        id=uuid4(),
        event_id=event_id,
        status=status,
        start_time=datetime.now(tz=UTC),
        archive_url="https://drive.google.com/drive/folders/abc",
    )
    store.repository.save_job(job)
    return job


def _lifecycle(job_repository, archive_repository) -> ArchiveLifecycle:  # type: ignore[no-untyped-def]
    archive_repository.states["event-1"] = EventArchiveState(event_id="event-1")
    return ArchiveLifecycle(archive_repository, StatusStore(job_repository))


def test_archive_after_completed_backup(job_repository, archive_repository) -> None:
    lifecycle = _lifecycle(job_repository, archive_repository)
    job = _stored_job(lifecycle.status_store, "event-1", BackupStatus.COMPLETED)

    state = lifecycle.archive_event("event-1", job.id)

    assert state.is_archived
    assert state.archived_at is not None
    assert state.backup_id == job.id
    assert state.archive_backend_url == job.archive_url
    assert archive_repository.states["event-1"] == state


@pytest.mark.parametrize(
    "status", [BackupStatus.INITIALIZING, BackupStatus.BACKING_UP, BackupStatus.FAILED]
)
def test_archive_requires_completed_backup(
    job_repository, archive_repository, status
) -> None:
    lifecycle = _lifecycle(job_repository, archive_repository)
    job = _stored_job(lifecycle.status_store, "event-1", status)

    with pytest.raises(PreconditionFailed):
        lifecycle.archive_event("event-1", job.id)
    assert not archive_repository.states["event-1"].is_archived


def test_archive_rejects_unknown_backup(job_repository, archive_repository) -> None:
    lifecycle = _lifecycle(job_repository, archive_repository)

    with pytest.raises(PreconditionFailed):
        lifecycle.archive_event("event-1", uuid4())


def test_archive_rejects_backup_of_another_event(
    job_repository, archive_repository
) -> None:
    lifecycle = _lifecycle(job_repository, archive_repository)
    job = _stored_job(lifecycle.status_store, "event-2", BackupStatus.COMPLETED)

    with pytest.raises(PreconditionFailed):
        lifecycle.archive_event("event-1", job.id)


def test_unarchive_keeps_backup_reference(job_repository, archive_repository) -> None:
    lifecycle = _lifecycle(job_repository, archive_repository)
    job = _stored_job(lifecycle.status_store, "event-1", BackupStatus.COMPLETED)
    lifecycle.archive_event("event-1", job.id)

    state = lifecycle.unarchive_event("event-1")

    assert not state.is_archived
    assert state.archived_at is None
    assert state.backup_id == job.id


def test_unknown_event_is_not_found(job_repository, archive_repository) -> None:
    lifecycle = ArchiveLifecycle(archive_repository, StatusStore(job_repository))

    with pytest.raises(ObjectNotFound):
        lifecycle.get_state("missing")
    with pytest.raises(ObjectNotFound):
        lifecycle.unarchive_event("missing")
