"""Backup job status store."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

from event_vault.domain.backups import BackupJob
from event_vault.domain.errors import InvalidTransition
from event_vault.services.cache import BoundedCache

logger = logging.getLogger(__name__)


class BackupJobRepository(Protocol):
    """Persistence interface for backup job snapshots."""

    def save_job(self, job: BackupJob) -> None:
        """Insert or replace the snapshot for `job.id`."""

    def get_job(self, job_id: UUID) -> BackupJob | None:
        """Return a job snapshot by id, if present."""

    def list_jobs(self, event_id: str | None = None) -> list[BackupJob]:
        """Return job snapshots, optionally for one event."""

    def delete_jobs(self, job_ids: list[UUID]) -> None:
        """Delete job snapshots by id."""


@dataclass
class StatusStore:
    """Single source of truth for backup job snapshots.

    Writes go through to the repository. Reads by id are served from a
    bounded cache that is updated on every write and invalidated on cleanup.
    """

    repository: BackupJobRepository
    cache: BoundedCache = field(default_factory=BoundedCache)

    def save(self, job: BackupJob) -> BackupJob:
        """Persist a job snapshot. Terminal snapshots are never overwritten."""
        current = self.get(job.id)
        if current is not None and current.status.is_terminal and current != job:
            raise InvalidTransition(
                f"Backup job {job.id} already finished as {current.status}"
            )
        self.repository.save_job(job)
        self.cache.set(str(job.id), job)
        return job

    def get(self, job_id: UUID) -> BackupJob | None:
        """Return a job snapshot by id."""
        cached = self.cache.get(str(job_id))
        if isinstance(cached, BackupJob):
            return cached
        job = self.repository.get_job(job_id)
        if job is not None:
            self.cache.set(str(job_id), job)
        return job

    def get_all(self) -> list[BackupJob]:
        """Return every stored job, newest first."""
        return _newest_first(self.repository.list_jobs())

    def get_by_event(self, event_id: str) -> list[BackupJob]:
        """Return jobs for an event, newest first."""
        return _newest_first(self.repository.list_jobs(event_id))

    def active_jobs(self, event_id: str) -> list[BackupJob]:
        """Return persisted jobs for the event that never reached a terminal state."""
        return [job for job in self.get_by_event(event_id) if job.status.is_active]

    def cleanup_older_than(self, max_age: timedelta) -> int:
        """Remove terminal jobs that started before `now - max_age`."""
        cutoff = datetime.now(tz=UTC) - max_age
        expired = [
            job.id
            for job in self.repository.list_jobs()
            if job.status.is_terminal and job.start_time < cutoff
        ]
        if expired:
            self.repository.delete_jobs(expired)
            for job_id in expired:
                self.cache.invalidate(str(job_id))
        logger.info("Cleaned up backup jobs", extra={"removed": len(expired)})
        return len(expired)


def _newest_first(jobs: list[BackupJob]) -> list[BackupJob]:
    return sorted(jobs, key=lambda job: job.start_time, reverse=True)
