"""Domain models for backup jobs."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from event_vault.domain.errors import InvalidTransition


class BackupStatus(StrEnum):
    """Backup job states."""

    INITIALIZING = "initializing"
    BACKING_UP = "backing_up"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {BackupStatus.COMPLETED, BackupStatus.FAILED}

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


_TRANSITIONS: dict[BackupStatus, set[BackupStatus]] = {
    BackupStatus.INITIALIZING: {
        BackupStatus.INITIALIZING,
        BackupStatus.BACKING_UP,
        BackupStatus.FAILED,
    },
    BackupStatus.BACKING_UP: {
        BackupStatus.BACKING_UP,
        BackupStatus.COMPLETED,
        BackupStatus.FAILED,
    },
    BackupStatus.COMPLETED: set(),
    BackupStatus.FAILED: set(),
}


@dataclass(frozen=True)
class BackupError:
    """A photo that could not be copied."""

    photo_id: str
    reason: str


@dataclass(frozen=True)
class BackupOptions:
    """Caller options for a backup request."""

    compression_quality: float | None = None
    include_metadata: bool = False
    archive: bool = False


@dataclass(frozen=True)
class BackupJob:
    """Snapshot of one backup job."""

    id: UUID
    event_id: str
    status: BackupStatus
    start_time: datetime
    end_time: datetime | None = None
    total_photos: int = 0
    successful_uploads: int = 0
    failed_uploads: int = 0
    skipped_uploads: int = 0
    archived_bytes: int = 0
    errors: tuple[BackupError, ...] = field(default_factory=tuple)
    archive_url: str | None = None
    message: str | None = None

    @property
    def processed_photos(self) -> int:
        return self.successful_uploads + self.failed_uploads

    @property
    def failure_ratio(self) -> float:
        if self.total_photos == 0:
            return 0.0
        return self.failed_uploads / self.total_photos


def transition(job: BackupJob, status: BackupStatus, **changes: object) -> BackupJob:
    """Return a new snapshot in `status`, enforcing the job state machine."""
    if status not in _TRANSITIONS[job.status]:
        raise InvalidTransition(
            f"Backup job {job.id} cannot move from {job.status} to {status}"
        )
    updated = replace(job, status=status, **changes)
    if updated.processed_photos > updated.total_photos:
        raise InvalidTransition(
            f"Backup job {job.id} processed more photos than it enumerated"
        )
    return updated
