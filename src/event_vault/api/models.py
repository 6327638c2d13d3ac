"""Request models and response payload builders for the HTTP API."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from event_vault.domain.backups import BackupJob, BackupOptions
from event_vault.domain.events import EventArchiveState
from event_vault.domain.storage import ObjectMeta
from event_vault.services.reporting import BackupSummary


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BackupRequest(_CamelModel):
    """Body of a backup request; every field is optional."""

    compression_quality: float | None = Field(
        default=None, alias="compressionQuality", gt=0, le=1
    )
    include_metadata: bool = Field(default=False, alias="includeMetadata")
    archive: bool = False

    def to_options(self) -> BackupOptions:
        return BackupOptions(
            compression_quality=self.compression_quality,
            include_metadata=self.include_metadata,
            archive=self.archive,
        )


class ArchiveRequest(_CamelModel):
    """Body of an archive request."""

    backup_id: UUID | None = Field(default=None, alias="backupId")


class StorageCleanupRequest(_CamelModel):
    """Body of a local retention sweep."""

    retention_days: int | None = Field(default=None, alias="retentionDays", ge=1)


class TierSelectionRequest(_CamelModel):
    """Hypothetical object to place."""

    file_size: int = Field(alias="fileSize", ge=0)
    event_id: str | None = Field(default=None, alias="eventId")
    is_homepage: bool = Field(default=False, alias="isHomepage")
    is_premium: bool = Field(default=False, alias="isPremium")
    is_featured: bool = Field(default=False, alias="isFeatured")
    compression_quality: float | None = Field(
        default=None, alias="compressionQuality", gt=0, le=1
    )

    def to_meta(self) -> ObjectMeta:
        return ObjectMeta(
            size_bytes=self.file_size,
            event_id=self.event_id,
            is_homepage=self.is_homepage,
            is_featured=self.is_featured,
            is_premium=self.is_premium,
            compression_quality=self.compression_quality,
        )


def job_payload(job: BackupJob) -> dict[str, object]:
    """Render a backup job the way the dashboard consumes it."""
    return {
        "id": str(job.id),
        "eventId": job.event_id,
        "status": job.status.value,
        "startTime": job.start_time.isoformat(),
        "endTime": job.end_time.isoformat() if job.end_time else None,
        "totalPhotos": job.total_photos,
        "successfulUploads": job.successful_uploads,
        "failedUploads": job.failed_uploads,
        "skippedUploads": job.skipped_uploads,
        "archivedBytes": job.archived_bytes,
        "errors": [
            {"photoId": error.photo_id, "error": error.reason} for error in job.errors
        ],
        "archiveUrl": job.archive_url,
        "message": job.message,
    }


def archive_payload(state: EventArchiveState) -> dict[str, object]:
    return {
        "eventId": state.event_id,
        "isArchived": state.is_archived,
        "archivedAt": state.archived_at.isoformat() if state.archived_at else None,
        "backupId": str(state.backup_id) if state.backup_id else None,
        "archiveBackendUrl": state.archive_backend_url,
    }


def summary_payload(summary: BackupSummary) -> dict[str, object]:
    return {
        "totalBackups": summary.total_backups,
        "activeBackups": summary.active_backups,
        "completedBackups": summary.completed_backups,
        "failedBackups": summary.failed_backups,
        "totalPhotosBackedUp": summary.total_photos_backed_up,
        "totalPhotosFailed": summary.total_photos_failed,
        "totalBytesArchived": summary.total_bytes_archived,
        "recentBackups": [job_payload(job) for job in summary.recent],
    }
