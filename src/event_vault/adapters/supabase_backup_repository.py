"""Supabase-backed backup job repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from event_vault.domain.backups import BackupError, BackupJob, BackupStatus
from event_vault.services.status import BackupJobRepository

_COLUMNS = (
    "id, event_id, status, start_time, end_time, total_photos, successful_uploads, "
    "failed_uploads, skipped_uploads, archived_bytes, errors_json, archive_url, message"
)


@dataclass
class SupabaseBackupJobRepository(BackupJobRepository):
    """Supabase implementation for backup job snapshots."""

    client: Client

    def save_job(self, job: BackupJob) -> None:
        """Upsert the job row keyed by id."""
        self.client.table("backup_jobs").upsert(_serialize_job(job)).execute()

    def get_job(self, job_id: UUID) -> BackupJob | None:
        """Return a job by id, if present."""
        response = (
            self.client.table("backup_jobs")
            .select(_COLUMNS)
            .eq("id", str(job_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_job(response.data[0])

    def list_jobs(self, event_id: str | None = None) -> list[BackupJob]:
        """Return jobs ordered by start time, newest first."""
        query = self.client.table("backup_jobs").select(_COLUMNS)
        if event_id is not None:
            query = query.eq("event_id", event_id)
        response = query.order("start_time", desc=True).execute()
        return [_parse_job(row) for row in response.data or []]

    def delete_jobs(self, job_ids: list[UUID]) -> None:
        """Delete job rows by id."""
        if not job_ids:
            return
        self.client.table("backup_jobs").delete().in_(
            "id", [str(job_id) for job_id in job_ids]
        ).execute()


def _serialize_job(job: BackupJob) -> dict[str, object]:
    return {
        "id": str(job.id),
        "event_id": job.event_id,
        "status": job.status.value,
        "start_time": job.start_time.isoformat(),
        "end_time": job.end_time.isoformat() if job.end_time else None,
        "total_photos": job.total_photos,
        "successful_uploads": job.successful_uploads,
        "failed_uploads": job.failed_uploads,
        "skipped_uploads": job.skipped_uploads,
        "archived_bytes": job.archived_bytes,
        "errors_json": [
            {"photoId": error.photo_id, "error": error.reason} for error in job.errors
        ],
        "archive_url": job.archive_url,
        "message": job.message,
    }


def _parse_job(row: dict[str, object]) -> BackupJob:
    end_time = row.get("end_time")
    errors = row.get("errors_json") or []
    return BackupJob(
        id=UUID(str(row["id"])),
        event_id=str(row["event_id"]),
        status=BackupStatus(str(row["status"])),
        start_time=datetime.fromisoformat(str(row["start_time"])),
        end_time=(
            datetime.fromisoformat(end_time)
            if isinstance(end_time, str) and end_time
            else None
        ),
        total_photos=int(row.get("total_photos") or 0),
        successful_uploads=int(row.get("successful_uploads") or 0),
        failed_uploads=int(row.get("failed_uploads") or 0),
        skipped_uploads=int(row.get("skipped_uploads") or 0),
        archived_bytes=int(row.get("archived_bytes") or 0),
        errors=tuple(
            BackupError(photo_id=str(item["photoId"]), reason=str(item["error"]))
            for item in errors
            if isinstance(item, dict)
        ),
        archive_url=row.get("archive_url") or None,  # type: ignore[arg-type]
        message=row.get("message") or None,  # type: ignore[arg-type]
    )
