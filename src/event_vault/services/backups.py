"""Event backup orchestration."""

import asyncio
import json
import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Protocol
from uuid import UUID, uuid4

from event_vault.adapters.storage_backend import StorageBackend
from event_vault.domain.backups import (
    BackupError,
    BackupJob,
    BackupOptions,
    BackupStatus,
    transition,
)
from event_vault.domain.errors import (
    InvalidTransition,
    JobInProgress,
    ObjectNotFound,
    StorageError,
    ValidationError,
)
from event_vault.domain.events import EventPhoto
from event_vault.domain.storage import BackendKind
from event_vault.services.archive import ArchiveLifecycle
from event_vault.services.compression import compress_image
from event_vault.services.status import StatusStore
from event_vault.services.storage import StorageService

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 5
MANIFEST_NAME = "manifest.json"


class EventPhotoRepository(Protocol):
    """Read access to an event's photo rows."""

    def list_event_photos(self, event_id: str) -> list[EventPhoto]:
        """Return every photo of an event in a stable order."""


def event_prefix(event_id: str) -> str:
    """Archive prefix holding everything backed up for an event."""
    return f"events/{event_id}/"


def archive_key(photo: EventPhoto) -> str:
    """Stable archive key derived from event and photo ids only."""
    suffix = PurePosixPath(photo.filename).suffix.lower()
    if not suffix:
        suffix = mimetypes.guess_extension(photo.content_type) or ""
    return f"{event_prefix(photo.event_id)}photos/{photo.id}{suffix}"


@dataclass
class _JobProgress:
    """Holds the current snapshot of a running job and persists each change."""

    job: BackupJob
    store: StatusStore

    def advance(self, status: BackupStatus, **changes: object) -> BackupJob:
        self.job = self.store.save(transition(self.job, status, **changes))
        return self.job

    def record_success(self, written_bytes: int, skipped: bool) -> None:
        self.advance(
            BackupStatus.BACKING_UP,
            successful_uploads=self.job.successful_uploads + 1,
            skipped_uploads=self.job.skipped_uploads + int(skipped),
            archived_bytes=self.job.archived_bytes + written_bytes,
        )

    def record_failure(self, photo_id: str, reason: str) -> None:
        self.advance(
            BackupStatus.BACKING_UP,
            failed_uploads=self.job.failed_uploads + 1,
            errors=(*self.job.errors, BackupError(photo_id=photo_id, reason=reason)),
        )


@dataclass
class BackupOrchestrator:
    """Copies an event's photos to the archive backend.

    At most one job per event runs at a time. Photos already present at their
    archive key are skipped, which makes an interrupted job cheap to resume
    and a repeated backup of an unchanged event free of remote writes.
    """

    photo_repository: EventPhotoRepository
    status_store: StatusStore
    storage: StorageService
    archive: ArchiveLifecycle
    archive_backend: BackendKind = BackendKind.SECONDARY
    concurrency: int = 3
    failure_threshold: float = 0.10
    enumeration_timeout: float = 30.0
    _active: dict[str, UUID] = field(default_factory=dict)

    def create_job(
        self, event_id: str, options: BackupOptions | None = None
    ) -> BackupJob:
        """Register and persist a new job in `initializing`."""
        options = options or BackupOptions()
        if not event_id:
            raise ValidationError("Event id is required")
        quality = options.compression_quality
        if quality is not None and not 0 < quality <= 1:
            raise ValidationError("Compression quality must be in (0, 1]")
        self.storage.backend(self.archive_backend)
        if event_id in self._active:
            raise JobInProgress(
                f"Backup {self._active[event_id]} is already running for event {event_id}"
            )
        job = BackupJob(
            id=uuid4(),
            event_id=event_id,
            status=BackupStatus.INITIALIZING,
            start_time=datetime.now(tz=UTC),
        )
        self._active[event_id] = job.id
        try:
            self._close_interrupted(event_id, job.id)
            self.status_store.save(job)
        except Exception:
            self._active.pop(event_id, None)
            raise
        logger.info(
            "Created backup job", extra={"event_id": event_id, "backup_id": str(job.id)}
        )
        return job

    async def run_job(
        self, job_id: UUID, options: BackupOptions | None = None
    ) -> BackupJob:
        """Drive a created job to a terminal status."""
        options = options or BackupOptions()
        job = self.status_store.get(job_id)
        if job is None:
            self._release(job_id)
            raise ObjectNotFound(f"Backup {job_id} not found")
        if job.status != BackupStatus.INITIALIZING:
            if job.status.is_terminal:
                self._release(job_id)
            raise InvalidTransition(f"Backup {job_id} has already started")
        progress = _JobProgress(job=job, store=self.status_store)
        try:
            return await self._run(progress, options)
        except Exception as exc:
            logger.exception(
                "Backup aborted", extra={"event_id": job.event_id, "backup_id": str(job_id)}
            )
            if progress.job.status.is_terminal:
                raise
            job = progress.job
            return self._finish(
                progress,
                BackupStatus.FAILED,
                f"Backup aborted: {exc}",
                failed_uploads=job.total_photos - job.successful_uploads,
            )
        finally:
            self._release(job_id)

    async def backup_event(
        self, event_id: str, options: BackupOptions | None = None
    ) -> BackupJob:
        """Create a job for the event and run it to completion."""
        job = self.create_job(event_id, options)
        return await self.run_job(job.id, options)

    def is_running(self, event_id: str) -> bool:
        """Return true while this process runs a job for the event."""
        return event_id in self._active

    def _release(self, job_id: UUID) -> None:
        for event_id, active_id in list(self._active.items()):
            if active_id == job_id:
                del self._active[event_id]

    async def _run(self, progress: _JobProgress, options: BackupOptions) -> BackupJob:
        event_id = progress.job.event_id
        archive = self.storage.backend(self.archive_backend)
        try:
            photos = await asyncio.wait_for(
                asyncio.to_thread(self.photo_repository.list_event_photos, event_id),
                timeout=self.enumeration_timeout,
            )
        except TimeoutError:
            return self._finish(
                progress, BackupStatus.FAILED, "Timed out listing event photos"
            )
        except Exception as exc:
            logger.exception("Failed to list event photos", extra={"event_id": event_id})
            return self._finish(
                progress, BackupStatus.FAILED, f"Failed to list event photos: {exc}"
            )
        if not photos:
            return self._finish(
                progress, BackupStatus.FAILED, f"No photos found for event {event_id}"
            )

        progress.advance(
            BackupStatus.BACKING_UP,
            total_photos=len(photos),
            archive_url=archive.location_url(event_prefix(event_id)),
        )
        logger.info(
            "Backing up event photos",
            extra={"event_id": event_id, "total_photos": len(photos)},
        )

        archived: set[str] = set()
        semaphore = asyncio.Semaphore(min(max(self.concurrency, 1), MAX_CONCURRENCY))

        async def _copy(photo: EventPhoto) -> None:
            async with semaphore:
                try:
                    written, skipped = await self._copy_photo(photo, archive, options)
                except StorageError as exc:
                    logger.error(
                        "Failed to back up photo",
                        extra={"photo_id": photo.id, "error": str(exc)},
                    )
                    progress.record_failure(photo.id, str(exc))
                    return
                except Exception as exc:
                    logger.exception(
                        "Unexpected error backing up photo", extra={"photo_id": photo.id}
                    )
                    progress.record_failure(photo.id, f"{type(exc).__name__}: {exc}")
                    return
            archived.add(photo.id)
            progress.record_success(written, skipped)

        outcomes = await asyncio.gather(
            *(_copy(photo) for photo in photos), return_exceptions=True
        )
        crashed = [item for item in outcomes if isinstance(item, BaseException)]
        if crashed:
            raise crashed[0]

        job = progress.job
        status = (
            BackupStatus.FAILED
            if job.failure_ratio > self.failure_threshold
            else BackupStatus.COMPLETED
        )
        message = None
        if status == BackupStatus.COMPLETED and options.include_metadata:
            copied = [photo for photo in photos if photo.id in archived]
            message = await self._write_manifest(event_id, copied, archive)
        final = self._finish(progress, status, message)
        if final.status == BackupStatus.COMPLETED and options.archive:
            try:
                self.archive.archive_event(event_id, final.id)
            except StorageError:
                logger.exception(
                    "Backup completed but archiving failed",
                    extra={"event_id": event_id, "backup_id": str(final.id)},
                )
        return final

    async def _copy_photo(
        self, photo: EventPhoto, archive: StorageBackend, options: BackupOptions
    ) -> tuple[int, bool]:
        key = archive_key(photo)
        if await archive.exists(key):
            return 0, True
        source = self.storage.backend(photo.backend)
        data = await source.get(photo.remote_key)
        payload = await asyncio.to_thread(
            compress_image, data, photo.content_type, options.compression_quality
        )
        await archive.put(key, payload.data, payload.content_type)
        return len(payload.data), False

    async def _write_manifest(
        self, event_id: str, photos: list[EventPhoto], archive: StorageBackend
    ) -> str | None:
        key = f"{event_prefix(event_id)}{MANIFEST_NAME}"
        manifest = {
            "eventId": event_id,
            "photos": [
                {
                    "photoId": photo.id,
                    "archiveKey": archive_key(photo),
                    "filename": photo.filename,
                    "contentType": photo.content_type,
                    "sizeBytes": photo.size_bytes,
                }
                for photo in photos
            ],
        }
        body = json.dumps(manifest, indent=2, sort_keys=True).encode()
        try:
            if await archive.exists(key) and await archive.get(key) == body:
                return None
            await archive.put(key, body, "application/json")
        except StorageError as exc:
            logger.warning(
                "Failed to write backup manifest",
                extra={"event_id": event_id, "error": str(exc)},
            )
            return f"Metadata manifest was not written: {exc}"
        return None

    def _finish(
        self,
        progress: _JobProgress,
        status: BackupStatus,
        message: str | None,
        **changes: object,
    ) -> BackupJob:
        job = progress.advance(
            status, end_time=datetime.now(tz=UTC), message=message, **changes
        )
        log = logger.info if status == BackupStatus.COMPLETED else logger.error
        log(
            "Backup finished",
            extra={
                "event_id": job.event_id,
                "backup_id": str(job.id),
                "status": job.status.value,
                "successful_uploads": job.successful_uploads,
                "failed_uploads": job.failed_uploads,
            },
        )
        return job

    def _close_interrupted(self, event_id: str, superseded_by: UUID) -> None:
        for stale in self.status_store.active_jobs(event_id):
            closed = transition(
                stale,
                BackupStatus.FAILED,
                end_time=datetime.now(tz=UTC),
                failed_uploads=stale.total_photos - stale.successful_uploads,
                message=f"Interrupted before completion; resumed by {superseded_by}",
            )
            self.status_store.save(closed)
            logger.warning(
                "Closed interrupted backup job",
                extra={"event_id": event_id, "backup_id": str(stale.id)},
            )
