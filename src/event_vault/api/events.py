"""Per-event backup, archive and storage endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from event_vault.api.admin import require_admin
from event_vault.api.models import (
    ArchiveRequest,
    BackupRequest,
    archive_payload,
    job_payload,
)
from event_vault.domain.errors import ObjectNotFound, ValidationError

if TYPE_CHECKING:
    from event_vault.containers import AppContainer

router = APIRouter(
    prefix="/events", tags=["events"], dependencies=[Depends(require_admin)]
)


@router.post("/{event_id}/backup")
async def start_backup(
    event_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    payload: BackupRequest | None = None,
) -> dict[str, object]:
    """Create a backup job and run it in the background."""
    container: AppContainer = request.app.state.container
    options = (payload or BackupRequest()).to_options()
    orchestrator = container.backup_orchestrator
    job = orchestrator.create_job(event_id, options)
    background_tasks.add_task(orchestrator.run_job, job.id, options)
    return {
        "success": True,
        "message": "Backup started",
        "data": job_payload(job),
    }


@router.get("/{event_id}/backup")
async def backup_status(
    event_id: str,
    request: Request,
    backup_id: UUID | None = Query(default=None, alias="backupId"),
) -> dict[str, object]:
    """Return one job, or every job for the event when no id is given."""
    container: AppContainer = request.app.state.container
    if backup_id is None:
        jobs = container.status_store.get_by_event(event_id)
        return {"success": True, "data": [job_payload(job) for job in jobs]}
    job = container.status_store.get(backup_id)
    if job is None or job.event_id != event_id:
        raise ObjectNotFound(f"Backup {backup_id} not found for event {event_id}")
    return {"success": True, "data": job_payload(job)}


@router.post("/{event_id}/archive")
async def archive_event(
    event_id: str, payload: ArchiveRequest, request: Request
) -> dict[str, object]:
    """Archive an event whose backup has completed."""
    if payload.backup_id is None:
        raise ValidationError("backupId is required")
    container: AppContainer = request.app.state.container
    state = container.archive_lifecycle.archive_event(event_id, payload.backup_id)
    return {
        "success": True,
        "message": "Event archived",
        "data": archive_payload(state),
    }


@router.get("/{event_id}/archive")
async def archive_status(event_id: str, request: Request) -> dict[str, object]:
    """Return the event's archive fields."""
    container: AppContainer = request.app.state.container
    state = container.archive_lifecycle.get_state(event_id)
    return {"success": True, "data": archive_payload(state)}


@router.delete("/{event_id}/archive")
async def unarchive_event(event_id: str, request: Request) -> dict[str, object]:
    """Return an archived event to the active set."""
    container: AppContainer = request.app.state.container
    state = container.archive_lifecycle.unarchive_event(event_id)
    return {
        "success": True,
        "message": "Event unarchived",
        "data": archive_payload(state),
    }


@router.get("/{event_id}/storage")
async def event_storage(event_id: str, request: Request) -> dict[str, object]:
    """Objects and bytes held under the event prefix on each backend."""
    container: AppContainer = request.app.state.container
    summary = await container.storage_service.event_storage(event_id)
    return {"success": True, "data": summary}
