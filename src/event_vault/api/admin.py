"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from event_vault.api.models import (
    StorageCleanupRequest,
    TierSelectionRequest,
    summary_payload,
)

if TYPE_CHECKING:
    from event_vault.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])

DEFAULT_MAX_AGE_DAYS = 7


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/backup/status", dependencies=[Depends(require_admin)])
async def backup_status(request: Request) -> dict[str, object]:
    """Return backup counts and the most recent jobs."""
    container: AppContainer = request.app.state.container
    summary = container.reporter.backup_summary()
    return {"success": True, "data": summary_payload(summary)}


@router.delete("/backup/status", dependencies=[Depends(require_admin)])
async def cleanup_backup_status(
    request: Request,
    max_age: int = Query(default=DEFAULT_MAX_AGE_DAYS, alias="maxAge", ge=0),
) -> dict[str, object]:
    """Remove finished jobs older than `maxAge` days."""
    container: AppContainer = request.app.state.container
    removed = container.status_store.cleanup_older_than(timedelta(days=max_age))
    return {
        "success": True,
        "message": f"Cleaned up backup jobs older than {max_age} days",
        "data": {"removed": removed},
    }


@router.get("/storage/info", dependencies=[Depends(require_admin)])
async def storage_info(request: Request) -> dict[str, object]:
    """Return per-backend usage; degrades to a static payload."""
    container: AppContainer = request.app.state.container
    return {"success": True, "data": await container.reporter.storage_info()}


@router.post("/storage/refresh", dependencies=[Depends(require_admin)])
async def refresh_storage(request: Request) -> dict[str, object]:
    """Re-read usage from every configured backend."""
    container: AppContainer = request.app.state.container
    readings = await container.storage_service.refresh_usage()
    return {
        "success": True,
        "data": {
            reading.kind.value: {"ok": reading.ok, "error": reading.error}
            for reading in readings
        },
    }


@router.post("/storage/tier-selection", dependencies=[Depends(require_admin)])
async def tier_selection(
    payload: TierSelectionRequest, request: Request
) -> dict[str, object]:
    """Report where an object of the given shape would be placed."""
    container: AppContainer = request.app.state.container
    return {"success": True, "data": container.reporter.tier_selection(payload.to_meta())}


@router.post("/storage/cleanup", dependencies=[Depends(require_admin)])
async def cleanup_local_storage(
    request: Request, payload: StorageCleanupRequest | None = None
) -> dict[str, object]:
    """Delete local fallback files older than the retention window."""
    container: AppContainer = request.app.state.container
    days = container.settings.local_retention_days
    if payload is not None and payload.retention_days is not None:
        days = payload.retention_days
    removed, freed = await container.storage_service.purge_local(timedelta(days=days))
    return {
        "success": True,
        "message": f"Removed local files older than {days} days",
        "data": {"removedFiles": removed, "freedBytes": freed, "retentionDays": days},
    }
