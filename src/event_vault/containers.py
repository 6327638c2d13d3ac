"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from supabase import create_client

from event_vault.adapters.google_drive_storage import GoogleDriveStorageBackend
from event_vault.adapters.local_storage import LocalStorageBackend
from event_vault.adapters.r2_storage import R2StorageBackend
from event_vault.adapters.retry import RetryPolicy
from event_vault.adapters.storage_backend import StorageBackend
from event_vault.adapters.supabase_backup_repository import (
    SupabaseBackupJobRepository,
)
from event_vault.adapters.supabase_event_repository import (
    SupabaseEventArchiveRepository,
    SupabaseEventPhotoRepository,
)
from event_vault.config import Settings
from event_vault.domain.storage import BackendKind, BackendStatus
from event_vault.services.archive import ArchiveLifecycle, EventArchiveRepository
from event_vault.services.backups import BackupOrchestrator, EventPhotoRepository
from event_vault.services.cache import BoundedCache
from event_vault.services.quota import QuotaTracker
from event_vault.services.reporting import StorageReporter
from event_vault.services.status import StatusStore
from event_vault.services.storage import StorageService
from event_vault.services.tiers import TierSelector

R2_NAME = "Cloudflare R2"
DRIVE_NAME = "Google Drive"
LOCAL_NAME = "Local disk"


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    quota: QuotaTracker
    tier_selector: TierSelector
    storage_service: StorageService
    status_store: StatusStore
    archive_lifecycle: ArchiveLifecycle
    backup_orchestrator: BackupOrchestrator
    reporter: StorageReporter
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    retry = RetryPolicy(
        max_attempts=resolved_settings.backend_max_attempts,
        timeout=resolved_settings.backend_timeout_seconds,
    )
    quota = QuotaTracker(safety_margin=resolved_settings.quota_safety_margin)
    backends = build_backends(resolved_settings, quota, retry)
    return assemble_container(
        settings=resolved_settings,
        quota=quota,
        backends=backends,
        status_store=StatusStore(
            SupabaseBackupJobRepository(supabase_client),
            cache=BoundedCache(resolved_settings.status_cache_size),
        ),
        photo_repository=SupabaseEventPhotoRepository(supabase_client),
        archive_repository=SupabaseEventArchiveRepository(supabase_client),
    )


def build_backends(
    settings: Settings, quota: QuotaTracker, retry: RetryPolicy
) -> dict[BackendKind, StorageBackend]:
    """Register every tier with the tracker and create adapters for configured ones."""
    backends: dict[BackendKind, StorageBackend] = {}
    if settings.r2_configured:
        quota.register(BackendKind.PRIMARY, R2_NAME, settings.r2_capacity_bytes)
        backends[BackendKind.PRIMARY] = R2StorageBackend.create(
            account_id=settings.r2_account_id or "",
            access_key_id=settings.r2_access_key_id or "",
            secret_access_key=settings.r2_secret_access_key or "",
            bucket_name=settings.r2_bucket_name or "",
            quota=quota,
            retry=retry,
            public_url=settings.r2_public_url,
        )
    else:
        quota.register(
            BackendKind.PRIMARY,
            R2_NAME,
            settings.r2_capacity_bytes,
            status=BackendStatus.UNAVAILABLE,
        )

    if settings.google_drive_configured:
        quota.register(
            BackendKind.SECONDARY, DRIVE_NAME, settings.google_drive_capacity_bytes
        )
        backends[BackendKind.SECONDARY] = GoogleDriveStorageBackend.create(
            client_id=settings.google_drive_client_id or "",
            client_secret=settings.google_drive_client_secret or "",
            refresh_token=settings.google_drive_refresh_token or "",
            folder_id=settings.google_drive_folder_id or "",
            quota=quota,
            retry=retry,
        )
    else:
        quota.register(
            BackendKind.SECONDARY,
            DRIVE_NAME,
            settings.google_drive_capacity_bytes,
            status=BackendStatus.UNAVAILABLE,
        )

    # Local capacity is the disk size, read on the first usage refresh.
    quota.register(BackendKind.LOCAL, LOCAL_NAME, 0)
    backends[BackendKind.LOCAL] = LocalStorageBackend(
        root=Path(settings.local_storage_path), quota=quota, retry=retry
    )
    return backends


def assemble_container(  # noqa: PLR0913
    settings: Settings,
    quota: QuotaTracker,
    backends: dict[BackendKind, StorageBackend],
    status_store: StatusStore,
    photo_repository: EventPhotoRepository,
    archive_repository: EventArchiveRepository,
) -> AppContainer:
    """Wire services around already-built adapters and repositories."""
    tier_selector = TierSelector(
        quota,
        default_quality=settings.default_compression_quality,
        premium_quality=settings.premium_compression_quality,
    )
    storage_service = StorageService(
        selector=tier_selector,
        quota=quota,
        backends=backends,
        usage_timeout=settings.backend_timeout_seconds,
    )
    archive_lifecycle = ArchiveLifecycle(archive_repository, status_store)
    backup_orchestrator = BackupOrchestrator(
        photo_repository=photo_repository,
        status_store=status_store,
        storage=storage_service,
        archive=archive_lifecycle,
        concurrency=settings.backup_concurrency,
        failure_threshold=settings.backup_failure_threshold,
        enumeration_timeout=settings.backend_timeout_seconds,
    )
    reporter = StorageReporter(
        quota=quota,
        status_store=status_store,
        storage=storage_service,
        selector=tier_selector,
        fallback_capacities={
            BackendKind.PRIMARY: settings.r2_capacity_bytes,
            BackendKind.SECONDARY: settings.google_drive_capacity_bytes,
        },
    )

    async def close_resources() -> None:
        for backend in backends.values():
            await backend.close()

    return AppContainer(
        settings=settings,
        quota=quota,
        tier_selector=tier_selector,
        storage_service=storage_service,
        status_store=status_store,
        archive_lifecycle=archive_lifecycle,
        backup_orchestrator=backup_orchestrator,
        reporter=reporter,
        close_resources=close_resources,
    )
