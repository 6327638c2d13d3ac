"""Operator-facing aggregates over quotas and backup jobs."""

import logging
from dataclasses import dataclass

from event_vault.domain.backups import BackupJob, BackupStatus
from event_vault.domain.storage import (
    TIER_ORDER,
    BackendDescriptor,
    BackendKind,
    ObjectMeta,
)
from event_vault.services.quota import QuotaTracker
from event_vault.services.status import StatusStore
from event_vault.services.storage import StorageService
from event_vault.services.tiers import TierSelector, describe_decision

logger = logging.getLogger(__name__)

RECENT_JOBS = 10
NOTICE_PERCENT = 60
WARNING_PERCENT = 80
_UNITS = ("B", "KB", "MB", "GB", "TB")


@dataclass(frozen=True)
class BackupSummary:
    """Aggregate counts over stored backup jobs."""

    total_backups: int
    active_backups: int
    completed_backups: int
    failed_backups: int
    total_photos_backed_up: int
    total_photos_failed: int
    total_bytes_archived: int
    recent: list[BackupJob]


@dataclass
class StorageReporter:
    """Derives dashboard payloads; holds no state of its own."""

    quota: QuotaTracker
    status_store: StatusStore
    storage: StorageService
    selector: TierSelector
    fallback_capacities: dict[BackendKind, int]

    def backup_summary(self) -> BackupSummary:
        """Counts by status plus the most recent jobs."""
        jobs = self.status_store.get_all()
        return BackupSummary(
            total_backups=len(jobs),
            active_backups=sum(1 for job in jobs if job.status.is_active),
            completed_backups=sum(
                1 for job in jobs if job.status == BackupStatus.COMPLETED
            ),
            failed_backups=sum(1 for job in jobs if job.status == BackupStatus.FAILED),
            total_photos_backed_up=sum(job.successful_uploads for job in jobs),
            total_photos_failed=sum(job.failed_uploads for job in jobs),
            total_bytes_archived=sum(job.archived_bytes for job in jobs),
            recent=jobs[:RECENT_JOBS],
        )

    async def storage_info(self) -> dict[str, object]:
        """Per-backend usage; falls back to a static payload if stats are unreachable."""
        try:
            readings = await self.storage.refresh_usage()
        except Exception:
            logger.exception("Failed to refresh storage usage")
            return self.fallback_storage_info()
        if readings and not any(reading.ok for reading in readings):
            return self.fallback_storage_info()
        descriptors = self.quota.snapshot()
        backends = {
            kind.value: _backend_entry(descriptor)
            for kind in TIER_ORDER
            if (descriptor := descriptors.get(kind)) is not None
        }
        return {
            "backends": backends,
            "summary": _summary(list(descriptors.values())),
            "fallback": False,
        }

    def fallback_storage_info(self) -> dict[str, object]:
        """Static payload reported when no backend answered."""
        names = {kind: kind.value for kind in TIER_ORDER}
        for kind, descriptor in self.quota.snapshot().items():
            names[kind] = descriptor.name
        backends = {}
        for kind, capacity in self.fallback_capacities.items():
            backends[kind.value] = {
                "name": names[kind],
                "used": format_bytes(0),
                "available": format_bytes(capacity),
                "total": format_bytes(capacity),
                "usedBytes": 0,
                "availableBytes": capacity,
                "usagePercentage": 0,
                "status": "unknown",
                "level": "good",
            }
        total = sum(self.fallback_capacities.values())
        return {
            "backends": backends,
            "summary": {
                "totalUsed": format_bytes(0),
                "totalAvailable": format_bytes(total),
                "overallUsage": 0,
            },
            "fallback": True,
        }

    def tier_selection(self, meta: ObjectMeta) -> dict[str, object]:
        """Placement decision with per-backend space checks."""
        decision = self.selector.select_tier(meta)
        availability = self.selector.space_availability(meta.size_bytes or 0)
        return {
            "selectedTier": {
                "tier": decision.backend.value,
                "compressionQuality": decision.compression_quality,
                "priority": decision.priority.value,
            },
            "spaceAvailability": {
                kind.value: has_space for kind, has_space in availability.items()
            },
            "reason": describe_decision(decision, availability),
        }


def format_bytes(size: int) -> str:
    """Render a byte count the way dashboards show it, e.g. `1.5 GB`."""
    value = float(max(size, 0))
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_UNITS[unit]}"


def usage_level(percentage: float) -> str:
    """Map a usage percentage to a dashboard level."""
    if percentage > WARNING_PERCENT:
        return "warning"
    if percentage > NOTICE_PERCENT:
        return "notice"
    return "good"


def _backend_entry(descriptor: BackendDescriptor) -> dict[str, object]:
    percentage = round(descriptor.usage_ratio * 100)
    return {
        "name": descriptor.name,
        "used": format_bytes(descriptor.used_bytes),
        "available": format_bytes(
            max(descriptor.available_bytes - descriptor.used_bytes, 0)
        ),
        "total": format_bytes(descriptor.available_bytes),
        "usedBytes": descriptor.used_bytes,
        "availableBytes": descriptor.available_bytes,
        "usagePercentage": percentage,
        "status": descriptor.status.value,
        "level": usage_level(percentage),
    }


def _summary(descriptors: list[BackendDescriptor]) -> dict[str, object]:
    used = sum(descriptor.used_bytes for descriptor in descriptors)
    total = sum(descriptor.available_bytes for descriptor in descriptors)
    return {
        "totalUsed": format_bytes(used),
        "totalAvailable": format_bytes(total),
        "overallUsage": round(used / total * 100) if total else 0,
    }
