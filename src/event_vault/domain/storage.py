"""Domain models for storage backends and placement decisions."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class BackendKind(StrEnum):
    """Storage tiers in fallback order."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    LOCAL = "local"


TIER_ORDER: tuple[BackendKind, ...] = (
    BackendKind.PRIMARY,
    BackendKind.SECONDARY,
    BackendKind.LOCAL,
)


class BackendStatus(StrEnum):
    """Availability reported for a backend."""

    AVAILABLE = "available"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class TierPriority(StrEnum):
    """Priority attached to a placement decision."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class BackendDescriptor:
    """Tracked capacity and availability for one backend."""

    kind: BackendKind
    name: str
    used_bytes: int
    available_bytes: int
    status: BackendStatus = BackendStatus.AVAILABLE

    @property
    def usage_ratio(self) -> float:
        if self.available_bytes <= 0:
            return 0.0
        return self.used_bytes / self.available_bytes


@dataclass(frozen=True)
class ObjectMeta:
    """Caller-supplied metadata used to place an object."""

    size_bytes: int | None
    content_type: str = "image/jpeg"
    event_id: str | None = None
    is_homepage: bool = False
    is_featured: bool = False
    is_premium: bool = False
    compression_quality: float | None = None


@dataclass(frozen=True)
class TierDecision:
    """Placement chosen for an object."""

    backend: BackendKind
    compression_quality: float | None
    priority: TierPriority


@dataclass(frozen=True)
class StorageObjectRef:
    """Identifies a stored object. Re-uploads create a new ref."""

    id: UUID
    event_id: str | None
    backend: BackendKind
    remote_key: str
    size_bytes: int
    content_type: str
    uploaded_at: datetime
    url: str | None = None
    thumbnail_url: str | None = None


@dataclass(frozen=True)
class ObjectInfo:
    """Listing entry returned by a backend."""

    key: str
    size_bytes: int
    modified_at: datetime | None = None
