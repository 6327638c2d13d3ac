"""Placement policy for uploaded objects."""

from dataclasses import dataclass

from event_vault.domain.errors import ValidationError
from event_vault.domain.storage import (
    BackendKind,
    ObjectMeta,
    TierDecision,
    TierPriority,
)
from event_vault.services.quota import QuotaTracker


@dataclass
class TierSelector:
    """Chooses a backend and compression quality for an object."""

    quota: QuotaTracker
    default_quality: float = 0.90
    premium_quality: float = 0.95

    def select_tier(self, meta: ObjectMeta) -> TierDecision:
        """Return the placement for `meta`; degrades tiers instead of failing."""
        if meta.size_bytes is None:
            raise ValidationError("File size is required")
        if meta.size_bytes < 0:
            raise ValidationError("File size must be non-negative")
        quality = meta.compression_quality
        if quality is not None and not 0 < quality <= 1:
            raise ValidationError("Compression quality must be in (0, 1]")

        highlighted = meta.is_homepage or meta.is_featured
        if self.quota.has_space(BackendKind.PRIMARY, meta.size_bytes):
            return TierDecision(
                backend=BackendKind.PRIMARY,
                compression_quality=self._quality(meta),
                priority=TierPriority.HIGH if highlighted else TierPriority.MEDIUM,
            )
        if self.quota.has_space(BackendKind.SECONDARY, meta.size_bytes):
            return TierDecision(
                backend=BackendKind.SECONDARY,
                compression_quality=self._quality(meta),
                priority=TierPriority.MEDIUM,
            )
        return TierDecision(
            backend=BackendKind.LOCAL,
            compression_quality=None,
            priority=TierPriority.LOW,
        )

    def space_availability(self, size_bytes: int) -> dict[BackendKind, bool]:
        """Return whether each tier could take `size_bytes` right now."""
        return {
            kind: self.quota.has_space(kind, size_bytes)
            for kind in (BackendKind.PRIMARY, BackendKind.SECONDARY, BackendKind.LOCAL)
        }

    def _quality(self, meta: ObjectMeta) -> float:
        if meta.compression_quality is not None:
            return meta.compression_quality
        if meta.is_homepage or meta.is_featured or meta.is_premium:
            return self.premium_quality
        return self.default_quality


def describe_decision(
    decision: TierDecision, availability: dict[BackendKind, bool]
) -> str:
    """Human-readable reason for a placement decision."""
    if decision.backend == BackendKind.PRIMARY:
        return "Primary object store selected for fast delivery"
    if decision.backend == BackendKind.SECONDARY:
        if not availability.get(BackendKind.PRIMARY, False):
            return "Primary store is out of space; using the archive provider"
        return "Archive provider selected"
    return "Remote tiers are out of space; stored locally for later promotion"
