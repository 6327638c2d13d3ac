"""Per-backend capacity bookkeeping."""

import logging
import threading
from dataclasses import dataclass, field, replace

from event_vault.domain.errors import ValidationError
from event_vault.domain.storage import BackendDescriptor, BackendKind, BackendStatus

logger = logging.getLogger(__name__)


@dataclass
class QuotaTracker:
    """Tracks used/available bytes per backend.

    `available_bytes` is the backend's total capacity. A share of it
    (`safety_margin`) is held in reserve so writes never land right at the
    boundary. Counters are guarded by one lock per backend.
    """

    safety_margin: float = 0.05
    _descriptors: dict[BackendKind, BackendDescriptor] = field(default_factory=dict)
    _locks: dict[BackendKind, threading.Lock] = field(default_factory=dict)

    def register(
        self,
        kind: BackendKind,
        name: str,
        available_bytes: int,
        used_bytes: int = 0,
        status: BackendStatus = BackendStatus.AVAILABLE,
    ) -> BackendDescriptor:
        """Start tracking a backend."""
        descriptor = BackendDescriptor(
            kind=kind,
            name=name,
            used_bytes=used_bytes,
            available_bytes=available_bytes,
            status=status,
        )
        self._descriptors[kind] = descriptor
        self._locks[kind] = threading.Lock()
        return descriptor

    def record_usage(self, kind: BackendKind, delta_bytes: int) -> None:
        """Adjust the running total by a signed delta."""
        descriptor = self._require(kind)
        with self._locks[kind]:
            descriptor.used_bytes = max(descriptor.used_bytes + delta_bytes, 0)

    def has_space(self, kind: BackendKind, requested_bytes: int) -> bool:
        """Return true when the backend can take `requested_bytes` above reserve."""
        descriptor = self._descriptors.get(kind)
        if descriptor is None or descriptor.status == BackendStatus.UNAVAILABLE:
            return False
        with self._locks[kind]:
            reserve = descriptor.available_bytes * self.safety_margin
            free = descriptor.available_bytes - descriptor.used_bytes - reserve
        return requested_bytes <= free

    def refresh(self, kind: BackendKind, used_bytes: int, available_bytes: int) -> None:
        """Replace tracked counters with an authoritative reading."""
        if used_bytes < 0 or available_bytes < 0:
            raise ValidationError("Usage readings must be non-negative")
        descriptor = self._require(kind)
        with self._locks[kind]:
            descriptor.used_bytes = used_bytes
            descriptor.available_bytes = available_bytes
        logger.info(
            "Refreshed backend usage",
            extra={"backend": kind.value, "used_bytes": used_bytes},
        )

    def set_status(self, kind: BackendKind, status: BackendStatus) -> None:
        """Record backend availability."""
        descriptor = self._require(kind)
        with self._locks[kind]:
            descriptor.status = status

    def descriptor(self, kind: BackendKind) -> BackendDescriptor | None:
        """Return a copy of the tracked descriptor."""
        descriptor = self._descriptors.get(kind)
        if descriptor is None:
            return None
        with self._locks[kind]:
            return replace(descriptor)

    def snapshot(self) -> dict[BackendKind, BackendDescriptor]:
        """Return copies of every tracked descriptor."""
        return {
            kind: copy
            for kind in self._descriptors
            if (copy := self.descriptor(kind)) is not None
        }

    def _require(self, kind: BackendKind) -> BackendDescriptor:
        descriptor = self._descriptors.get(kind)
        if descriptor is None:
            raise ValidationError(f"Unknown storage backend: {kind}")
        return descriptor
