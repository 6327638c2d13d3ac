"""Event archive lifecycle."""

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from event_vault.domain.backups import BackupStatus
from event_vault.domain.errors import ObjectNotFound, PreconditionFailed
from event_vault.domain.events import EventArchiveState
from event_vault.services.status import StatusStore

logger = logging.getLogger(__name__)


class EventArchiveRepository(Protocol):
    """Persistence interface for event archive fields."""

    def get_archive_state(self, event_id: str) -> EventArchiveState | None:
        """Return archive fields for an event, or None if the event is unknown."""

    def update_archive_state(self, state: EventArchiveState) -> None:
        """Persist archive fields for an event."""


@dataclass
class ArchiveLifecycle:
    """Moves events between active and archived."""

    repository: EventArchiveRepository
    status_store: StatusStore

    def get_state(self, event_id: str) -> EventArchiveState:
        """Return the current archive state of an event."""
        state = self.repository.get_archive_state(event_id)
        if state is None:
            raise ObjectNotFound(f"Event {event_id} not found")
        return state

    def archive_event(self, event_id: str, backup_id: UUID) -> EventArchiveState:
        """Mark an event archived once its backup job has completed."""
        job = self.status_store.get(backup_id)
        if job is None or job.event_id != event_id:
            raise PreconditionFailed(
                f"Cannot archive event {event_id}: backup {backup_id} not found"
            )
        if job.status != BackupStatus.COMPLETED:
            raise PreconditionFailed(
                f"Cannot archive event {event_id}: backup {backup_id} is {job.status}"
            )
        current = self.get_state(event_id)
        state = replace(
            current,
            is_archived=True,
            archived_at=datetime.now(tz=UTC),
            backup_id=backup_id,
            archive_backend_url=job.archive_url,
        )
        self.repository.update_archive_state(state)
        logger.info(
            "Archived event", extra={"event_id": event_id, "backup_id": str(backup_id)}
        )
        return state

    def unarchive_event(self, event_id: str) -> EventArchiveState:
        """Clear the archived flag; the backup reference is kept for audit."""
        current = self.get_state(event_id)
        state = replace(current, is_archived=False, archived_at=None)
        self.repository.update_archive_state(state)
        logger.info("Unarchived event", extra={"event_id": event_id})
        return state
