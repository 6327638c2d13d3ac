"""Domain models for events and their photos."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from event_vault.domain.storage import BackendKind


@dataclass(frozen=True)
class EventPhoto:
    """A photo row as enumerated from the event database."""

    id: str
    event_id: str
    backend: BackendKind
    remote_key: str
    filename: str
    content_type: str
    size_bytes: int
    uploaded_at: datetime | None = None


@dataclass(frozen=True)
class EventArchiveState:
    """Archive fields attached to an event record."""

    event_id: str
    is_archived: bool = False
    archived_at: datetime | None = None
    backup_id: UUID | None = None
    archive_backend_url: str | None = None
