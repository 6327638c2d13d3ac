"""Supabase access to events and their photos."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from event_vault.domain.events import EventArchiveState, EventPhoto
from event_vault.domain.storage import BackendKind
from event_vault.services.archive import EventArchiveRepository
from event_vault.services.backups import EventPhotoRepository

# Provider names written by the upload path, mapped onto tiers.
_PROVIDERS = {
    "r2": BackendKind.PRIMARY,
    "cloudflare-r2": BackendKind.PRIMARY,
    "primary": BackendKind.PRIMARY,
    "google-drive": BackendKind.SECONDARY,
    "googledrive": BackendKind.SECONDARY,
    "gdrive": BackendKind.SECONDARY,
    "secondary": BackendKind.SECONDARY,
    "local": BackendKind.LOCAL,
}


@dataclass
class SupabaseEventPhotoRepository(EventPhotoRepository):
    """Reads event photo rows."""

    client: Client

    def list_event_photos(self, event_id: str) -> list[EventPhoto]:
        """Return the event's photos ordered by upload time."""
        response = (
            self.client.table("photos")
            .select(
                "id, event_id, storage_provider, storage_path, filename, "
                "content_type, file_size, uploaded_at"
            )
            .eq("event_id", event_id)
            .order("uploaded_at")
            .execute()
        )
        return [_parse_photo(row) for row in response.data or []]


@dataclass
class SupabaseEventArchiveRepository(EventArchiveRepository):
    """Reads and writes archive columns on the events table."""

    client: Client

    def get_archive_state(self, event_id: str) -> EventArchiveState | None:
        """Return archive fields for an event, if the event exists."""
        response = (
            self.client.table("events")
            .select("id, is_archived, archived_at, backup_id, archive_backend_url")
            .eq("id", event_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        archived_at = row.get("archived_at")
        backup_id = row.get("backup_id")
        return EventArchiveState(
            event_id=str(row["id"]),
            is_archived=bool(row.get("is_archived")),
            archived_at=(
                datetime.fromisoformat(archived_at)
                if isinstance(archived_at, str) and archived_at
                else None
            ),
            backup_id=UUID(backup_id) if backup_id else None,
            archive_backend_url=row.get("archive_backend_url"),
        )

    def update_archive_state(self, state: EventArchiveState) -> None:
        """Persist archive fields for an event."""
        self.client.table("events").update(
            {
                "is_archived": state.is_archived,
                "archived_at": (
                    state.archived_at.isoformat() if state.archived_at else None
                ),
                "backup_id": str(state.backup_id) if state.backup_id else None,
                "archive_backend_url": state.archive_backend_url,
            }
        ).eq("id", state.event_id).execute()


def _parse_photo(row: dict[str, object]) -> EventPhoto:
    provider = str(row.get("storage_provider") or "").lower()
    uploaded = row.get("uploaded_at")
    return EventPhoto(
        id=str(row["id"]),
        event_id=str(row["event_id"]),
        backend=_PROVIDERS.get(provider, BackendKind.PRIMARY),
        remote_key=str(row["storage_path"]),
        filename=str(row.get("filename") or row["storage_path"]),
        content_type=str(row.get("content_type") or "image/jpeg"),
        size_bytes=int(row.get("file_size") or 0),
        uploaded_at=(
            datetime.fromisoformat(uploaded)
            if isinstance(uploaded, str) and uploaded
            else None
        ),
    )
