"""Error taxonomy for storage orchestration."""


class StorageError(Exception):
    """Base class for storage orchestration failures."""


class ValidationError(StorageError):
    """Caller supplied invalid input."""


class BackendUnavailable(StorageError):
    """A backend could not be reached or rejected our credentials."""


class QuotaExceeded(StorageError):
    """A backend rejected a write because it is out of capacity."""


class ObjectNotFound(StorageError):
    """The requested object, job or event does not exist."""


class JobInProgress(StorageError):
    """An active backup job already exists for the event."""


class PreconditionFailed(StorageError):
    """The operation requires state that is not present."""


class InvalidTransition(StorageError):
    """A backup job status change is not allowed."""
