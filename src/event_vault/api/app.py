"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from event_vault.api.admin import router as admin_router
from event_vault.api.events import router as events_router
from event_vault.app_logging import configure_logging
from event_vault.config import is_development
from event_vault.containers import AppContainer
from event_vault.domain.errors import (
    BackendUnavailable,
    InvalidTransition,
    JobInProgress,
    ObjectNotFound,
    PreconditionFailed,
    QuotaExceeded,
    StorageError,
    ValidationError,
)

_STATUS_CODES: dict[type[StorageError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ObjectNotFound: status.HTTP_404_NOT_FOUND,
    JobInProgress: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    PreconditionFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
    BackendUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    QuotaExceeded: status.HTTP_507_INSUFFICIENT_STORAGE,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.storage_service.refresh_usage()
        except Exception:
            logger.exception("Failed to read backend usage at startup")
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)
    app.include_router(events_router)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        code = status_code_for(exc)
        if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "error": str(exc)},
            )
        return _error_response(container, code, str(exc), exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(
            container, status.HTTP_400_BAD_REQUEST, "Invalid request", exc
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app


def status_code_for(exc: StorageError) -> int:
    """HTTP status for a storage error, resolved through its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in _STATUS_CODES:
            return _STATUS_CODES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(
    container: AppContainer, code: int, message: str, exc: Exception
) -> JSONResponse:
    """Error body with debug detail in development configurations."""
    body: dict[str, object] = {"success": False, "message": message}
    if is_development(container.settings):
        body["error"] = f"{type(exc).__name__}: {exc}".strip()
    return JSONResponse(status_code=code, content=body)
