"""Map workspace exceptions to HTTP responses."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from collabhub_workspace.errors import (
    ContainerEngineError,
    FileLockedError,
    InvalidMoveError,
    NameConflictError,
    ProjectNotFoundError,
    RecordNotFoundError,
    WorkspaceError,
    WorkspaceUnavailableError,
)
from collabhub_workspace.validation import ValidationError

logger = structlog.get_logger()

STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidMoveError, status.HTTP_400_BAD_REQUEST),
    (ProjectNotFoundError, status.HTTP_404_NOT_FOUND),
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (NameConflictError, status.HTTP_409_CONFLICT),
    (FileLockedError, status.HTTP_423_LOCKED),
    (WorkspaceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ContainerEngineError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: Exception) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _workspace_error_handler(request: Request, exc: Exception) -> JSONResponse:
    code = status_for(exc)
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            "Workspace operation failed",
            path=str(request.url.path),
            method=request.method,
            exc_type=type(exc).__name__,
            error=str(exc),
        )
        detail = "Workspace operation failed"
        if code == status.HTTP_503_SERVICE_UNAVAILABLE:
            detail = "Workspace is unavailable"
        return JSONResponse(status_code=code, content={"detail": detail})
    return JSONResponse(status_code=code, content={"detail": str(exc)})


def install_error_handlers(app: FastAPI) -> None:
    """Register the workspace exception handlers on an app."""
    app.add_exception_handler(WorkspaceError, _workspace_error_handler)
    app.add_exception_handler(ValidationError, _workspace_error_handler)
