"""Workspace service routes."""

from collabhub_workspace.routes.errors import install_error_handlers
from collabhub_workspace.routes.files import router as files_router
from collabhub_workspace.routes.folders import router as folders_router
from collabhub_workspace.routes.health import router as health_router
from collabhub_workspace.routes.projects import router as projects_router
from collabhub_workspace.routes.watchers import router as watchers_router

__all__ = [
    "files_router",
    "folders_router",
    "health_router",
    "install_error_handlers",
    "projects_router",
    "watchers_router",
]
