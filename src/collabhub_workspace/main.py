"""CollabHub Workspace Service - project containers and tree reconciliation."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from collabhub_workspace import __version__
from collabhub_workspace.config import settings
from collabhub_workspace.deps import init_services, shutdown_services
from collabhub_workspace.observability import configure_logging, init_sentry
from collabhub_workspace.routes import (
    files_router,
    folders_router,
    health_router,
    install_error_handlers,
    projects_router,
    watchers_router,
)

init_sentry("collabhub-workspace")

# Configure unified logging (structlog + Python logging + Sentry breadcrumbs)
logger = configure_logging("collabhub-workspace")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan - startup and shutdown."""
    logger.info("Starting CollabHub Workspace Service", environment=settings.environment)
    await init_services()

    yield

    logger.info("Shutting down CollabHub Workspace Service")
    await shutdown_services(timeout=settings.shutdown_timeout)
    logger.info("Shutdown completed")


app = FastAPI(
    title="CollabHub Workspace Service",
    description="Per-project container workspaces kept in sync with the project tree",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.include_router(health_router)
app.include_router(projects_router)
app.include_router(files_router)
app.include_router(folders_router)
app.include_router(watchers_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"service": "collabhub-workspace", "version": __version__}
