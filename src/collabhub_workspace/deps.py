"""Dependency injection for the workspace service."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, status

from collabhub_workspace.config import settings
from collabhub_workspace.managers.session_coordinator import SessionCoordinator
from collabhub_workspace.managers.workspace_manager import WorkspaceManager
from collabhub_workspace.runtime.client import ContainerRuntime
from collabhub_workspace.services.file_service import FileService
from collabhub_workspace.storage.base import TreeStore
from collabhub_workspace.storage.mongo import MongoTreeStore
from collabhub_workspace.sync.reconciliation import ReconciliationService
from collabhub_workspace.validation import validate_user_id
from collabhub_workspace.watchers.file_watcher import FileWatcher
from collabhub_workspace.watchers.folder_watcher import FolderWatcher

logger = structlog.get_logger()


def get_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> str:
    """Extract the caller's user ID from the request header.

    Authentication happens upstream; the gateway passes the authenticated
    user's ID in this header.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user ID header",
        )
    return validate_user_id(x_user_id)


AuthenticatedUser = Annotated[str, Depends(get_user_id)]


class ServiceSingleton:
    """Singleton holder for the service object graph."""

    _store: TreeStore | None = None
    _runtime: ContainerRuntime | None = None
    _workspace_manager: WorkspaceManager | None = None
    _reconciliation: ReconciliationService | None = None
    _file_watcher: FileWatcher | None = None
    _folder_watcher: FolderWatcher | None = None
    _file_service: FileService | None = None
    _sessions: SessionCoordinator | None = None

    @classmethod
    def get_store(cls) -> TreeStore:
        if cls._store is None:
            cls._store = MongoTreeStore(settings.mongodb_url, settings.mongodb_database)
        return cls._store

    @classmethod
    def get_runtime(cls) -> ContainerRuntime:
        if cls._runtime is None:
            cls._runtime = ContainerRuntime()
        return cls._runtime

    @classmethod
    def get_workspace_manager(cls) -> WorkspaceManager:
        if cls._workspace_manager is None:
            cls._workspace_manager = WorkspaceManager(cls.get_runtime(), cls.get_store())
        return cls._workspace_manager

    @classmethod
    def get_reconciliation(cls) -> ReconciliationService:
        if cls._reconciliation is None:
            cls._reconciliation = ReconciliationService(
                cls.get_store(), cls.get_workspace_manager()
            )
        return cls._reconciliation

    @classmethod
    def get_file_watcher(cls) -> FileWatcher:
        if cls._file_watcher is None:
            cls._file_watcher = FileWatcher(cls.get_workspace_manager())
        return cls._file_watcher

    @classmethod
    def get_folder_watcher(cls) -> FolderWatcher:
        if cls._folder_watcher is None:
            cls._folder_watcher = FolderWatcher(
                cls.get_workspace_manager(), cls.get_reconciliation()
            )
        return cls._folder_watcher

    @classmethod
    def get_file_service(cls) -> FileService:
        if cls._file_service is None:
            cls._file_service = FileService(cls.get_store(), cls.get_workspace_manager())
        return cls._file_service

    @classmethod
    def get_sessions(cls) -> SessionCoordinator:
        if cls._sessions is None:
            cls._sessions = SessionCoordinator(
                cls.get_workspace_manager(),
                cls.get_file_watcher(),
                cls.get_folder_watcher(),
            )
        return cls._sessions

    @classmethod
    def clear_instance(cls) -> None:
        """Clear the singleton instances."""
        cls._store = None
        cls._runtime = None
        cls._workspace_manager = None
        cls._reconciliation = None
        cls._file_watcher = None
        cls._folder_watcher = None
        cls._file_service = None
        cls._sessions = None


def get_store() -> TreeStore:
    return ServiceSingleton.get_store()


def get_workspace_manager() -> WorkspaceManager:
    return ServiceSingleton.get_workspace_manager()


def get_reconciliation() -> ReconciliationService:
    return ServiceSingleton.get_reconciliation()


def get_file_watcher() -> FileWatcher:
    return ServiceSingleton.get_file_watcher()


def get_folder_watcher() -> FolderWatcher:
    return ServiceSingleton.get_folder_watcher()


def get_file_service() -> FileService:
    return ServiceSingleton.get_file_service()


def get_sessions() -> SessionCoordinator:
    return ServiceSingleton.get_sessions()


async def init_services() -> None:
    """Create the object graph and the database indexes."""
    store = ServiceSingleton.get_store()
    if isinstance(store, MongoTreeStore):
        await store.ensure_indexes()
    ServiceSingleton.get_sessions()
    logger.info("Workspace services initialized", image=settings.workspace_image)


async def shutdown_services(timeout: float) -> None:
    """Stop watchers gracefully, falling back to an emergency stop on timeout."""
    watchers = [ServiceSingleton._file_watcher, ServiceSingleton._folder_watcher]
    active = [w for w in watchers if w is not None]

    async def stop_watchers() -> None:
        for watcher in active:
            await watcher.stop_all()

    try:
        await asyncio.wait_for(stop_watchers(), timeout=timeout)
    except TimeoutError:
        logger.warning("Watcher shutdown timed out, forcing stop", timeout=timeout)
        for watcher in active:
            watcher.emergency_stop()

    if ServiceSingleton._store is not None:
        await ServiceSingleton._store.close()
    if ServiceSingleton._runtime is not None:
        with contextlib.suppress(Exception):
            ServiceSingleton._runtime.close()
    ServiceSingleton.clear_instance()
