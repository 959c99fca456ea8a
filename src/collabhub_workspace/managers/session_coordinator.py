"""Hooks for terminal sessions opening and closing on a project."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from collabhub_workspace.models.workspace import SyncReport, WorkspaceStatus
from collabhub_workspace.validation import validate_project_id

if TYPE_CHECKING:
    from collabhub_workspace.managers.workspace_manager import WorkspaceManager
    from collabhub_workspace.watchers.file_watcher import FileWatcher
    from collabhub_workspace.watchers.folder_watcher import FolderWatcher

logger = structlog.get_logger()


class SessionState(BaseModel):
    project_id: str
    status: WorkspaceStatus
    open_sessions: int
    file_watcher_active: bool
    folder_watcher_active: bool
    pushed: SyncReport | None = None
    pulled: SyncReport | None = None


class SessionCoordinator:
    """Starts a project's workspace and watchers with its first terminal
    session and stops the watchers when the last one closes."""

    def __init__(
        self,
        workspace: WorkspaceManager,
        file_watcher: FileWatcher,
        folder_watcher: FolderWatcher,
    ) -> None:
        self.workspace = workspace
        self.file_watcher = file_watcher
        self.folder_watcher = folder_watcher
        self._sessions: dict[str, int] = {}

    def open_sessions(self, project_id: str) -> int:
        return self._sessions.get(project_id, 0)

    async def open_session(self, project_id: str, owner_id: str | None = None) -> SessionState:
        """Bring the workspace up, push the project tree into it and start watching."""
        validate_project_id(project_id)
        handle = await self.workspace.get_or_create_workspace(project_id)
        first = self._sessions.get(project_id, 0) == 0
        self._sessions[project_id] = self._sessions.get(project_id, 0) + 1

        pushed = None
        if first:
            pushed = await self.workspace.sync_database_to_container(project_id)
        folders_ok = await self.folder_watcher.start_watching(project_id, owner_id)
        files_ok = await self.file_watcher.start_watching(project_id, owner_id)

        logger.info(
            "Terminal session opened",
            project_id=project_id,
            open_sessions=self._sessions[project_id],
            watching=files_ok and folders_ok,
        )
        return SessionState(
            project_id=project_id,
            status=handle.status,
            open_sessions=self._sessions[project_id],
            file_watcher_active=files_ok,
            folder_watcher_active=folders_ok,
            pushed=pushed,
        )

    async def close_session(self, project_id: str, owner_id: str | None = None) -> SessionState:
        """Record a closed session; the last one flushes changes and stops the watchers."""
        open_count = self._sessions.get(project_id, 0)
        if open_count == 0:
            # No open session, so nothing to flush
            return self._state(project_id, 0)

        remaining = open_count - 1
        if remaining:
            self._sessions[project_id] = remaining
        else:
            del self._sessions[project_id]

        pulled = None
        if remaining == 0:
            await self.folder_watcher.force_sync(project_id, owner_id)
            result = await self.file_watcher.force_sync(project_id, owner_id)
            pulled = result.report
            await self.folder_watcher.stop_watching(project_id, reason="session closed")
            await self.file_watcher.stop_watching(project_id, reason="session closed")

        logger.info("Terminal session closed", project_id=project_id, open_sessions=remaining)
        return self._state(project_id, remaining, pulled=pulled)

    def _state(
        self, project_id: str, open_sessions: int, pulled: SyncReport | None = None
    ) -> SessionState:
        handle = self.workspace.get_handle(project_id)
        return SessionState(
            project_id=project_id,
            status=handle.status if handle else WorkspaceStatus.ABSENT,
            open_sessions=open_sessions,
            file_watcher_active=self.file_watcher.is_watching(project_id),
            folder_watcher_active=self.folder_watcher.is_watching(project_id),
            pulled=pulled,
        )
