"""Watches container files and mirrors them into the database."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from collabhub_workspace.config import settings
from collabhub_workspace.watchers.base import PollingWatcher, Snapshot, WatcherState

if TYPE_CHECKING:
    from collabhub_workspace.managers.workspace_manager import WorkspaceManager
    from collabhub_workspace.models.workspace import SyncReport


class FileWatcher(PollingWatcher):
    """Snapshot per file is (size, mtime); syncs create and update file records."""

    name = "file_watcher"

    def __init__(
        self,
        workspace: WorkspaceManager,
        scan_interval: float | None = None,
        debounce: float | None = None,
        max_errors: int | None = None,
    ) -> None:
        super().__init__(
            workspace,
            scan_interval=scan_interval or settings.file_scan_interval,
            debounce=debounce if debounce is not None else settings.file_sync_debounce,
            max_errors=max_errors,
        )

    async def take_snapshot(self, project_id: str) -> Snapshot:
        entries = await self.workspace.scan_tree(project_id)
        return {e.path: (e.size, e.mtime) for e in entries if not e.is_dir}

    async def sync(self, state: WatcherState, changed: Iterable[str] | None) -> SyncReport:
        return await self.workspace.sync_container_to_database(
            state.project_id, state.owner_id, only=changed
        )
