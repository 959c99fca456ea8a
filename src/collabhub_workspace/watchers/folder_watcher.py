"""Watches container directories and creates missing folder records."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from typing import TYPE_CHECKING

from collabhub_workspace import paths
from collabhub_workspace.config import settings
from collabhub_workspace.watchers.base import PollingWatcher, Snapshot, WatcherState

if TYPE_CHECKING:
    from collabhub_workspace.managers.workspace_manager import WorkspaceManager
    from collabhub_workspace.models.workspace import SyncReport
    from collabhub_workspace.sync.reconciliation import ReconciliationService


class FolderWatcher(PollingWatcher):
    """Snapshot per directory is (mtime, direct file count, direct subfolder count)."""

    name = "folder_watcher"

    def __init__(
        self,
        workspace: WorkspaceManager,
        reconciliation: ReconciliationService,
        scan_interval: float | None = None,
        debounce: float | None = None,
        max_errors: int | None = None,
    ) -> None:
        super().__init__(
            workspace,
            scan_interval=scan_interval or settings.folder_scan_interval,
            debounce=debounce if debounce is not None else settings.folder_sync_debounce,
            max_errors=max_errors,
        )
        self.reconciliation = reconciliation

    async def take_snapshot(self, project_id: str) -> Snapshot:
        entries = await self.workspace.scan_tree(project_id)
        files: Counter[str] = Counter()
        subfolders: Counter[str] = Counter()
        for entry in entries:
            parent = paths.parent_of(entry.path)
            if entry.is_dir:
                subfolders[parent] += 1
            else:
                files[parent] += 1
        return {
            e.path: (e.mtime, files[e.path], subfolders[e.path]) for e in entries if e.is_dir
        }

    async def sync(self, state: WatcherState, changed: Iterable[str] | None) -> SyncReport:
        return await self.reconciliation.sync_missing_folders(state.project_id, state.owner_id)
