"""Polling change watchers for container workspaces."""

from collabhub_workspace.watchers.base import (
    ForceSyncResult,
    PollingWatcher,
    WatcherCallback,
    WatcherStatus,
    diff_snapshot,
)
from collabhub_workspace.watchers.file_watcher import FileWatcher
from collabhub_workspace.watchers.folder_watcher import FolderWatcher

__all__ = [
    "FileWatcher",
    "FolderWatcher",
    "ForceSyncResult",
    "PollingWatcher",
    "WatcherCallback",
    "WatcherStatus",
    "diff_snapshot",
]
