"""Data models for the workspace service."""

from collabhub_workspace.models.events import (
    Change,
    ChangeAction,
    WatcherEvent,
    WatcherEventType,
)
from collabhub_workspace.models.tree import File, FileVersion, Folder, Project, ProjectStatus
from collabhub_workspace.models.workspace import (
    EntryKind,
    ExecResult,
    OpResult,
    OpStatus,
    SyncReport,
    TreeEntry,
    WorkspaceHandle,
    WorkspaceStats,
    WorkspaceStatus,
)

__all__ = [
    "Change",
    "ChangeAction",
    "EntryKind",
    "ExecResult",
    "File",
    "FileVersion",
    "Folder",
    "OpResult",
    "OpStatus",
    "Project",
    "ProjectStatus",
    "SyncReport",
    "TreeEntry",
    "WatcherEvent",
    "WatcherEventType",
    "WorkspaceHandle",
    "WorkspaceStats",
    "WorkspaceStatus",
]
