"""Request and response bodies for the HTTP routes."""

from __future__ import annotations

from pydantic import BaseModel, Field

from collabhub_workspace.config import MAX_SCAN_INTERVAL, MIN_SCAN_INTERVAL
from collabhub_workspace.models.workspace import WorkspaceStatus


class WorkspaceInfo(BaseModel):
    project_id: str
    container_name: str
    volume_name: str
    container_id: str | None = None
    status: WorkspaceStatus


class FileCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    folder_id: str | None = None
    content: str = ""


class FileContentRequest(BaseModel):
    content: str


class FolderCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: str | None = None


class FolderMoveRequest(BaseModel):
    new_parent_id: str | None = None


class FolderCopyRequest(BaseModel):
    new_parent_id: str | None = None
    new_name: str | None = Field(default=None, max_length=255)


class ScanIntervalRequest(BaseModel):
    seconds: float = Field(..., ge=MIN_SCAN_INTERVAL, le=MAX_SCAN_INTERVAL)


class WatcherStartResponse(BaseModel):
    project_id: str
    file_watcher: bool
    folder_watcher: bool
