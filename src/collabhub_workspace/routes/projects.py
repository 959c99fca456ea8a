"""Per-project workspace, session, watcher and maintenance routes."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, status

from collabhub_workspace.deps import (
    AuthenticatedUser,
    get_file_service,
    get_file_watcher,
    get_folder_watcher,
    get_reconciliation,
    get_sessions,
    get_workspace_manager,
)
from collabhub_workspace.managers.session_coordinator import SessionCoordinator, SessionState
from collabhub_workspace.managers.workspace_manager import WorkspaceManager
from collabhub_workspace.models.requests import (
    FileCreateRequest,
    FolderCreateRequest,
    WatcherStartResponse,
    WorkspaceInfo,
)
from collabhub_workspace.models.workspace import WorkspaceStats
from collabhub_workspace.services.file_service import FileResult, FileService, FolderResult
from collabhub_workspace.sync.reconciliation import (
    CleanupReport,
    FullSyncReport,
    ReconciliationService,
)
from collabhub_workspace.validation import validate_project_id
from collabhub_workspace.watchers.file_watcher import FileWatcher
from collabhub_workspace.watchers.folder_watcher import FolderWatcher

logger = structlog.get_logger()

router = APIRouter(prefix="/projects", tags=["projects"])

Workspaces = Annotated[WorkspaceManager, Depends(get_workspace_manager)]
Files = Annotated[FileWatcher, Depends(get_file_watcher)]
Folders = Annotated[FolderWatcher, Depends(get_folder_watcher)]


@router.post("/{project_id}/workspace", response_model=WorkspaceInfo)
async def get_or_create_workspace(
    project_id: str,
    _user_id: AuthenticatedUser,
    workspace: Workspaces,
) -> WorkspaceInfo:
    """Get the project's running workspace, creating it if needed."""
    handle = await workspace.get_or_create_workspace(project_id)
    return WorkspaceInfo(
        project_id=handle.project_id,
        container_name=handle.container_name,
        volume_name=handle.volume_name,
        container_id=handle.container_id,
        status=handle.status,
    )


@router.get("/{project_id}/workspace/stats", response_model=WorkspaceStats)
async def get_workspace_stats(
    project_id: str,
    _user_id: AuthenticatedUser,
    workspace: Workspaces,
) -> WorkspaceStats:
    return await workspace.get_workspace_stats(project_id)


# Terminal sessions


@router.post("/{project_id}/sessions", response_model=SessionState)
async def open_session(
    project_id: str,
    user_id: AuthenticatedUser,
    sessions: Annotated[SessionCoordinator, Depends(get_sessions)],
) -> SessionState:
    return await sessions.open_session(project_id, user_id)


@router.delete("/{project_id}/sessions", response_model=SessionState)
async def close_session(
    project_id: str,
    user_id: AuthenticatedUser,
    sessions: Annotated[SessionCoordinator, Depends(get_sessions)],
) -> SessionState:
    validate_project_id(project_id)
    return await sessions.close_session(project_id, user_id)


# Watchers


@router.post("/{project_id}/watchers", response_model=WatcherStartResponse)
async def start_watchers(
    project_id: str,
    user_id: AuthenticatedUser,
    workspace: Workspaces,
    file_watcher: Files,
    folder_watcher: Folders,
) -> WatcherStartResponse:
    """Start both watchers for a project, bringing its workspace up first."""
    await workspace.get_or_create_workspace(project_id)
    folders_ok = await folder_watcher.start_watching(project_id, user_id)
    files_ok = await file_watcher.start_watching(project_id, user_id)
    return WatcherStartResponse(
        project_id=project_id, file_watcher=files_ok, folder_watcher=folders_ok
    )


@router.delete("/{project_id}/watchers", status_code=status.HTTP_204_NO_CONTENT)
async def stop_watchers(
    project_id: str,
    _user_id: AuthenticatedUser,
    file_watcher: Files,
    folder_watcher: Folders,
) -> None:
    validate_project_id(project_id)
    await folder_watcher.stop_watching(project_id)
    await file_watcher.stop_watching(project_id)


@router.get("/{project_id}/watchers")
async def get_watcher_status(
    project_id: str,
    _user_id: AuthenticatedUser,
    file_watcher: Files,
    folder_watcher: Folders,
) -> dict[str, Any]:
    validate_project_id(project_id)
    file_status = file_watcher.get_watcher_status(project_id)
    folder_status = folder_watcher.get_watcher_status(project_id)
    return {
        "project_id": project_id,
        "file_watcher": file_status.model_dump() if file_status else None,
        "folder_watcher": folder_status.model_dump() if folder_status else None,
    }


@router.post("/{project_id}/watchers/sync")
async def force_sync(
    project_id: str,
    user_id: AuthenticatedUser,
    file_watcher: Files,
    folder_watcher: Folders,
) -> dict[str, Any]:
    """Run a full folder then file sync immediately."""
    validate_project_id(project_id)
    folders = await folder_watcher.force_sync(project_id, user_id)
    files = await file_watcher.force_sync(project_id, user_id)
    return {
        "project_id": project_id,
        "folders": folders.model_dump(),
        "files": files.model_dump(),
    }


# Maintenance


@router.post("/{project_id}/maintenance/cleanup", response_model=CleanupReport)
async def run_cleanup(
    project_id: str,
    _user_id: AuthenticatedUser,
    reconciliation: Annotated[ReconciliationService, Depends(get_reconciliation)],
) -> CleanupReport:
    """Remove orphaned and duplicate records."""
    validate_project_id(project_id)
    report = await reconciliation.full_cleanup(project_id)
    logger.info("Maintenance cleanup requested", project_id=project_id)
    return report


@router.post("/{project_id}/maintenance/sync", response_model=FullSyncReport)
async def run_sync(
    project_id: str,
    user_id: AuthenticatedUser,
    reconciliation: Annotated[ReconciliationService, Depends(get_reconciliation)],
) -> FullSyncReport:
    """Create records for folders and files that exist only in the container."""
    validate_project_id(project_id)
    return await reconciliation.full_sync(project_id, user_id)


# Tree records


@router.post("/{project_id}/files", response_model=FileResult)
async def create_file(
    project_id: str,
    request: FileCreateRequest,
    user_id: AuthenticatedUser,
    files: Annotated[FileService, Depends(get_file_service)],
) -> FileResult:
    validate_project_id(project_id)
    return await files.create_file(
        project_id,
        request.name,
        folder_id=request.folder_id,
        content=request.content,
        owner=user_id,
    )


@router.post("/{project_id}/folders", response_model=FolderResult)
async def create_folder(
    project_id: str,
    request: FolderCreateRequest,
    user_id: AuthenticatedUser,
    files: Annotated[FileService, Depends(get_file_service)],
) -> FolderResult:
    validate_project_id(project_id)
    return await files.create_folder(
        project_id, request.name, parent_id=request.parent_id, owner=user_id
    )
