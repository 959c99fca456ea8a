"""Service-wide watcher metrics and tuning."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from collabhub_workspace.deps import AuthenticatedUser, get_file_watcher, get_folder_watcher
from collabhub_workspace.models.requests import ScanIntervalRequest
from collabhub_workspace.watchers.file_watcher import FileWatcher
from collabhub_workspace.watchers.folder_watcher import FolderWatcher

router = APIRouter(prefix="/watchers", tags=["watchers"])

Files = Annotated[FileWatcher, Depends(get_file_watcher)]
Folders = Annotated[FolderWatcher, Depends(get_folder_watcher)]


@router.get("/metrics")
async def get_metrics(
    _user_id: AuthenticatedUser, file_watcher: Files, folder_watcher: Folders
) -> dict[str, Any]:
    return {
        "file_watcher": file_watcher.get_performance_metrics(),
        "folder_watcher": folder_watcher.get_performance_metrics(),
    }


@router.put("/{kind}/scan-interval")
async def update_scan_interval(
    kind: str,
    request: ScanIntervalRequest,
    _user_id: AuthenticatedUser,
    file_watcher: Files,
    folder_watcher: Folders,
) -> dict[str, Any]:
    """Change the polling interval of the file or folder watcher."""
    watchers = {"files": file_watcher, "folders": folder_watcher}
    watcher = watchers.get(kind)
    if watcher is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown watcher")
    await watcher.update_scan_interval(request.seconds)
    return {"watcher": watcher.name, "scan_interval": watcher.scan_interval}
