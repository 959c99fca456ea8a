"""Folder record routes: delete, move and copy."""

from typing import Annotated

from fastapi import APIRouter, Depends

from collabhub_workspace.deps import AuthenticatedUser, get_file_service
from collabhub_workspace.models.requests import FolderCopyRequest, FolderMoveRequest
from collabhub_workspace.services.file_service import (
    CopyResult,
    DeleteResult,
    FileService,
    FolderResult,
)
from collabhub_workspace.validation import validate_id

router = APIRouter(prefix="/folders", tags=["folders"])

Files = Annotated[FileService, Depends(get_file_service)]


@router.delete("/{folder_id}", response_model=DeleteResult)
async def delete_folder(folder_id: str, _user_id: AuthenticatedUser, files: Files) -> DeleteResult:
    """Delete a folder and everything below it."""
    validate_id(folder_id, "folder ID")
    return await files.delete_folder(folder_id)


@router.post("/{folder_id}/move", response_model=FolderResult)
async def move_folder(
    folder_id: str,
    request: FolderMoveRequest,
    _user_id: AuthenticatedUser,
    files: Files,
) -> FolderResult:
    validate_id(folder_id, "folder ID")
    return await files.move_folder(folder_id, request.new_parent_id)


@router.post("/{folder_id}/copy", response_model=CopyResult)
async def copy_folder(
    folder_id: str,
    request: FolderCopyRequest,
    user_id: AuthenticatedUser,
    files: Files,
) -> CopyResult:
    validate_id(folder_id, "folder ID")
    return await files.copy_folder(
        folder_id, request.new_parent_id, new_name=request.new_name, user_id=user_id
    )
