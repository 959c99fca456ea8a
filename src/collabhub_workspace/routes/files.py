"""File record routes: save, lock, history and delete."""

from typing import Annotated

from fastapi import APIRouter, Depends

from collabhub_workspace.deps import AuthenticatedUser, get_file_service
from collabhub_workspace.models.requests import FileContentRequest
from collabhub_workspace.models.tree import File, FileVersion
from collabhub_workspace.services.file_service import DeleteResult, FileService, SaveResult
from collabhub_workspace.validation import validate_id

router = APIRouter(prefix="/files", tags=["files"])

Files = Annotated[FileService, Depends(get_file_service)]


@router.put("/{file_id}/content", response_model=SaveResult)
async def save_file(
    file_id: str,
    request: FileContentRequest,
    user_id: AuthenticatedUser,
    files: Files,
) -> SaveResult:
    """Save new content. Refused with 423 while another user holds the lock."""
    validate_id(file_id, "file ID")
    return await files.save_file(file_id, request.content, user_id)


@router.post("/{file_id}/lock", response_model=File)
async def lock_file(file_id: str, user_id: AuthenticatedUser, files: Files) -> File:
    validate_id(file_id, "file ID")
    return await files.lock_file(file_id, user_id)


@router.delete("/{file_id}/lock", response_model=File)
async def unlock_file(file_id: str, user_id: AuthenticatedUser, files: Files) -> File:
    validate_id(file_id, "file ID")
    return await files.unlock_file(file_id, user_id)


@router.get("/{file_id}/versions", response_model=list[FileVersion])
async def get_file_versions(
    file_id: str, _user_id: AuthenticatedUser, files: Files
) -> list[FileVersion]:
    validate_id(file_id, "file ID")
    return await files.get_file_versions(file_id)


@router.delete("/{file_id}", response_model=DeleteResult)
async def delete_file(file_id: str, _user_id: AuthenticatedUser, files: Files) -> DeleteResult:
    validate_id(file_id, "file ID")
    return await files.delete_file(file_id)
