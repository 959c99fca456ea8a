"""Application-level file and folder operations.

The database is written first; the container follows on a best-effort
basis and its outcome is reported as an OpResult next to the record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from collabhub_workspace import paths
from collabhub_workspace.errors import (
    FileLockedError,
    InvalidMoveError,
    NameConflictError,
    ProjectNotFoundError,
    RecordNotFoundError,
)
from collabhub_workspace.models.tree import File, FileVersion, Folder, Project
from collabhub_workspace.models.workspace import OpResult
from collabhub_workspace.sync.duplicates import DuplicateDetector
from collabhub_workspace.sync.tree import FolderIndex
from collabhub_workspace.validation import validate_name

if TYPE_CHECKING:
    from collabhub_workspace.managers.workspace_manager import WorkspaceManager
    from collabhub_workspace.storage.base import TreeStore

logger = structlog.get_logger()


class FileResult(BaseModel):
    file: File
    created: bool = True
    container: OpResult = Field(default_factory=OpResult)


class FolderResult(BaseModel):
    folder: Folder
    created: bool = True
    container: OpResult = Field(default_factory=OpResult)


class SaveResult(BaseModel):
    file: File
    changed: bool
    container: OpResult = Field(default_factory=OpResult)


class DeleteResult(BaseModel):
    files_deleted: int = 0
    folders_deleted: int = 0
    container: OpResult = Field(default_factory=OpResult)


class CopyResult(BaseModel):
    folder: Folder
    folders_copied: int = 0
    files_copied: int = 0
    container: OpResult = Field(default_factory=OpResult)


def _first_failure(results: list[OpResult]) -> OpResult:
    for result in results:
        if not result.ok:
            return result
    return OpResult.success()


class FileService:
    """Creates, saves, locks, moves, copies and deletes tree records."""

    def __init__(self, store: TreeStore, workspace: WorkspaceManager) -> None:
        self.store = store
        self.workspace = workspace
        self.detector = DuplicateDetector(store)

    async def _require_project(self, project_id: str) -> Project:
        project = await self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")
        return project

    async def get_file(self, file_id: str) -> File:
        file = await self.store.get_file(file_id)
        if file is None:
            raise RecordNotFoundError(f"File {file_id} not found")
        return file

    async def get_folder(self, folder_id: str) -> Folder:
        folder = await self.store.get_folder(folder_id)
        if folder is None:
            raise RecordNotFoundError(f"Folder {folder_id} not found")
        return folder

    async def _parent_in_project(self, project_id: str, folder_id: str | None) -> Folder | None:
        if folder_id is None:
            return None
        folder = await self.get_folder(folder_id)
        if folder.project_id != project_id:
            raise RecordNotFoundError(f"Folder {folder_id} not found in project {project_id}")
        return folder

    # Creation

    async def create_file(
        self,
        project_id: str,
        name: str,
        folder_id: str | None = None,
        content: str = "",
        owner: str | None = None,
    ) -> FileResult:
        """Create a file record and write it into the container.

        An existing file at the same place is returned unchanged.
        """
        validate_name(name, "file name")
        await self._require_project(project_id)
        folder = await self._parent_in_project(project_id, folder_id)
        path = paths.join(folder.full_path if folder else "", name)

        check = await self.detector.check_file_duplicate(project_id, name, path, folder_id)
        if check.is_duplicate and isinstance(check.existing, File):
            logger.info("File already exists", project_id=project_id, path=path)
            return FileResult(file=check.existing, created=False)

        record = File.new(project_id, path, content, folder_id=folder_id, owner=owner)
        inserted = await self.store.insert_file(record)
        if inserted is None:
            existing = await self.store.find_file_by_path(project_id, path)
            if existing is None:
                raise RecordNotFoundError(f"File {path} could not be created")
            return FileResult(file=existing, created=False)
        if folder_id and inserted.id:
            await self.store.add_file_to_folder(folder_id, inserted.id)

        container = await self.workspace.write_file(project_id, path, content)
        logger.info("File created", project_id=project_id, path=path, container=container.status)
        return FileResult(file=inserted, container=container)

    async def create_folder(
        self,
        project_id: str,
        name: str,
        parent_id: str | None = None,
        owner: str | None = None,
    ) -> FolderResult:
        validate_name(name, "folder name")
        await self._require_project(project_id)
        parent = await self._parent_in_project(project_id, parent_id)

        folder = Folder(project_id=project_id, name=name, owner=owner)
        folder.place_under(parent)
        check = await self.detector.check_folder_duplicate(
            project_id, name, folder.path, parent_id
        )
        if check.is_duplicate and isinstance(check.existing, Folder):
            return FolderResult(folder=check.existing, created=False)

        inserted = await self.store.insert_folder(folder)
        if inserted is None:
            existing = await self.store.find_folder(project_id, folder.path, name)
            if existing is None:
                raise RecordNotFoundError(f"Folder {folder.full_path} could not be created")
            return FolderResult(folder=existing, created=False)
        if parent is not None and parent.id and inserted.id:
            await self.store.add_subfolder(parent.id, inserted.id)

        container = await self.workspace.create_folder(project_id, inserted.full_path)
        logger.info("Folder created", project_id=project_id, path=inserted.full_path)
        return FolderResult(folder=inserted, container=container)

    # Editing

    async def save_file(self, file_id: str, content: str, user_id: str) -> SaveResult:
        """Save new content for a file.

        Raises:
            FileLockedError: Another user holds the edit lock
        """
        file = await self.get_file(file_id)
        if file.is_locked_for(user_id):
            raise FileLockedError(file_id, file.locked_by)
        if not file.set_content(content, user_id):
            return SaveResult(file=file, changed=False)

        await self.store.update_file(file)
        container = await self.workspace.write_file(file.project_id, file.path, content)
        logger.info(
            "File saved",
            project_id=file.project_id,
            path=file.path,
            version=file.version,
            container=container.status,
        )
        return SaveResult(file=file, changed=True, container=container)

    async def lock_file(self, file_id: str, user_id: str) -> File:
        file = await self.get_file(file_id)
        if file.is_locked_for(user_id):
            raise FileLockedError(file_id, file.locked_by)
        file.is_locked = True
        file.locked_by = user_id
        await self.store.update_file(file)
        return file

    async def unlock_file(self, file_id: str, user_id: str) -> File:
        """Release the edit lock. Only the user holding it can release it."""
        file = await self.get_file(file_id)
        if not file.is_locked:
            return file
        if file.locked_by != user_id:
            raise FileLockedError(file_id, file.locked_by)
        file.is_locked = False
        file.locked_by = None
        await self.store.update_file(file)
        return file

    async def get_file_versions(self, file_id: str) -> list[FileVersion]:
        file = await self.get_file(file_id)
        return list(file.versions)

    # Deletion

    async def delete_file(self, file_id: str) -> DeleteResult:
        file = await self.get_file(file_id)
        await self.store.delete_file(file_id)
        if file.folder_id:
            await self.store.remove_file_from_folder(file.folder_id, file_id)
        container = await self.workspace.delete_file(file.project_id, file.path)
        logger.info("File deleted", project_id=file.project_id, path=file.path)
        return DeleteResult(files_deleted=1, container=container)

    async def delete_folder(self, folder_id: str) -> DeleteResult:
        """Delete a folder with everything below it, deepest records first."""
        folder = await self.get_folder(folder_id)
        index = await FolderIndex.load(self.store, folder.project_id)
        subtree = index.subtree_bottom_up(folder_id)
        folder_ids = {f.id for f in subtree}

        result = DeleteResult()
        for file in await self.store.list_files(folder.project_id):
            if file.folder_id in folder_ids and file.id:
                await self.store.delete_file(file.id)
                result.files_deleted += 1
        for record in subtree:
            if record.id:
                await self.store.delete_folder(record.id)
                result.folders_deleted += 1
        if folder.parent_id:
            await self.store.remove_subfolder(folder.parent_id, folder_id)

        result.container = await self.workspace.delete_folder(folder.project_id, folder.full_path)
        logger.info(
            "Folder deleted",
            project_id=folder.project_id,
            path=folder.full_path,
            files=result.files_deleted,
            folders=result.folders_deleted,
        )
        return result

    # Restructuring

    async def move_folder(self, folder_id: str, new_parent_id: str | None) -> FolderResult:
        """Move a folder (and its subtree) under a new parent, or to the top level.

        Raises:
            InvalidMoveError: The target is the folder itself or a descendant
            NameConflictError: The target already holds a folder with that name
        """
        folder = await self.get_folder(folder_id)
        project_id = folder.project_id
        index = await FolderIndex.load(self.store, project_id)
        if new_parent_id is not None and index.is_descendant(folder_id, new_parent_id):
            raise InvalidMoveError("Cannot move a folder into itself or its descendants")
        parent = await self._parent_in_project(project_id, new_parent_id)
        if parent is not None:
            # Use the indexed instance so descendants see the updated parent
            parent = index.by_id.get(parent.id or "", parent)

        target_path = parent.full_path if parent else ""
        check = await self.detector.check_folder_duplicate(
            project_id, folder.name, target_path, new_parent_id
        )
        if check.is_duplicate and check.existing is not None and check.existing.id != folder_id:
            raise NameConflictError(f"A folder named {folder.name} already exists there")

        moving = index.by_id.get(folder_id, folder)
        old_path = moving.full_path
        descendants = index.descendants(folder_id)

        if moving.parent_id:
            await self.store.remove_subfolder(moving.parent_id, folder_id)
        moving.place_under(parent)
        await self.store.update_folder(moving)
        if parent is not None and parent.id:
            await self.store.add_subfolder(parent.id, folder_id)

        new_path = moving.full_path
        for child in descendants:
            child_parent = index.by_id.get(child.parent_id or "")
            child.place_under(child_parent)
            await self.store.update_folder(child)

        for file in await self.store.list_files(project_id):
            if paths.is_within(file.path, old_path) and file.path != old_path:
                file.path = paths.rebase(file.path, old_path, new_path)
                await self.store.update_file(file)

        container = OpResult.success()
        if old_path != new_path:
            container = await self.workspace.move_path(project_id, old_path, new_path)
        logger.info("Folder moved", project_id=project_id, old_path=old_path, new_path=new_path)
        return FolderResult(folder=moving, created=False, container=container)

    async def copy_folder(
        self,
        folder_id: str,
        new_parent_id: str | None,
        new_name: str | None = None,
        user_id: str | None = None,
    ) -> CopyResult:
        """Deep-copy a folder subtree, defaulting the name to '<name> (Copy)'.

        Raises:
            InvalidMoveError: The target is inside the folder being copied
            NameConflictError: The target already holds a folder with that name
        """
        source = await self.get_folder(folder_id)
        project_id = source.project_id
        index = await FolderIndex.load(self.store, project_id)
        if new_parent_id is not None and index.is_descendant(folder_id, new_parent_id):
            raise InvalidMoveError("Cannot copy a folder into itself or its descendants")
        parent = await self._parent_in_project(project_id, new_parent_id)

        name = validate_name(new_name or f"{source.name} (Copy)", "folder name")
        root = Folder(project_id=project_id, name=name, owner=user_id)
        root.place_under(parent)
        check = await self.detector.check_folder_duplicate(
            project_id, name, root.path, new_parent_id
        )
        if check.is_duplicate:
            raise NameConflictError(f"A folder named {name} already exists there")

        inserted_root = await self.store.insert_folder(root)
        if inserted_root is None or inserted_root.id is None:
            raise NameConflictError(f"A folder named {name} already exists there")
        if parent is not None and parent.id:
            await self.store.add_subfolder(parent.id, inserted_root.id)

        copies: dict[str, Folder] = {folder_id: inserted_root}
        result = CopyResult(folder=inserted_root, folders_copied=1)
        for original in index.descendants(folder_id):
            new_parent = copies.get(original.parent_id or "")
            if new_parent is None or original.id is None:
                continue
            copy = Folder(project_id=project_id, name=original.name, owner=user_id)
            copy.place_under(new_parent)
            inserted = await self.store.insert_folder(copy)
            if inserted is None or inserted.id is None:
                continue
            await self.store.add_subfolder(new_parent.id or "", inserted.id)
            copies[original.id] = inserted
            result.folders_copied += 1

        new_files: list[File] = []
        for file in await self.store.list_files(project_id):
            target = copies.get(file.folder_id or "")
            if target is None or target.id is None:
                continue
            record = File.new(
                project_id,
                paths.join(target.full_path, file.name),
                file.content,
                folder_id=target.id,
                owner=user_id,
            )
            inserted_file = await self.store.insert_file(record)
            if inserted_file is None or inserted_file.id is None:
                continue
            await self.store.add_file_to_folder(target.id, inserted_file.id)
            new_files.append(inserted_file)
            result.files_copied += 1

        container_ops = [
            await self.workspace.create_folder(project_id, f.full_path) for f in copies.values()
        ]
        for file in new_files:
            op = await self.workspace.write_file(project_id, file.path, file.content)
            container_ops.append(op)
        result.container = _first_failure(container_ops)

        logger.info(
            "Folder copied",
            project_id=project_id,
            source=source.full_path,
            target=inserted_root.full_path,
            folders=result.folders_copied,
            files=result.files_copied,
        )
        return result
