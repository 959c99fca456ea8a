"""Duplicate removal, orphan cleanup and missing-item sync.

Every pass here is idempotent: running it again right away changes
nothing. Database records that are missing from the container are never
deleted by reconciliation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from collabhub_workspace import paths
from collabhub_workspace.models.workspace import SyncReport
from collabhub_workspace.sync.duplicates import DuplicateCheck, DuplicateDetector, group_duplicates
from collabhub_workspace.sync.tree import FolderIndex

if TYPE_CHECKING:
    from collabhub_workspace.managers.workspace_manager import WorkspaceManager
    from collabhub_workspace.models.tree import File, Folder
    from collabhub_workspace.storage.base import TreeStore

logger = structlog.get_logger()


class CleanupReport(BaseModel):
    orphaned_files: SyncReport = Field(default_factory=SyncReport)
    orphaned_folders: SyncReport = Field(default_factory=SyncReport)
    duplicate_files: SyncReport = Field(default_factory=SyncReport)
    duplicate_folders: SyncReport = Field(default_factory=SyncReport)

    @property
    def total_deleted(self) -> int:
        return (
            self.orphaned_files.deleted
            + self.orphaned_folders.deleted
            + self.duplicate_files.deleted
            + self.duplicate_folders.deleted
        )


class FullSyncReport(BaseModel):
    folders: SyncReport = Field(default_factory=SyncReport)
    files: SyncReport = Field(default_factory=SyncReport)


class ReconciliationService:
    """Repairs drift between a project's records and its container."""

    def __init__(self, store: TreeStore, workspace: WorkspaceManager) -> None:
        self.store = store
        self.workspace = workspace
        self.detector = DuplicateDetector(store)

    async def check_file_duplicate(
        self, project_id: str, name: str, path: str, folder_id: str | None
    ) -> DuplicateCheck:
        return await self.detector.check_file_duplicate(project_id, name, path, folder_id)

    async def check_folder_duplicate(
        self, project_id: str, name: str, parent_path: str, parent_id: str | None
    ) -> DuplicateCheck:
        return await self.detector.check_folder_duplicate(project_id, name, parent_path, parent_id)

    # Duplicates

    async def remove_duplicate_files(self, project_id: str) -> SyncReport:
        """Keep the first file record per canonical path, delete the rest."""
        report = SyncReport()
        files = await self.store.list_files(project_id)
        for group in group_duplicates(files, key=lambda f: paths.normalize(f.path)):
            keep = group[0]
            for dup in group[1:]:
                if dup.id is None:
                    continue
                await self.store.delete_file(dup.id)
                if dup.folder_id:
                    await self.store.remove_file_from_folder(dup.folder_id, dup.id)
                report.deleted += 1
            if keep.folder_id and keep.id:
                await self.store.add_file_to_folder(keep.folder_id, keep.id)
            logger.info(
                "Removed duplicate files",
                project_id=project_id,
                path=keep.path,
                removed=len(group) - 1,
            )
        return report

    async def remove_duplicate_folders(self, project_id: str) -> SyncReport:
        """Keep the first folder record per canonical path, delete the rest.

        Files and subfolders of a removed duplicate are moved to the kept
        folder first.
        """
        report = SyncReport()
        folders = await self.store.list_folders(project_id)
        groups = group_duplicates(folders, key=lambda f: f.full_path)
        if not groups:
            return report

        files = await self.store.list_files(project_id)
        groups.sort(key=lambda g: paths.depth(g[0].full_path))
        for group in groups:
            keep = group[0]
            for dup in group[1:]:
                if dup.id is None or keep.id is None:
                    continue
                await self._reparent_children(dup.id, keep, folders, files)
                if dup.parent_id:
                    await self.store.remove_subfolder(dup.parent_id, dup.id)
                await self.store.delete_folder(dup.id)
                report.deleted += 1
            logger.info(
                "Removed duplicate folders",
                project_id=project_id,
                path=keep.full_path,
                removed=len(group) - 1,
            )
        return report

    async def _reparent_children(
        self, dup_id: str, keep: Folder, folders: list[Folder], files: list[File]
    ) -> None:
        keep_id = keep.id or ""
        for file in files:
            if file.folder_id == dup_id:
                file.folder_id = keep_id
                await self.store.update_file(file)
                await self.store.add_file_to_folder(keep_id, file.id or "")
        for child in folders:
            if child.parent_id == dup_id:
                child.place_under(keep)
                await self.store.update_folder(child)
                await self.store.add_subfolder(keep_id, child.id or "")

    # Orphans

    async def cleanup_orphaned_files(self, project_id: str) -> SyncReport:
        """Delete container files that have no record."""
        report = SyncReport()
        container_files = await self.workspace.list_files_recursive(project_id)
        tracked = {paths.normalize(f.path) for f in await self.store.list_files(project_id)}
        for path in container_files:
            if path in tracked:
                continue
            op = await self.workspace.delete_file(project_id, path, prune=False)
            if op.ok:
                report.deleted += 1
            else:
                report.failed += 1
                report.errors.append(f"{path}: {op.reason}")
        if report.deleted:
            logger.info("Removed orphaned files", project_id=project_id, count=report.deleted)
        return report

    async def cleanup_orphaned_folders(self, project_id: str) -> SyncReport:
        """Delete container directories that have no record.

        A directory that is an ancestor of any recorded file or folder is
        kept, and orphans nested under an already removed orphan are skipped.
        """
        report = SyncReport()
        container_dirs = await self.workspace.list_folders_recursive(project_id)
        tracked: set[str] = set()
        for folder in await self.store.list_folders(project_id):
            tracked.add(folder.full_path)
            tracked.update(paths.ancestors(folder.full_path))
        for file in await self.store.list_files(project_id):
            tracked.update(paths.ancestors(file.path))

        removed: list[str] = []
        for path in paths.sort_by_depth(container_dirs):
            if path in tracked:
                continue
            if any(paths.is_within(path, r) for r in removed):
                report.skipped += 1
                continue
            op = await self.workspace.delete_folder(project_id, path)
            if op.ok:
                removed.append(path)
                report.deleted += 1
            else:
                report.failed += 1
                report.errors.append(f"{path}: {op.reason}")
        if report.deleted:
            logger.info("Removed orphaned folders", project_id=project_id, count=report.deleted)
        return report

    # Missing items

    async def sync_missing_files(self, project_id: str, owner_id: str | None = None) -> SyncReport:
        """Create records for container files that have none, with their folders."""
        container_files = await self.workspace.list_files_recursive(project_id)
        tracked = {paths.normalize(f.path) for f in await self.store.list_files(project_id)}
        missing = [p for p in container_files if p not in tracked]
        if not missing:
            return SyncReport()
        return await self.workspace.sync_container_to_database(project_id, owner_id, only=missing)

    async def sync_missing_folders(
        self, project_id: str, owner_id: str | None = None
    ) -> SyncReport:
        """Create records for container directories that have none."""
        report = SyncReport()
        container_dirs = await self.workspace.list_folders_recursive(project_id)
        index = await FolderIndex.load(self.store, project_id)
        if owner_id is None:
            project = await self.store.get_project(project_id)
            owner_id = project.owner if project else None
        for path in container_dirs:
            if index.get(path) is not None:
                continue
            folder, created = await index.ensure_path(self.store, path, owner_id)
            report.folders_created += created
            if folder is None:
                report.failed += 1
                report.errors.append(f"{path}: folder could not be created")
        if report.folders_created:
            logger.info(
                "Synced missing folders", project_id=project_id, count=report.folders_created
            )
        return report

    # Composite passes

    async def full_cleanup(self, project_id: str) -> CleanupReport:
        """Orphan files, orphan folders, duplicate files, duplicate folders, in that order."""
        report = CleanupReport(
            orphaned_files=await self.cleanup_orphaned_files(project_id),
            orphaned_folders=await self.cleanup_orphaned_folders(project_id),
            duplicate_files=await self.remove_duplicate_files(project_id),
            duplicate_folders=await self.remove_duplicate_folders(project_id),
        )
        logger.info("Full cleanup completed", project_id=project_id, deleted=report.total_deleted)
        return report

    async def full_sync(self, project_id: str, owner_id: str | None = None) -> FullSyncReport:
        """Missing folders first, then missing files."""
        report = FullSyncReport(
            folders=await self.sync_missing_folders(project_id, owner_id),
            files=await self.sync_missing_files(project_id, owner_id),
        )
        logger.info(
            "Full sync completed",
            project_id=project_id,
            folders=report.folders.folders_created,
            files=report.files.created,
        )
        return report
