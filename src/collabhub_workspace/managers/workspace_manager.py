"""Per-project container workspaces and the file bridge into them."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog
from docker.errors import APIError, DockerException
from requests.exceptions import RequestException

from collabhub_workspace import paths
from collabhub_workspace.config import settings
from collabhub_workspace.errors import (
    CommandFailedError,
    ContainerEngineError,
    ContainerGoneError,
    WorkspaceError,
    WorkspaceUnavailableError,
)
from collabhub_workspace.models.tree import File
from collabhub_workspace.models.workspace import (
    EntryKind,
    ExecResult,
    OpResult,
    SyncReport,
    TreeEntry,
    WorkspaceHandle,
    WorkspaceStats,
    WorkspaceStatus,
)
from collabhub_workspace.runtime import commands
from collabhub_workspace.runtime.toolchains import HELPER_SCRIPTS
from collabhub_workspace.sync.duplicates import DuplicateDetector
from collabhub_workspace.sync.tree import FolderIndex
from collabhub_workspace.validation import validate_project_id

if TYPE_CHECKING:
    from docker.models.containers import Container

    from collabhub_workspace.runtime.client import ContainerRuntime
    from collabhub_workspace.runtime.commands import Command
    from collabhub_workspace.storage.base import TreeStore

logger = structlog.get_logger()

HTTP_CONFLICT = 409
SCAN_FIELDS = 4
SYNC_COMMENT = "Synced from workspace"


class WorkspaceManager:
    """Owns one isolated container per project.

    Containers are created lazily and recreated transparently when they
    disappear. File primitives report container-side failures as degraded
    OpResults; listings raise, because an empty listing would read as an
    empty tree.
    """

    def __init__(self, runtime: ContainerRuntime, store: TreeStore) -> None:
        self.runtime = runtime
        self.store = store
        self.duplicates = DuplicateDetector(store)
        self._handles: dict[str, WorkspaceHandle] = {}
        self._containers: dict[str, Container] = {}
        # Lock per project so concurrent callers converge on one container
        self._project_locks: dict[str, asyncio.Lock] = {}

    def _get_project_lock(self, project_id: str) -> asyncio.Lock:
        if project_id not in self._project_locks:
            self._project_locks[project_id] = asyncio.Lock()
        return self._project_locks[project_id]

    def container_name(self, project_id: str) -> str:
        return f"{settings.container_prefix}{project_id}"

    def volume_name(self, project_id: str) -> str:
        return f"{settings.volume_prefix}{project_id}"

    def get_handle(self, project_id: str) -> WorkspaceHandle | None:
        return self._handles.get(project_id)

    # Lifecycle

    async def get_or_create_workspace(self, project_id: str) -> WorkspaceHandle:
        """Return a running workspace for the project, creating it if needed.

        Raises:
            WorkspaceUnavailableError: The container could not be created or started
        """
        validate_project_id(project_id)
        async with self._get_project_lock(project_id):
            handle = self._handles.get(project_id)
            container = self._containers.get(project_id)
            if handle is not None and container is not None:
                try:
                    container_status = await self.runtime.status(container)
                except ContainerEngineError as e:
                    container_status = "unknown"
                    logger.warning(
                        "Workspace container status unavailable",
                        project_id=project_id,
                        error=str(e)[:200],
                    )
                if container_status == "running":
                    handle.status = WorkspaceStatus.RUNNING
                    return handle
                logger.info(
                    "Workspace container not running, recovering",
                    project_id=project_id,
                    container_status=container_status,
                )
                handle.status = WorkspaceStatus.STOPPED

            if handle is None or handle.status == WorkspaceStatus.REMOVED:
                handle = WorkspaceHandle(
                    project_id=project_id,
                    container_name=self.container_name(project_id),
                    volume_name=self.volume_name(project_id),
                )
                self._handles[project_id] = handle

            previous_status = handle.status
            handle.status = WorkspaceStatus.CREATING
            try:
                container, created = await self._ensure_container(handle)
            except (DockerException, RequestException, ContainerEngineError) as e:
                handle.status = previous_status
                self._containers.pop(project_id, None)
                logger.exception("Failed to provision workspace", project_id=project_id)
                raise WorkspaceUnavailableError(project_id, str(e)) from e

            self._containers[project_id] = container
            handle.container_id = container.id
            handle.status = WorkspaceStatus.RUNNING

            if created:
                await self._initialize(project_id, container)
            return handle

    async def _ensure_container(self, handle: WorkspaceHandle) -> tuple[Container, bool]:
        """Reuse, restart or create the project's container.

        Returns the container and whether it was newly created.
        """
        name = handle.container_name
        container = await self.runtime.get_container(name)
        if container is not None:
            if await self.runtime.status(container) == "running":
                logger.info("Reusing workspace container", project_id=handle.project_id)
                return container, False
            try:
                await self.runtime.start(container)
                if container.status == "running":
                    logger.info("Workspace container restarted", project_id=handle.project_id)
                    return container, False
            except APIError as e:
                logger.warning(
                    "Workspace container failed to restart",
                    project_id=handle.project_id,
                    error=str(e)[:200],
                )
            logger.warning("Removing stale workspace container", project_id=handle.project_id)
            await self.runtime.remove(container)

        await self.runtime.ensure_volume(handle.volume_name, handle.project_id)
        try:
            container = await self.runtime.run_container(
                name, handle.volume_name, handle.project_id
            )
        except APIError as e:
            if e.status_code != HTTP_CONFLICT:
                raise
            # Another process created the same container first
            existing = await self.runtime.get_container(name)
            if existing is None:
                raise
            logger.info("Workspace container created concurrently", project_id=handle.project_id)
            return existing, False

        logger.info(
            "Workspace container created",
            project_id=handle.project_id,
            container=name,
            image=settings.workspace_image,
        )
        await asyncio.sleep(settings.container_start_grace)
        return container, True

    async def _initialize(self, project_id: str, container: Container) -> None:
        """Create the directory layout and install helper scripts (best-effort)."""
        setup = [commands.init_layout()]
        setup.extend(commands.install_script(name, body) for name, body in HELPER_SCRIPTS.items())
        for command in setup:
            try:
                result = await self.runtime.exec(container, command)
            except WorkspaceError as e:
                logger.warning(
                    "Workspace setup step failed",
                    project_id=project_id,
                    step=command.description,
                    error=str(e),
                )
                return
            if not result.ok:
                logger.warning(
                    "Workspace setup step failed",
                    project_id=project_id,
                    step=command.description,
                    stderr=result.error_text[:200],
                )
        logger.info("Workspace initialized", project_id=project_id, scripts=len(HELPER_SCRIPTS))

    def _forget_container(self, project_id: str) -> None:
        self._containers.pop(project_id, None)
        handle = self._handles.get(project_id)
        if handle is not None and handle.status != WorkspaceStatus.REMOVED:
            handle.status = WorkspaceStatus.STOPPED

    async def remove_workspace(self, project_id: str) -> None:
        """Stop and remove the project's container. The volume is kept."""
        validate_project_id(project_id)
        async with self._get_project_lock(project_id):
            container = self._containers.pop(project_id, None)
            if container is None:
                container = await self.runtime.get_container(self.container_name(project_id))
            if container is not None:
                await self.runtime.remove(container)
            handle = self._handles.get(project_id)
            if handle is not None:
                handle.status = WorkspaceStatus.REMOVED
                handle.container_id = None
        logger.info("Workspace removed", project_id=project_id)

    # Command execution

    async def exec(
        self, project_id: str, command: Command, timeout: float | None = None
    ) -> ExecResult:
        """Run a command in the project's container.

        If the container vanished mid-call it is recreated and the command
        retried once.

        Raises:
            WorkspaceUnavailableError: The container is gone even after recreation
            CommandTimeoutError: The command exceeded its timeout
        """
        for attempt in (1, 2):
            await self.get_or_create_workspace(project_id)
            container = self._containers[project_id]
            try:
                return await self.runtime.exec(container, command, timeout)
            except ContainerGoneError as e:
                logger.warning(
                    "Workspace container lost during command",
                    project_id=project_id,
                    command=command.description,
                    attempt=attempt,
                )
                self._forget_container(project_id)
                if attempt == 2:
                    raise WorkspaceUnavailableError(project_id, str(e)) from e
        raise WorkspaceUnavailableError(project_id, "unreachable")  # pragma: no cover

    async def _exec_checked(self, project_id: str, command: Command) -> ExecResult:
        result = await self.exec(project_id, command)
        if not result.ok:
            raise CommandFailedError(command.description, result.exit_code, result.error_text)
        return result

    # File primitives

    def _degraded(self, project_id: str, operation: str, path: str, reason: str) -> OpResult:
        logger.warning(
            "Workspace operation degraded",
            project_id=project_id,
            operation=operation,
            path=path,
            reason=reason,
        )
        return OpResult.degraded(reason)

    async def write_file(self, project_id: str, path: str, content: str) -> OpResult:
        """Write a file into the container and verify it by reading it back."""
        path = paths.normalize(path)
        data = content.encode("utf-8")
        try:
            for command in commands.write_file(path, data):
                result = await self.exec(project_id, command)
                if not result.ok:
                    return self._degraded(
                        project_id, "write", path, f"write failed: {result.error_text}"
                    )
            stored = await self._read_bytes(project_id, path)
        except (WorkspaceError, ValueError) as e:
            return self._degraded(project_id, "write", path, str(e))

        if stored != data:
            return self._degraded(project_id, "write", path, "read-back verification mismatch")
        return OpResult.success()

    async def _read_bytes(self, project_id: str, path: str) -> bytes | None:
        result = await self.exec(project_id, commands.read_file(path))
        if result.exit_code == commands.MISSING_EXIT_CODE:
            return None
        if not result.ok:
            raise CommandFailedError(f"read {path}", result.exit_code, result.error_text)
        return commands.decode_read_output(result.stdout)

    async def read_file(self, project_id: str, path: str) -> str | None:
        """File content from the container, None if the file does not exist."""
        data = await self._read_bytes(project_id, paths.normalize(path))
        if data is None:
            return None
        return data.decode("utf-8", errors="replace")

    async def _run_op(
        self, project_id: str, operation: str, path: str, command: Command
    ) -> OpResult:
        try:
            result = await self.exec(project_id, command)
        except WorkspaceError as e:
            return self._degraded(project_id, operation, path, str(e))
        if not result.ok:
            return self._degraded(project_id, operation, path, result.error_text or "failed")
        return OpResult.success()

    async def delete_file(self, project_id: str, path: str, prune: bool = True) -> OpResult:
        """Remove a file; with prune, its directory goes too if left empty."""
        path = paths.normalize(path)
        if not path:
            return OpResult.degraded("empty path")
        return await self._run_op(project_id, "delete", path, commands.delete_file(path, prune))

    async def delete_folder(self, project_id: str, path: str) -> OpResult:
        path = paths.normalize(path)
        if not path:
            return OpResult.degraded("refusing to delete the workspace root")
        return await self._run_op(project_id, "delete_folder", path, commands.delete_tree(path))

    async def create_folder(self, project_id: str, path: str) -> OpResult:
        path = paths.normalize(path)
        if not path:
            return OpResult.success()
        return await self._run_op(project_id, "mkdir", path, commands.make_dir(path))

    async def move_path(self, project_id: str, src: str, dst: str) -> OpResult:
        src, dst = paths.normalize(src), paths.normalize(dst)
        if not src or not dst:
            return OpResult.degraded("cannot move the workspace root")
        return await self._run_op(project_id, "move", src, commands.move(src, dst))

    # Listings

    async def list_files_recursive(
        self, project_id: str, subpath: str | None = None
    ) -> list[str]:
        """Canonical paths of every tracked file, optionally below subpath.

        Raises:
            CommandFailedError: The listing failed
        """
        subpath = paths.normalize(subpath)
        result = await self._exec_checked(project_id, commands.list_files(subpath or None))
        found = (paths.join(subpath, line) for line in result.text.splitlines() if line)
        return sorted(p for p in found if not paths.is_excluded(p))

    async def list_folders_recursive(self, project_id: str) -> list[str]:
        result = await self._exec_checked(project_id, commands.list_dirs())
        found = (paths.normalize(line) for line in result.text.splitlines() if line)
        return paths.sort_by_depth(p for p in found if p and not paths.is_excluded(p, is_dir=True))

    async def scan_tree(self, project_id: str) -> list[TreeEntry]:
        """Every tracked file and directory with size and mtime, in one exec."""
        result = await self._exec_checked(project_id, commands.scan_tree())
        entries: list[TreeEntry] = []
        for line in result.text.splitlines():
            parts = line.split("\t")
            if len(parts) != SCAN_FIELDS or not parts[1]:
                continue
            kind_code, path, size, mtime = parts
            if kind_code not in ("f", "d"):
                continue
            is_dir = kind_code == "d"
            path = paths.normalize(path)
            if paths.is_excluded(path, is_dir=is_dir):
                continue
            try:
                entries.append(
                    TreeEntry(
                        kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                        path=path,
                        size=int(size),
                        mtime=float(mtime),
                    )
                )
            except ValueError:
                logger.debug("Unparseable scan line skipped", project_id=project_id, line=line)
        return entries

    # Bidirectional sync

    async def sync_database_to_container(self, project_id: str) -> SyncReport:
        """Push every folder and file record into the container."""
        report = SyncReport()
        folders = await self.store.list_folders(project_id)
        for folder in sorted(folders, key=lambda f: (paths.depth(f.full_path), f.full_path)):
            op = await self.create_folder(project_id, folder.full_path)
            if op.ok:
                report.folders_created += 1
            else:
                report.failed += 1
                report.errors.append(f"{folder.full_path}: {op.reason}")

        files = await self.store.list_files(project_id)
        for file in sorted(files, key=lambda f: f.path):
            op = await self.write_file(project_id, file.path, file.content)
            if op.ok:
                report.created += 1
            else:
                report.failed += 1
                report.errors.append(f"{file.path}: {op.reason}")

        logger.info(
            "Database synced to workspace",
            project_id=project_id,
            folders=report.folders_created,
            files=report.created,
            failed=report.failed,
        )
        return report

    async def sync_container_to_database(
        self,
        project_id: str,
        owner_id: str | None = None,
        only: Iterable[str] | None = None,
    ) -> SyncReport:
        """Create and update file records from the container.

        Records missing from the container are left alone. When `only` is
        given, just those paths are considered.

        Raises:
            CommandFailedError: The container listing failed
        """
        report = SyncReport()
        container_paths = await self.list_files_recursive(project_id)
        if only is not None:
            wanted = {paths.normalize(p) for p in only}
            container_paths = [p for p in container_paths if p in wanted]
        if not container_paths:
            return report

        if owner_id is None:
            project = await self.store.get_project(project_id)
            owner_id = project.owner if project else None

        index = await FolderIndex.load(self.store, project_id)
        known: dict[str, File] = {}
        for record in await self.store.list_files(project_id):
            known.setdefault(record.path, record)

        for path in container_paths:
            try:
                content = await self.read_file(project_id, path)
                if content is None:
                    report.skipped += 1
                    continue

                existing = known.get(path)
                if existing is not None:
                    if existing.set_content(content, owner_id, SYNC_COMMENT):
                        await self.store.update_file(existing)
                        report.updated += 1
                    continue

                folder, folders_created = await index.ensure_path(
                    self.store, paths.parent_of(path), owner_id
                )
                report.folders_created += folders_created
                folder_id = folder.id if folder else None
                check = await self.duplicates.check_file_duplicate(
                    project_id, paths.name_of(path), path, folder_id
                )
                if check.is_duplicate:
                    report.skipped += 1
                    continue

                record = File.new(project_id, path, content, folder_id=folder_id, owner=owner_id)
                inserted = await self.store.insert_file(record)
                if inserted is None:
                    report.skipped += 1
                    continue
                if folder_id and inserted.id:
                    await self.store.add_file_to_folder(folder_id, inserted.id)
                known[path] = inserted
                report.created += 1
            except WorkspaceError as e:
                report.failed += 1
                report.errors.append(f"{path}: {e}")
                logger.warning(
                    "Failed to sync workspace file", project_id=project_id, path=path, error=str(e)
                )

        if report.created or report.updated:
            logger.info(
                "Workspace synced to database",
                project_id=project_id,
                created=report.created,
                updated=report.updated,
                folders_created=report.folders_created,
            )
        return report

    async def get_workspace_stats(self, project_id: str) -> WorkspaceStats:
        handle = await self.get_or_create_workspace(project_id)
        usage = await self.exec(project_id, commands.disk_usage())
        files = await self.list_files_recursive(project_id)
        return WorkspaceStats(
            project_id=project_id,
            status=handle.status,
            container_name=handle.container_name,
            disk_usage=usage.text.split()[0] if usage.ok and usage.text.strip() else None,
            file_count=len(files),
        )

    def close(self) -> None:
        self.runtime.close()
