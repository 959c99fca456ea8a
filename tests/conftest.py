"""Shared test fixtures for the workspace service tests."""

from __future__ import annotations

import base64
import itertools
import posixpath
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, NotFound

from collabhub_workspace.config import settings
from collabhub_workspace.models.tree import File, Folder, Project
from collabhub_workspace.runtime import commands
from collabhub_workspace.storage.base import TreeStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from collabhub_workspace.managers.workspace_manager import WorkspaceManager
    from collabhub_workspace.runtime.client import ContainerRuntime
    from collabhub_workspace.sync.reconciliation import ReconciliationService

PROJECT_ID = "proj-1"
OWNER_ID = "owner-1"


# ============================================
# Tree store
# ============================================


class MockTreeStore(TreeStore):
    """In-memory tree store for unit tests without MongoDB.

    Enforces the same unique indexes as MongoTreeStore unless
    allow_duplicates is set, which lets tests seed the duplicates that
    racing writers produce in production.
    """

    def __init__(self) -> None:
        self.projects: dict[str, Project] = {}
        self.files: dict[str, File] = {}
        self.folders: dict[str, Folder] = {}
        self.allow_duplicates = False

    def add_project(self, project_id: str = PROJECT_ID, owner: str = OWNER_ID) -> Project:
        project = Project(id=project_id, name=f"Project {project_id}", owner=owner)
        self.projects[project_id] = project
        return project

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    async def get_project(self, project_id: str) -> Project | None:
        return self.projects.get(project_id)

    async def get_file(self, file_id: str) -> File | None:
        file = self.files.get(file_id)
        return file.model_copy(deep=True) if file else None

    async def get_folder(self, folder_id: str) -> Folder | None:
        folder = self.folders.get(folder_id)
        return folder.model_copy(deep=True) if folder else None

    async def list_files(self, project_id: str) -> list[File]:
        return [f.model_copy(deep=True) for f in self.files.values() if f.project_id == project_id]

    async def list_folders(self, project_id: str) -> list[Folder]:
        return [
            f.model_copy(deep=True) for f in self.folders.values() if f.project_id == project_id
        ]

    async def find_file_by_path(self, project_id: str, path: str) -> File | None:
        for file in self.files.values():
            if file.project_id == project_id and file.path == path:
                return file.model_copy(deep=True)
        return None

    async def find_file_in_folder(
        self, project_id: str, name: str, folder_id: str | None
    ) -> File | None:
        for file in self.files.values():
            if file.project_id == project_id and file.name == name and file.folder_id == folder_id:
                return file.model_copy(deep=True)
        return None

    async def find_folder(self, project_id: str, path: str, name: str) -> Folder | None:
        for folder in self.folders.values():
            if folder.project_id == project_id and folder.path == path and folder.name == name:
                return folder.model_copy(deep=True)
        return None

    async def find_folder_in_parent(
        self, project_id: str, name: str, parent_id: str | None
    ) -> Folder | None:
        for folder in self.folders.values():
            if (
                folder.project_id == project_id
                and folder.name == name
                and folder.parent_id == parent_id
            ):
                return folder.model_copy(deep=True)
        return None

    async def insert_file(self, file: File) -> File | None:
        if not self.allow_duplicates and await self.find_file_by_path(file.project_id, file.path):
            return None
        record = file.model_copy(deep=True, update={"id": self._new_id()})
        self.files[record.id or ""] = record
        return record.model_copy(deep=True)

    async def insert_folder(self, folder: Folder) -> Folder | None:
        if not self.allow_duplicates and await self.find_folder(
            folder.project_id, folder.path, folder.name
        ):
            return None
        record = folder.model_copy(deep=True, update={"id": self._new_id()})
        self.folders[record.id or ""] = record
        return record.model_copy(deep=True)

    async def update_file(self, file: File) -> None:
        if file.id in self.files:
            self.files[file.id] = file.model_copy(deep=True)

    async def update_folder(self, folder: Folder) -> None:
        if folder.id in self.folders:
            self.folders[folder.id] = folder.model_copy(deep=True)

    async def delete_file(self, file_id: str) -> bool:
        return self.files.pop(file_id, None) is not None

    async def delete_folder(self, folder_id: str) -> bool:
        return self.folders.pop(folder_id, None) is not None

    async def add_file_to_folder(self, folder_id: str, file_id: str) -> None:
        folder = self.folders.get(folder_id)
        if folder is not None and file_id not in folder.files:
            folder.files.append(file_id)

    async def remove_file_from_folder(self, folder_id: str, file_id: str) -> None:
        folder = self.folders.get(folder_id)
        if folder is not None and file_id in folder.files:
            folder.files.remove(file_id)

    async def add_subfolder(self, folder_id: str, child_id: str) -> None:
        folder = self.folders.get(folder_id)
        if folder is not None and child_id not in folder.subfolders:
            folder.subfolders.append(child_id)

    async def remove_subfolder(self, folder_id: str, child_id: str) -> None:
        folder = self.folders.get(folder_id)
        if folder is not None and child_id in folder.subfolders:
            folder.subfolders.remove(child_id)

    # Seeding helpers

    def seed_folder(self, path: str, name: str, parent_id: str | None = None) -> Folder:
        """Insert a folder record directly, bypassing the unique index."""
        folder = Folder(
            id=self._new_id(),
            project_id=PROJECT_ID,
            name=name,
            path=path,
            parent_id=parent_id,
            level=len(path.split("/")) if path else 0,
        )
        self.folders[folder.id or ""] = folder
        if parent_id in self.folders:
            self.folders[parent_id].subfolders.append(folder.id or "")
        return folder

    def seed_file(self, path: str, content: str = "", folder_id: str | None = None) -> File:
        """Insert a file record directly, bypassing the unique index."""
        file = File.new(PROJECT_ID, path, content, folder_id=folder_id, owner=OWNER_ID)
        file.id = self._new_id()
        self.files[file.id] = file
        if folder_id in self.folders:
            self.folders[folder_id].files.append(file.id)
        return file

    def file_paths(self) -> list[str]:
        return sorted(f.path for f in self.files.values())

    def folder_paths(self) -> list[str]:
        return sorted(f.full_path for f in self.folders.values())


# ============================================
# Fake Docker engine
# ============================================


@dataclass
class ExecOutput:
    exit_code: int
    output: tuple[bytes | None, bytes | None]


class FakeFilesystem:
    """A container filesystem that understands the command builder's argv.

    Shell scripts are recognised by identity with the constants in
    runtime.commands and find invocations by their -printf format.
    """

    def __init__(self) -> None:
        self.root = settings.workspace_root
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {self.root}
        self.mtimes: dict[str, float] = {}
        self.installed: dict[str, str] = {}
        self.commands: list[list[str]] = []
        self._clock = itertools.count(1)

    # Direct manipulation for tests

    def _abs(self, path: str) -> str:
        return path if path.startswith("/") else f"{self.root}/{path}"

    def _touch(self, path: str) -> None:
        self.mtimes[path] = float(next(self._clock))

    def mkdir(self, path: str) -> None:
        path = self._abs(path).rstrip("/")
        while path and path not in self.dirs:
            self.dirs.add(path)
            self._touch(path)
            path = posixpath.dirname(path)

    def put(self, path: str, content: str | bytes) -> None:
        path = self._abs(path)
        self.mkdir(posixpath.dirname(path))
        self.files[path] = content.encode("utf-8") if isinstance(content, str) else content
        self._touch(path)

    def remove(self, path: str) -> None:
        path = self._abs(path)
        self.files.pop(path, None)
        for d in [d for d in self.dirs if d == path or d.startswith(path + "/")]:
            self.dirs.discard(d)
        for f in [f for f in self.files if f.startswith(path + "/")]:
            del self.files[f]

    def has_file(self, path: str) -> bool:
        return self._abs(path) in self.files

    def has_dir(self, path: str) -> bool:
        return self._abs(path) in self.dirs

    def read(self, path: str) -> str:
        return self.files[self._abs(path)].decode("utf-8")

    def _is_empty_dir(self, path: str) -> bool:
        prefix = path + "/"
        return not any(p.startswith(prefix) for p in itertools.chain(self.files, self.dirs))

    # Command execution

    def execute(self, cmd: list[str]) -> ExecOutput:
        self.commands.append(list(cmd))
        if cmd[:2] == ["sh", "-c"]:
            return self._script(cmd[2], cmd[4:])
        if cmd[0] == "find":
            return self._find(cmd)
        if cmd[0] == "du":
            return ExecOutput(0, (f"12K\t{self.root}\n".encode(), None))
        return ExecOutput(127, (None, b"command not found"))

    def _script(self, script: str, args: list[str]) -> ExecOutput:
        if script == commands.WRITE_BEGIN_SCRIPT:
            self.mkdir(posixpath.dirname(args[0]))
            self.files[args[0]] = base64.b64decode(args[1])
        elif script == commands.WRITE_APPEND_SCRIPT:
            if args[0] not in self.files:
                return ExecOutput(1, (None, b"no such file"))
            self.files[args[0]] += base64.b64decode(args[1])
        elif script == commands.WRITE_COMMIT_SCRIPT:
            if args[0] not in self.files:
                return ExecOutput(1, (None, b"mv: cannot stat"))
            self.files[args[1]] = self.files.pop(args[0])
            self._touch(args[1])
        elif script == commands.READ_FILE_SCRIPT:
            if args[0] not in self.files:
                return ExecOutput(commands.MISSING_EXIT_CODE, (None, None))
            return ExecOutput(0, (base64.encodebytes(self.files[args[0]]), None))
        elif script == commands.DELETE_FILE_SCRIPT:
            self.files.pop(args[0], None)
            parent = posixpath.dirname(args[0])
            if parent != args[1] and parent in self.dirs and self._is_empty_dir(parent):
                self.dirs.discard(parent)
        elif script == commands.REMOVE_FILE_SCRIPT:
            self.files.pop(args[0], None)
        elif script == commands.DELETE_TREE_SCRIPT:
            self.remove(args[0])
        elif script == commands.MAKE_DIR_SCRIPT:
            self.mkdir(args[0])
        elif script == commands.MOVE_SCRIPT:
            return self._move(args[0], args[1])
        elif script == commands.INIT_LAYOUT_SCRIPT:
            self.mkdir(args[0])
        elif script == commands.INSTALL_SCRIPT_SCRIPT:
            self.installed[args[0]] = base64.b64decode(args[1]).decode("utf-8")
        else:
            return ExecOutput(2, (None, b"unknown script"))
        return ExecOutput(0, (None, None))

    def _move(self, src: str, dst: str) -> ExecOutput:
        if src not in self.files and src not in self.dirs:
            return ExecOutput(1, (None, b"mv: cannot stat"))
        self.mkdir(posixpath.dirname(dst))

        def rebase(p: str) -> str:
            return dst + p[len(src) :]

        self.files = {
            (rebase(p) if p == src or p.startswith(src + "/") else p): data
            for p, data in self.files.items()
        }
        self.dirs = {rebase(d) if d == src or d.startswith(src + "/") else d for d in self.dirs}
        self._touch(dst)
        return ExecOutput(0, (None, None))

    def _find(self, cmd: list[str]) -> ExecOutput:
        root = cmd[1]
        if root not in self.dirs:
            return ExecOutput(1, (None, f"find: '{root}': No such file or directory".encode()))

        excluded: set[str] = set()
        if "-prune" in cmd:
            head = cmd[: cmd.index("-prune")]
            excluded = {head[i + 1] for i, arg in enumerate(head) if arg == "-name"}

        fmt = cmd[cmd.index("-printf") + 1]
        scan = fmt == commands.SCAN_FORMAT
        wanted = {"f", "d"} if scan else {cmd[cmd.index("-printf") - 1]}

        entries: list[tuple[str, str]] = [(p, "f") for p in self.files]
        entries.extend((d, "d") for d in self.dirs)
        lines: list[str] = []
        for path, kind in sorted(entries):
            if not path.startswith(root + "/"):
                continue
            rel = path[len(root) + 1 :]
            if any(segment in excluded for segment in rel.split("/")):
                continue
            if kind not in wanted:
                continue
            if scan:
                size = len(self.files[path]) if kind == "f" else 4096
                mtime = self.mtimes.get(path, 0.0)
                lines.append(f"{kind}\t{rel}\t{size}\t{mtime:.10f}\n")
            else:
                lines.append(f"{rel}\n")
        return ExecOutput(0, ("".join(lines).encode("utf-8"), None))


class FakeContainer:
    def __init__(self, name: str, fs: FakeFilesystem, owner: FakeContainers) -> None:
        self.id = uuid.uuid4().hex
        self.name = name
        self.status = "running"
        self.fs = fs
        self.removed = False
        self._owner = owner

    def reload(self) -> None:
        if self.removed:
            raise NotFound(f"No such container: {self.name}")

    def start(self) -> None:
        self.status = "running"

    def remove(self, force: bool = False) -> None:
        self.removed = True
        self._owner.by_name.pop(self.name, None)

    def exec_run(self, cmd: list[str], workdir: str | None = None, demux: bool = False) -> Any:
        if self.removed:
            raise NotFound(f"No such container: {self.name}")
        if self.status != "running":
            raise APIError(f"Container {self.id} is not running")
        return self.fs.execute(cmd)


class FakeContainers:
    def __init__(self, volumes: FakeVolumes) -> None:
        self.by_name: dict[str, FakeContainer] = {}
        self.run_calls: list[dict[str, Any]] = []
        self._volumes = volumes

    def get(self, name: str) -> FakeContainer:
        container = self.by_name.get(name)
        if container is None:
            raise NotFound(f"No such container: {name}")
        return container

    def run(self, **kwargs: Any) -> FakeContainer:
        name = kwargs["name"]
        if name in self.by_name:
            raise APIError("Conflict", response=MagicMock(status_code=409))
        self.run_calls.append(kwargs)
        volume_name = next(iter(kwargs["volumes"]))
        container = FakeContainer(name, self._volumes.filesystem(volume_name), self)
        self.by_name[name] = container
        return container


class FakeVolumes:
    """Named volumes; each holds a filesystem that outlives its containers."""

    def __init__(self) -> None:
        self.by_name: dict[str, FakeFilesystem] = {}

    def get(self, name: str) -> FakeFilesystem:
        if name not in self.by_name:
            raise NotFound(f"volume {name} not found")
        return self.by_name[name]

    def create(self, name: str, labels: dict[str, str] | None = None) -> FakeFilesystem:
        return self.by_name.setdefault(name, FakeFilesystem())

    def filesystem(self, name: str) -> FakeFilesystem:
        return self.by_name.setdefault(name, FakeFilesystem())


class FakeDockerClient:
    def __init__(self) -> None:
        self.volumes = FakeVolumes()
        self.containers = FakeContainers(self.volumes)
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def filesystem(self, project_id: str = PROJECT_ID) -> FakeFilesystem:
        return self.volumes.filesystem(f"{settings.volume_prefix}{project_id}")


# ============================================
# Fixtures
# ============================================


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """No settle delay after container creation."""
    monkeypatch.setattr(settings, "container_start_grace", 0.0)


@pytest.fixture
def store() -> MockTreeStore:
    store = MockTreeStore()
    store.add_project()
    return store


@pytest.fixture
def docker_client() -> FakeDockerClient:
    return FakeDockerClient()


@pytest.fixture
def fs(docker_client: FakeDockerClient) -> FakeFilesystem:
    """Filesystem of the test project's workspace volume."""
    return docker_client.filesystem()


@pytest.fixture
def runtime(docker_client: FakeDockerClient) -> ContainerRuntime:
    from collabhub_workspace.runtime.client import ContainerRuntime

    return ContainerRuntime(client=docker_client)  # type: ignore[arg-type]


@pytest.fixture
def workspace(runtime: ContainerRuntime, store: MockTreeStore) -> WorkspaceManager:
    from collabhub_workspace.managers.workspace_manager import WorkspaceManager

    return WorkspaceManager(runtime, store)


@pytest.fixture
async def running_workspace(
    workspace: WorkspaceManager,
) -> AsyncGenerator[WorkspaceManager, None]:
    """Workspace manager with the test project's container already up."""
    await workspace.get_or_create_workspace(PROJECT_ID)
    yield workspace


@pytest.fixture
def reconciliation(workspace: WorkspaceManager, store: MockTreeStore) -> ReconciliationService:
    from collabhub_workspace.sync.reconciliation import ReconciliationService

    return ReconciliationService(store, workspace)
