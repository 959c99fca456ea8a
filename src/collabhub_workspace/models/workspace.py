"""Container workspace state and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class WorkspaceStatus(str, Enum):
    """Workspace lifecycle status.

    ABSENT -> CREATING -> RUNNING -> (STOPPED -> RUNNING)* -> REMOVED
    """

    ABSENT = "absent"
    CREATING = "creating"
    RUNNING = "running"
    STOPPED = "stopped"
    REMOVED = "removed"


@dataclass
class WorkspaceHandle:
    """The container backing one project's workspace."""

    project_id: str
    container_name: str
    volume_name: str
    container_id: str | None = None
    status: WorkspaceStatus = WorkspaceStatus.ABSENT
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class ExecResult:
    """Outcome of one command run inside a container."""

    exit_code: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def error_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()


class OpStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"


class OpResult(BaseModel):
    """Result of a best-effort container operation.

    A degraded result means the container side did not complete; the
    database side of the calling operation still stands.
    """

    status: OpStatus = OpStatus.OK
    reason: str | None = None

    @classmethod
    def success(cls) -> OpResult:
        return cls()

    @classmethod
    def degraded(cls, reason: str) -> OpResult:
        return cls(status=OpStatus.DEGRADED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status == OpStatus.OK


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a container tree scan."""

    kind: EntryKind
    path: str
    size: int = 0
    mtime: float = 0.0

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY


class SyncReport(BaseModel):
    """Counts from one sync or reconciliation pass."""

    created: int = 0
    folders_created: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    def merge(self, other: SyncReport) -> SyncReport:
        return SyncReport(
            created=self.created + other.created,
            folders_created=self.folders_created + other.folders_created,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            deleted=self.deleted + other.deleted,
            failed=self.failed + other.failed,
            errors=[*self.errors, *other.errors],
        )


class WorkspaceStats(BaseModel):
    project_id: str
    status: WorkspaceStatus
    container_name: str
    disk_usage: str | None = None
    file_count: int = 0
