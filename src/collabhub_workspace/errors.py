"""Exceptions raised by the workspace service."""

from __future__ import annotations


class WorkspaceError(Exception):
    """Base class for workspace service errors."""


class WorkspaceUnavailableError(WorkspaceError):
    """The project's container could not be reached or (re)created."""

    def __init__(self, project_id: str, reason: str) -> None:
        super().__init__(f"Workspace for project {project_id} unavailable: {reason}")
        self.project_id = project_id
        self.reason = reason


class ContainerGoneError(WorkspaceError):
    """The container disappeared or stopped while a command was running."""


class ContainerEngineError(WorkspaceError):
    """The container engine rejected a call or could not be reached."""


class CommandTimeoutError(WorkspaceError):
    """A command inside the container exceeded its time limit."""

    def __init__(self, description: str, timeout: float) -> None:
        super().__init__(f"Command '{description}' timed out after {timeout}s")
        self.description = description
        self.timeout = timeout


class CommandFailedError(WorkspaceError):
    """A command whose result is required exited non-zero."""

    def __init__(self, description: str, exit_code: int, stderr: str = "") -> None:
        super().__init__(f"Command '{description}' failed with exit code {exit_code}: {stderr}")
        self.description = description
        self.exit_code = exit_code
        self.stderr = stderr


class ProjectNotFoundError(WorkspaceError):
    """No project with the given id."""


class RecordNotFoundError(WorkspaceError):
    """No file or folder record with the given id."""


class FileLockedError(WorkspaceError):
    """A file is locked for editing by another user."""

    def __init__(self, file_id: str, locked_by: str | None) -> None:
        super().__init__(f"File {file_id} is locked by {locked_by}")
        self.file_id = file_id
        self.locked_by = locked_by


class InvalidMoveError(WorkspaceError):
    """A folder cannot be moved into itself or one of its descendants."""


class NameConflictError(WorkspaceError):
    """A sibling with the same name already exists at the destination."""
