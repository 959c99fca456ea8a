"""Workspace and session managers."""

from collabhub_workspace.managers.session_coordinator import SessionCoordinator
from collabhub_workspace.managers.workspace_manager import WorkspaceManager

__all__ = ["SessionCoordinator", "WorkspaceManager"]
