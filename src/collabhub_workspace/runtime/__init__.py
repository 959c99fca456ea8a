"""Container runtime access and in-container commands."""

from collabhub_workspace.runtime.client import ContainerRuntime
from collabhub_workspace.runtime.commands import Command

__all__ = ["Command", "ContainerRuntime"]
