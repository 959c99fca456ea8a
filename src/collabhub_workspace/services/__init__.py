"""Application services over the project tree."""

from collabhub_workspace.services.file_service import FileService

__all__ = ["FileService"]
