"""Storage interface for project trees."""

from __future__ import annotations

from abc import ABC, abstractmethod

from collabhub_workspace.models.tree import File, Folder, Project


class TreeStore(ABC):
    """Persistence for projects, folders and files.

    Listing methods return records in insertion order. Insert methods
    return None instead of raising when a unique index rejects the record:
    (project_id, path) for files and (project_id, path, name) for folders.
    """

    @abstractmethod
    async def get_project(self, project_id: str) -> Project | None: ...

    @abstractmethod
    async def get_file(self, file_id: str) -> File | None: ...

    @abstractmethod
    async def get_folder(self, folder_id: str) -> Folder | None: ...

    @abstractmethod
    async def list_files(self, project_id: str) -> list[File]: ...

    @abstractmethod
    async def list_folders(self, project_id: str) -> list[Folder]: ...

    @abstractmethod
    async def find_file_by_path(self, project_id: str, path: str) -> File | None: ...

    @abstractmethod
    async def find_file_in_folder(
        self, project_id: str, name: str, folder_id: str | None
    ) -> File | None: ...

    @abstractmethod
    async def find_folder(self, project_id: str, path: str, name: str) -> Folder | None:
        """Folder with the given parent path and name."""

    @abstractmethod
    async def find_folder_in_parent(
        self, project_id: str, name: str, parent_id: str | None
    ) -> Folder | None: ...

    @abstractmethod
    async def insert_file(self, file: File) -> File | None: ...

    @abstractmethod
    async def insert_folder(self, folder: Folder) -> Folder | None: ...

    @abstractmethod
    async def update_file(self, file: File) -> None: ...

    @abstractmethod
    async def update_folder(self, folder: Folder) -> None: ...

    @abstractmethod
    async def delete_file(self, file_id: str) -> bool: ...

    @abstractmethod
    async def delete_folder(self, folder_id: str) -> bool: ...

    @abstractmethod
    async def add_file_to_folder(self, folder_id: str, file_id: str) -> None: ...

    @abstractmethod
    async def remove_file_from_folder(self, folder_id: str, file_id: str) -> None: ...

    @abstractmethod
    async def add_subfolder(self, folder_id: str, child_id: str) -> None: ...

    @abstractmethod
    async def remove_subfolder(self, folder_id: str, child_id: str) -> None: ...

    async def close(self) -> None:  # noqa: B027
        """Release connections. Optional for implementations."""
