"""Project tree documents: projects, folders, files and file versions."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from collabhub_workspace import paths

LANGUAGE_BY_EXTENSION = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "go": "go",
    "rs": "rust",
    "php": "php",
    "rb": "ruby",
    "html": "html",
    "css": "css",
    "json": "json",
    "md": "markdown",
    "txt": "text",
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def file_type_for(name: str) -> str:
    """Editor language for a file name, 'text' when unknown."""
    return LANGUAGE_BY_EXTENSION.get(paths.extension_of(name), "text")


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class Project(BaseModel):
    """A collaborative project. Read-only for the workspace service."""

    id: str
    name: str
    owner: str
    status: ProjectStatus = ProjectStatus.ACTIVE


class FileVersion(BaseModel):
    """A snapshot of a file's content before it was overwritten."""

    content: str
    version: int
    modified_by: str | None = None
    modified_at: datetime = Field(default_factory=utcnow)
    comment: str = ""


class Folder(BaseModel):
    """A folder in a project's tree.

    `path` is the canonical path of the parent location ('' at the top
    level); the folder's own path is `full_path`.
    """

    id: str | None = None
    project_id: str
    name: str
    path: str = ""
    parent_id: str | None = None
    files: list[str] = Field(default_factory=list)
    subfolders: list[str] = Field(default_factory=list)
    level: int = 0
    is_archived: bool = False
    owner: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def full_path(self) -> str:
        return paths.join(self.path, self.name)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def place_under(self, parent: Folder | None) -> None:
        """Recompute path, level and parent for a new location."""
        if parent is None:
            self.parent_id = None
            self.path = ""
            self.level = 0
        else:
            self.parent_id = parent.id
            self.path = parent.full_path
            self.level = parent.level + 1
        self.updated_at = utcnow()


class File(BaseModel):
    """A file in a project's tree. `path` is the file's full canonical path."""

    id: str | None = None
    project_id: str
    name: str
    path: str
    folder_id: str | None = None
    content: str = ""
    size: int = 0
    extension: str = ""
    file_type: str = "text"
    is_locked: bool = False
    locked_by: str | None = None
    version: int = 1
    versions: list[FileVersion] = Field(default_factory=list)
    owner: str | None = None
    last_modified_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def new(
        cls,
        project_id: str,
        path: str,
        content: str = "",
        folder_id: str | None = None,
        owner: str | None = None,
    ) -> File:
        """Build a file record for a canonical path with derived fields filled in."""
        path = paths.normalize(path)
        name = paths.name_of(path)
        return cls(
            project_id=project_id,
            name=name,
            path=path,
            folder_id=folder_id,
            content=content,
            size=len(content.encode("utf-8")),
            extension=paths.extension_of(name),
            file_type=file_type_for(name),
            owner=owner,
            last_modified_by=owner,
        )

    def set_content(self, content: str, user_id: str | None = None, comment: str = "") -> bool:
        """Replace the content, snapshotting the previous version first.

        Returns False (and changes nothing) when the content is unchanged.
        """
        if content == self.content:
            return False
        self.versions.append(
            FileVersion(
                content=self.content,
                version=self.version,
                modified_by=self.last_modified_by,
                comment=comment,
            )
        )
        self.version += 1
        self.content = content
        self.size = len(content.encode("utf-8"))
        self.last_modified_by = user_id
        self.updated_at = utcnow()
        return True

    def is_locked_for(self, user_id: str) -> bool:
        """True when another user holds the edit lock."""
        return self.is_locked and self.locked_by is not None and self.locked_by != user_id
