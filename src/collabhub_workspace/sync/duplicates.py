"""Duplicate detection for tree records."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from collabhub_workspace import paths
from collabhub_workspace.models.tree import File, Folder

if TYPE_CHECKING:
    from collabhub_workspace.storage.base import TreeStore

T = TypeVar("T")

MATCH_PATH = "path"
MATCH_NAME_IN_PARENT = "name_in_parent"


@dataclass(frozen=True)
class DuplicateCheck:
    """Whether a record about to be created already exists."""

    is_duplicate: bool
    existing: File | Folder | None = None
    reason: str | None = None


NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


class DuplicateDetector:
    """Looks up existing records by canonical path and by (name, parent)."""

    def __init__(self, store: TreeStore) -> None:
        self._store = store

    async def check_file_duplicate(
        self, project_id: str, name: str, path: str, folder_id: str | None
    ) -> DuplicateCheck:
        existing = await self._store.find_file_by_path(project_id, paths.normalize(path))
        if existing is not None:
            return DuplicateCheck(True, existing, MATCH_PATH)
        existing = await self._store.find_file_in_folder(project_id, name, folder_id)
        if existing is not None:
            return DuplicateCheck(True, existing, MATCH_NAME_IN_PARENT)
        return NOT_DUPLICATE

    async def check_folder_duplicate(
        self, project_id: str, name: str, parent_path: str, parent_id: str | None
    ) -> DuplicateCheck:
        existing = await self._store.find_folder(project_id, paths.normalize(parent_path), name)
        if existing is not None:
            return DuplicateCheck(True, existing, MATCH_PATH)
        existing = await self._store.find_folder_in_parent(project_id, name, parent_id)
        if existing is not None:
            return DuplicateCheck(True, existing, MATCH_NAME_IN_PARENT)
        return NOT_DUPLICATE


def group_duplicates(records: Iterable[T], key: Callable[[T], str]) -> list[list[T]]:
    """Groups of records sharing a key, in insertion order, only groups larger than one."""
    groups: dict[str, list[T]] = defaultdict(list)
    for record in records:
        groups[key(record)].append(record)
    return [group for group in groups.values() if len(group) > 1]
