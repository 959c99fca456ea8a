"""In-memory folder index for recursive tree operations.

Loaded from one batch query per project so walks over a subtree never go
back to the database per level.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

from collabhub_workspace import paths
from collabhub_workspace.models.tree import Folder

if TYPE_CHECKING:
    from collabhub_workspace.storage.base import TreeStore

logger = structlog.get_logger()


class FolderIndex:
    """Folders of one project indexed by id, canonical path and parent."""

    def __init__(self, project_id: str, folders: list[Folder]) -> None:
        self.project_id = project_id
        self.by_id: dict[str, Folder] = {}
        self.by_path: dict[str, Folder] = {}
        self.children: dict[str | None, list[Folder]] = defaultdict(list)
        for folder in folders:
            self.add(folder)

    @classmethod
    async def load(cls, store: TreeStore, project_id: str) -> FolderIndex:
        return cls(project_id, await store.list_folders(project_id))

    def add(self, folder: Folder) -> None:
        if folder.id is not None:
            self.by_id[folder.id] = folder
        # First record in insertion order owns the path
        self.by_path.setdefault(folder.full_path, folder)
        self.children[folder.parent_id].append(folder)

    def discard(self, folder: Folder) -> None:
        if folder.id is not None:
            self.by_id.pop(folder.id, None)
        if self.by_path.get(folder.full_path) is folder:
            del self.by_path[folder.full_path]
        siblings = self.children.get(folder.parent_id, [])
        if folder in siblings:
            siblings.remove(folder)

    def get(self, path: str) -> Folder | None:
        return self.by_path.get(paths.normalize(path))

    def child_named(self, parent_id: str | None, name: str) -> Folder | None:
        for child in self.children.get(parent_id, []):
            if child.name == name:
                return child
        return None

    def descendants(self, folder_id: str) -> list[Folder]:
        """Every folder below folder_id, parents before children."""
        result: list[Folder] = []
        queue = list(self.children.get(folder_id, []))
        seen: set[str] = {folder_id}
        while queue:
            folder = queue.pop(0)
            if folder.id in seen:
                continue
            seen.add(folder.id or "")
            result.append(folder)
            queue.extend(self.children.get(folder.id, []))
        return result

    def is_descendant(self, folder_id: str, candidate_id: str) -> bool:
        """True if candidate_id is folder_id or lies beneath it."""
        if folder_id == candidate_id:
            return True
        return any(f.id == candidate_id for f in self.descendants(folder_id))

    def subtree_bottom_up(self, folder_id: str) -> list[Folder]:
        """The folder and its descendants, deepest first."""
        root = self.by_id.get(folder_id)
        folders = self.descendants(folder_id)
        if root is not None:
            folders.insert(0, root)
        return sorted(folders, key=lambda f: paths.depth(f.full_path), reverse=True)

    async def ensure_path(
        self, store: TreeStore, path: str, owner: str | None = None
    ) -> tuple[Folder | None, int]:
        """Make sure every folder of a canonical path exists.

        Missing folders are created shallowest first and linked into their
        parent. Returns the deepest folder (None for the root) and the
        number of records created.
        """
        path = paths.normalize(path)
        if not path:
            return None, 0

        created = 0
        parent: Folder | None = None
        for segment_path in [*paths.ancestors(path), path]:
            existing = self.get(segment_path) or self.child_named(
                parent.id if parent else None, paths.name_of(segment_path)
            )
            if existing is not None:
                parent = existing
                continue

            folder = Folder(
                project_id=self.project_id,
                name=paths.name_of(segment_path),
                owner=owner,
            )
            folder.place_under(parent)
            inserted = await store.insert_folder(folder)
            if inserted is None:
                # Lost a race with another writer; adopt its record
                inserted = await store.find_folder(self.project_id, folder.path, folder.name)
                if inserted is None:
                    logger.warning(
                        "Folder insert rejected and no existing record found",
                        project_id=self.project_id,
                        path=segment_path,
                    )
                    return None, created
            else:
                created += 1
                if parent is not None and parent.id and inserted.id:
                    await store.add_subfolder(parent.id, inserted.id)
                    parent.subfolders.append(inserted.id)
            self.add(inserted)
            parent = inserted

        return parent, created
