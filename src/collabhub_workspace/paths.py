"""Canonical workspace paths.

A canonical path is '/'-separated, relative to the workspace root and has
no leading or trailing slash. The workspace root itself is ''.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from collabhub_workspace.config import settings

# Characters that are legal on Linux but break the project tree / editors
INVALID_PATH_CHARS = set('\\<>:"|?*')


def normalize(path: str | None) -> str:
    """Return the canonical form of a path.

    Collapses duplicate separators and '.', strips leading/trailing
    slashes and a leading workspace-root prefix.
    """
    if not path:
        return ""
    path = path.strip()
    root = settings.workspace_root.rstrip("/")
    if root and (path == root or path.startswith(root + "/")):
        path = path[len(root) :]
    segments = [s for s in path.split("/") if s and s != "."]
    return "/".join(segments)


def join(*parts: str | None) -> str:
    """Join path fragments into one canonical path."""
    return normalize("/".join(p for p in parts if p))


def split(path: str) -> tuple[str, str]:
    """Split a canonical path into (parent, name)."""
    path = normalize(path)
    parent, _, name = path.rpartition("/")
    return parent, name


def parent_of(path: str) -> str:
    return split(path)[0]


def name_of(path: str) -> str:
    return split(path)[1]


def depth(path: str) -> int:
    """Number of segments in a path ('' has depth 0)."""
    path = normalize(path)
    return len(path.split("/")) if path else 0


def ancestors(path: str) -> Iterator[str]:
    """Yield every proper ancestor of a path, shallowest first ('' excluded)."""
    segments = normalize(path).split("/")
    for i in range(1, len(segments)):
        yield "/".join(segments[:i])


def is_within(path: str, folder: str) -> bool:
    """True if path is folder itself or lies below it."""
    path, folder = normalize(path), normalize(folder)
    if not folder:
        return True
    return path == folder or path.startswith(folder + "/")


def rebase(path: str, old_prefix: str, new_prefix: str) -> str:
    """Move a path from under old_prefix to under new_prefix."""
    path, old_prefix = normalize(path), normalize(old_prefix)
    if path == old_prefix:
        return normalize(new_prefix)
    return join(new_prefix, path[len(old_prefix) + 1 :])


def container_path(path: str) -> str:
    """Absolute path of a canonical path inside the container."""
    rel = normalize(path)
    root = settings.workspace_root
    return f"{root}/{rel}" if rel else root


def extension_of(name: str) -> str:
    """Lower-case extension without the dot ('' when there is none)."""
    base = name_of(name) or name
    if "." not in base.lstrip("."):
        return ""
    return base.rsplit(".", 1)[1].lower()


def is_excluded(path: str, is_dir: bool = False) -> bool:
    """Whether a container entry is kept out of the project tree.

    Excluded are anything under an excluded directory, transient editor
    files, hidden files at the workspace root and names with characters
    the project tree cannot represent.
    """
    path = normalize(path)
    if not path:
        return True
    segments = path.split("/")
    if any(segment in settings.excluded_dirs for segment in segments):
        return True
    if any(ch in INVALID_PATH_CHARS for ch in path):
        return True
    name = segments[-1]
    if not is_dir:
        if any(name.endswith(suffix) for suffix in settings.transient_suffixes):
            return True
        if len(segments) == 1 and name.startswith("."):
            return True
    return False


def sort_by_depth(paths: Iterable[str]) -> list[str]:
    """Shallowest first, then lexicographic."""
    return sorted(paths, key=lambda p: (depth(p), p))
