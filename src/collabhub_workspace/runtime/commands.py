"""Typed construction of the commands run inside workspace containers.

Every command is an argv list. Shell scripts are constant text; paths and
content reach them only as positional parameters ($1, $2, ...), so no user
data is ever spliced into script source.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field

from collabhub_workspace import paths
from collabhub_workspace.config import settings

# Exit status used by READ_FILE_SCRIPT when the file does not exist
MISSING_EXIT_CODE = 3

# Base64 characters per write chunk. A multiple of 4 so every chunk decodes
# on its own, and well below the kernel's 128 KiB single-argument limit.
WRITE_CHUNK_CHARS = 64 * 1024

TEMP_SUFFIX = ".tmp"

# $1 = target, $2 = base64 chunk. Starts a new temp file next to the target.
WRITE_BEGIN_SCRIPT = """set -e
mkdir -p "$(dirname "$1")"
printf '%s' "$2" | base64 -d > "$1"
"""

# $1 = temp file, $2 = base64 chunk
WRITE_APPEND_SCRIPT = """set -e
printf '%s' "$2" | base64 -d >> "$1"
"""

# $1 = temp file, $2 = target
WRITE_COMMIT_SCRIPT = """set -e
chmod 666 "$1"
mv -f "$1" "$2"
sync
"""

# $1 = file
READ_FILE_SCRIPT = """[ -f "$1" ] || exit 3
base64 "$1"
"""

# $1 = file, $2 = workspace root. Removes the parent directory when it is
# left empty, never the workspace root itself.
DELETE_FILE_SCRIPT = """rm -f -- "$1" || exit 1
parent="$(dirname "$1")"
if [ "$parent" != "$2" ]; then
    rmdir -- "$parent" 2>/dev/null || true
fi
"""

# $1 = file
REMOVE_FILE_SCRIPT = """rm -f -- "$1"
"""

# $1 = directory
DELETE_TREE_SCRIPT = """rm -rf -- "$1"
"""

# $1 = directory
MAKE_DIR_SCRIPT = """set -e
mkdir -p -- "$1"
chmod 777 "$1"
"""

# $1 = source, $2 = destination
MOVE_SCRIPT = """set -e
mkdir -p "$(dirname "$2")"
mv -- "$1" "$2"
"""

# $1 = workspace root
INIT_LAYOUT_SCRIPT = """set -e
mkdir -p "$1" /tmp/collabhub/bin /tmp/collabhub/build
chmod 777 "$1" /tmp/collabhub /tmp/collabhub/bin /tmp/collabhub/build
"""

# $1 = install path, $2 = base64 script body
INSTALL_SCRIPT_SCRIPT = """set -e
printf '%s' "$2" | base64 -d > "$1"
chmod 755 "$1"
"""

# find -printf format for tree scans: type, relative path, size, mtime
SCAN_FORMAT = "%y\\t%P\\t%s\\t%T@\\n"


@dataclass(frozen=True)
class Command:
    """A command ready to hand to the container runtime."""

    argv: list[str]
    description: str
    timeout: float | None = field(default=None, compare=False)


def _script(script: str, description: str, *args: str) -> Command:
    return Command(argv=["sh", "-c", script, "sh", *args], description=description)


def _abs(path: str) -> str:
    return paths.container_path(path)


def _require_path(path: str) -> str:
    rel = paths.normalize(path)
    if not rel:
        msg = "Refusing to operate on the workspace root"
        raise ValueError(msg)
    return rel


def temp_path_for(path: str) -> str:
    """Temp file a write goes through; ends in a suffix the watchers ignore."""
    return f"{_abs(path)}.collabhub{TEMP_SUFFIX}"


def write_file(path: str, data: bytes) -> list[Command]:
    """Commands that atomically replace a file with the given bytes.

    Content is base64 encoded, streamed into a temp file in chunks, made
    world-writable, renamed over the target and flushed.
    """
    rel = _require_path(path)
    tmp = temp_path_for(rel)
    encoded = base64.b64encode(data).decode("ascii")
    chunks = [
        encoded[i : i + WRITE_CHUNK_CHARS] for i in range(0, len(encoded), WRITE_CHUNK_CHARS)
    ] or [""]
    commands = [_script(WRITE_BEGIN_SCRIPT, f"write {rel}", tmp, chunks[0])]
    commands.extend(
        _script(WRITE_APPEND_SCRIPT, f"write {rel} (chunk)", tmp, chunk) for chunk in chunks[1:]
    )
    commands.append(_script(WRITE_COMMIT_SCRIPT, f"commit {rel}", tmp, _abs(rel)))
    return commands


def read_file(path: str) -> Command:
    rel = _require_path(path)
    return _script(READ_FILE_SCRIPT, f"read {rel}", _abs(rel))


def decode_read_output(stdout: bytes) -> bytes:
    """Decode READ_FILE_SCRIPT output (base64 wrapped at 76 columns)."""
    return base64.b64decode(b"".join(stdout.split()))


def delete_file(path: str, prune: bool = True) -> Command:
    """Remove a file, and its directory when prune is set and it is left empty."""
    rel = _require_path(path)
    if not prune:
        return _script(REMOVE_FILE_SCRIPT, f"remove {rel}", _abs(rel))
    return _script(DELETE_FILE_SCRIPT, f"delete {rel}", _abs(rel), settings.workspace_root)


def delete_tree(path: str) -> Command:
    rel = _require_path(path)
    return _script(DELETE_TREE_SCRIPT, f"delete tree {rel}", _abs(rel))


def make_dir(path: str) -> Command:
    rel = _require_path(path)
    return _script(MAKE_DIR_SCRIPT, f"mkdir {rel}", _abs(rel))


def move(src: str, dst: str) -> Command:
    src_rel, dst_rel = _require_path(src), _require_path(dst)
    return _script(MOVE_SCRIPT, f"move {src_rel} -> {dst_rel}", _abs(src_rel), _abs(dst_rel))


def init_layout() -> Command:
    return _script(INIT_LAYOUT_SCRIPT, "init workspace layout", settings.workspace_root)


def install_script(name: str, body: str) -> Command:
    encoded = base64.b64encode(body.encode("utf-8")).decode("ascii")
    return _script(INSTALL_SCRIPT_SCRIPT, f"install {name}", f"/usr/local/bin/{name}", encoded)


def _prune_args() -> list[str]:
    """find expression that prunes excluded directories."""
    args = ["("]
    for i, name in enumerate(settings.excluded_dirs):
        if i:
            args.append("-o")
        args.extend(["-name", name])
    args.extend([")", "-prune", "-o"])
    return args


def _find(root: str, *expression: str) -> list[str]:
    prune = _prune_args() if settings.excluded_dirs else []
    return ["find", root, "-mindepth", "1", *prune, *expression]


def list_files(subpath: str | None = None) -> Command:
    """Relative paths of every regular file under subpath (or the root)."""
    root = _abs(subpath or "")
    return Command(
        argv=_find(root, "-type", "f", "-printf", "%P\\n"),
        description=f"list files {paths.normalize(subpath) or '/'}",
    )


def list_dirs() -> Command:
    return Command(
        argv=_find(settings.workspace_root, "-type", "d", "-printf", "%P\\n"),
        description="list directories",
    )


def scan_tree() -> Command:
    """One listing of every file and directory with size and mtime."""
    return Command(
        argv=_find(
            settings.workspace_root,
            "(", "-type", "f", "-o", "-type", "d", ")",
            "-printf", SCAN_FORMAT,
        ),
        description="scan tree",
    )


def disk_usage() -> Command:
    return Command(argv=["du", "-sh", settings.workspace_root], description="disk usage")
