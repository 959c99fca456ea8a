"""Input validation for identifiers and workspace paths."""

from __future__ import annotations

import re

# Project ids become part of container and volume names, record ids reach
# Mongo queries; neither may carry separators, dots or shell metacharacters
SAFE_ID_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")

# Characters never accepted in a file or folder name
UNSAFE_NAME_CHARS = set('\\<>:"|?*\x00')


class ValidationError(ValueError):
    """An identifier, name or path was rejected."""


def validate_id(value: str, id_type: str = "ID") -> str:
    """Return value unchanged if it is a non-empty run of letters, digits, `_` and `-`.

    Raises:
        ValidationError: Empty, or containing any other character
    """
    if not value:
        raise ValidationError(f"Invalid {id_type}: cannot be empty")
    if SAFE_ID_PATTERN.fullmatch(value) is None:
        raise ValidationError(f"Invalid {id_type}: contains unsafe characters")
    return value


def validate_project_id(project_id: str) -> str:
    return validate_id(project_id, "project_id")


def validate_user_id(user_id: str) -> str:
    return validate_id(user_id, "user_id")


def validate_name(name: str, kind: str = "name") -> str:
    """Validate a single file or folder name (no separators, no traversal)."""
    if not name or not name.strip():
        raise ValidationError(f"Invalid {kind}: cannot be empty")
    if "/" in name or name in (".", ".."):
        raise ValidationError(f"Invalid {kind}: must be a single path segment")
    if any(ch in UNSAFE_NAME_CHARS for ch in name):
        raise ValidationError(f"Invalid {kind}: contains unsafe characters")
    return name


def validate_relative_path(path: str) -> str:
    """Validate a root-relative workspace path.

    Every segment must be a valid name, so '..' can never escape the
    workspace root.
    """
    segments = [s for s in path.replace("\\", "/").split("/") if s]
    if not segments:
        raise ValidationError("Invalid path: cannot be empty")
    for segment in segments:
        validate_name(segment, "path segment")
    return "/".join(segments)
