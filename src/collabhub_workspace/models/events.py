"""Change-watcher events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ChangeAction(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class Change:
    """A difference between two consecutive scans of one path."""

    action: ChangeAction
    path: str


class WatcherEventType(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    CHANGES_DETECTED = "changes_detected"
    SYNC_COMPLETED = "sync_completed"
    SYNC_ERROR = "sync_error"


@dataclass
class WatcherEvent:
    """Notification emitted by a watcher to registered callbacks."""

    type: WatcherEventType
    watcher: str
    project_id: str
    changes: list[Change] = field(default_factory=list)
    reason: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
