"""Polling change detection for container workspaces.

Each watcher keeps, per watched project, an in-memory snapshot of the
container tree. A fixed-interval loop rescans, diffs against the snapshot
and schedules one debounced sync when anything changed. Consecutive scan
failures stop the project's watcher once they reach the threshold.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel

from collabhub_workspace.config import MAX_SCAN_INTERVAL, MIN_SCAN_INTERVAL, settings
from collabhub_workspace.models.events import (
    Change,
    ChangeAction,
    WatcherEvent,
    WatcherEventType,
)
from collabhub_workspace.models.workspace import SyncReport
from collabhub_workspace.validation import validate_project_id

if TYPE_CHECKING:
    from collabhub_workspace.managers.workspace_manager import WorkspaceManager

logger = structlog.get_logger()

Snapshot = dict[str, Hashable]
WatcherCallback = Callable[[WatcherEvent], Awaitable[None]]


def diff_snapshot(old: Snapshot, new: Snapshot) -> list[Change]:
    """Changes between two snapshots, ordered by path."""
    changes = [Change(ChangeAction.CREATED, p) for p in new.keys() - old.keys()]
    changes.extend(Change(ChangeAction.DELETED, p) for p in old.keys() - new.keys())
    changes.extend(
        Change(ChangeAction.MODIFIED, p) for p in new.keys() & old.keys() if new[p] != old[p]
    )
    return sorted(changes, key=lambda c: (c.path, c.action.value))


@dataclass
class WatcherStats:
    scans: int = 0
    skipped_ticks: int = 0
    scan_errors: int = 0
    changes_detected: int = 0
    syncs: int = 0
    sync_errors: int = 0
    total_scan_seconds: float = 0.0
    last_scan_at: datetime | None = None
    last_sync_at: datetime | None = None

    @property
    def average_scan_ms(self) -> float:
        return (self.total_scan_seconds / self.scans) * 1000 if self.scans else 0.0


@dataclass
class WatcherState:
    """Everything a watcher holds for one project."""

    project_id: str
    owner_id: str | None
    snapshot: Snapshot = field(default_factory=dict)
    active: bool = True
    error_count: int = 0
    pending_paths: set[str] = field(default_factory=set)
    loop_task: asyncio.Task[None] | None = None
    tick_task: asyncio.Task[None] | None = None
    sync_task: asyncio.Task[None] | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    stats: WatcherStats = field(default_factory=WatcherStats)

    def take_pending(self) -> set[str]:
        pending, self.pending_paths = self.pending_paths, set()
        return pending


class WatcherStatus(BaseModel):
    watcher: str
    project_id: str
    owner_id: str | None
    active: bool
    started_at: datetime
    tracked_entries: int
    error_count: int
    sync_pending: bool
    scans: int
    changes_detected: int
    syncs: int
    sync_errors: int
    average_scan_ms: float
    last_scan_at: datetime | None
    last_sync_at: datetime | None


class ForceSyncResult(BaseModel):
    success: bool
    report: SyncReport | None = None
    error: str | None = None


class PollingWatcher(ABC):
    """Registry of per-project polling loops for one kind of watcher."""

    name = "watcher"

    def __init__(
        self,
        workspace: WorkspaceManager,
        scan_interval: float,
        debounce: float,
        max_errors: int | None = None,
    ) -> None:
        self.workspace = workspace
        self.scan_interval = scan_interval
        self.debounce = debounce
        self.max_errors = max_errors or settings.watcher_max_errors
        self._states: dict[str, WatcherState] = {}
        self._callbacks: list[WatcherCallback] = []

    @abstractmethod
    async def take_snapshot(self, project_id: str) -> Snapshot:
        """Scan the container and return the current snapshot."""

    @abstractmethod
    async def sync(self, state: WatcherState, changed: Iterable[str] | None) -> SyncReport:
        """Bring the database up to date; changed=None means everything."""

    # Callbacks

    def register_callback(self, callback: WatcherCallback) -> None:
        self._callbacks.append(callback)

    def unregister_callback(self, callback: WatcherCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def _emit(
        self,
        event_type: WatcherEventType,
        state: WatcherState,
        changes: list[Change] | None = None,
        reason: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        event = WatcherEvent(
            type=event_type,
            watcher=self.name,
            project_id=state.project_id,
            changes=changes or [],
            reason=reason,
            data=data or {},
        )
        for callback in list(self._callbacks):
            try:
                await callback(event)
            except Exception:
                logger.exception(
                    "Watcher callback failed",
                    watcher=self.name,
                    project_id=state.project_id,
                    event_type=event_type.value,
                )

    # Lifecycle

    def is_watching(self, project_id: str) -> bool:
        return project_id in self._states

    async def start_watching(self, project_id: str, owner_id: str | None = None) -> bool:
        """Start polling a project. Returns True if the watcher is (already) active."""
        validate_project_id(project_id)
        if project_id in self._states:
            return True

        state = WatcherState(project_id=project_id, owner_id=owner_id)
        self._states[project_id] = state
        try:
            state.snapshot = await self.take_snapshot(project_id)
        except Exception as e:
            self._states.pop(project_id, None)
            logger.warning(
                "Watcher failed to start",
                watcher=self.name,
                project_id=project_id,
                error=str(e),
            )
            return False
        if self._states.get(project_id) is not state:
            # Stopped while the initial scan was running
            return False

        state.loop_task = asyncio.create_task(
            self._run(state), name=f"{self.name}:{project_id}"
        )
        logger.info(
            "Watcher started",
            watcher=self.name,
            project_id=project_id,
            tracked_entries=len(state.snapshot),
            interval=self.scan_interval,
        )
        await self._emit(WatcherEventType.STARTED, state)
        return True

    async def stop_watching(self, project_id: str, reason: str = "requested") -> bool:
        """Stop polling a project and discard its snapshot."""
        state = self._states.pop(project_id, None)
        if state is None:
            return False
        await self._shutdown(state, reason)
        return True

    async def stop_all(self) -> None:
        for project_id in list(self._states):
            await self.stop_watching(project_id, reason="shutdown")

    def emergency_stop(self) -> None:
        """Cancel every task immediately and drop all state."""
        for state in self._states.values():
            state.active = False
            for task in (state.loop_task, state.tick_task, state.sync_task):
                if task is not None and not task.done():
                    task.cancel()
        count = len(self._states)
        self._states.clear()
        logger.warning("Watcher emergency stop", watcher=self.name, stopped=count)

    async def _shutdown(self, state: WatcherState, reason: str) -> None:
        state.active = False
        current = asyncio.current_task()

        for task in (state.loop_task, state.sync_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        # An in-flight scan is allowed to finish
        tick = state.tick_task
        if tick is not None and tick is not current and not tick.done():
            with contextlib.suppress(Exception):
                await tick

        logger.info(
            "Watcher stopped",
            watcher=self.name,
            project_id=state.project_id,
            reason=reason,
        )
        await self._emit(WatcherEventType.STOPPED, state, reason=reason)

    # Polling

    async def _run(self, state: WatcherState) -> None:
        while state.active:
            await asyncio.sleep(self.scan_interval)
            if not state.active:
                break
            if state.tick_task is not None and not state.tick_task.done():
                state.stats.skipped_ticks += 1
                continue
            state.tick_task = asyncio.create_task(self._tick(state))

    async def _tick(self, state: WatcherState) -> None:
        started = time.monotonic()
        try:
            current = await self.take_snapshot(state.project_id)
        except Exception as e:
            state.error_count += 1
            state.stats.scan_errors += 1
            logger.warning(
                "Watcher scan failed",
                watcher=self.name,
                project_id=state.project_id,
                consecutive_errors=state.error_count,
                error=str(e),
            )
            if state.error_count >= self.max_errors and state.active:
                logger.error(
                    "Watcher stopping after repeated scan failures",
                    watcher=self.name,
                    project_id=state.project_id,
                    errors=state.error_count,
                )
                if self._states.get(state.project_id) is state:
                    del self._states[state.project_id]
                await self._shutdown(
                    state, reason=f"{state.error_count} consecutive scan failures: {e}"
                )
            return

        state.error_count = 0
        state.stats.scans += 1
        state.stats.total_scan_seconds += time.monotonic() - started
        state.stats.last_scan_at = datetime.now(UTC)

        changes = diff_snapshot(state.snapshot, current)
        state.snapshot = current
        if not changes or not state.active:
            return

        state.stats.changes_detected += len(changes)
        state.pending_paths.update(c.path for c in changes)
        logger.debug(
            "Workspace changes detected",
            watcher=self.name,
            project_id=state.project_id,
            count=len(changes),
        )
        await self._emit(WatcherEventType.CHANGES_DETECTED, state, changes=changes)
        self._schedule_sync(state)

    def _schedule_sync(self, state: WatcherState) -> None:
        # Changes during the debounce window join the pending sync
        if state.sync_task is not None and not state.sync_task.done():
            return
        state.sync_task = asyncio.create_task(self._debounced_sync(state))

    async def _debounced_sync(self, state: WatcherState) -> None:
        """Sync after the debounce delay until nothing is pending.

        Failed syncs put their paths back and are retried after another
        delay, giving up after max_errors consecutive failures.
        """
        failures = 0
        while state.active:
            await asyncio.sleep(self.debounce)
            if not state.active:
                return
            report = await self._perform_sync(state, state.take_pending())
            if report is not None:
                failures = 0
            else:
                failures += 1
                if failures >= self.max_errors:
                    logger.error(
                        "Watcher sync retries exhausted",
                        watcher=self.name,
                        project_id=state.project_id,
                        pending=len(state.pending_paths),
                    )
                    return
            if not state.pending_paths:
                return

    async def _perform_sync(
        self, state: WatcherState, changed: set[str] | None
    ) -> SyncReport | None:
        try:
            report = await self.sync(state, changed)
        except Exception as e:
            state.stats.sync_errors += 1
            if changed:
                state.pending_paths.update(changed)
            logger.warning(
                "Watcher sync failed",
                watcher=self.name,
                project_id=state.project_id,
                error=str(e),
            )
            await self._emit(WatcherEventType.SYNC_ERROR, state, reason=str(e))
            return None

        state.stats.syncs += 1
        state.stats.last_sync_at = datetime.now(UTC)
        await self._emit(
            WatcherEventType.SYNC_COMPLETED, state, data=report.model_dump(exclude={"errors"})
        )
        return report

    # Manual control

    async def force_sync(self, project_id: str, owner_id: str | None = None) -> ForceSyncResult:
        """Run a full sync now, whether or not the project is being watched."""
        state = self._states.get(project_id)
        if state is None:
            state = WatcherState(project_id=project_id, owner_id=owner_id, active=False)
        elif state.sync_task is not None and not state.sync_task.done():
            state.sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await state.sync_task
        if owner_id is not None:
            state.owner_id = owner_id
        state.pending_paths.clear()

        report = await self._perform_sync(state, None)
        if report is None:
            return ForceSyncResult(success=False, error="sync failed")
        state.error_count = 0
        return ForceSyncResult(success=True, report=report)

    def reset_error_count(self, project_id: str) -> bool:
        state = self._states.get(project_id)
        if state is None:
            return False
        state.error_count = 0
        return True

    async def update_scan_interval(self, seconds: float) -> None:
        """Change the polling interval for every project, restarting their loops."""
        if not MIN_SCAN_INTERVAL <= seconds <= MAX_SCAN_INTERVAL:
            msg = f"Scan interval must be between {MIN_SCAN_INTERVAL} and {MAX_SCAN_INTERVAL}s"
            raise ValueError(msg)
        self.scan_interval = seconds
        for state in list(self._states.values()):
            old = state.loop_task
            if old is not None and not old.done():
                old.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await old
            if not state.active:
                continue
            state.loop_task = asyncio.create_task(
                self._run(state), name=f"{self.name}:{state.project_id}"
            )
        logger.info("Watcher scan interval updated", watcher=self.name, interval=seconds)

    # Introspection

    def _status(self, state: WatcherState) -> WatcherStatus:
        return WatcherStatus(
            watcher=self.name,
            project_id=state.project_id,
            owner_id=state.owner_id,
            active=state.active,
            started_at=state.started_at,
            tracked_entries=len(state.snapshot),
            error_count=state.error_count,
            sync_pending=state.sync_task is not None and not state.sync_task.done(),
            scans=state.stats.scans,
            changes_detected=state.stats.changes_detected,
            syncs=state.stats.syncs,
            sync_errors=state.stats.sync_errors,
            average_scan_ms=state.stats.average_scan_ms,
            last_scan_at=state.stats.last_scan_at,
            last_sync_at=state.stats.last_sync_at,
        )

    def get_watcher_status(self, project_id: str) -> WatcherStatus | None:
        state = self._states.get(project_id)
        return self._status(state) if state else None

    def get_all_watcher_statuses(self) -> list[WatcherStatus]:
        return [self._status(state) for state in self._states.values()]

    def get_performance_metrics(self) -> dict[str, Any]:
        states = list(self._states.values())
        scans = sum(s.stats.scans for s in states)
        scan_seconds = sum(s.stats.total_scan_seconds for s in states)
        return {
            "watcher": self.name,
            "active_watchers": len(states),
            "scan_interval": self.scan_interval,
            "debounce": self.debounce,
            "total_scans": scans,
            "skipped_ticks": sum(s.stats.skipped_ticks for s in states),
            "scan_errors": sum(s.stats.scan_errors for s in states),
            "changes_detected": sum(s.stats.changes_detected for s in states),
            "syncs": sum(s.stats.syncs for s in states),
            "sync_errors": sum(s.stats.sync_errors for s in states),
            "average_scan_ms": (scan_seconds / scans) * 1000 if scans else 0.0,
            "tracked_entries": sum(len(s.snapshot) for s in states),
        }
