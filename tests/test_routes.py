"""Tests for the HTTP routes and error mapping."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from collabhub_workspace.deps import (
    get_file_service,
    get_file_watcher,
    get_folder_watcher,
    get_reconciliation,
    get_sessions,
    get_workspace_manager,
)
from collabhub_workspace.errors import (
    CommandFailedError,
    ContainerEngineError,
    FileLockedError,
    InvalidMoveError,
    NameConflictError,
    ProjectNotFoundError,
    RecordNotFoundError,
    WorkspaceUnavailableError,
)
from collabhub_workspace.main import app
from collabhub_workspace.managers.session_coordinator import SessionState
from collabhub_workspace.models.tree import File, Folder
from collabhub_workspace.models.workspace import (
    OpResult,
    SyncReport,
    WorkspaceHandle,
    WorkspaceStatus,
)
from collabhub_workspace.services.file_service import (
    DeleteResult,
    FileResult,
    FolderResult,
    SaveResult,
)
from collabhub_workspace.sync.reconciliation import CleanupReport, FullSyncReport
from collabhub_workspace.validation import ValidationError
from collabhub_workspace.watchers.base import ForceSyncResult
from collabhub_workspace.watchers.file_watcher import FileWatcher
from collabhub_workspace.watchers.folder_watcher import FolderWatcher
from tests.conftest import PROJECT_ID

if TYPE_CHECKING:
    from collections.abc import Generator

USER_ID = "user-42"


@pytest.fixture
def file_service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def workspace_manager() -> MagicMock:
    manager = MagicMock()
    manager.get_or_create_workspace = AsyncMock(
        return_value=WorkspaceHandle(
            project_id=PROJECT_ID,
            container_name=f"workspace-{PROJECT_ID}",
            volume_name=f"volume-{PROJECT_ID}",
            container_id="abc123",
            status=WorkspaceStatus.RUNNING,
        )
    )
    return manager


@pytest.fixture
def watchers() -> tuple[MagicMock, MagicMock]:
    file_watcher = MagicMock()
    folder_watcher = MagicMock()
    for watcher in (file_watcher, folder_watcher):
        watcher.start_watching = AsyncMock(return_value=True)
        watcher.stop_watching = AsyncMock(return_value=True)
        watcher.force_sync = AsyncMock(
            return_value=ForceSyncResult(success=True, report=SyncReport(created=2))
        )
        watcher.get_watcher_status = MagicMock(return_value=None)
    return file_watcher, folder_watcher


@pytest.fixture
def client(
    file_service: MagicMock,
    workspace_manager: MagicMock,
    watchers: tuple[MagicMock, MagicMock],
) -> Generator[TestClient, None, None]:
    """Client with every service dependency replaced by a mock."""
    file_watcher, folder_watcher = watchers
    app.dependency_overrides[get_file_service] = lambda: file_service
    app.dependency_overrides[get_workspace_manager] = lambda: workspace_manager
    app.dependency_overrides[get_file_watcher] = lambda: file_watcher
    app.dependency_overrides[get_folder_watcher] = lambda: folder_watcher
    yield TestClient(app, headers={"X-User-ID": USER_ID})
    app.dependency_overrides.clear()


def a_file(**updates) -> File:
    file = File.new(PROJECT_ID, "src/main.py", "print(1)")
    file.id = "file-1"
    return file.model_copy(update=updates)


# ============================================
# Service endpoints
# ============================================


def test_health_needs_no_user():
    response = TestClient(app).get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "healthy", "service": "workspace"}


def test_root():
    response = TestClient(app).get("/")
    assert response.json()["service"] == "collabhub-workspace"


def test_missing_user_id_header(client, file_service):
    response = TestClient(app).put("/files/file-1/content", json={"content": "x"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    file_service.save_file.assert_not_called()


def test_unsafe_user_id_header(client, file_service):
    response = client.delete("/files/file-1", headers={"X-User-ID": "alice;rm -rf"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    file_service.delete_file.assert_not_called()


# ============================================
# Workspace and sessions
# ============================================


def test_get_or_create_workspace(client, workspace_manager):
    response = client.post(f"/projects/{PROJECT_ID}/workspace")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["container_name"] == f"workspace-{PROJECT_ID}"
    assert data["status"] == "running"
    workspace_manager.get_or_create_workspace.assert_awaited_once_with(PROJECT_ID)


def test_unsafe_project_id_is_bad_request(client, workspace_manager):
    workspace_manager.get_or_create_workspace.side_effect = ValidationError(
        "Invalid project_id: contains unsafe characters"
    )
    response = client.post("/projects/bad.id/workspace")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "unsafe" in response.json()["detail"]


def test_workspace_unavailable_hides_details(client, workspace_manager):
    workspace_manager.get_or_create_workspace.side_effect = WorkspaceUnavailableError(
        PROJECT_ID, "docker daemon at /var/run/docker.sock refused"
    )
    response = client.post(f"/projects/{PROJECT_ID}/workspace")
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json() == {"detail": "Workspace is unavailable"}


def test_engine_failure_is_503(client, workspace_manager):
    workspace_manager.get_workspace_stats = AsyncMock(
        side_effect=ContainerEngineError("500 Server Error (container is paused)")
    )
    response = client.get(f"/projects/{PROJECT_ID}/workspace/stats")
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert "paused" not in response.text


def test_unexpected_workspace_error_is_500(client, workspace_manager):
    workspace_manager.get_workspace_stats = AsyncMock(
        side_effect=CommandFailedError("du", 1, "secret stderr")
    )
    response = client.get(f"/projects/{PROJECT_ID}/workspace/stats")
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert "secret" not in response.text


def test_open_and_close_session(client):
    sessions = MagicMock()
    sessions.open_session = AsyncMock(
        return_value=SessionState(
            project_id=PROJECT_ID,
            status=WorkspaceStatus.RUNNING,
            open_sessions=1,
            file_watcher_active=True,
            folder_watcher_active=True,
            pushed=SyncReport(created=3),
        )
    )
    sessions.close_session = AsyncMock(
        return_value=SessionState(
            project_id=PROJECT_ID,
            status=WorkspaceStatus.RUNNING,
            open_sessions=0,
            file_watcher_active=False,
            folder_watcher_active=False,
        )
    )
    app.dependency_overrides[get_sessions] = lambda: sessions

    opened = client.post(f"/projects/{PROJECT_ID}/sessions")
    closed = client.delete(f"/projects/{PROJECT_ID}/sessions")

    assert opened.json()["pushed"]["created"] == 3
    assert closed.json()["open_sessions"] == 0
    sessions.open_session.assert_awaited_once_with(PROJECT_ID, USER_ID)
    sessions.close_session.assert_awaited_once_with(PROJECT_ID, USER_ID)


# ============================================
# Watchers
# ============================================


def test_start_and_stop_watchers(client, watchers, workspace_manager):
    file_watcher, folder_watcher = watchers

    started = client.post(f"/projects/{PROJECT_ID}/watchers")
    stopped = client.delete(f"/projects/{PROJECT_ID}/watchers")

    assert started.json() == {
        "project_id": PROJECT_ID,
        "file_watcher": True,
        "folder_watcher": True,
    }
    assert stopped.status_code == status.HTTP_204_NO_CONTENT
    workspace_manager.get_or_create_workspace.assert_awaited_once()
    file_watcher.start_watching.assert_awaited_once_with(PROJECT_ID, USER_ID)
    folder_watcher.stop_watching.assert_awaited_once_with(PROJECT_ID)


def test_watcher_status_not_watching(client):
    response = client.get(f"/projects/{PROJECT_ID}/watchers")
    assert response.json() == {
        "project_id": PROJECT_ID,
        "file_watcher": None,
        "folder_watcher": None,
    }


def test_force_sync(client, watchers):
    response = client.post(f"/projects/{PROJECT_ID}/watchers/sync")

    data = response.json()
    assert data["files"]["success"]
    assert data["folders"]["report"]["created"] == 2
    for watcher in watchers:
        watcher.force_sync.assert_awaited_once_with(PROJECT_ID, USER_ID)


def test_watcher_metrics_and_scan_interval():
    workspace = MagicMock()
    file_watcher = FileWatcher(workspace, scan_interval=2.0, debounce=1.0)
    folder_watcher = FolderWatcher(workspace, MagicMock(), scan_interval=3.0, debounce=1.0)
    app.dependency_overrides[get_file_watcher] = lambda: file_watcher
    app.dependency_overrides[get_folder_watcher] = lambda: folder_watcher
    try:
        client = TestClient(app, headers={"X-User-ID": USER_ID})

        metrics = client.get("/watchers/metrics").json()
        assert metrics["file_watcher"]["active_watchers"] == 0
        assert metrics["folder_watcher"]["scan_interval"] == 3.0

        response = client.put("/watchers/files/scan-interval", json={"seconds": 5})
        assert response.json() == {"watcher": "file_watcher", "scan_interval": 5.0}
        assert file_watcher.scan_interval == 5.0

        too_fast = client.put("/watchers/folders/scan-interval", json={"seconds": 0.1})
        assert too_fast.status_code == 422

        unknown = client.put("/watchers/terminals/scan-interval", json={"seconds": 1})
        assert unknown.status_code == status.HTTP_404_NOT_FOUND
    finally:
        app.dependency_overrides.clear()


# ============================================
# Maintenance
# ============================================


def test_cleanup_and_sync(client):
    reconciliation = MagicMock()
    reconciliation.full_cleanup = AsyncMock(
        return_value=CleanupReport(duplicate_files=SyncReport(deleted=2))
    )
    reconciliation.full_sync = AsyncMock(
        return_value=FullSyncReport(files=SyncReport(created=1))
    )
    app.dependency_overrides[get_reconciliation] = lambda: reconciliation

    cleanup = client.post(f"/projects/{PROJECT_ID}/maintenance/cleanup")
    sync = client.post(f"/projects/{PROJECT_ID}/maintenance/sync")

    assert cleanup.json()["duplicate_files"]["deleted"] == 2
    assert sync.json()["files"]["created"] == 1
    reconciliation.full_sync.assert_awaited_once_with(PROJECT_ID, USER_ID)


# ============================================
# Files and folders
# ============================================


def test_create_file(client, file_service):
    file_service.create_file = AsyncMock(return_value=FileResult(file=a_file()))

    response = client.post(
        f"/projects/{PROJECT_ID}/files",
        json={"name": "main.py", "folder_id": "folder-1", "content": "print(1)"},
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["file"]["path"] == "src/main.py"
    file_service.create_file.assert_awaited_once_with(
        PROJECT_ID, "main.py", folder_id="folder-1", content="print(1)", owner=USER_ID
    )


def test_create_file_unknown_project(client, file_service):
    file_service.create_file = AsyncMock(side_effect=ProjectNotFoundError("Project x not found"))
    response = client.post(f"/projects/{PROJECT_ID}/files", json={"name": "a.txt"})
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_create_folder(client, file_service):
    folder = Folder(id="folder-2", project_id=PROJECT_ID, name="lib", path="src", level=1)
    file_service.create_folder = AsyncMock(
        return_value=FolderResult(folder=folder, container=OpResult.degraded("mkdir failed"))
    )

    response = client.post(f"/projects/{PROJECT_ID}/folders", json={"name": "lib"})

    data = response.json()
    assert data["folder"]["name"] == "lib"
    assert data["container"]["status"] == "degraded"


def test_save_file_locked(client, file_service):
    file_service.save_file = AsyncMock(side_effect=FileLockedError("file-1", "alice"))
    response = client.put("/files/file-1/content", json={"content": "x"})
    assert response.status_code == status.HTTP_423_LOCKED
    assert "alice" in response.json()["detail"]


def test_save_file(client, file_service):
    file_service.save_file = AsyncMock(
        return_value=SaveResult(file=a_file(version=2), changed=True)
    )
    response = client.put("/files/file-1/content", json={"content": "print(2)"})
    assert response.json()["file"]["version"] == 2
    file_service.save_file.assert_awaited_once_with("file-1", "print(2)", USER_ID)


def test_lock_and_versions(client, file_service):
    file_service.lock_file = AsyncMock(return_value=a_file(is_locked=True, locked_by=USER_ID))
    file_service.get_file_versions = AsyncMock(return_value=[])

    assert client.post("/files/file-1/lock").json()["locked_by"] == USER_ID
    assert client.get("/files/file-1/versions").json() == []


def test_delete_missing_file(client, file_service):
    file_service.delete_file = AsyncMock(side_effect=RecordNotFoundError("File x not found"))
    response = client.delete("/files/file-1")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_unsafe_file_id_rejected(client, file_service):
    response = client.delete("/files/file;rm")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    file_service.delete_file.assert_not_called()


def test_delete_folder(client, file_service):
    file_service.delete_folder = AsyncMock(
        return_value=DeleteResult(files_deleted=4, folders_deleted=2)
    )
    data = client.delete("/folders/folder-1").json()
    assert data["files_deleted"] == 4
    assert data["folders_deleted"] == 2


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (InvalidMoveError("Cannot move a folder into itself"), status.HTTP_400_BAD_REQUEST),
        (NameConflictError("A folder named lib already exists"), status.HTTP_409_CONFLICT),
    ],
)
def test_move_folder_errors(client, file_service, error, expected):
    file_service.move_folder = AsyncMock(side_effect=error)
    response = client.post("/folders/folder-1/move", json={"new_parent_id": "folder-2"})
    assert response.status_code == expected


def test_copy_folder(client, file_service):
    file_service.copy_folder = AsyncMock(side_effect=NameConflictError("exists"))
    response = client.post("/folders/folder-1/copy", json={"new_name": "backup"})
    assert response.status_code == status.HTTP_409_CONFLICT
    file_service.copy_folder.assert_awaited_once_with(
        "folder-1", None, new_name="backup", user_id=USER_ID
    )
