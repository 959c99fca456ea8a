"""Async wrapper around the Docker SDK for workspace containers."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import docker
import structlog
from docker.errors import APIError, DockerException, NotFound
from requests.exceptions import RequestException

from collabhub_workspace.config import settings
from collabhub_workspace.errors import (
    CommandTimeoutError,
    ContainerEngineError,
    ContainerGoneError,
)
from collabhub_workspace.models.workspace import ExecResult

if TYPE_CHECKING:
    from docker.models.containers import Container

    from collabhub_workspace.runtime.commands import Command

logger = structlog.get_logger()

PROJECT_LABEL = "collabhub.project_id"

# Docker API error fragments meaning the container is gone or not running
GONE_MARKERS = ("not running", "no such container", "broken pipe", "is restarting")


def _is_gone(error: APIError) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in GONE_MARKERS)


class ContainerRuntime:
    """Container, volume and exec primitives.

    The Docker SDK is blocking, so every call runs in a worker thread via
    asyncio.to_thread.
    """

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self.client = client or docker.from_env()

    async def get_container(self, name: str) -> Container | None:
        """Look up a container by name, None if it does not exist."""
        try:
            return await asyncio.to_thread(self.client.containers.get, name)
        except NotFound:
            return None

    async def ensure_volume(self, name: str, project_id: str) -> None:
        """Create the named volume unless it already exists."""
        try:
            await asyncio.to_thread(self.client.volumes.get, name)
        except NotFound:
            await asyncio.to_thread(
                self.client.volumes.create,
                name=name,
                labels={PROJECT_LABEL: project_id},
            )
            logger.info("Workspace volume created", volume=name, project_id=project_id)

    async def run_container(self, name: str, volume_name: str, project_id: str) -> Container:
        """Create and start a workspace container with the fixed resource ceiling."""
        return await asyncio.to_thread(
            self.client.containers.run,
            image=settings.workspace_image,
            command=settings.keepalive_command,
            name=name,
            detach=True,
            tty=True,
            working_dir=settings.workspace_root,
            volumes={volume_name: {"bind": settings.workspace_root, "mode": "rw"}},
            cpu_shares=settings.cpu_shares,
            mem_limit=settings.memory_limit,
            memswap_limit=settings.memswap_limit,
            network_mode=settings.network_mode,
            labels={PROJECT_LABEL: project_id},
            environment={"PROJECT_ID": project_id},
        )

    async def start(self, container: Container) -> None:
        await asyncio.to_thread(container.start)
        await asyncio.to_thread(container.reload)

    async def status(self, container: Container) -> str:
        """Refresh and return the container's status ('running', 'exited', ...)."""
        try:
            await asyncio.to_thread(container.reload)
        except NotFound:
            return "removed"
        except (DockerException, RequestException) as e:
            raise ContainerEngineError(f"Cannot inspect container {container.name}: {e}") from e
        return str(container.status)

    async def remove(self, container: Container) -> None:
        try:
            await asyncio.to_thread(container.remove, force=True)
        except NotFound:
            logger.debug("Container already removed", container=container.name)

    async def exec(
        self,
        container: Container,
        command: Command,
        timeout: float | None = None,
    ) -> ExecResult:
        """Run a command in the container.

        Raises:
            CommandTimeoutError: The command did not finish within the timeout
            ContainerGoneError: The container no longer exists or is not running
            ContainerEngineError: The engine failed the call for any other reason
        """
        effective_timeout = timeout or command.timeout or settings.exec_timeout
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(
                    container.exec_run,
                    cmd=command.argv,
                    workdir=settings.workspace_root,
                    demux=True,
                ),
                timeout=effective_timeout,
            )
        except TimeoutError as e:
            logger.warning(
                "Command timed out",
                container=container.name,
                command=command.description,
                timeout=effective_timeout,
            )
            raise CommandTimeoutError(command.description, effective_timeout) from e
        except NotFound as e:
            raise ContainerGoneError(str(e)) from e
        except APIError as e:
            if _is_gone(e):
                raise ContainerGoneError(str(e)) from e
            raise ContainerEngineError(str(e)) from e
        except (DockerException, RequestException) as e:
            raise ContainerEngineError(str(e)) from e

        stdout, stderr = result.output if result.output else (None, None)
        return ExecResult(
            exit_code=result.exit_code if result.exit_code is not None else -1,
            stdout=stdout or b"",
            stderr=stderr or b"",
        )

    def close(self) -> None:
        self.client.close()
