# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""ContainerInstance adapter over the Docker Engine SDK."""

from __future__ import annotations

import asyncio
import io
import posixpath
import tarfile
import time
from collections.abc import Callable, Sequence
from typing import Any, TypeVar
from urllib.parse import urlparse

import docker
import structlog
from docker.errors import DockerException, NotFound
from docker.models.containers import Container

from flycontainers.containers.instance import ExecResult
from flycontainers.kernel.exceptions import InstanceUnreachableException, PortNotMappedException

logger = structlog.get_logger(__name__)

R = TypeVar("R")

_TCP_SCHEMES = ("tcp", "http", "https")


class DockerContainerInstance:
    """Adapts a ``docker.models.containers.Container`` to ContainerInstance.

    Blocking SDK calls run in a worker thread. Docker SDK and transport
    errors surface as InstanceUnreachableException.

    Args:
        container: A container model from the Docker SDK.
        host: Address published ports are reachable on. Derived from the
            Docker client's base URL when omitted.
    """

    def __init__(self, container: Container, host: str | None = None) -> None:
        self._container = container
        self._host = host or _host_from_client(container)

    @classmethod
    def from_id(cls, container_id: str, client: docker.DockerClient | None = None) -> DockerContainerInstance:
        """Attach to an existing container by id or name."""
        try:
            client = client or docker.from_env()
            container = client.containers.get(container_id)
        except NotFound as exc:
            raise InstanceUnreachableException(
                f"Container '{container_id}' does not exist",
                code="CONTAINER_NOT_FOUND",
                context={"container": container_id},
            ) from exc
        except (DockerException, OSError) as exc:
            raise InstanceUnreachableException(
                f"Docker daemon is unreachable: {exc}",
                code="DOCKER_UNREACHABLE",
                context={"container": container_id},
            ) from exc
        return cls(container)

    @classmethod
    def from_testcontainer(cls, started: Any) -> DockerContainerInstance:
        """Wrap a started ``testcontainers`` DockerContainer."""
        return cls(started.get_wrapped_container(), host=started.get_container_host_ip())

    @property
    def id(self) -> str:
        return self._container.id

    @property
    def host(self) -> str:
        return self._host

    def mapped_port(self, port: int) -> int:
        """Host port published for container *port*, read from the cached model.

        Never calls the daemon. Await :meth:`refresh` after the container was
        (re)started so the bindings are current.
        """
        entries = self._port_bindings().get(f"{port}/tcp")
        if not entries:
            raise PortNotMappedException(
                f"Container port {port}/tcp is not published",
                context={"container": self._container.id, "port": port},
            )
        return int(entries[0]["HostPort"])

    async def refresh(self) -> None:
        """Reload the container model (state, port bindings)."""
        await self._run(self._container.reload)

    async def exec(self, command: Sequence[str]) -> ExecResult:
        exit_code, output = await self._run(self._container.exec_run, list(command), demux=True)
        stdout, stderr = output if output is not None else (None, None)
        return ExecResult(
            exit_code=exit_code if exit_code is not None else -1,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

    async def copy_file(
        self,
        path: str,
        content: bytes,
        mode: int = 0o644,
        uid: int = 0,
        gid: int = 0,
    ) -> None:
        directory, name = posixpath.split(path)
        archive = _tar_single_file(name, content, mode, uid, gid)
        copied = await self._run(self._container.put_archive, directory or "/", archive)
        if not copied:
            raise InstanceUnreachableException(
                f"Docker refused to copy '{path}' into the container",
                context={"container": self._container.id, "path": path},
            )
        logger.debug("container.file_copied", container=self._container.short_id, path=path, size=len(content))

    async def logs(self) -> str:
        return _decode(await self._run(self._container.logs, stdout=True, stderr=True))

    def _port_bindings(self) -> dict[str, Any]:
        return self._container.attrs.get("NetworkSettings", {}).get("Ports") or {}

    async def _run(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        return await asyncio.to_thread(self._guard, fn, *args, **kwargs)

    def _guard(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        try:
            return fn(*args, **kwargs)
        except (DockerException, OSError) as exc:
            raise InstanceUnreachableException(
                f"Container {self._container.short_id} is unreachable: {exc}",
                context={"container": self._container.id},
            ) from exc


def _host_from_client(container: Container) -> str:
    client = getattr(container, "client", None)
    base_url = getattr(getattr(client, "api", None), "base_url", "") or ""
    parsed = urlparse(base_url)
    if parsed.scheme in _TCP_SCHEMES and parsed.hostname:
        return parsed.hostname
    return "localhost"


def _tar_single_file(name: str, content: bytes, mode: int, uid: int, gid: int) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        info = tarfile.TarInfo(name=name)
        info.size = len(content)
        info.mode = mode
        info.uid = uid
        info.gid = gid
        info.mtime = int(time.time())
        tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def _decode(raw: bytes | None) -> str:
    return raw.decode("utf-8", errors="replace") if raw else ""
