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
"""The container instance contract consumed by probes and database instances.

Readiness probes and the database helpers never talk to a container runtime
directly. They go through :class:`ContainerInstance`, which an adapter (see
:mod:`flycontainers.containers.docker`) or a test fake implements.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a command executed inside a container."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class ContainerInstance(Protocol):
    """A running container whose readiness and connection details are tracked.

    Implementations raise
    :class:`~flycontainers.kernel.exceptions.InstanceUnreachableException`
    when the runtime cannot be reached or the container no longer exists,
    and :class:`~flycontainers.kernel.exceptions.PortNotMappedException` when
    a container port has no host binding.
    """

    @property
    def host(self) -> str:
        """Host name or address the container's published ports listen on."""
        ...

    def mapped_port(self, port: int) -> int:
        """Return the host port bound to the container's TCP *port*."""
        ...

    async def exec(self, command: Sequence[str]) -> ExecResult:
        """Run *command* inside the container and wait for it to exit."""
        ...

    async def copy_file(
        self,
        path: str,
        content: bytes,
        mode: int = 0o644,
        uid: int = 0,
        gid: int = 0,
    ) -> None:
        """Write *content* to *path* inside the container."""
        ...

    async def logs(self) -> str:
        """Return the container's combined stdout/stderr output so far."""
        ...
