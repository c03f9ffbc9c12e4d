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
"""Readiness probes: single, stateless checks against a live container.

Every probe answers one question about the container at the moment it is
evaluated and reports one of three outcomes:

- ``PENDING``: not ready yet, worth asking again later.
- ``READY``: the condition holds.
- ``FAILED``: the condition can never hold (daemon gone, port never
  published, host unresolvable); polling should stop.

Probes are frozen dataclasses. They hold configuration only and never
change the container they observe.
"""

from __future__ import annotations

import asyncio
import re
import socket
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from flycontainers.kernel.exceptions import InstanceUnreachableException, PortNotMappedException

if TYPE_CHECKING:
    from flycontainers.containers.instance import ContainerInstance

SHELL = ("/bin/sh", "-c")


class ProbeStatus(Enum):
    """Tri-state outcome of a single probe evaluation."""

    PENDING = "PENDING"
    READY = "READY"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe evaluation, with a reason for anything not ready."""

    status: ProbeStatus
    reason: str | None = None

    @classmethod
    def ready(cls) -> ProbeResult:
        return cls(ProbeStatus.READY)

    @classmethod
    def pending(cls, reason: str | None = None) -> ProbeResult:
        return cls(ProbeStatus.PENDING, reason)

    @classmethod
    def failed(cls, reason: str) -> ProbeResult:
        return cls(ProbeStatus.FAILED, reason)


@runtime_checkable
class Probe(Protocol):
    """A readiness check that can be attached to a WaitStrategy."""

    async def evaluate(self, instance: ContainerInstance) -> ProbeResult: ...

    def describe(self) -> str: ...


@dataclass(frozen=True)
class CommandProbe:
    """Ready once a command run inside the container exits with status 0."""

    command: tuple[str, ...]

    @classmethod
    def of(cls, command: str | Sequence[str]) -> CommandProbe:
        """Build from a shell string (run via ``/bin/sh -c``) or a token sequence."""
        if isinstance(command, str):
            return cls((*SHELL, command))
        tokens = tuple(command)
        if not tokens:
            raise ValueError("Command probe needs at least one token")
        return cls(tokens)

    async def evaluate(self, instance: ContainerInstance) -> ProbeResult:
        try:
            result = await instance.exec(self.command)
        except InstanceUnreachableException as exc:
            return ProbeResult.failed(str(exc))
        if result.exit_code == 0:
            return ProbeResult.ready()
        return ProbeResult.pending(f"exit code {result.exit_code}")

    def describe(self) -> str:
        if self.command[:2] == SHELL and len(self.command) == 3:
            return f"command '{self.command[2]}'"
        return f"command {list(self.command)}"


@dataclass(frozen=True)
class PortProbe:
    """Ready once the container port's host mapping accepts a TCP connection."""

    port: int
    connect_timeout: float = 1.0

    async def evaluate(self, instance: ContainerInstance) -> ProbeResult:
        try:
            host = instance.host
            mapped = instance.mapped_port(self.port)
        except (InstanceUnreachableException, PortNotMappedException) as exc:
            return ProbeResult.failed(str(exc))

        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, mapped),
                timeout=self.connect_timeout,
            )
        except socket.gaierror as exc:
            return ProbeResult.failed(f"cannot resolve host '{host}': {exc}")
        except TimeoutError:
            return ProbeResult.pending(f"{host}:{mapped} timed out")
        except OSError as exc:
            # Refused or reset: nothing is listening behind the mapping yet.
            return ProbeResult.pending(f"{host}:{mapped} {exc.strerror or exc}")

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return ProbeResult.ready()

    def describe(self) -> str:
        return f"port {self.port}/tcp"


@dataclass(frozen=True)
class FileProbe:
    """Ready once a path exists inside the container."""

    path: str

    async def evaluate(self, instance: ContainerInstance) -> ProbeResult:
        return await CommandProbe(("test", "-e", self.path)).evaluate(instance)

    def describe(self) -> str:
        return f"file '{self.path}'"


@dataclass(frozen=True)
class LogMessageProbe:
    """Ready once the container output matches a regular expression."""

    pattern: re.Pattern[str]

    @classmethod
    def of(cls, pattern: str | re.Pattern[str]) -> LogMessageProbe:
        return cls(re.compile(pattern) if isinstance(pattern, str) else pattern)

    async def evaluate(self, instance: ContainerInstance) -> ProbeResult:
        try:
            output = await instance.logs()
        except InstanceUnreachableException as exc:
            return ProbeResult.failed(str(exc))
        if self.pattern.search(output):
            return ProbeResult.ready()
        return ProbeResult.pending()

    def describe(self) -> str:
        return f"log message /{self.pattern.pattern}/"


@dataclass(frozen=True)
class OperationProbe:
    """Ready once a caller-supplied predicate returns True.

    Exceptions other than InstanceUnreachableException propagate to the
    caller of ``await_ready``.
    """

    operation: Callable[[ContainerInstance], Awaitable[bool]]
    name: str = field(default="operation")

    async def evaluate(self, instance: ContainerInstance) -> ProbeResult:
        try:
            succeeded = await self.operation(instance)
        except InstanceUnreachableException as exc:
            return ProbeResult.failed(str(exc))
        return ProbeResult.ready() if succeeded else ProbeResult.pending()

    def describe(self) -> str:
        return self.name
