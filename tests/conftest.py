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
"""Shared fixtures: an in-memory container instance and logging isolation."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

import pytest
import structlog

from flycontainers.containers.instance import ExecResult
from flycontainers.kernel.exceptions import InstanceUnreachableException, PortNotMappedException


class FakeInstance:
    """ContainerInstance double that scripts exec results and records calls.

    ``exec_results`` is consumed front to back; the last entry repeats once
    the queue is down to one element. Entries that are exceptions are raised.
    """

    def __init__(self, host: str = "127.0.0.1", ports: dict[int, int] | None = None) -> None:
        self.host_name = host
        self.ports: dict[int, int] = dict(ports or {})
        self.exec_results: list[ExecResult | Exception] = [ExecResult(0)]
        self.executed: list[tuple[str, ...]] = []
        self.copied: list[tuple[str, bytes, int, int, int]] = []
        self.log_output = ""
        self.unreachable = False
        self.refreshed = 0

    @property
    def host(self) -> str:
        return self.host_name

    def mapped_port(self, port: int) -> int:
        self._check_reachable()
        if port not in self.ports:
            raise PortNotMappedException(f"Container port {port}/tcp is not published")
        return self.ports[port]

    async def exec(self, command: Sequence[str]) -> ExecResult:
        self._check_reachable()
        self.executed.append(tuple(command))
        outcome = self.exec_results[0] if len(self.exec_results) == 1 else self.exec_results.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def copy_file(self, path: str, content: bytes, mode: int = 0o644, uid: int = 0, gid: int = 0) -> None:
        self._check_reachable()
        self.copied.append((path, content, mode, uid, gid))

    async def logs(self) -> str:
        self._check_reachable()
        return self.log_output

    async def refresh(self) -> None:
        self._check_reachable()
        self.refreshed += 1

    def _check_reachable(self) -> None:
        if self.unreachable:
            raise InstanceUnreachableException("Docker daemon is unreachable")


@pytest.fixture
def instance() -> FakeInstance:
    return FakeInstance()


@pytest.fixture(autouse=True)
def _isolate_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
