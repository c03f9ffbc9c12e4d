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
"""Tests for individual readiness probes."""

from __future__ import annotations

import asyncio
import socket
from unittest.mock import patch

import pytest

from flycontainers.containers.instance import ExecResult
from flycontainers.wait.probes import (
    CommandProbe,
    FileProbe,
    LogMessageProbe,
    OperationProbe,
    PortProbe,
    Probe,
    ProbeStatus,
)


def _closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestCommandProbe:
    def test_string_runs_through_shell(self) -> None:
        probe = CommandProbe.of("pg_isready -U postgres")
        assert probe.command == ("/bin/sh", "-c", "pg_isready -U postgres")
        assert probe.describe() == "command 'pg_isready -U postgres'"

    def test_sequence_runs_as_given(self) -> None:
        probe = CommandProbe.of(["redis-cli", "ping"])
        assert probe.command == ("redis-cli", "ping")

    def test_empty_sequence_rejected(self) -> None:
        with pytest.raises(ValueError):
            CommandProbe.of([])

    def test_implements_probe(self) -> None:
        assert isinstance(CommandProbe.of("true"), Probe)

    async def test_exit_zero_is_ready(self, instance) -> None:
        result = await CommandProbe.of("true").evaluate(instance)
        assert result.status is ProbeStatus.READY

    async def test_non_zero_exit_is_pending(self, instance) -> None:
        instance.exec_results = [ExecResult(2, stderr="no response")]
        result = await CommandProbe.of("pg_isready").evaluate(instance)
        assert result.status is ProbeStatus.PENDING
        assert result.reason == "exit code 2"

    async def test_unreachable_instance_is_failed(self, instance) -> None:
        instance.unreachable = True
        result = await CommandProbe.of("true").evaluate(instance)
        assert result.status is ProbeStatus.FAILED

    def test_probes_are_immutable(self) -> None:
        probe = CommandProbe.of("true")
        with pytest.raises(AttributeError):
            probe.command = ("false",)  # type: ignore[misc]


class TestPortProbe:
    async def test_listening_port_is_ready(self, instance) -> None:
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        try:
            instance.ports[5432] = server.sockets[0].getsockname()[1]
            result = await PortProbe(5432).evaluate(instance)
        finally:
            server.close()
            await server.wait_closed()
        assert result.status is ProbeStatus.READY

    async def test_refused_connection_is_pending(self, instance) -> None:
        instance.ports[5432] = _closed_port()
        result = await PortProbe(5432).evaluate(instance)
        assert result.status is ProbeStatus.PENDING

    async def test_connect_timeout_is_pending(self, instance) -> None:
        async def never_connects(*args, **kwargs):
            await asyncio.sleep(10)

        instance.ports[5432] = 15432
        with patch("flycontainers.wait.probes.asyncio.open_connection", never_connects):
            result = await PortProbe(5432, connect_timeout=0.05).evaluate(instance)
        assert result.status is ProbeStatus.PENDING
        assert "timed out" in result.reason

    async def test_unresolvable_host_is_failed(self, instance) -> None:
        instance.ports[5432] = 15432
        error = socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        with patch("flycontainers.wait.probes.asyncio.open_connection", side_effect=error):
            result = await PortProbe(5432).evaluate(instance)
        assert result.status is ProbeStatus.FAILED
        assert "cannot resolve host" in result.reason

    async def test_unmapped_port_is_failed(self, instance) -> None:
        result = await PortProbe(6379).evaluate(instance)
        assert result.status is ProbeStatus.FAILED
        assert "6379" in result.reason

    async def test_unreachable_instance_is_failed(self, instance) -> None:
        instance.unreachable = True
        result = await PortProbe(5432).evaluate(instance)
        assert result.status is ProbeStatus.FAILED


class TestFileProbe:
    async def test_checks_path_with_test_command(self, instance) -> None:
        result = await FileProbe("/var/run/ready").evaluate(instance)
        assert result.status is ProbeStatus.READY
        assert instance.executed == [("test", "-e", "/var/run/ready")]

    async def test_missing_file_is_pending(self, instance) -> None:
        instance.exec_results = [ExecResult(1)]
        result = await FileProbe("/var/run/ready").evaluate(instance)
        assert result.status is ProbeStatus.PENDING


class TestLogMessageProbe:
    async def test_matching_output_is_ready(self, instance) -> None:
        instance.log_output = "init\ndatabase system is ready to accept connections\n"
        result = await LogMessageProbe.of(r"ready to accept connections").evaluate(instance)
        assert result.status is ProbeStatus.READY

    async def test_missing_output_is_pending(self, instance) -> None:
        instance.log_output = "initdb: starting"
        result = await LogMessageProbe.of("ready").evaluate(instance)
        assert result.status is ProbeStatus.PENDING

    async def test_unreachable_instance_is_failed(self, instance) -> None:
        instance.unreachable = True
        result = await LogMessageProbe.of("ready").evaluate(instance)
        assert result.status is ProbeStatus.FAILED

    def test_describe(self) -> None:
        assert LogMessageProbe.of("Started").describe() == "log message /Started/"


class TestOperationProbe:
    async def test_true_is_ready_false_is_pending(self, instance) -> None:
        answers = iter([False, True])

        async def check(_: object) -> bool:
            return next(answers)

        probe = OperationProbe(check, "seed data loaded")
        assert (await probe.evaluate(instance)).status is ProbeStatus.PENDING
        assert (await probe.evaluate(instance)).status is ProbeStatus.READY
        assert probe.describe() == "seed data loaded"
