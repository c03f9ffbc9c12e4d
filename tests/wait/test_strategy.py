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
"""Tests for WaitStrategy polling, timeouts, cancellation and failures."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from flycontainers.containers.instance import ExecResult
from flycontainers.kernel.exceptions import (
    InstanceUnreachableException,
    ProbeFailedException,
    ReadinessException,
    WaitCancelledException,
    WaitTimeoutException,
)
from flycontainers.wait.probes import ProbeResult
from flycontainers.wait.properties import WaitProperties
from flycontainers.wait.strategy import WaitState, WaitStrategy

FAST = timedelta(milliseconds=10)


def _strategy(timeout: float = 1.0, interval: timedelta = FAST) -> WaitStrategy:
    return WaitStrategy(interval=interval, timeout=timedelta(seconds=timeout))


class CountingProbe:
    """Reports PENDING until it has been evaluated ``ready_after`` times."""

    def __init__(self, name: str, ready_after: int | None = 1, failure: str | None = None) -> None:
        self.name = name
        self.ready_after = ready_after
        self.failure = failure
        self.calls = 0

    async def evaluate(self, instance: object) -> ProbeResult:
        self.calls += 1
        if self.failure is not None:
            return ProbeResult.failed(self.failure)
        if self.ready_after is not None and self.calls >= self.ready_after:
            return ProbeResult.ready()
        return ProbeResult.pending()

    def describe(self) -> str:
        return self.name


class TestFluentBuilders:
    def test_builders_return_same_strategy(self) -> None:
        strategy = WaitStrategy()
        assert strategy.until_command_is_completed("true") is strategy
        assert strategy.until_port_is_available(5432) is strategy
        assert strategy.until_file_exists("/ready") is strategy
        assert strategy.until_message_is_logged("started") is strategy
        assert len(strategy.probes) == 4

    def test_probes_keep_attachment_order(self) -> None:
        strategy = WaitStrategy().until_port_is_available(1433).until_command_is_completed(["pg_isready"])
        assert [p.describe() for p in strategy.probes] == ["port 1433/tcp", "command ['pg_isready']"]

    def test_port_probe_uses_connect_timeout(self) -> None:
        strategy = WaitStrategy(connect_timeout=timedelta(milliseconds=250)).until_port_is_available(80)
        assert strategy.probes[0].connect_timeout == 0.25

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout"):
            WaitStrategy(timeout=timedelta(0))

    def test_from_properties(self) -> None:
        strategy = WaitStrategy.from_properties(WaitProperties(interval=0.5, timeout=30))
        assert strategy.interval == timedelta(seconds=0.5)
        assert strategy.timeout == timedelta(seconds=30)


class TestReady:
    async def test_no_probes_is_ready_without_ticking(self, instance) -> None:
        result = await _strategy().await_ready(instance)
        assert result.state is WaitState.READY
        assert result.ticks == 0

    async def test_no_probes_ignores_pending_cancellation(self, instance) -> None:
        cancel = asyncio.Event()
        cancel.set()
        result = await _strategy().await_ready(instance, cancel)
        assert result.state is WaitState.READY

    async def test_ready_when_all_probes_ready(self, instance) -> None:
        strategy = _strategy().until_command_is_completed("true").until_file_exists("/tmp")
        result = await strategy.await_ready(instance)
        assert result.state is WaitState.READY
        assert result.ticks == 1
        assert instance.executed == [("/bin/sh", "-c", "true"), ("test", "-e", "/tmp")]

    async def test_polls_until_command_succeeds(self, instance) -> None:
        instance.exec_results = [ExecResult(1), ExecResult(1), ExecResult(0)]
        result = await _strategy().until_command_is_completed("pg_isready").await_ready(instance)
        assert result.ticks == 3
        assert len(instance.executed) == 3

    async def test_readiness_is_and_of_all_probes(self, instance) -> None:
        fast, slow = CountingProbe("fast"), CountingProbe("slow", ready_after=4)
        result = await _strategy().add_probe(fast).add_probe(slow).await_ready(instance)
        assert result.ticks == 4
        assert fast.calls == 4
        assert slow.calls == 4

    async def test_strategy_can_be_awaited_again_after_restart(self, instance) -> None:
        probe = CountingProbe("again")
        strategy = _strategy().add_probe(probe)
        await strategy.await_ready(instance)
        await strategy.await_ready(instance)
        assert probe.calls == 2


class TestTimeout:
    async def test_times_out_when_probe_stays_pending(self, instance) -> None:
        instance.exec_results = [ExecResult(1)]
        strategy = _strategy(timeout=0.1).until_command_is_completed("pg_isready")

        with pytest.raises(WaitTimeoutException) as exc_info:
            await strategy.await_ready(instance)

        assert exc_info.value.state is WaitState.TIMED_OUT
        assert exc_info.value.code == "WAIT_TIMEOUT"
        assert exc_info.value.probe == "command 'pg_isready'"
        assert "pg_isready" in str(exc_info.value)

    async def test_reports_first_probe_not_ready_in_attachment_order(self, instance) -> None:
        strategy = (
            _strategy(timeout=0.1)
            .add_probe(CountingProbe("up"))
            .add_probe(CountingProbe("first-pending", ready_after=None))
            .add_probe(CountingProbe("second-pending", ready_after=None))
        )
        with pytest.raises(WaitTimeoutException) as exc_info:
            await strategy.await_ready(instance)
        assert exc_info.value.probe == "first-pending"

    async def test_hanging_probe_is_bounded_by_timeout(self, instance) -> None:
        released = asyncio.Event()

        async def hangs(_: object) -> bool:
            try:
                await asyncio.sleep(10)
            finally:
                released.set()
            return True

        strategy = _strategy(timeout=0.1).until_operation_is_succeeded(hangs)
        with pytest.raises(WaitTimeoutException) as exc_info:
            await strategy.await_ready(instance)

        assert exc_info.value.probe == "hangs"
        assert released.is_set()
        assert exc_info.value.elapsed < 1.0


class TestCancellation:
    async def test_cancellation_before_start_wins_over_timeout(self, instance) -> None:
        cancel = asyncio.Event()
        cancel.set()
        strategy = _strategy(timeout=0.001).add_probe(CountingProbe("never", ready_after=None))

        with pytest.raises(WaitCancelledException) as exc_info:
            await strategy.await_ready(instance, cancel)

        assert exc_info.value.state is WaitState.CANCELLED
        assert exc_info.value.code == "WAIT_CANCELLED"

    async def test_cancellation_interrupts_sleep(self, instance) -> None:
        cancel = asyncio.Event()
        probe = CountingProbe("never", ready_after=None)
        strategy = _strategy(timeout=30, interval=timedelta(seconds=10)).add_probe(probe)
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(WaitCancelledException) as exc_info:
            await strategy.await_ready(instance, cancel)

        assert exc_info.value.elapsed < 1.0
        assert exc_info.value.probe == "never"
        assert probe.calls == 1

    async def test_cancellation_aborts_in_flight_probe(self, instance) -> None:
        cancel = asyncio.Event()
        released = asyncio.Event()

        async def slow_check(_: object) -> bool:
            try:
                await asyncio.sleep(10)
            finally:
                released.set()
            return True

        strategy = _strategy(timeout=30).until_operation_is_succeeded(slow_check, name="slow check")
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        with pytest.raises(WaitCancelledException, match="slow check"):
            await strategy.await_ready(instance, cancel)
        assert released.is_set()

    async def test_task_cancellation_propagates(self, instance) -> None:
        strategy = _strategy(timeout=30, interval=timedelta(seconds=10)).add_probe(
            CountingProbe("never", ready_after=None)
        )
        task = asyncio.create_task(strategy.await_ready(instance))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestFailure:
    async def test_unreachable_instance_fails_immediately(self, instance) -> None:
        instance.unreachable = True
        strategy = _strategy(timeout=30).until_command_is_completed("true")

        with pytest.raises(ProbeFailedException) as exc_info:
            await strategy.await_ready(instance)

        assert exc_info.value.state is WaitState.FAILED
        assert exc_info.value.code == "PROBE_FAILED"
        assert "unreachable" in exc_info.value.reason
        assert exc_info.value.elapsed < 1.0

    async def test_failure_stops_polling(self, instance) -> None:
        pending = CountingProbe("pending", ready_after=None)
        broken = CountingProbe("broken", failure="daemon gone")
        strategy = _strategy(timeout=30).add_probe(pending).add_probe(broken)

        with pytest.raises(ProbeFailedException) as exc_info:
            await strategy.await_ready(instance)

        assert exc_info.value.probe == "broken"
        assert pending.calls == 1
        assert broken.calls == 1

    async def test_failure_after_transient_pending(self, instance) -> None:
        instance.exec_results = [ExecResult(1), InstanceUnreachableException("container removed")]
        strategy = _strategy(timeout=30).until_command_is_completed("true")
        with pytest.raises(ProbeFailedException, match="container removed"):
            await strategy.await_ready(instance)

    async def test_operation_errors_propagate(self, instance) -> None:
        async def broken(_: object) -> bool:
            raise ValueError("bad query")

        with pytest.raises(ValueError, match="bad query"):
            await _strategy().until_operation_is_succeeded(broken).await_ready(instance)

    async def test_all_readiness_errors_share_a_base(self) -> None:
        for exc_type in (WaitTimeoutException, WaitCancelledException, ProbeFailedException):
            assert issubclass(exc_type, ReadinessException)
