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
"""Wait strategies: compose probes and poll them until a container is ready.

Usage:
    strategy = (
        WaitStrategy(timeout=timedelta(seconds=30))
        .until_port_is_available(5432)
        .until_command_is_completed("pg_isready -U postgres")
    )
    await strategy.await_ready(instance, cancel=stop_event)

A strategy is a reusable description. Each ``await_ready`` call starts a
fresh readiness run that moves through
``IDLE -> POLLING -> READY | TIMED_OUT | CANCELLED | FAILED`` exactly once.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from flycontainers.kernel.exceptions import (
    ProbeFailedException,
    WaitCancelledException,
    WaitTimeoutException,
)
from flycontainers.wait.probes import (
    CommandProbe,
    FileProbe,
    LogMessageProbe,
    OperationProbe,
    PortProbe,
    Probe,
    ProbeStatus,
)
from flycontainers.wait.properties import WaitProperties

if TYPE_CHECKING:
    from flycontainers.containers.instance import ContainerInstance

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class WaitState(Enum):
    """States of a single readiness run."""

    IDLE = "IDLE"
    POLLING = "POLLING"
    READY = "READY"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class WaitResult:
    """Summary of a readiness run that reached READY."""

    state: WaitState
    ticks: int
    elapsed: float


class WaitStrategy:
    """Ordered probes plus the polling policy that drives them.

    Readiness is the logical AND of every attached probe. A strategy with no
    probes is ready immediately.

    Args:
        interval: Pause between polling ticks.
        timeout: Overall budget for one readiness run.
        connect_timeout: Connect timeout used by port probes.
    """

    def __init__(
        self,
        interval: timedelta = timedelta(seconds=1),
        timeout: timedelta = timedelta(minutes=1),
        connect_timeout: timedelta = timedelta(seconds=1),
    ) -> None:
        if interval.total_seconds() < 0:
            raise ValueError("interval must not be negative")
        if timeout.total_seconds() <= 0:
            raise ValueError("timeout must be positive")
        self._interval = interval
        self._timeout = timeout
        self._connect_timeout = connect_timeout
        self._probes: list[Probe] = []

    @classmethod
    def from_properties(cls, properties: WaitProperties) -> WaitStrategy:
        """Create an empty strategy using bound ``flycontainers.wait`` settings."""
        return cls(
            interval=timedelta(seconds=properties.interval),
            timeout=timedelta(seconds=properties.timeout),
            connect_timeout=timedelta(seconds=properties.connect_timeout),
        )

    @property
    def interval(self) -> timedelta:
        return self._interval

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    @property
    def probes(self) -> tuple[Probe, ...]:
        return tuple(self._probes)

    # ------------------------------------------------------------------
    # Fluent builders
    # ------------------------------------------------------------------

    def add_probe(self, probe: Probe) -> WaitStrategy:
        """Attach a custom probe."""
        self._probes.append(probe)
        return self

    def until_command_is_completed(self, command: str | Sequence[str]) -> WaitStrategy:
        """Wait until *command* exits with status 0 inside the container.

        A string runs through ``/bin/sh -c``; a sequence runs as given.
        """
        return self.add_probe(CommandProbe.of(command))

    def until_port_is_available(self, port: int) -> WaitStrategy:
        """Wait until the host mapping of container *port* accepts TCP connections."""
        return self.add_probe(PortProbe(port, connect_timeout=self._connect_timeout.total_seconds()))

    def until_file_exists(self, path: str) -> WaitStrategy:
        """Wait until *path* exists inside the container."""
        return self.add_probe(FileProbe(path))

    def until_message_is_logged(self, pattern: str | re.Pattern[str]) -> WaitStrategy:
        """Wait until the container output matches *pattern*."""
        return self.add_probe(LogMessageProbe.of(pattern))

    def until_operation_is_succeeded(
        self,
        operation: Callable[[ContainerInstance], Awaitable[bool]],
        name: str | None = None,
    ) -> WaitStrategy:
        """Wait until the async predicate *operation* returns True."""
        return self.add_probe(OperationProbe(operation, name or getattr(operation, "__name__", "operation")))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def await_ready(
        self,
        instance: ContainerInstance,
        cancel: asyncio.Event | None = None,
    ) -> WaitResult:
        """Poll the attached probes until all of them report ready.

        Raises:
            ProbeFailedException: A probe reported an irrecoverable failure.
            WaitTimeoutException: The timeout elapsed first.
            WaitCancelledException: *cancel* was set first. Takes precedence
                over a timeout that elapses at the same moment.
        """
        run = _ReadinessRun(
            probes=tuple(self._probes),
            interval=self._interval.total_seconds(),
            timeout=self._timeout.total_seconds(),
            cancel=cancel if cancel is not None else asyncio.Event(),
        )
        return await run.execute(instance)


class _ReadinessRun:
    """One pass of the readiness state machine; discarded afterwards."""

    def __init__(
        self,
        probes: tuple[Probe, ...],
        interval: float,
        timeout: float,
        cancel: asyncio.Event,
    ) -> None:
        self._probes = probes
        self._interval = interval
        self._timeout = timeout
        self._cancel = cancel
        self._state = WaitState.IDLE
        self._ticks = 0
        self._started = 0.0
        self._deadline = 0.0
        self._blocking: Probe | None = None

    async def execute(self, instance: ContainerInstance) -> WaitResult:
        loop = asyncio.get_running_loop()
        self._started = loop.time()
        self._deadline = self._started + self._timeout
        self._state = WaitState.POLLING

        if not self._probes:
            return self._ready()

        while True:
            self._check_interrupted()
            ready = await self._guarded(self._tick(instance))
            if ready:
                return self._ready()
            self._check_interrupted()
            await self._sleep(min(self._interval, self._remaining()))

    async def _tick(self, instance: ContainerInstance) -> bool:
        self._ticks += 1
        first_pending: Probe | None = None
        for probe in self._probes:
            self._blocking = first_pending or probe
            result = await probe.evaluate(instance)
            if result.status is ProbeStatus.FAILED:
                self._blocking = probe
                raise self._failed(probe, result.reason)
            if result.status is ProbeStatus.PENDING and first_pending is None:
                first_pending = probe
                logger.debug(
                    "wait.probe_pending",
                    probe=probe.describe(),
                    reason=result.reason,
                    tick=self._ticks,
                )
        self._blocking = first_pending
        return first_pending is None

    async def _guarded(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run *coro* until it finishes, the deadline passes or *cancel* is set.

        The unfinished side is cancelled and awaited so sockets and exec
        sessions opened by a probe are released before the run ends.
        """
        work = asyncio.ensure_future(coro)
        watcher = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait(
                {work, watcher},
                timeout=max(self._remaining(), 0.0),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (work, watcher):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work, watcher, return_exceptions=True)
        if work.done() and not work.cancelled():
            return work.result()
        if self._cancel.is_set():
            raise self._cancelled()
        raise self._timed_out()

    async def _sleep(self, delay: float) -> None:
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=delay)
        except TimeoutError:
            pass

    def _remaining(self) -> float:
        return self._deadline - asyncio.get_running_loop().time()

    def _elapsed(self) -> float:
        return asyncio.get_running_loop().time() - self._started

    def _check_interrupted(self) -> None:
        # Cancellation is checked first so it wins over a simultaneous timeout.
        if self._cancel.is_set():
            raise self._cancelled()
        if self._remaining() <= 0:
            raise self._timed_out()

    def _cancelled(self) -> WaitCancelledException:
        self._state = WaitState.CANCELLED
        probe = self._describe_blocking()
        logger.info("wait.cancelled", probe=probe, ticks=self._ticks)
        return WaitCancelledException(
            "Readiness wait was cancelled" + (f" while waiting for {probe}" if probe else ""),
            state=self._state,
            probe=probe,
            elapsed=self._elapsed(),
        )

    def _timed_out(self) -> WaitTimeoutException:
        self._state = WaitState.TIMED_OUT
        probe = self._describe_blocking()
        logger.warning("wait.timed_out", probe=probe, ticks=self._ticks, timeout=self._timeout)
        return WaitTimeoutException(
            f"Container was not ready within {self._timeout:g}s"
            + (f"; still waiting for {probe}" if probe else ""),
            state=self._state,
            probe=probe,
            elapsed=self._elapsed(),
        )

    def _failed(self, probe: Probe, reason: str | None) -> ProbeFailedException:
        self._state = WaitState.FAILED
        logger.error("wait.probe_failed", probe=probe.describe(), reason=reason, ticks=self._ticks)
        return ProbeFailedException(
            f"Readiness probe {probe.describe()} failed: {reason}",
            state=self._state,
            probe=probe.describe(),
            elapsed=self._elapsed(),
            reason=reason,
        )

    def _ready(self) -> WaitResult:
        self._state = WaitState.READY
        elapsed = self._elapsed()
        logger.info("wait.ready", probes=len(self._probes), ticks=self._ticks, elapsed=round(elapsed, 3))
        return WaitResult(state=self._state, ticks=self._ticks, elapsed=elapsed)

    def _describe_blocking(self) -> str | None:
        return self._blocking.describe() if self._blocking is not None else None
