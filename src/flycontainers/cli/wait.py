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
"""'flycontainers wait' - block until a running container is ready."""

from __future__ import annotations

import asyncio
import re
import signal
from pathlib import Path

import click
from rich.markup import escape

from flycontainers.cli.console import console
from flycontainers.containers.docker import DockerContainerInstance
from flycontainers.core.config import Config
from flycontainers.kernel.exceptions import (
    InstanceUnreachableException,
    ProbeFailedException,
    WaitCancelledException,
    WaitTimeoutException,
)
from flycontainers.logging.structlog_adapter import StructlogAdapter
from flycontainers.wait.properties import WaitProperties
from flycontainers.wait.strategy import WaitResult, WaitStrategy

EXIT_NOT_READY = 1
EXIT_CANCELLED = 130


@click.command()
@click.argument("container")
@click.option("--port", "ports", multiple=True, type=int, help="Container TCP port that must accept connections.")
@click.option("--command", "commands", multiple=True, help="Shell command that must exit 0 inside the container.")
@click.option("--file", "files", multiple=True, help="Path that must exist inside the container.")
@click.option("--log", "patterns", multiple=True, help="Regular expression the container output must match.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to wait before giving up.",
)
@click.option("--interval", type=click.FloatRange(min=0), default=None, help="Seconds between polling ticks.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="flycontainers.yaml / .toml with wait and logging settings.",
)
def wait_command(
    container: str,
    ports: tuple[int, ...],
    commands: tuple[str, ...],
    files: tuple[str, ...],
    patterns: tuple[str, ...],
    timeout: float | None,
    interval: float | None,
    config_path: Path | None,
) -> None:
    """Wait until CONTAINER (id or name) passes every readiness check."""
    config = Config.from_file(config_path)
    logging_adapter = StructlogAdapter()
    logging_adapter.configure(config)
    logger = logging_adapter.get_logger(__name__)
    logger.debug("config.loaded", sources=config.loaded_sources)

    updates = {k: v for k, v in {"timeout": timeout, "interval": interval}.items() if v is not None}
    try:
        properties = config.bind(WaitProperties)
        properties = WaitProperties.model_validate({**properties.model_dump(), **updates})
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="'--config'") from exc

    strategy = WaitStrategy.from_properties(properties)
    for port in ports:
        strategy.until_port_is_available(port)
    for command in commands:
        strategy.until_command_is_completed(command)
    for path in files:
        strategy.until_file_exists(path)
    for pattern in patterns:
        try:
            strategy.until_message_is_logged(pattern)
        except re.error as exc:
            raise click.BadParameter(f"invalid regular expression {pattern!r}: {exc}", param_hint="'--log'") from exc

    try:
        instance = DockerContainerInstance.from_id(container)
        result = asyncio.run(_await_with_signals(strategy, instance))
    except InstanceUnreachableException as exc:
        console.print(f"[error]✗[/error] {escape(str(exc))}")
        raise SystemExit(EXIT_NOT_READY) from None
    except WaitCancelledException as exc:
        console.print(f"[warning]![/warning] {escape(str(exc))}")
        raise SystemExit(EXIT_CANCELLED) from None
    except (WaitTimeoutException, ProbeFailedException) as exc:
        console.print(f"[error]✗[/error] {escape(str(exc))}")
        raise SystemExit(EXIT_NOT_READY) from None

    console.print(
        f"[success]✓[/success] {escape(container)} ready "
        f"[dim]({len(strategy.probes)} checks, {result.ticks} ticks, {result.elapsed:.2f}s)[/dim]"
    )


async def _await_with_signals(strategy: WaitStrategy, instance: DockerContainerInstance) -> WaitResult:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads have no signal handlers.
            continue
        installed.append(sig)
    try:
        await instance.refresh()
        return await strategy.await_ready(instance, cancel)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
