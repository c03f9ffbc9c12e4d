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
"""Database instances: a container plus its connection string and script runner.

Flavours (Postgres, SQL Server, ...) differ only in defaults, so there is a
single :class:`DatabaseInstance`. How it produces a connection string is a
strategy chosen at construction:

- :class:`StaticConnectionString` for flavours that format the string
  themselves.
- :class:`KeyValueConnectionString` for ``key=value;...`` strings assembled
  from user settings and instance-owned overrides.

Usage:
    source = KeyValueConnectionString()
    db = DatabaseInstance(container, source, wait=WaitStrategy().until_port_is_available(1433))
    source.register_override(lambda: ("Server", f"{container.host},{container.mapped_port(1433)}"))
    db.add_connection_setting("TrustServerCertificate", "True")
    await db.await_ready()
    db.connection_string
"""

from __future__ import annotations

import asyncio
import posixpath
import secrets
from collections.abc import Callable
from typing import Protocol, runtime_checkable

import structlog

from flycontainers.connection.builder import ConnectionStringBuilder
from flycontainers.connection.overrides import OverrideFunction, SettingOverrides
from flycontainers.connection.settings import ConnectionSettings
from flycontainers.containers.instance import ContainerInstance, ExecResult
from flycontainers.kernel.exceptions import UnsupportedCapabilityException
from flycontainers.wait.strategy import WaitResult, WaitStrategy

logger = structlog.get_logger(__name__)

TEMP_DIR = "/tmp/"
SCRIPT_MODE = 0o755


@runtime_checkable
class ConnectionStringSource(Protocol):
    """Produces the connection string of a database instance on demand."""

    def connection_string(self) -> str: ...


class StaticConnectionString:
    """Connection string computed by a flavour-supplied factory."""

    def __init__(self, factory: Callable[[], str]) -> None:
        self._factory = factory

    def connection_string(self) -> str:
        return self._factory()


class KeyValueConnectionString:
    """Connection string assembled from settings and instance overrides."""

    def __init__(self, settings: ConnectionSettings | None = None) -> None:
        self._settings = settings if settings is not None else ConnectionSettings()
        self._overrides = SettingOverrides()
        self._builder = ConnectionStringBuilder(self._settings, self._overrides)

    @property
    def settings(self) -> ConnectionSettings:
        return self._settings

    def add_setting(self, key: str, value: str) -> None:
        self._settings.add(key, value)

    def register_override(self, function: OverrideFunction) -> None:
        self._overrides.register(function)

    def connection_string(self) -> str:
        return self._builder.build()


class DatabaseInstance:
    """A database container with connection string and script execution.

    Args:
        container: The running container.
        connection: Strategy producing the connection string.
        wait: Readiness strategy; defaults to an empty, immediately ready one.
        database: Name of the database inside the container.
    """

    def __init__(
        self,
        container: ContainerInstance,
        connection: ConnectionStringSource,
        wait: WaitStrategy | None = None,
        database: str | None = None,
    ) -> None:
        self._container = container
        self._connection = connection
        self._wait = wait if wait is not None else WaitStrategy()
        self.database = database

    @property
    def container(self) -> ContainerInstance:
        return self._container

    @property
    def wait_strategy(self) -> WaitStrategy:
        return self._wait

    @property
    def connection_string(self) -> str:
        return self._connection.connection_string()

    @property
    def supports_connection_settings(self) -> bool:
        return isinstance(self._connection, KeyValueConnectionString)

    def add_connection_setting(self, key: str, value: str) -> None:
        """Add a user setting to a key/value connection string.

        Raises:
            DuplicateSettingException: *key* was already added.
            UnsupportedCapabilityException: The connection string is not
                assembled from settings.
        """
        if not isinstance(self._connection, KeyValueConnectionString):
            raise UnsupportedCapabilityException(
                f"{type(self._connection).__name__} does not accept connection settings",
                code="CONNECTION_SETTINGS_UNSUPPORTED",
            )
        self._connection.add_setting(key, value)

    async def await_ready(self, cancel: asyncio.Event | None = None) -> WaitResult:
        """Block until the wait strategy reports the container ready."""
        return await self._wait.await_ready(self._container, cancel)

    def temp_script_path(self) -> str:
        """Return a fresh path for a script file inside the container."""
        return posixpath.join(TEMP_DIR, secrets.token_hex(6))

    async def exec_script(self, content: str) -> ExecResult:
        """Copy *content* into the container as an executable script and run it."""
        path = self.temp_script_path()
        await self._container.copy_file(path, content.encode("utf-8"), mode=SCRIPT_MODE, uid=0, gid=0)
        result = await self._container.exec(["/bin/sh", "-c", path])
        logger.debug("database.script_executed", path=path, exit_code=result.exit_code)
        return result
