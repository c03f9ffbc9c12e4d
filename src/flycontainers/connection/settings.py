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
"""User-declared connection settings."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from flycontainers.connection.properties import ConnectionProperties
from flycontainers.kernel.exceptions import DuplicateSettingException


class ConnectionSettings:
    """Ordered, unique-key store of ``key=value`` connection fields.

    Keys are case-sensitive and stored as given. Adding a key twice raises
    DuplicateSettingException and leaves the stored value untouched.

    All settings must be added before the connection string is first
    requested; the store is not safe for mutation during a build.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._settings: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.add(key, value)

    @classmethod
    def from_properties(cls, properties: ConnectionProperties) -> ConnectionSettings:
        return cls(properties.settings)

    def add(self, key: str, value: str) -> None:
        """Add a setting. Raises DuplicateSettingException if *key* exists."""
        if key in self._settings:
            raise DuplicateSettingException(key)
        self._settings[key] = value

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._settings.get(key, default)

    def items(self) -> list[tuple[str, str]]:
        return list(self._settings.items())

    def __contains__(self, key: object) -> bool:
        return key in self._settings

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._settings))

    def __len__(self) -> int:
        return len(self._settings)

    def __repr__(self) -> str:
        return f"ConnectionSettings({self._settings!r})"
