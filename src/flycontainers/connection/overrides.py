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
"""Instance-owned overrides for connection settings."""

from __future__ import annotations

from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)

OverrideFunction = Callable[[], tuple[str, str] | None]


class SettingOverrides:
    """Functions through which an instance asserts the fields it controls.

    Each function takes no arguments and returns a ``(key, value)`` pair, or
    None when it has no opinion. Overrides are registered by the owning
    instance when it is constructed and take precedence over user settings.
    """

    def __init__(self) -> None:
        self._functions: list[OverrideFunction] = []

    def register(self, function: OverrideFunction) -> None:
        self._functions.append(function)

    def resolve(self) -> dict[str, str]:
        """Call every override in registration order.

        When two overrides claim the same key the later one wins; the
        conflict is logged rather than raised.
        """
        resolved: dict[str, str] = {}
        for function in self._functions:
            pair = function()
            if pair is None:
                continue
            key, value = pair
            if key in resolved:
                logger.warning("connection.override_conflict", key=key)
            resolved[key] = value
        return resolved

    def __len__(self) -> int:
        return len(self._functions)
