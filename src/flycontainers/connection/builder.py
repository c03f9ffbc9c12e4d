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
"""Assembly of ``key=value;key=value`` connection strings."""

from __future__ import annotations

import structlog

from flycontainers.connection.overrides import SettingOverrides
from flycontainers.connection.settings import ConnectionSettings

logger = structlog.get_logger(__name__)

FIELD_SEPARATOR = ";"
KEY_VALUE_SEPARATOR = "="


class ConnectionStringBuilder:
    """Merges instance overrides with user settings into a connection string.

    Override values always win. Fields are emitted in override order first,
    then in setting order for keys no override claimed. Values are not
    escaped: a key or value containing ``;`` or ``=`` produces an ambiguous
    string, which is logged as a warning.
    """

    def __init__(self, settings: ConnectionSettings, overrides: SettingOverrides) -> None:
        self._settings = settings
        self._overrides = overrides

    def fields(self) -> dict[str, str]:
        merged = self._overrides.resolve()
        for key, value in self._settings.items():
            if key not in merged:
                merged[key] = value
        return merged

    def build(self) -> str:
        merged = self.fields()
        for key, value in merged.items():
            if _ambiguous(key) or _ambiguous(value):
                logger.warning("connection.unescaped_separator", key=key)
        return FIELD_SEPARATOR.join(f"{key}{KEY_VALUE_SEPARATOR}{value}" for key, value in merged.items())


def _ambiguous(text: str) -> bool:
    return FIELD_SEPARATOR in text or KEY_VALUE_SEPARATOR in text
