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
"""Layered configuration: packaged defaults, YAML/TOML files, profiles, env vars."""

from __future__ import annotations

import dataclasses
import importlib.resources
import os
import re
import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar, cast, get_type_hints

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

T = TypeVar("T")

ROOT_KEY = "flycontainers"
ENV_PREFIX = "FLYCONTAINERS_"
CONFIG_STEM = "flycontainers"

_PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")

_CONFIG_PROPERTIES_ATTR = "__flycontainers_config_prefix__"


def config_properties(prefix: str) -> Callable[[type[T]], type[T]]:
    """Mark a pydantic model or dataclass as bindable to a configuration prefix.

    Usage:
        @config_properties(prefix="flycontainers.wait")
        class WaitProperties(BaseModel):
            interval: float = Field(default=1.0, ge=0)
    """

    def decorator(cls: type[T]) -> type[T]:
        setattr(cls, _CONFIG_PROPERTIES_ATTR, prefix)
        return cls

    return decorator


class Config:
    """Hierarchical configuration with dot-notation access and env var overrides.

    Priority (highest wins):
    1. Environment variables (FLYCONTAINERS_SECTION_KEY format)
    2. Configuration dict / YAML / TOML file values
    3. Packaged defaults
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = data or {}
        self._loaded_sources: list[str] = []

    @property
    def loaded_sources(self) -> list[str]:
        """Config file paths that were loaded, in merge order."""
        return list(self._loaded_sources)

    @classmethod
    def from_file(
        cls,
        path: str | Path | None = None,
        active_profiles: list[str] | None = None,
        load_defaults: bool = True,
    ) -> Config:
        """Load configuration from a YAML or TOML file.

        Merge order (later wins):
        1. Packaged defaults (flycontainers-defaults.yaml)
        2. The file at *path*, when it exists
        3. Profile overlays next to it: ``<stem>-<profile><suffix>``
        4. Environment variables (applied at read time in get())
        """
        data: dict[str, Any] = {}
        sources: list[str] = []

        if load_defaults:
            data = cls._load_defaults()
            sources.append(f"{CONFIG_STEM}-defaults.yaml (packaged defaults)")

        if path is not None:
            path = Path(path)
            if path.is_file():
                data = cls._deep_merge(data, cls._load_config_data(path))
                sources.append(str(path))

                for profile in active_profiles or []:
                    profile_path = path.parent / f"{path.stem}-{profile}{path.suffix}"
                    if profile_path.is_file():
                        data = cls._deep_merge(data, cls._load_config_data(profile_path))
                        sources.append(f"{profile_path} (profile: {profile})")

        instance = cls(data)
        instance._loaded_sources = sources
        return instance

    @staticmethod
    def _load_config_data(path: Path) -> dict[str, Any]:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                return tomllib.load(f) or {}
        with open(path) as f:
            return yaml.safe_load(f) or {}

    @staticmethod
    def _load_defaults() -> dict[str, Any]:
        defaults_file = importlib.resources.files("flycontainers.resources").joinpath(
            f"{CONFIG_STEM}-defaults.yaml"
        )
        with importlib.resources.as_file(defaults_file) as p, open(p) as f:
            return yaml.safe_load(f) or {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, with override values winning."""
        merged = dict(base)
        for key, value in override.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dot-notation key, checking env vars first.

        String values containing ``${...}`` placeholders are resolved from
        the environment, then from other config keys, then from the inline
        ``${key:default}`` fallback.
        """
        env_val = os.environ.get(self._env_key(key))
        if env_val is not None:
            return env_val

        current = self._walk(key)
        if current is None:
            return default

        if isinstance(current, str) and "${" in current:
            return self._resolve_placeholders(current)

        return current

    @staticmethod
    def _env_key(key: str) -> str:
        # flycontainers.wait.timeout -> FLYCONTAINERS_WAIT_TIMEOUT
        base = key.removeprefix(f"{ROOT_KEY}.")
        return ENV_PREFIX + base.upper().replace(".", "_").replace("-", "_")

    def _walk(self, key: str) -> Any:
        current: Any = self._data
        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None
        return current

    def _resolve_placeholders(self, value: str, _depth: int = 0) -> str:
        if _depth > 10:
            raise ValueError(
                f"Max recursion depth exceeded resolving placeholders in '{value}'. Check for circular references."
            )

        def _replace(match: re.Match[str]) -> str:
            inner = match.group(1)
            if ":" in inner:
                ref_key, default_val = inner.split(":", 1)
            else:
                ref_key, default_val = inner, None

            env_val = os.environ.get(ref_key)
            if env_val is not None:
                return env_val

            current = self._walk(ref_key)
            if current is not None:
                resolved = str(current)
                if "${" in resolved:
                    resolved = self._resolve_placeholders(resolved, _depth + 1)
                return resolved

            if default_val is not None:
                return cast(str, default_val)

            raise ValueError(f"Cannot resolve placeholder '${{{inner}}}': not found in environment or config")

        return _PLACEHOLDER_RE.sub(_replace, value)

    def get_section(self, prefix: str) -> dict[str, Any]:
        """Get all values under a prefix, with env var overrides for its scalar keys."""
        current = self._walk(prefix)
        section = dict(current) if isinstance(current, dict) else {}
        for name, value in list(section.items()):
            if isinstance(value, dict):
                continue
            env_val = os.environ.get(self._env_key(f"{prefix}.{name}"))
            if env_val is not None:
                section[name] = env_val
            elif isinstance(value, str) and "${" in value:
                section[name] = self._resolve_placeholders(value)
        return section

    def bind(self, config_cls: type[T]) -> T:
        """Bind configuration to a @config_properties pydantic model or dataclass."""
        prefix = getattr(config_cls, _CONFIG_PROPERTIES_ATTR, None)
        if prefix is None:
            raise ValueError(f"{config_cls.__name__} is not decorated with @config_properties")

        section = self.get_section(prefix)

        if isinstance(config_cls, type) and issubclass(config_cls, BaseModel):
            try:
                return config_cls.model_validate(section)
            except ValidationError as exc:
                raise ValueError(
                    f"Configuration validation failed for '{config_cls.__name__}' (prefix='{prefix}'):\n{exc}"
                ) from exc

        hints = get_type_hints(config_cls)
        kwargs: dict[str, Any] = {}
        for field in dataclasses.fields(config_cls):  # type: ignore[arg-type]
            if field.name in section:
                value = section[field.name]
                expected_type = hints.get(field.name)
                if expected_type is int and isinstance(value, str):
                    value = int(value)
                elif expected_type is float and isinstance(value, str):
                    value = float(value)
                elif expected_type is bool and isinstance(value, str):
                    value = value.lower() in ("true", "1", "yes")
                kwargs[field.name] = value

        return config_cls(**kwargs)
