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
"""Unified exception hierarchy for flycontainers.

All library exceptions inherit from FlyContainersException, so callers can
catch one base class or target a specific failure.

Categories:
- ConfigurationException: Defects in how an instance was configured
- InfrastructureException: Container runtime and readiness failures
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flycontainers.wait.strategy import WaitState


# =============================================================================
# Base Exception
# =============================================================================


class FlyContainersException(Exception):
    """Base exception for all flycontainers errors.

    Carries an optional error code and context dict for structured error data.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "WAIT_TIMEOUT").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationException(FlyContainersException):
    """The instance or its connection settings were configured incorrectly."""


class DuplicateSettingException(ConfigurationException):
    """A connection setting key was added more than once."""

    def __init__(self, key: str) -> None:
        super().__init__(
            f"Connection setting '{key}' is already defined; each setting can only be added once",
            code="SETTING_DUPLICATE",
            context={"key": key},
        )
        self.key = key


class UnsupportedCapabilityException(ConfigurationException):
    """The instance does not offer the requested capability."""


# =============================================================================
# Infrastructure Exceptions
# =============================================================================


class InfrastructureException(FlyContainersException):
    """Container runtime, network, and readiness failures."""


class InstanceUnreachableException(InfrastructureException):
    """The container runtime could not be reached or the container is gone."""


class PortNotMappedException(InfrastructureException):
    """A container port has no binding on the host."""


class ReadinessException(InfrastructureException):
    """Base for the terminal error states of a readiness run.

    Args:
        message: Human-readable error description.
        state: Terminal state the run ended in.
        probe: Description of the first probe that was not ready, if any.
        elapsed: Seconds spent polling before the run ended.
    """

    default_code: str = "READINESS"

    def __init__(
        self,
        message: str,
        *,
        state: WaitState,
        probe: str | None = None,
        elapsed: float = 0.0,
    ) -> None:
        super().__init__(
            message,
            code=self.default_code,
            context={"state": state.value, "probe": probe, "elapsed": round(elapsed, 3)},
        )
        self.state = state
        self.probe = probe
        self.elapsed = elapsed


class WaitTimeoutException(ReadinessException):
    """Readiness was not reached within the configured timeout."""

    default_code = "WAIT_TIMEOUT"


class WaitCancelledException(ReadinessException):
    """The caller's cancellation signal fired before readiness was reached."""

    default_code = "WAIT_CANCELLED"


class ProbeFailedException(ReadinessException):
    """A probe reported an irrecoverable failure."""

    default_code = "PROBE_FAILED"

    def __init__(
        self,
        message: str,
        *,
        state: WaitState,
        probe: str | None = None,
        elapsed: float = 0.0,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, state=state, probe=probe, elapsed=elapsed)
        self.reason = reason
        self.context["reason"] = reason
