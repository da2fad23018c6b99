# Copyright 2026 Firefly Software Solutions Inc
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

"""
Exception hierarchy for PermitPilot.

Every error raised by the orchestrator derives from PermitPilotError so callers
can catch the whole family in one place. Portal interaction failures carry the
reference or step they relate to in ``details``.

Awaiting payment is deliberately absent: it is a step value, not an error.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PermitPilotError(Exception):
    """Base class for all PermitPilot errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message


# ==================== Portal interaction ====================


class ElementNotFound(PermitPilotError):
    """A UI reference could not be resolved within the bounded wait."""


class ElementNotInteractable(PermitPilotError):
    """A resolved control refused the requested operation."""


class NavigationTimeout(PermitPilotError):
    """Navigation or a URL transition did not finish in time."""


class StepVerificationFailed(PermitPilotError):
    """The anchor that proves a step was reached never appeared."""


class SessionExpired(PermitPilotError):
    """
    The saved portal session is missing or was rejected.

    Always fatal. Recovery is never attempted because only an operator can
    log in again.
    """


# ==================== Recovery and retry policy ====================


class LowConfidenceRecovery(PermitPilotError):
    """Vision analysis confidence was below the threshold; nothing was executed."""

    def __init__(
        self,
        message: str,
        confidence: int = 0,
        threshold: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.confidence = confidence
        self.threshold = threshold


class MaxRetriesExceeded(PermitPilotError):
    """The caller's per-submission attempt counter reached its cap."""


# ==================== Infrastructure ====================


class BrowserError(PermitPilotError):
    """Browser lifecycle failure (launch, context, shutdown)."""


class LLMProviderError(PermitPilotError):
    """An LLM provider call failed."""


class ConfigurationError(PermitPilotError):
    """Invalid or missing configuration."""


class CheckpointError(PermitPilotError):
    """A checkpoint could not be read or written."""


class DescriptorParseError(PermitPilotError):
    """A model-produced reference could not be parsed into an action descriptor."""
