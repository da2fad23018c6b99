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
Timeout and backoff policy for PermitPilot.

Every wait in the orchestrator (anchor waits, stability polling, option
menus, payment confirmation) reads its bound from a single
``OrchestratorPolicy`` instance that is passed through the pipeline. No
handler keeps its own counters or delays.

Example:
    >>> from permitpilot.core.policy import OrchestratorPolicy, PolicyPreset
    >>>
    >>> policy = OrchestratorPolicy.from_preset(PolicyPreset.THOROUGH)
    >>>
    >>> # Or customize
    >>> policy = OrchestratorPolicy(
    ...     anchor_timeout_ms=20000,
    ...     confidence_threshold=60,
    ... )
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PolicyPreset(str, Enum):
    """Presets for common environments."""

    FAST = "fast"           # Local fixtures and tests
    BALANCED = "balanced"   # Default, tuned against the live portal
    THOROUGH = "thorough"   # Slow days on the portal


@dataclass
class OrchestratorPolicy:
    """
    Centralized timeout/backoff policy.

    All timeouts are in milliseconds unless otherwise noted.

    Attributes:
        navigation_timeout_ms: Bound for ``page.goto`` and URL transitions
        anchor_timeout_ms: Bound for a step's verification anchor to appear
        element_timeout_ms: Bound for resolving a single UI reference
        control_enable_timeout_ms: Bound for a disabled advance control to
            become enabled before vision is asked why
        option_wait_ms: Pause after opening a dropdown before matching options

        stability_max_wait_ms: Default upper bound for the stability gate
        stability_probe_timeout_ms: Bound for a visible busy indicator to hide
        stability_poll_interval_ms: Delay between stability polls
        stability_count: Consecutive clean polls required before returning
        city_use_stability_wait_ms: Longer gate after the city-use step, whose
            work-item list is loaded by several chained requests

        confidence_threshold: Minimum vision confidence (0-100) before any
            recommended action is executed automatically
        payment_confirmation_timeout_ms: Bound for the post-payment
            confirmation/receipt URL

        max_attempts: Per-submission attempt cap enforced by the queue runner
        cooldown_seconds: Delay between submissions in a batch
        fallback_sleep_ms: Last-resort settle delay when no condition exists
    """

    # Timeouts (milliseconds)
    navigation_timeout_ms: int = 30000
    anchor_timeout_ms: int = 15000
    element_timeout_ms: int = 10000
    control_enable_timeout_ms: int = 10000
    option_wait_ms: int = 500

    # Stability gate
    stability_max_wait_ms: int = 15000
    stability_probe_timeout_ms: int = 10000
    stability_poll_interval_ms: int = 500
    stability_count: int = 3
    city_use_stability_wait_ms: int = 45000

    # Recovery
    confidence_threshold: int = 50
    payment_confirmation_timeout_ms: int = 30000

    # Caller policy
    max_attempts: int = 3
    cooldown_seconds: float = 5.0

    fallback_sleep_ms: int = 1000

    @classmethod
    def from_preset(cls, preset: PolicyPreset) -> "OrchestratorPolicy":
        """Create a policy from a preset."""
        if preset == PolicyPreset.FAST:
            return cls(
                navigation_timeout_ms=10000,
                anchor_timeout_ms=5000,
                element_timeout_ms=3000,
                control_enable_timeout_ms=3000,
                option_wait_ms=100,
                stability_max_wait_ms=3000,
                stability_probe_timeout_ms=2000,
                stability_poll_interval_ms=50,
                stability_count=2,
                city_use_stability_wait_ms=5000,
                payment_confirmation_timeout_ms=5000,
                cooldown_seconds=0.0,
                fallback_sleep_ms=100,
            )
        elif preset == PolicyPreset.THOROUGH:
            return cls(
                navigation_timeout_ms=60000,
                anchor_timeout_ms=30000,
                element_timeout_ms=20000,
                control_enable_timeout_ms=20000,
                option_wait_ms=1000,
                stability_max_wait_ms=30000,
                stability_probe_timeout_ms=20000,
                stability_poll_interval_ms=750,
                stability_count=4,
                city_use_stability_wait_ms=90000,
                payment_confirmation_timeout_ms=60000,
                cooldown_seconds=10.0,
                fallback_sleep_ms=2000,
            )
        else:  # BALANCED (default)
            return cls()

    @classmethod
    def from_env(cls, default_preset: Optional[PolicyPreset] = None) -> "OrchestratorPolicy":
        """
        Create a policy from environment variables.

        Environment variables (prefix PERMITPILOT_POLICY_):
            - PERMITPILOT_POLICY_PRESET: fast, balanced, thorough
            - PERMITPILOT_POLICY_NAV_TIMEOUT_MS
            - PERMITPILOT_POLICY_ANCHOR_TIMEOUT_MS
            - PERMITPILOT_POLICY_CONFIDENCE_THRESHOLD
            - etc.

        Args:
            default_preset: Preset used when PERMITPILOT_POLICY_PRESET is unset
        """
        preset_name = os.environ.get("PERMITPILOT_POLICY_PRESET", "").lower()
        if preset_name in ("fast", "balanced", "thorough"):
            policy = cls.from_preset(PolicyPreset(preset_name))
        elif default_preset is not None:
            policy = cls.from_preset(default_preset)
        else:
            policy = cls()

        env_mapping = {
            "PERMITPILOT_POLICY_NAV_TIMEOUT_MS": ("navigation_timeout_ms", int),
            "PERMITPILOT_POLICY_ANCHOR_TIMEOUT_MS": ("anchor_timeout_ms", int),
            "PERMITPILOT_POLICY_ELEMENT_TIMEOUT_MS": ("element_timeout_ms", int),
            "PERMITPILOT_POLICY_STABILITY_MAX_WAIT_MS": ("stability_max_wait_ms", int),
            "PERMITPILOT_POLICY_STABILITY_COUNT": ("stability_count", int),
            "PERMITPILOT_POLICY_CONFIDENCE_THRESHOLD": ("confidence_threshold", int),
            "PERMITPILOT_POLICY_MAX_ATTEMPTS": ("max_attempts", int),
            "PERMITPILOT_POLICY_COOLDOWN_SECONDS": ("cooldown_seconds", float),
        }

        for env_var, (attr, type_fn) in env_mapping.items():
            value = os.environ.get(env_var)
            if value:
                try:
                    setattr(policy, attr, type_fn(value))
                except ValueError:
                    pass  # Keep the preset value

        return policy


_default_policy: Optional[OrchestratorPolicy] = None


def get_policy() -> OrchestratorPolicy:
    """Return the process-wide policy, loading it from the environment once."""
    global _default_policy
    if _default_policy is None:
        _default_policy = OrchestratorPolicy.from_env()
    return _default_policy


def set_policy(policy: OrchestratorPolicy) -> None:
    """Replace the process-wide policy."""
    global _default_policy
    _default_policy = policy
