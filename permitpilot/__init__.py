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
PermitPilot - automated HVAC permit submission for the Phoenix SHAPE PHX portal.

This package drives the portal's permit wizard with Playwright, checkpoints
progress after every step, pauses for the operator's manual payment, and
falls back to a vision-capable language model when a screen does not match
the expected layout.
"""

__version__ = "26.10.0"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache-2.0"

from permitpilot.config import Settings, get_settings
from permitpilot.core.policy import OrchestratorPolicy, PolicyPreset
from permitpilot.exceptions import (
    CheckpointError,
    ElementNotFound,
    ElementNotInteractable,
    LowConfidenceRecovery,
    MaxRetriesExceeded,
    NavigationTimeout,
    PermitPilotError,
    SessionExpired,
    StepVerificationFailed,
)
from permitpilot.orchestrator.checkpoint import LocalCheckpointStore, MemoryCheckpointStore
from permitpilot.orchestrator.models import (
    InstallationType,
    Step,
    SubmissionRequest,
    SubmissionResult,
    SubmissionStatus,
)
from permitpilot.orchestrator.sequencer import StepSequencer

__all__ = [
    # Configuration
    "OrchestratorPolicy",
    "PolicyPreset",
    "Settings",
    "get_settings",
    # Orchestration
    "InstallationType",
    "LocalCheckpointStore",
    "MemoryCheckpointStore",
    "Step",
    "StepSequencer",
    "SubmissionRequest",
    "SubmissionResult",
    "SubmissionStatus",
    # Errors
    "CheckpointError",
    "ElementNotFound",
    "ElementNotInteractable",
    "LowConfidenceRecovery",
    "MaxRetriesExceeded",
    "NavigationTimeout",
    "PermitPilotError",
    "SessionExpired",
    "StepVerificationFailed",
]
