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
Submission orchestration: models, checkpoints and vision analysis.

The step handlers, recovery wrapper and sequencer live in submodules and
are imported from there (``permitpilot.orchestrator.sequencer``), since they
depend on ``permitpilot.core`` which itself uses the models defined here.
"""

from permitpilot.orchestrator.checkpoint import (
    CheckpointStore,
    LocalCheckpointStore,
    MemoryCheckpointStore,
)
from permitpilot.orchestrator.descriptors import descriptor_from_field, next_button, parse_reference
from permitpilot.orchestrator.models import (
    ActionDescriptor,
    CheckpointRecord,
    ElementAction,
    InstallationType,
    ReferenceKind,
    Step,
    StepResult,
    SubmissionRequest,
    SubmissionResult,
    SubmissionState,
    SubmissionStatus,
    VisionAnalysis,
)
from permitpilot.orchestrator.permit_number import PermitNumberExtractor
from permitpilot.orchestrator.vision import VisionAnalyzer

__all__ = [
    "ActionDescriptor",
    "CheckpointRecord",
    "CheckpointStore",
    "ElementAction",
    "InstallationType",
    "LocalCheckpointStore",
    "MemoryCheckpointStore",
    "PermitNumberExtractor",
    "ReferenceKind",
    "Step",
    "StepResult",
    "SubmissionRequest",
    "SubmissionResult",
    "SubmissionState",
    "SubmissionStatus",
    "VisionAnalysis",
    "VisionAnalyzer",
    "descriptor_from_field",
    "next_button",
    "parse_reference",
]
