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


"""Browser-side building blocks: lifecycle, session, execution and page stability."""

from permitpilot.core.browser import BrowserManager
from permitpilot.core.executor import ActionExecutor
from permitpilot.core.overlays import block_guidance_overlay, remove_guidance_overlay
from permitpilot.core.policy import OrchestratorPolicy, PolicyPreset, get_policy, set_policy
from permitpilot.core.session import FileSessionStore, SessionStore
from permitpilot.core.stability import StabilityGate

__all__ = [
    "ActionExecutor",
    "BrowserManager",
    "FileSessionStore",
    "OrchestratorPolicy",
    "PolicyPreset",
    "SessionStore",
    "StabilityGate",
    "block_guidance_overlay",
    "get_policy",
    "remove_guidance_overlay",
    "set_policy",
]
