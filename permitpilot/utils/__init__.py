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


"""Logging and timing helpers for PermitPilot."""

from permitpilot.utils.logger import LogFormat, configure_logging, logger
from permitpilot.utils.timing import StepTimer, time_step

__all__ = [
    "LogFormat",
    "StepTimer",
    "configure_logging",
    "logger",
    "time_step",
]
