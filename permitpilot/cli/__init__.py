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


"""PermitPilot command-line tools.

CLI Entry Points:
    permitpilot run            Process the submission queue
    permitpilot resume ID      Continue a submission after manual payment
    permitpilot analyze PNG    Run vision analysis on a saved screenshot
    permitpilot save-session   Log in once and save the portal session
    permitpilot version        Show version information
"""

from permitpilot.cli.main import create_parser, main

__all__ = [
    "create_parser",
    "main",
]
