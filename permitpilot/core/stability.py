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

"""Page stability gate based on busy-indicator polling."""

from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from permitpilot.core.policy import OrchestratorPolicy, get_policy
from permitpilot.utils.logger import logger

# Salesforce Lightning spinners plus generic loading markers
BUSY_INDICATORS: List[str] = [
    "lightning-spinner",
    ".slds-spinner",
    '[class*="spinner"]',
    '[class*="loading"]',
    ".loading",
]


class StabilityGate:
    """
    Blocks until busy indicators have stayed absent for a stable window.

    The portal chains several asynchronous loads per transition and its
    spinners flicker off between them, so a single clean poll is not enough:
    ``policy.stability_count`` consecutive clean polls are required.

    Timing out is not an error. ``wait`` returns False and the caller carries
    on; the next anchor wait fails fast if the page really is not ready.
    """

    def __init__(
        self,
        page: Page,
        policy: Optional[OrchestratorPolicy] = None,
        probes: Optional[Sequence[str]] = None,
    ) -> None:
        self.page = page
        self.policy = policy or get_policy()
        self.probes = list(probes) if probes is not None else list(BUSY_INDICATORS)

    async def _active_probe(self) -> Optional[str]:
        """Return the first visible busy indicator, or None."""
        for probe in self.probes:
            if await self.page.locator(probe).first.is_visible():
                return probe
        return None

    async def wait(self, max_wait_ms: Optional[int] = None) -> bool:
        """
        Wait for the page to settle.

        Args:
            max_wait_ms: Upper bound; defaults to ``policy.stability_max_wait_ms``

        Returns:
            True if the page was stable, False if the bound was reached first
        """
        budget_ms = max_wait_ms if max_wait_ms is not None else self.policy.stability_max_wait_ms
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget_ms / 1000
        interval = self.policy.stability_poll_interval_ms / 1000
        required = max(1, self.policy.stability_count)
        clean_polls = 0

        while clean_polls < required:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.debug(f"Stability gate gave up after {budget_ms}ms")
                return False

            try:
                busy = await self._active_probe()
            except PlaywrightError as e:
                # Execution context is replaced while the portal navigates
                logger.debug(f"Stability probe failed: {str(e).splitlines()[0]}")
                clean_polls = 0
                await asyncio.sleep(min(interval, remaining))
                continue

            if busy:
                clean_polls = 0
                hide_timeout = min(self.policy.stability_probe_timeout_ms, int(remaining * 1000))
                try:
                    await self.page.locator(busy).first.wait_for(state="hidden", timeout=max(hide_timeout, 1))
                except PlaywrightError:
                    logger.debug(f"Busy indicator still visible: {busy}")
                continue

            clean_polls += 1
            if clean_polls < required:
                await asyncio.sleep(min(interval, max(remaining, 0)))

        return True
