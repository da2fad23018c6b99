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
Per-run context shared by step handlers.

A StepContext bundles the live page with the collaborators every handler
needs (executor, stability gate, vision analyzer, policy) and the helpers
they share: anchor waits, the advance click, failure screenshots and
recorded vision analyses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from permitpilot.core.executor import ActionExecutor
from permitpilot.core.policy import OrchestratorPolicy
from permitpilot.core.stability import StabilityGate
from permitpilot.exceptions import StepVerificationFailed
from permitpilot.orchestrator.descriptors import next_button
from permitpilot.orchestrator.models import (
    Step,
    SubmissionRequest,
    SubmissionState,
    VisionAnalysis,
)
from permitpilot.orchestrator.permit_number import PermitNumberExtractor
from permitpilot.orchestrator.vision import VisionAnalyzer, fallback_analysis
from permitpilot.utils.logger import logger

DEFAULT_PORTAL_URL = "https://shapephx.phoenix.gov/s/"

SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class StepContext:
    """
    Everything a step handler may touch during one run.

    ``analyzer`` may be None (no vision provider configured); vision calls then
    return a zero-confidence analysis so confidence gates refuse to act.
    """

    page: Page
    request: SubmissionRequest
    state: SubmissionState
    policy: OrchestratorPolicy
    executor: ActionExecutor
    gate: StabilityGate
    analyzer: Optional[VisionAnalyzer] = None
    extractor: PermitNumberExtractor = field(default_factory=PermitNumberExtractor)
    portal_url: str = DEFAULT_PORTAL_URL
    screenshot_dir: Path = Path("screenshots")
    download_dir: Path = Path("downloads")
    analyses: List[VisionAnalysis] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        page: Page,
        state: SubmissionState,
        policy: OrchestratorPolicy,
        analyzer: Optional[VisionAnalyzer] = None,
        portal_url: str = DEFAULT_PORTAL_URL,
        screenshot_dir: str = "screenshots",
        download_dir: str = "downloads",
    ) -> "StepContext":
        if state.request is None:
            raise ValueError(f"State for {state.submission_id} carries no request")
        return cls(
            page=page,
            request=state.request,
            state=state,
            policy=policy,
            executor=ActionExecutor(page, policy),
            gate=StabilityGate(page, policy),
            analyzer=analyzer,
            portal_url=portal_url,
            screenshot_dir=Path(screenshot_dir),
            download_dir=Path(download_dir),
        )

    @property
    def step(self) -> Step:
        return self.state.current_step

    async def screenshot(self, label: str) -> bytes:
        """Full-page screenshot, saved and recorded in ``state.screenshots``."""
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        name = _UNSAFE_NAME.sub("-", f"{self.state.submission_id}-{self.step.value}-{label}-{stamp}")
        path = self.screenshot_dir / f"{name}.png"
        data = await self.page.screenshot(path=str(path), full_page=True)
        self.state.screenshots.append(str(path))
        logger.debug(f"Screenshot saved: {path}")
        return data

    async def analyze(self, label: str, context: Optional[str] = None) -> VisionAnalysis:
        """Screenshot the page and ask the vision model about it."""
        step_number = self.step.number if self.step.number is not None else self.step.position
        if self.analyzer is None:
            analysis = fallback_analysis(step_number, "no vision provider configured")
        else:
            image = await self.screenshot(label)
            analysis = await self.analyzer.analyze_step(image, step_number, self.request, context)
        self.analyses.append(analysis)
        return analysis

    async def wait_for_anchor(self, text: str, timeout_ms: Optional[int] = None) -> None:
        """
        Wait until ``text`` is visible on the page.

        Raises:
            StepVerificationFailed: If the anchor does not appear in time
        """
        timeout = timeout_ms if timeout_ms is not None else self.policy.anchor_timeout_ms
        try:
            await self.page.get_by_text(text).first.wait_for(state="visible", timeout=timeout)
        except PlaywrightError as e:
            raise StepVerificationFailed(
                f"Anchor '{text}' did not appear on step {self.step.value}",
                details={"anchor": text, "step": self.step.value, "timeout_ms": timeout},
            ) from e

    async def has_text(self, text: str, timeout_ms: int = 0) -> bool:
        """True if ``text`` is visible now (or within ``timeout_ms``)."""
        locator = self.page.get_by_text(text).first
        try:
            if timeout_ms:
                await locator.wait_for(state="visible", timeout=timeout_ms)
                return True
            return await locator.is_visible()
        except PlaywrightError:
            return False

    async def page_text(self) -> str:
        """Visible text of the page body ("" while the page is navigating)."""
        try:
            return await self.page.inner_text("body", timeout=self.policy.element_timeout_ms)
        except PlaywrightError as e:
            logger.debug(f"Page text unavailable: {str(e).splitlines()[0]}")
            return ""

    async def scroll_to_bottom(self) -> None:
        try:
            await self.page.evaluate(SCROLL_TO_BOTTOM_JS)
        except PlaywrightError as e:
            logger.debug(f"Scroll skipped: {str(e).splitlines()[0]}")

    async def click_next(self) -> None:
        """Click the wizard's advance control and let the page settle."""
        await self.executor.execute(next_button())
        await self.gate.wait()
