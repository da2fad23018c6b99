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
Action execution against the live portal page.

The ActionExecutor turns an ``ActionDescriptor`` into a Playwright locator and
performs the requested operation. Structured references (role, label,
placeholder, text) map onto Playwright's typed ``get_by_*`` lookups; raw CSS
selectors are used only when the descriptor says so. A descriptor is never
silently re-resolved through a different reference kind: callers that have
alternatives pass them explicitly to ``execute_first``.
"""

from __future__ import annotations

import asyncio
import sys
import time
from typing import List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from permitpilot.core.policy import OrchestratorPolicy, get_policy
from permitpilot.exceptions import ElementNotFound, ElementNotInteractable
from permitpilot.orchestrator.models import ActionDescriptor, ElementAction, ReferenceKind
from permitpilot.utils.logger import logger

# Lookup preference when several references describe the same control
KIND_PREFERENCE = [
    ReferenceKind.ROLE,
    ReferenceKind.LABEL,
    ReferenceKind.PLACEHOLDER,
    ReferenceKind.TEXT,
    ReferenceKind.RAW_SELECTOR,
]


class ActionLogger:
    """
    Consistent action logging for portal operations.

    Produces ``> [ACTION CLICK] role=...`` on start and ``[OK]``/``[FAIL]``
    with the elapsed time on completion. Colors are used only on a TTY.
    """

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    ACTION = "\033[38;5;111m"
    SUCCESS = "\033[38;5;82m"
    ERROR = "\033[38;5;196m"
    WARNING = "\033[38;5;220m"

    def __init__(self, use_colors: Optional[bool] = None) -> None:
        self.use_colors = sys.stdout.isatty() if use_colors is None else use_colors
        self._start: Optional[float] = None

    def _c(self, color: str, text: str) -> str:
        return f"{color}{text}{self.RESET}" if self.use_colors else text

    def start_action(self, action_type: str, description: str) -> None:
        self._start = time.time()
        logger.info(f"{self._c(self.ACTION, f'> [ACTION {action_type.upper()}]')} {description}")

    def end_action(self, success: bool, details: Optional[str] = None) -> None:
        duration_ms = (time.time() - self._start) * 1000 if self._start else 0.0
        icon = self._c(self.SUCCESS, "[OK]") if success else self._c(self.ERROR, "[FAIL]")
        details_str = f" -> {details}" if details else ""
        logger.info(f"{icon} {self._c(self.DIM, f'{duration_ms:.0f}ms')}{details_str}")
        self._start = None

    def log_retry(self, reason: str) -> None:
        logger.info(f"  {self._c(self.WARNING, '|- retry:')} {reason}")


action_logger = ActionLogger()


class ActionExecutor:
    """
    Performs abstract UI actions on a Playwright page.

    Attributes:
        page: Live Playwright page
        policy: Timeout policy

    Example:
        >>> executor = ActionExecutor(page)
        >>> await executor.execute(ActionDescriptor(
        ...     reference_kind=ReferenceKind.LABEL,
        ...     reference_name="Project Valuation",
        ...     element_action=ElementAction.FILL,
        ...     value="5000",
        ... ))
    """

    def __init__(self, page: Page, policy: Optional[OrchestratorPolicy] = None) -> None:
        self.page = page
        self.policy = policy or get_policy()

    def resolve(self, descriptor: ActionDescriptor) -> Locator:
        """Build the locator for a descriptor without waiting for it."""
        name = descriptor.reference_name
        kind = descriptor.reference_kind
        if kind == ReferenceKind.ROLE:
            locator = self.page.get_by_role(descriptor.role, name=name, exact=descriptor.exact)
        elif kind == ReferenceKind.LABEL:
            locator = self.page.get_by_label(name, exact=descriptor.exact)
        elif kind == ReferenceKind.PLACEHOLDER:
            locator = self.page.get_by_placeholder(name, exact=descriptor.exact)
        elif kind == ReferenceKind.TEXT:
            locator = self.page.get_by_text(name, exact=descriptor.exact)
        else:
            locator = self.page.locator(name)
        return locator.first

    async def locate(self, descriptor: ActionDescriptor, timeout_ms: Optional[int] = None) -> Locator:
        """
        Resolve a descriptor to a visible element.

        Raises:
            ElementNotFound: If nothing matching becomes visible in time
        """
        timeout = timeout_ms if timeout_ms is not None else self.policy.element_timeout_ms
        locator = self.resolve(descriptor)
        try:
            await locator.wait_for(state="visible", timeout=timeout)
        except PlaywrightError as e:
            raise ElementNotFound(
                f"Element not found: {descriptor.describe()}",
                details={"reference": descriptor.describe(), "timeout_ms": timeout},
            ) from e
        return locator

    async def is_present(self, descriptor: ActionDescriptor, timeout_ms: int) -> bool:
        """True if the descriptor resolves to a visible element within ``timeout_ms``."""
        try:
            await self.locate(descriptor, timeout_ms=timeout_ms)
            return True
        except ElementNotFound:
            return False

    async def execute(self, descriptor: ActionDescriptor, timeout_ms: Optional[int] = None) -> None:
        """
        Perform the descriptor's action.

        Raises:
            ElementNotFound: If the reference cannot be resolved in time
            ElementNotInteractable: If the control refuses the operation
        """
        action = descriptor.element_action
        action_logger.start_action(action.value, descriptor.describe())
        try:
            locator = await self.locate(descriptor, timeout_ms=timeout_ms)
            if action == ElementAction.FILL:
                await self._fill(locator, descriptor)
            elif action == ElementAction.SELECT:
                await self._select(locator, descriptor)
            elif action == ElementAction.CHECK:
                await self._check(locator, descriptor)
            else:
                await self._click(locator, descriptor)
        except (ElementNotFound, ElementNotInteractable) as e:
            action_logger.end_action(False, str(e))
            raise
        action_logger.end_action(True)

    async def execute_first(self, descriptors: Sequence[ActionDescriptor], timeout_ms: Optional[int] = None) -> ActionDescriptor:
        """
        Execute the first descriptor that resolves, trying typed references first.

        Returns:
            The descriptor that was executed

        Raises:
            ElementNotFound: If no candidate resolves
        """
        ordered = sorted(descriptors, key=lambda d: KIND_PREFERENCE.index(d.reference_kind))
        tried: List[str] = []
        for descriptor in ordered:
            try:
                await self.execute(descriptor, timeout_ms=timeout_ms)
                return descriptor
            except ElementNotFound:
                tried.append(descriptor.describe())
        raise ElementNotFound(
            f"None of {len(tried)} candidate references resolved",
            details={"tried": tried},
        )

    async def _fill(self, locator: Locator, descriptor: ActionDescriptor) -> None:
        try:
            await locator.fill(descriptor.value or "", timeout=self.policy.element_timeout_ms)
        except PlaywrightError as e:
            raise ElementNotInteractable(
                f"Cannot fill {descriptor.describe()}: {e}",
                details={"reference": descriptor.describe()},
            ) from e

    async def _click(self, locator: Locator, descriptor: ActionDescriptor) -> None:
        try:
            await locator.click(timeout=self.policy.element_timeout_ms)
        except PlaywrightError as e:
            raise ElementNotInteractable(
                f"Cannot click {descriptor.describe()}: {e}",
                details={"reference": descriptor.describe()},
            ) from e

    async def _check(self, locator: Locator, descriptor: ActionDescriptor) -> None:
        try:
            await locator.check(timeout=self.policy.element_timeout_ms)
            return
        except PlaywrightError as e:
            # Transient overlays intercept pointer events on the portal
            action_logger.log_retry(f"check intercepted, forcing: {str(e).splitlines()[0]}")
        try:
            await locator.check(force=True, timeout=self.policy.element_timeout_ms)
        except PlaywrightError as e:
            raise ElementNotInteractable(
                f"Cannot check {descriptor.describe()}: {e}",
                details={"reference": descriptor.describe()},
            ) from e

    async def _select(self, locator: Locator, descriptor: ActionDescriptor) -> None:
        value = descriptor.value
        if not value:
            raise ElementNotInteractable(
                f"Select on {descriptor.describe()} has no option value",
                details={"reference": descriptor.describe()},
            )

        try:
            await locator.click(timeout=self.policy.element_timeout_ms)
        except PlaywrightError as e:
            raise ElementNotInteractable(
                f"Cannot open {descriptor.describe()}: {e}",
                details={"reference": descriptor.describe()},
            ) from e

        await asyncio.sleep(self.policy.option_wait_ms / 1000)

        candidates = [
            ("exact", self.page.get_by_role("option", name=value, exact=True).first),
            ("partial", self.page.get_by_role("option", name=value).first),
            ("text", self.page.locator(f'text="{value}"').first),
        ]
        option_timeout = max(self.policy.option_wait_ms * 4, 1000)
        for match_kind, option in candidates:
            try:
                await option.wait_for(state="visible", timeout=option_timeout)
                await option.click(timeout=self.policy.element_timeout_ms)
                if match_kind != "exact":
                    logger.debug(f"Option '{value}' matched by {match_kind} text")
                return
            except PlaywrightTimeoutError:
                continue
            except PlaywrightError as e:
                raise ElementNotInteractable(
                    f"Cannot choose option '{value}' in {descriptor.describe()}: {e}",
                    details={"reference": descriptor.describe(), "option": value},
                ) from e

        raise ElementNotInteractable(
            f"Option '{value}' not available in {descriptor.describe()}",
            details={"reference": descriptor.describe(), "option": value},
        )
