# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""
Shared test fixtures for the PermitPilot test suite.

This module provides:
- FakePage: a scripted stand-in for a Playwright page showing the portal
  wizard. Every element is present and visible unless its reference key is
  listed in ``absent``; every element operation is recorded in ``actions``.
- ScriptedAnalyzer: a vision analyzer returning queued analyses
- ScriptedProvider: an LLM provider returning queued answers
- Request, policy and context fixtures
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Pattern, Set, Tuple, Union

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from permitpilot.core.policy import OrchestratorPolicy, PolicyPreset
from permitpilot.core.stability import BUSY_INDICATORS
from permitpilot.llm.base import BaseLLMProvider, LLMResponse
from permitpilot.orchestrator.context import StepContext
from permitpilot.orchestrator.models import (
    Step,
    SubmissionRequest,
    SubmissionState,
    VisionAnalysis,
)
from permitpilot.utils.logger import logger

PORTAL_URL = "https://shapephx.phoenix.gov/s/"
PAYMENT_URL = "https://shapephx.phoenix.gov/s/cart"
RECEIPT_URL = "https://shapephx.phoenix.gov/s/receipt"

PAYMENT_PAGE_TEXT = (
    "No Plans Required\n"
    "Your application has been received.\n"
    "Payment\nTotal due: $129.00\nPay Now"
)


# ==================== Environment Setup ====================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Keep test logs quiet and keys out of the real environment."""
    os.environ.setdefault("PERMITPILOT_LOG_LEVEL", "WARNING")
    yield


@pytest.fixture(autouse=True)
def restore_logger():
    """Undo ``configure_logging`` calls made by CLI and logger tests."""
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


# ==================== Fake Playwright Page ====================


Action = Tuple[str, str, Optional[str]]


def _name_key(name: Union[str, Pattern[str], None]) -> str:
    if name is None:
        return ""
    if isinstance(name, re.Pattern):
        return name.pattern
    return str(name)


class FakeLocator:
    """Locator over a FakePage; ``.first`` is the locator itself."""

    def __init__(self, page: "FakePage", key: str) -> None:
        self.page = page
        self.key = key

    @property
    def first(self) -> "FakeLocator":
        return self

    def _require(self) -> None:
        if not self.page.is_visible(self.key):
            raise PlaywrightTimeoutError(f"Timeout waiting for {self.key}")

    async def wait_for(self, state: str = "visible", timeout: Optional[float] = None) -> None:
        if state == "hidden":
            if self.key in self.page.never_hides:
                raise PlaywrightTimeoutError(f"{self.key} still visible")
            self.page.absent.add(self.key)
            return
        self._require()

    async def is_visible(self) -> bool:
        return self.page.is_visible(self.key)

    async def is_enabled(self, timeout: Optional[float] = None) -> bool:
        remaining = self.page.enable_after.get(self.key)
        if remaining is not None:
            if remaining <= 0:
                self.page.disabled.discard(self.key)
                del self.page.enable_after[self.key]
            else:
                self.page.enable_after[self.key] = remaining - 1
        return self.key not in self.page.disabled

    async def is_disabled(self, timeout: Optional[float] = None) -> bool:
        return self.key in self.page.disabled

    async def click(self, timeout: Optional[float] = None, force: bool = False) -> None:
        self._require()
        if self.key in self.page.refuses and not force:
            raise PlaywrightTimeoutError(f"{self.key} intercepted pointer events")
        self.page.record("click", self.key)

    async def fill(self, value: str, timeout: Optional[float] = None) -> None:
        self._require()
        self.page.record("fill", self.key, value)

    async def check(self, timeout: Optional[float] = None, force: bool = False) -> None:
        self._require()
        if self.key in self.page.refuses and not force:
            raise PlaywrightTimeoutError(f"{self.key} intercepted pointer events")
        self.page.record("check", self.key)

    async def scroll_into_view_if_needed(self, timeout: Optional[float] = None) -> None:
        self._require()

    async def bounding_box(self) -> Optional[Dict[str, float]]:
        return {"x": 100.0, "y": 200.0, "width": 600.0, "height": 40.0}

    async def text_content(self, timeout: Optional[float] = None) -> Optional[str]:
        self._require()
        return self.page.text_contents.get(self.key, "")


class FakeKeyboard:
    def __init__(self, page: "FakePage") -> None:
        self.page = page

    async def press(self, key: str) -> None:
        self.page.record("press", key)


class FakeMouse:
    def __init__(self, page: "FakePage") -> None:
        self.page = page

    async def click(self, x: float, y: float) -> None:
        self.page.record("mouse_click", f"{x:.0f},{y:.0f}")


class FakeDownload:
    def __init__(self, page: "FakePage") -> None:
        self.page = page

    async def save_as(self, path: str) -> None:
        Path(path).write_bytes(b"%PDF-1.4 permit")
        self.page.record("save_download", path)


class FakeEventInfo:
    def __init__(self, value: Any) -> None:
        self._value = value

    @property
    def value(self):
        async def _resolve():
            return self._value
        return _resolve()


class FakeDownloadExpectation:
    def __init__(self, page: "FakePage") -> None:
        self.page = page

    async def __aenter__(self) -> FakeEventInfo:
        return FakeEventInfo(FakeDownload(self.page))

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        return False


class FakePage:
    """
    Scripted portal page.

    Attributes:
        body_text: What ``inner_text("body")`` returns
        absent: Reference keys that are not on the page (busy indicators by default)
        never_hides: Keys whose hidden-wait times out
        disabled: Keys reporting disabled
        enable_after: Disabled keys that turn enabled after this many state reads
        refuses: Keys whose normal click is intercepted (force click works)
        text_contents: ``text_content`` per key
        redirect_to: URL reached by ``wait_for_url`` (the operator's payment)
        actions: Recorded (operation, key, value) element operations
    """

    def __init__(self, body_text: str = PAYMENT_PAGE_TEXT) -> None:
        self.url = "about:blank"
        self.body_text = body_text
        self.absent: Set[str] = set(BUSY_INDICATORS)
        self.never_hides: Set[str] = set()
        self.disabled: Set[str] = set()
        self.enable_after: Dict[str, int] = {}
        self.refuses: Set[str] = set()
        self.text_contents: Dict[str, str] = {}
        self.redirect_to: Optional[str] = None
        self.actions: List[Action] = []
        self.visited: List[str] = []
        self.screenshots: List[str] = []
        self.click_hooks: Dict[str, Callable[["FakePage"], None]] = {}
        self.keyboard = FakeKeyboard(self)
        self.mouse = FakeMouse(self)

    # ---- bookkeeping ----

    def record(self, operation: str, key: str, value: Optional[str] = None) -> None:
        self.actions.append((operation, key, value))
        if operation == "click" and key in self.click_hooks:
            self.click_hooks[key](self)

    def is_visible(self, key: str) -> bool:
        return key not in self.absent

    def operations(self, operation: str) -> List[str]:
        return [key for op, key, _ in self.actions if op == operation]

    # ---- locators ----

    def get_by_role(self, role: str, name: Any = None, exact: bool = False) -> FakeLocator:
        return FakeLocator(self, f"role={role}[{_name_key(name)}]")

    def get_by_label(self, text: str, exact: bool = False) -> FakeLocator:
        return FakeLocator(self, f"label={text}")

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        return FakeLocator(self, f"text={text}")

    def get_by_placeholder(self, text: str, exact: bool = False) -> FakeLocator:
        return FakeLocator(self, f"placeholder={text}")

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    # ---- page operations ----

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.url = url
        self.visited.append(url)

    async def wait_for_url(self, pattern: Pattern[str], timeout: Optional[float] = None) -> None:
        if self.redirect_to and pattern.search(self.redirect_to):
            self.url = self.redirect_to
            return
        if pattern.search(self.url):
            return
        raise PlaywrightTimeoutError(f"URL never matched {pattern.pattern}")

    async def inner_text(self, selector: str, timeout: Optional[float] = None) -> str:
        return self.body_text

    async def evaluate(self, expression: str, *args: Any) -> Any:
        return 0

    async def screenshot(self, path: Optional[str] = None, full_page: bool = False) -> bytes:
        if path:
            self.screenshots.append(path)
        return b"\x89PNG fake"

    async def route(self, pattern: str, handler: Any) -> None:
        return None

    def expect_download(self, timeout: Optional[float] = None) -> FakeDownloadExpectation:
        return FakeDownloadExpectation(self)


# ==================== Fake vision ====================


class ScriptedAnalyzer:
    """Vision analyzer that returns queued analyses in order."""

    def __init__(self, analyses: Optional[List[VisionAnalysis]] = None) -> None:
        self.analyses = list(analyses or [])
        self.calls: List[Dict[str, Any]] = []

    async def analyze_step(
        self,
        screenshot: bytes,
        step_number: int,
        request: SubmissionRequest,
        context: Optional[str] = None,
    ) -> VisionAnalysis:
        self.calls.append({"step_number": step_number, "context": context})
        if self.analyses:
            return self.analyses.pop(0)
        return VisionAnalysis(step_number=step_number, step_name=f"Step {step_number}", confidence=0)


class ScriptedProvider(BaseLLMProvider):
    """LLM provider that returns queued answers, or raises queued exceptions."""

    provider_name = "scripted"

    def __init__(self, answers: Optional[List[Union[str, Exception]]] = None, model: str = "gpt-4o") -> None:
        super().__init__(model, api_key="test-key")
        self.answers = list(answers or [])
        self.calls: List[Dict[str, Any]] = []

    def _next(self) -> LLMResponse:
        answer = self.answers.pop(0) if self.answers else "{}"
        if isinstance(answer, Exception):
            raise answer
        return LLMResponse(content=answer, model=self.model)

    async def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=None, **kwargs):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt})
        return self._next()

    async def generate_with_vision(self, prompt, image_data, system_prompt=None, temperature=0.7, max_tokens=None, **kwargs):
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "image": image_data,
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs,
        })
        return self._next()


# ==================== Fixtures ====================


def make_request(**overrides: Any) -> SubmissionRequest:
    data: Dict[str, Any] = {
        "submission_id": "sub-0001",
        "roc_license_number": "ROC-123456",
        "city_privilege_license": "CPL-98765",
        "contractor_name": "Desert Air Mechanical",
        "contractor_phone": "602-555-0134",
        "contractor_email": "permits@desertair.example",
        "street_address": "3825 E CAMELBACK RD",
        "zip_code": "85018",
        "valuation": 5000,
        "installation_type": "complete-system",
        "equipment_tonnage": 3,
    }
    data.update(overrides)
    return SubmissionRequest(**data)


def fast_policy() -> OrchestratorPolicy:
    policy = OrchestratorPolicy.from_preset(PolicyPreset.FAST)
    policy.stability_poll_interval_ms = 1
    policy.option_wait_ms = 1
    policy.control_enable_timeout_ms = 20
    policy.cooldown_seconds = 0.0
    return policy


@pytest.fixture
def request_data() -> SubmissionRequest:
    return make_request()


@pytest.fixture
def policy() -> OrchestratorPolicy:
    return fast_policy()


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def make_context(page: FakePage, policy: OrchestratorPolicy, request_data: SubmissionRequest, tmp_path: Path):
    """Build a StepContext at a given step over the fake page."""

    def _make(step: Step = Step.LOGIN, analyzer: Any = None) -> StepContext:
        state = SubmissionState.fresh(request_data)
        state.current_step = step
        return StepContext.create(
            page,
            state,
            policy,
            analyzer=analyzer,
            portal_url=PORTAL_URL,
            screenshot_dir=str(tmp_path / "screenshots"),
            download_dir=str(tmp_path / "downloads"),
        )

    return _make
