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
Adaptive handlers for wizard steps 7-9 and the post-payment steps.

The content of these screens varies between permit classes and over time.
Handlers try direct heuristics first and call the VisionAnalyzer only when
the heuristics fail, executing its recommendations only above the confidence
threshold.
"""

from __future__ import annotations

import asyncio
import re
import time
from enum import Enum
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from permitpilot.exceptions import ElementNotFound, ElementNotInteractable, NavigationTimeout
from permitpilot.orchestrator.context import StepContext
from permitpilot.orchestrator.descriptors import next_button
from permitpilot.orchestrator.models import (
    ActionDescriptor,
    ElementAction,
    ReferenceKind,
    Step,
    StepResult,
)
from permitpilot.orchestrator.recovery import apply_analysis, check_confidence, execute_analysis
from permitpilot.utils.logger import logger

PROBE_TIMEOUT_MS = 2000
NEXT_STATE_TIMEOUT_MS = 3000
NEXT_CLICK_TIMEOUT_MS = 5000

COST_FIELD_PROBES: List[str] = [
    'input[name*="cost" i]',
    'input[placeholder*="cost" i]',
    'lightning-input[label*="Cost" i] input',
    'lightning-input[label*="Estimated" i] input',
    '[data-field*="cost" i] input',
]

NO_PLANS_MARKER = "no plans required"

SUBMIT_BUTTON_NAMES: List[str] = [
    "Submit Permit Application",
    "Submit Application",
    "Submit Permit",
    "Submit",
]
BRAND_SUBMIT_SELECTOR = "button.slds-button_brand:has-text('Submit')"

FEE_SELECTOR = ".total-fee, .cart-total"
PERMIT_NUMBER_SELECTOR = ".permit-number, .confirmation-number"
PAYMENT_DONE_URL = re.compile(r"confirmation|receipt", re.IGNORECASE)
DOWNLOAD_BUTTON_NAME = re.compile(r"view permit|print permit|download", re.IGNORECASE)


class SubmitOutcome(str, Enum):
    """What the portal showed after the application was submitted."""

    PAYMENT = "payment"
    SUBMITTED = "submitted"
    AMBIGUOUS = "ambiguous"


def classify_outcome(page_text: str) -> SubmitOutcome:
    """Classify the post-submit page by its text."""
    if "Payment" in page_text or "payment" in page_text or "Pay Now" in page_text:
        return SubmitOutcome.PAYMENT
    lowered = page_text.lower()
    if "submitted" in lowered or "thank you" in lowered or "confirmation" in lowered:
        return SubmitOutcome.SUBMITTED
    return SubmitOutcome.AMBIGUOUS


async def _wait_until_enabled(ctx: StepContext, locator: Locator) -> bool:
    """Poll the control until it is enabled or the policy bound runs out."""
    deadline = time.monotonic() + ctx.policy.control_enable_timeout_ms / 1000
    interval = ctx.policy.stability_poll_interval_ms / 1000
    while True:
        try:
            if await locator.is_enabled(timeout=NEXT_STATE_TIMEOUT_MS):
                return True
        except PlaywrightError:
            logger.debug("Could not read Next button state")
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(interval)


async def _clickable(locator: Locator) -> bool:
    try:
        return await locator.is_visible() and await locator.is_enabled()
    except PlaywrightError:
        return False


# ==================== Step 7 ====================


async def work_details(ctx: StepContext) -> StepResult:
    """Step 7: the work item detail screen only needs the cost filled."""
    await ctx.gate.wait()
    valuation = ctx.request.valuation_text

    filled = False
    for probe in COST_FIELD_PROBES:
        descriptor = ActionDescriptor(
            reference_kind=ReferenceKind.RAW_SELECTOR,
            reference_name=probe,
            element_action=ElementAction.FILL,
            value=valuation,
            required=True,
        )
        if await ctx.executor.is_present(descriptor, PROBE_TIMEOUT_MS):
            await ctx.executor.execute(descriptor)
            logger.info(f"Filled cost ${valuation} using {probe}")
            filled = True
            break

    if not filled:
        logger.info("Cost field not matched by probes, asking vision")
        analysis = await ctx.analyze(
            "work-details",
            "This is Step 7 Work Item Details. Look for a cost/price field that "
            f"needs the valuation amount ({valuation}) filled in.",
        )
        if not await apply_analysis(ctx, analysis, "work item cost"):
            raise ElementNotFound("No cost field on the work item details screen")

    await ctx.click_next()
    return StepResult.advance(ctx.step.successor())


# ==================== Step 8 ====================


async def documents(ctx: StepContext) -> StepResult:
    """
    Step 8: document upload is optional for "No Plans Required" permits.

    When plans may be required, Next gets a bounded wait to become enabled;
    only if it stays disabled does vision decide what the screen still needs.
    """
    no_plans = NO_PLANS_MARKER in (await ctx.page_text()).lower()
    if no_plans:
        logger.info('"No Plans Required" detected, skipping document upload')

    settled = await ctx.gate.wait()
    if not settled:
        logger.warning("Documents screen still loading, proceeding")

    next_locator = ctx.executor.resolve(next_button())
    if not no_plans and not await _wait_until_enabled(ctx, next_locator):
        analysis = await ctx.analyze(
            "documents",
            "Step 8 Submit Documents. The Next button is disabled. "
            "What fields or actions are required to proceed?",
        )
        if analysis.has_errors:
            logger.warning(f"Portal reports: {', '.join(analysis.error_messages)}")
        await apply_analysis(ctx, analysis, "documents screen")
        await ctx.gate.wait()

    try:
        await next_locator.click(timeout=NEXT_CLICK_TIMEOUT_MS)
    except PlaywrightError:
        logger.info("Normal Next click failed, forcing")
        try:
            await next_locator.click(force=True, timeout=NEXT_CLICK_TIMEOUT_MS)
        except PlaywrightError as e:
            raise ElementNotInteractable("Cannot advance past the documents screen") from e

    await ctx.gate.wait()
    return StepResult.advance(ctx.step.successor())


# ==================== Step 9 ====================


def _submit_candidates(ctx: StepContext) -> List[Locator]:
    page = ctx.page
    candidates = [page.get_by_role("button", name=name, exact=True).first for name in SUBMIT_BUTTON_NAMES]
    candidates += [page.locator(f"button:has-text('{name}')").first for name in SUBMIT_BUTTON_NAMES]
    candidates.append(page.locator(BRAND_SUBMIT_SELECTOR).first)
    return candidates


async def _click_submit(ctx: StepContext) -> bool:
    for candidate in _submit_candidates(ctx):
        if not await _clickable(candidate):
            continue
        try:
            await candidate.scroll_into_view_if_needed(timeout=ctx.policy.element_timeout_ms)
            await candidate.click(timeout=ctx.policy.element_timeout_ms)
        except PlaywrightError as e:
            logger.debug(f"Submit candidate refused click: {str(e).splitlines()[0]}")
            continue
        logger.info("Clicked submit")
        return True
    return False


async def _fee_text(ctx: StepContext) -> Optional[str]:
    fee = ctx.page.locator(FEE_SELECTOR).first
    try:
        if await fee.is_visible():
            text = await fee.text_content(timeout=PROBE_TIMEOUT_MS)
            return text.strip() if text else None
    except PlaywrightError:
        logger.debug("Fee element unreadable")
    return None


async def confirmation(ctx: StepContext) -> StepResult:
    """
    Step 9: submit the application and classify where the portal went.

    Returns AWAITING_PAYMENT unless a permit number is already shown, in
    which case the run is COMPLETE.
    """
    await ctx.gate.wait()
    await ctx.scroll_to_bottom()
    await ctx.gate.wait()
    await ctx.screenshot("before-submit")

    if not await _click_submit(ctx):
        logger.info("Submit control not matched directly, asking vision")
        analysis = await ctx.analyze(
            "confirmation",
            'This is Step 9 Confirmation. Find the "Submit Permit Application" '
            "button to complete the submission.",
        )
        check_confidence(ctx, analysis, "submit control")
        if analysis.submit_reference is None:
            raise ElementNotFound(
                "No submit control on the confirmation screen",
                details={"recommendations": analysis.recommendations},
            )
        await execute_analysis(ctx, analysis)
        await ctx.executor.execute(analysis.submit_reference)

    await ctx.gate.wait()
    await ctx.screenshot("after-submit")

    text = await ctx.page_text()
    outcome = classify_outcome(text)
    ctx.state.data["submission_outcome"] = outcome.value
    if outcome == SubmitOutcome.PAYMENT:
        ctx.state.data["payment_url"] = ctx.page.url
        fee = await _fee_text(ctx)
        if fee:
            ctx.state.data["fee_text"] = fee
        logger.info("Redirected to payment; operator must pay")
    elif outcome == SubmitOutcome.AMBIGUOUS:
        logger.warning("Post-submit page not recognized")

    permit_number = ctx.extractor.extract(text)
    if permit_number:
        ctx.state.data["permit_number"] = permit_number
        logger.info(f"Permit number: {permit_number}")
        return StepResult.advance(Step.COMPLETE)

    logger.info("Permit number pending (awaiting payment)")
    return StepResult.advance(Step.AWAITING_PAYMENT)


# ==================== Post-payment ====================


async def payment_complete(ctx: StepContext) -> StepResult:
    """Wait for the portal's payment confirmation or receipt page."""
    if not PAYMENT_DONE_URL.search(ctx.page.url or ""):
        target = ctx.state.data.get("payment_url") or ctx.portal_url
        try:
            await ctx.page.goto(target, timeout=ctx.policy.navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Payment page did not load: {target}") from e

    try:
        await ctx.page.wait_for_url(PAYMENT_DONE_URL, timeout=ctx.policy.payment_confirmation_timeout_ms)
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(
            "Payment confirmation page not reached; has the operator paid?",
            details={"url": ctx.page.url},
        ) from e

    await ctx.gate.wait()
    return StepResult.advance(ctx.step.successor())


async def download_permit(ctx: StepContext) -> StepResult:
    """Read the issued permit number and save the permit PDF."""
    permit_number: Optional[str] = None
    number_el = ctx.page.locator(PERMIT_NUMBER_SELECTOR).first
    try:
        if await number_el.is_visible():
            raw = await number_el.text_content(timeout=PROBE_TIMEOUT_MS)
            permit_number = raw.strip() if raw else None
    except PlaywrightError:
        logger.debug("Permit number element unreadable")
    if not permit_number:
        permit_number = ctx.extractor.extract(await ctx.page_text())
    if permit_number:
        ctx.state.data["permit_number"] = permit_number

    await ctx.screenshot("permit-issued")

    download_button = ctx.page.get_by_role("button", name=DOWNLOAD_BUTTON_NAME).first
    try:
        async with ctx.page.expect_download(timeout=ctx.policy.navigation_timeout_ms) as download_info:
            await download_button.click(timeout=ctx.policy.element_timeout_ms)
        download = await download_info.value
    except PlaywrightError as e:
        raise ElementNotFound("Permit download did not start") from e

    ctx.download_dir.mkdir(parents=True, exist_ok=True)
    pdf_path = ctx.download_dir / f"{ctx.state.submission_id}_{permit_number or 'permit'}.pdf"
    await download.save_as(str(pdf_path))
    ctx.state.data["pdf_path"] = str(pdf_path)
    logger.info(f"Permit PDF saved: {pdf_path}")

    return StepResult.advance(ctx.step.successor())
