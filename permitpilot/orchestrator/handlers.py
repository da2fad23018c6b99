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
Deterministic handlers for wizard steps 0-6.

Each handler performs a fixed sequence of fills, selections and clicks
through the ActionExecutor using stable references, lets the page settle with
the StabilityGate, and clicks Next. Handlers return ``StepResult`` and raise
the orchestrator's exceptions; recovery is applied around them by the
sequencer.
"""

from __future__ import annotations

from typing import Dict, List

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from permitpilot.core.overlays import remove_guidance_overlay
from permitpilot.exceptions import (
    ElementNotFound,
    ElementNotInteractable,
    NavigationTimeout,
    SessionExpired,
    StepVerificationFailed,
)
from permitpilot.orchestrator.context import StepContext
from permitpilot.orchestrator.models import (
    ActionDescriptor,
    ElementAction,
    InstallationType,
    ReferenceKind,
    StepResult,
)
from permitpilot.orchestrator.recovery import apply_analysis
from permitpilot.utils.logger import logger

LOGGED_IN_ANCHOR = "Apply For Permit"
LOGGED_IN_TIMEOUT_MS = 5000
PERMIT_TYPE_ANCHOR = "Select Permit Type"
PERMIT_TYPE_TEXT = "general residential construction, including custom homes"
ADDRESS_RESULTS_ANCHOR = "Advanced Search"
WORK_ITEMS_SECTION = "HVAC"
OPTIONAL_FIELD_TIMEOUT_MS = 5000
SCROLL_ATTEMPTS = 3

PERMIT_DETAIL_SELECTIONS = [
    ("Permit Work Type", "Repairs/ Replacements"),
    ("Permit Use Class", "Residential"),
    ("Use Type", "Single Family"),
    ("Land Use Type", "Single Family"),
]

WORK_ITEM_LABELS: Dict[InstallationType, str] = {
    InstallationType.COMPLETE_SYSTEM: "Replace Furnace or Air Conditioner",
    InstallationType.COOLING_ONLY: "Replace Air Conditioner",
    InstallationType.HEATING_ONLY: "Replace Furnace",
    InstallationType.DUCTLESS: "Install Mini-Split System",
    InstallationType.OTHER: "Replace Furnace or Air Conditioner",
}


def work_item_label(installation_type: InstallationType) -> str:
    """Work-item checkbox label for an installation type."""
    return WORK_ITEM_LABELS.get(installation_type, WORK_ITEM_LABELS[InstallationType.COMPLETE_SYSTEM])


def combobox(name: str, value: str) -> ActionDescriptor:
    return ActionDescriptor(
        reference_kind=ReferenceKind.ROLE,
        reference_name=name,
        element_action=ElementAction.SELECT,
        value=value,
        required=True,
        role="combobox",
        exact=True,
    )


def button(name: str, exact: bool = True) -> ActionDescriptor:
    return ActionDescriptor(
        reference_kind=ReferenceKind.ROLE,
        reference_name=name,
        element_action=ElementAction.CLICK,
        role="button",
        exact=exact,
    )


def work_item_candidates(label: str) -> List[ActionDescriptor]:
    """Ordered references for the work-item checkbox."""
    return [
        ActionDescriptor(
            reference_kind=ReferenceKind.RAW_SELECTOR,
            reference_name=f'[aria-label="{label}"]',
            element_action=ElementAction.CHECK,
        ),
        ActionDescriptor(
            reference_kind=ReferenceKind.RAW_SELECTOR,
            reference_name=f'label:has-text("{label}") input[type="checkbox"]',
            element_action=ElementAction.CHECK,
        ),
        ActionDescriptor(
            reference_kind=ReferenceKind.RAW_SELECTOR,
            reference_name=f"text={label}",
            element_action=ElementAction.CLICK,
        ),
    ]


async def _select_optional(ctx: StepContext, name: str, value: str) -> bool:
    """Select ``value`` in combobox ``name`` if the portal shows it."""
    descriptor = combobox(name, value)
    if not await ctx.executor.is_present(descriptor, OPTIONAL_FIELD_TIMEOUT_MS):
        logger.info(f"Optional field '{name}' not shown")
        return False
    await ctx.executor.execute(descriptor)
    return True


async def login(ctx: StepContext) -> StepResult:
    """Step 0: open the portal with the saved session and pick the permit type."""
    try:
        await ctx.page.goto(
            ctx.portal_url,
            wait_until="domcontentloaded",
            timeout=ctx.policy.navigation_timeout_ms,
        )
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(f"Portal did not load: {ctx.portal_url}") from e

    if not await ctx.has_text(LOGGED_IN_ANCHOR, timeout_ms=LOGGED_IN_TIMEOUT_MS):
        raise SessionExpired(
            "Portal session expired: 'Apply For Permit' not shown. "
            "Run `permitpilot save-session` and log in again."
        )
    logger.info("Session active")

    await ctx.executor.execute(button(LOGGED_IN_ANCHOR))
    await ctx.wait_for_anchor(PERMIT_TYPE_ANCHOR)
    await ctx.gate.wait()

    await ctx.executor.execute(ActionDescriptor(
        reference_kind=ReferenceKind.TEXT,
        reference_name=PERMIT_TYPE_TEXT,
        element_action=ElementAction.CLICK,
    ))
    await ctx.gate.wait()
    await ctx.click_next()
    return StepResult.advance(ctx.step.successor())


async def applicant(ctx: StepContext) -> StepResult:
    """Step 1: the contractor applies as owner; the ROC lookup is automatic."""
    await ctx.gate.wait()
    await ctx.executor.execute(ActionDescriptor(
        reference_kind=ReferenceKind.LABEL,
        reference_name="Owner is Contractor",
        element_action=ElementAction.CHECK,
    ))
    await ctx.gate.wait()
    await ctx.click_next()
    return StepResult.advance(ctx.step.successor())


async def address(ctx: StepContext) -> StepResult:
    """
    Step 2: search the address and pick the first GIS candidate.

    The candidate list is rendered in a modal that the guidance overlay covers
    and re-renders, so the first row is clicked by coordinates instead of by
    a structured reference.
    """
    await ctx.gate.wait()
    await remove_guidance_overlay(ctx.page)

    await ctx.executor.execute(ActionDescriptor(
        reference_kind=ReferenceKind.LABEL,
        reference_name="Address",
        element_action=ElementAction.FILL,
        value=ctx.request.street_address,
        required=True,
    ))
    await ctx.page.keyboard.press("Enter")
    logger.info(f"Searched address: {ctx.request.street_address}")

    await ctx.wait_for_anchor(ADDRESS_RESULTS_ANCHOR)
    await ctx.gate.wait()
    await remove_guidance_overlay(ctx.page)

    first_row = ctx.page.locator("tbody tr").first
    try:
        await first_row.wait_for(state="visible", timeout=ctx.policy.element_timeout_ms)
        box = await first_row.bounding_box()
    except PlaywrightError as e:
        raise ElementNotFound("No address candidates listed", details={"address": ctx.request.street_address}) from e
    if not box:
        raise ElementNotFound("Address candidate row has no layout box")

    await ctx.page.mouse.click(box["x"] + 20, box["y"] + box["height"] / 2)
    logger.info("Selected first address candidate")

    try:
        await ctx.page.get_by_role("button", name="Select", exact=True).first.click(
            force=True, timeout=ctx.policy.element_timeout_ms
        )
    except PlaywrightError as e:
        raise ElementNotInteractable("Cannot confirm address selection") from e

    try:
        await ctx.page.get_by_text(ADDRESS_RESULTS_ANCHOR).first.wait_for(
            state="hidden", timeout=ctx.policy.anchor_timeout_ms
        )
    except PlaywrightError as e:
        raise StepVerificationFailed(
            "Address search dialog did not close after selection",
            details={"address": ctx.request.street_address},
        ) from e

    await ctx.gate.wait()
    await ctx.click_next()
    return StepResult.advance(ctx.step.successor())


async def permit_details(ctx: StepContext) -> StepResult:
    """Step 3: fixed classification for residential HVAC replacements."""
    await ctx.gate.wait()
    for name, value in PERMIT_DETAIL_SELECTIONS:
        await ctx.executor.execute(combobox(name, value))
    await _select_optional(ctx, "Building from Standard Plan?", "No")
    await ctx.click_next()
    return StepResult.advance(ctx.step.successor())


async def project_details(ctx: StepContext) -> StepResult:
    """Step 4: valuation and plan submission type."""
    await ctx.gate.wait()
    await ctx.executor.execute(ActionDescriptor(
        reference_kind=ReferenceKind.LABEL,
        reference_name="Project Valuation",
        element_action=ElementAction.FILL,
        value=ctx.request.valuation_text,
        required=True,
    ))
    logger.info(f"Valuation: ${ctx.request.valuation_text}")
    await _select_optional(ctx, "Plan Submission Type", "No Plans Required")
    await ctx.click_next()
    return StepResult.advance(ctx.step.successor())


async def city_use(ctx: StepContext) -> StepResult:
    """
    Step 5: nothing to fill, but the transition to the work-item list is slow.

    The sequencer verifies the "Select Your Work Items" anchor afterwards.
    """
    await ctx.gate.wait()
    await ctx.executor.execute(button("Next"))
    settled = await ctx.gate.wait(ctx.policy.city_use_stability_wait_ms)
    if not settled:
        logger.warning("Work item list still loading after the extended wait")
    return StepResult.advance(ctx.step.successor())


async def work_items(ctx: StepContext) -> StepResult:
    """Step 6: check the HVAC work item for the installation type."""
    await ctx.gate.wait()

    # The work item list is lazy-loaded as the page scrolls
    for attempt in range(1, SCROLL_ATTEMPTS + 1):
        if await ctx.has_text(WORK_ITEMS_SECTION):
            logger.info("HVAC section found")
            break
        await ctx.scroll_to_bottom()
        await ctx.gate.wait()
        logger.debug(f"Scroll attempt {attempt}/{SCROLL_ATTEMPTS}")

    label = work_item_label(ctx.request.installation_type)
    logger.info(f"Looking for work item: {label}")

    checked = False
    for descriptor in work_item_candidates(label):
        try:
            await ctx.executor.execute(descriptor, timeout_ms=OPTIONAL_FIELD_TIMEOUT_MS)
            checked = True
            break
        except (ElementNotFound, ElementNotInteractable) as e:
            logger.debug(f"Work item reference failed: {e}")

    if not checked:
        analysis = await ctx.analyze(
            "work-items-fallback",
            f'This is Step 6 "Select Your Work Items". Find the HVAC checkbox for "{label}" and check it.',
        )
        if not await apply_analysis(ctx, analysis, f"work item '{label}'"):
            raise ElementNotFound(f"Work item '{label}' not found", details={"label": label})

    await ctx.click_next()
    return StepResult.advance(ctx.step.successor())
