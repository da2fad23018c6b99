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
Vision-assisted recovery for step handlers.

``execute_analysis`` runs a vision analysis's recommended actions through the
ActionExecutor, and ``apply_analysis`` does so only when the analysis clears
the policy's confidence threshold. ``RecoveryWrapper`` gives a failing handler
exactly one such recovery attempt.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Tuple

from permitpilot.exceptions import (
    ElementNotFound,
    ElementNotInteractable,
    LowConfidenceRecovery,
    SessionExpired,
)
from permitpilot.orchestrator.context import StepContext
from permitpilot.orchestrator.descriptors import next_button
from permitpilot.orchestrator.models import ActionDescriptor, StepResult, VisionAnalysis
from permitpilot.utils.logger import logger

StepHandler = Callable[[StepContext], Awaitable[StepResult]]
Verifier = Callable[[StepContext], Awaitable[None]]

# Errors recovery must never try to paper over
FATAL_ERRORS = (SessionExpired, LowConfidenceRecovery)


async def execute_analysis(ctx: StepContext, analysis: VisionAnalysis) -> int:
    """
    Execute the analysis's field actions in order.

    Optional fields without a value and fields already showing the requested
    value are skipped. A field whose control cannot be found or operated is
    logged and skipped so the remaining fields still get a chance.

    Returns:
        Number of actions performed
    """
    performed = 0
    for descriptor in analysis.fields:
        if not descriptor.required and not descriptor.value:
            continue
        if descriptor.is_filled:
            continue
        try:
            await ctx.executor.execute(descriptor)
            performed += 1
        except (ElementNotFound, ElementNotInteractable) as e:
            logger.warning(f"Recommended {descriptor.element_action.value} failed: {e}")
    return performed


def check_confidence(ctx: StepContext, analysis: VisionAnalysis, what: str) -> None:
    """
    Raises:
        LowConfidenceRecovery: If the analysis is below the policy threshold
    """
    threshold = ctx.policy.confidence_threshold
    if analysis.confidence < threshold:
        raise LowConfidenceRecovery(
            f"Vision confidence {analysis.confidence} below {threshold} for {what}",
            confidence=analysis.confidence,
            threshold=threshold,
            details={
                "step": ctx.step.value,
                "recommendations": analysis.recommendations,
                "errors": analysis.error_messages,
            },
        )


async def apply_analysis(ctx: StepContext, analysis: VisionAnalysis, what: str) -> int:
    """Confidence-gated ``execute_analysis``."""
    check_confidence(ctx, analysis, what)
    return await execute_analysis(ctx, analysis)


class RecoveryWrapper:
    """
    One vision-assisted recovery attempt around a step handler.

    On a handler exception the wrapper screenshots the page, asks the vision
    model what is wrong, and, if the answer clears the confidence threshold,
    performs the recommended actions. When the recommendations talk about
    moving on, the step's advance control is clicked once. The attempt does
    not loop: if it fails, or if it neither performed an action nor advanced,
    the original failure propagates.

    SessionExpired is always re-raised untouched; LowConfidenceRecovery raised
    inside a handler already means vision declined to act.
    """

    async def wrap(
        self,
        step_name: str,
        handler: StepHandler,
        context: StepContext,
        advance: Optional[ActionDescriptor] = None,
        verify: Optional[Verifier] = None,
    ) -> StepResult:
        try:
            result = await handler(context)
            if verify is not None and result.success:
                await verify(context)
            return result
        except FATAL_ERRORS:
            raise
        except Exception as e:
            logger.warning(f"{step_name} failed: {e}; attempting vision recovery")
            performed, advanced = await self._recover(step_name, context, e, advance or next_button())
            if not performed and not advanced:
                logger.warning(f"{step_name}: vision recommended nothing actionable")
                raise

        if verify is not None:
            await verify(context)
        logger.info(f"{step_name} recovered with vision assistance")
        return StepResult.advance(context.step.successor())

    async def _recover(
        self,
        step_name: str,
        context: StepContext,
        error: Exception,
        advance: ActionDescriptor,
    ) -> Tuple[int, bool]:
        """
        Returns:
            Number of field actions performed, and whether the advance
            control was clicked
        """
        analysis = await context.analyze(
            f"{step_name}-failed",
            f"{step_name} failed: {error}. Analyze the current page state and "
            "determine what action is needed to proceed.",
        )
        logger.info(
            f"Recovery analysis: confidence {analysis.confidence}, "
            f"recommendations: {', '.join(analysis.recommendations) or 'none'}"
        )
        try:
            check_confidence(context, analysis, f"recovery of {step_name}")
        except LowConfidenceRecovery as low:
            raise low from error

        performed = await execute_analysis(context, analysis)
        if not analysis.recommends_advance():
            return performed, False
        await context.executor.execute(advance)
        await context.gate.wait()
        return performed, True
