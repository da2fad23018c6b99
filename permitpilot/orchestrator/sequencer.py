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
Step sequencing for portal submissions.

The StepSequencer drives one submission through an ordered step table. After
every completed step it records the step, advances ``current_step`` and
writes a checkpoint, so the persisted state always names the next step to
run. Runs stop normally at the payment pause and return a pending result;
``resume`` continues from there once the operator has paid.

Example:
    >>> sequencer = StepSequencer(page, LocalCheckpointStore("./checkpoints"), analyzer)
    >>> result = await sequencer.run(request)
    >>> result.status
    <SubmissionStatus.PENDING_PAYMENT: 'pending_payment'>
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from permitpilot.core.policy import OrchestratorPolicy, get_policy
from permitpilot.exceptions import CheckpointError, SessionExpired, StepVerificationFailed
from permitpilot.orchestrator import adaptive, handlers
from permitpilot.orchestrator.checkpoint import CheckpointStore
from permitpilot.orchestrator.context import DEFAULT_PORTAL_URL, StepContext
from permitpilot.orchestrator.descriptors import next_button
from permitpilot.orchestrator.models import (
    ActionDescriptor,
    Step,
    StepResult,
    SubmissionRequest,
    SubmissionResult,
    SubmissionState,
    SubmissionStatus,
)
from permitpilot.orchestrator.recovery import RecoveryWrapper, StepHandler
from permitpilot.orchestrator.vision import VisionAnalyzer
from permitpilot.utils.logger import logger
from permitpilot.utils.timing import StepTimer, time_step

CANCELLED = "cancelled"

# Loop exits at these steps without error
STOP_STEPS = (Step.AWAITING_PAYMENT, Step.COMPLETE)


@dataclass
class StepEntry:
    """
    One row of the step table.

    Attributes:
        step: Step this entry runs
        handler: Coroutine performing the step
        verification_anchor: Text expected once the step has advanced
        recovery_enabled: Give the handler one vision recovery attempt
        advance: Control recovery clicks when vision recommends moving on
    """

    step: Step
    handler: StepHandler
    verification_anchor: Optional[str] = None
    recovery_enabled: bool = False
    advance: ActionDescriptor = field(default_factory=next_button)


DEFAULT_STEP_TABLE: List[StepEntry] = [
    StepEntry(Step.LOGIN, handlers.login, "Owner is Contractor", recovery_enabled=True),
    StepEntry(Step.APPLICANT, handlers.applicant, "Address", recovery_enabled=True),
    StepEntry(Step.ADDRESS, handlers.address, "Permit Work Type", recovery_enabled=True),
    StepEntry(Step.PERMIT_DETAILS, handlers.permit_details, "Project Valuation", recovery_enabled=True),
    StepEntry(Step.PROJECT_DETAILS, handlers.project_details, recovery_enabled=True),
    StepEntry(Step.CITY_USE, handlers.city_use, "Select Your Work Items", recovery_enabled=True),
    StepEntry(Step.WORK_ITEMS, handlers.work_items, recovery_enabled=True),
    StepEntry(Step.WORK_DETAILS, adaptive.work_details, "Submit Documents"),
    StepEntry(Step.DOCUMENTS, adaptive.documents, "Confirmation"),
    StepEntry(Step.CONFIRMATION, adaptive.confirmation),
    StepEntry(Step.PAYMENT_COMPLETE, adaptive.payment_complete),
    StepEntry(Step.DOWNLOAD_PERMIT, adaptive.download_permit),
]


def allowed_next_steps(step: Step, state: SubmissionState) -> List[Step]:
    """Steps a handler for ``step`` may hand over to."""
    allowed = [step.successor()]
    if step == Step.CONFIRMATION and state.permit_number:
        # Permit issued without a payment page
        allowed.append(Step.COMPLETE)
    return allowed


def result_from_state(
    state: SubmissionState,
    steps_completed: Optional[List[Step]] = None,
    error: Optional[str] = None,
    analyses: Optional[list] = None,
    step_timings: Optional[list] = None,
) -> SubmissionResult:
    """Build the caller-facing result for a state."""
    if error is not None:
        status = SubmissionStatus.FAILED
    elif state.current_step == Step.COMPLETE:
        status = SubmissionStatus.SUBMITTED
    else:
        status = SubmissionStatus.PENDING_PAYMENT
    return SubmissionResult(
        submission_id=state.submission_id,
        success=status != SubmissionStatus.FAILED,
        status=status,
        steps_completed=list(steps_completed or []),
        permit_number=state.permit_number,
        error=error,
        screenshots=list(state.screenshots),
        analyses=list(analyses or []),
        data=dict(state.data),
        step_timings=list(step_timings or []),
    )


class StepSequencer:
    """
    Drives a submission through the portal wizard.

    One sequencer owns one page. Two sequencers must never run against the
    same submission id at once; checkpoints are last-write-wins.

    Attributes:
        page: Live Playwright page
        checkpoints: Durable progress store
        analyzer: Vision analyzer (None disables vision; gates then refuse to act)
        policy: Timeout and confidence policy
    """

    def __init__(
        self,
        page: Page,
        checkpoints: CheckpointStore,
        analyzer: Optional[VisionAnalyzer] = None,
        policy: Optional[OrchestratorPolicy] = None,
        step_table: Optional[Sequence[StepEntry]] = None,
        portal_url: str = DEFAULT_PORTAL_URL,
        screenshot_dir: str = "screenshots",
        download_dir: str = "downloads",
        recovery: Optional[RecoveryWrapper] = None,
    ) -> None:
        self.page = page
        self.checkpoints = checkpoints
        self.analyzer = analyzer
        self.policy = policy or get_policy()
        self.portal_url = portal_url
        self.screenshot_dir = screenshot_dir
        self.download_dir = download_dir
        self.recovery = recovery or RecoveryWrapper()
        self._entries: Dict[Step, StepEntry] = {
            entry.step: entry for entry in (step_table or DEFAULT_STEP_TABLE)
        }
        self._cancel_requested = False

    def cancel(self) -> None:
        """Request cancellation; honored at the next step boundary."""
        logger.info("Cancellation requested")
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    # ==================== Entry points ====================

    async def run(self, request: SubmissionRequest) -> SubmissionResult:
        """
        Submit ``request`` from the beginning of the wizard.

        A submission already parked at the payment pause is not submitted
        again: its pending result is returned. One that is past the pause is
        resumed. Wizard progress lives in the browser session, so an
        interrupted pre-payment run starts over at login.
        """
        record = await self.checkpoints.load_record(request.submission_id)
        if record is not None:
            existing = record.state
            if existing.current_step in STOP_STEPS:
                logger.info(
                    f"Submission {request.submission_id} already at {existing.current_step.value}; not resubmitting"
                )
                return result_from_state(existing)
            if existing.current_step.position > Step.AWAITING_PAYMENT.position:
                return await self.resume(request.submission_id)

        state = SubmissionState.fresh(request)
        await self.checkpoints.save(state)
        return await self._drive(state)

    async def plan_resume(self, submission_id: str) -> SubmissionState:
        """
        State that ``resume`` would start from, without executing anything.

        Raises:
            CheckpointError: If there is no checkpoint, or it stopped inside
                the wizard where progress cannot be restored
        """
        state = await self.checkpoints.load(submission_id)
        if state is None:
            raise CheckpointError(
                f"No checkpoint for submission {submission_id}",
                details={"submission_id": submission_id},
            )
        if state.current_step == Step.AWAITING_PAYMENT:
            state.current_step = Step.PAYMENT_COMPLETE
        elif state.current_step.position < Step.AWAITING_PAYMENT.position:
            raise CheckpointError(
                f"Submission {submission_id} stopped at {state.current_step.value}, "
                "before the payment pause; run it again instead",
                details={"submission_id": submission_id, "step": state.current_step.value},
            )
        if state.request is None:
            raise CheckpointError(f"Checkpoint for {submission_id} carries no request")
        return state

    async def resume(self, submission_id: str) -> SubmissionResult:
        """
        Continue a submission after the operator's payment.

        A completed submission returns its stored result without running any
        handler.
        """
        state = await self.plan_resume(submission_id)
        if state.current_step == Step.COMPLETE:
            return result_from_state(state)
        logger.info(f"Resuming {submission_id} at {state.current_step.value}")
        return await self._drive(state)

    # ==================== Loop ====================

    def _context(self, state: SubmissionState) -> StepContext:
        return StepContext.create(
            self.page,
            state,
            self.policy,
            analyzer=self.analyzer,
            portal_url=self.portal_url,
            screenshot_dir=self.screenshot_dir,
            download_dir=self.download_dir,
        )

    async def _drive(self, state: SubmissionState) -> SubmissionResult:
        ctx = self._context(state)
        timer = StepTimer()
        timer.start()
        completed: List[Step] = []

        while state.current_step not in STOP_STEPS:
            if self._cancel_requested:
                return await self._fail(ctx, CANCELLED, completed, timer, screenshot=False)

            step = state.current_step
            entry = self._entries.get(step)
            if entry is None:
                return await self._fail(ctx, f"No handler for step {step.value}", completed, timer)

            number = step.number if step.number is not None else "-"
            logger.info(
                f"Step {number}: {step.value}",
                extra={"submission_id": state.submission_id, "step": step.value},
            )
            try:
                async with time_step(timer, step.value):
                    result = await self._execute(entry, ctx)
            except SessionExpired as e:
                # Fatal for the whole batch: record it, then let the caller stop
                logger.error(
                    f"Step {step.value}: {e}",
                    extra={"submission_id": state.submission_id, "step": step.value},
                )
                await self._fail(ctx, f"{step.value}: {e}", completed, timer)
                raise
            except Exception as e:
                logger.error(
                    f"Step {step.value} failed: {e}",
                    extra={"submission_id": state.submission_id, "step": step.value},
                )
                return await self._fail(ctx, f"{step.value}: {e}", completed, timer)

            if not result.success:
                return await self._fail(ctx, result.error or f"{step.value} failed", completed, timer)

            allowed = allowed_next_steps(step, state)
            if result.next_step not in allowed:
                error = StepVerificationFailed(
                    f"Step {step.value} handed over to {result.next_step.value}; "
                    f"expected {' or '.join(s.value for s in allowed)}",
                    details={"step": step.value, "next_step": result.next_step.value},
                )
                logger.error(str(error), extra={"submission_id": state.submission_id, "step": step.value})
                return await self._fail(ctx, f"{step.value}: {error}", completed, timer)

            state.last_completed_step = step
            state.current_step = result.next_step
            completed.append(step)
            await self.checkpoints.save(state)

        if state.current_step == Step.AWAITING_PAYMENT:
            logger.info(f"Submission {state.submission_id} awaiting manual payment ({timer.get_total_ms():.0f}ms)")
        else:
            logger.info(f"Submission {state.submission_id} complete: {state.permit_number or 'no permit number'} ({timer.get_total_ms():.0f}ms)")
        return result_from_state(
            state,
            steps_completed=completed,
            analyses=ctx.analyses,
            step_timings=timer.to_list(),
        )

    async def _execute(self, entry: StepEntry, ctx: StepContext) -> StepResult:
        verify = None
        if entry.verification_anchor:
            anchor = entry.verification_anchor

            async def verify(c: StepContext) -> None:
                await c.wait_for_anchor(anchor)

        if entry.recovery_enabled:
            return await self.recovery.wrap(
                entry.step.value, entry.handler, ctx, advance=entry.advance, verify=verify
            )

        result = await entry.handler(ctx)
        if verify is not None and result.success and result.next_step == entry.step.successor():
            await verify(ctx)
        return result

    async def _fail(
        self,
        ctx: StepContext,
        error: str,
        completed: List[Step],
        timer: StepTimer,
        screenshot: bool = True,
    ) -> SubmissionResult:
        state = ctx.state
        state.errors.append(error)
        if screenshot:
            try:
                await ctx.screenshot("error-state")
            except (PlaywrightError, OSError) as e:
                logger.warning(f"Failure screenshot not captured: {e}")
        await self.checkpoints.save(state)
        return result_from_state(
            state,
            steps_completed=completed,
            error=error,
            analyses=ctx.analyses,
            step_timings=timer.to_list(),
        )
