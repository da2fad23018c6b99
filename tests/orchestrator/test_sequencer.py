# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for StepSequencer with scripted step tables."""

from __future__ import annotations

from typing import List

import pytest

from conftest import FakePage, fast_policy, make_request
from permitpilot.exceptions import CheckpointError, ElementNotFound, SessionExpired
from permitpilot.orchestrator.checkpoint import MemoryCheckpointStore
from permitpilot.orchestrator.models import (
    Step,
    StepResult,
    SubmissionState,
    SubmissionStatus,
)
from permitpilot.orchestrator.sequencer import StepEntry, StepSequencer, allowed_next_steps

WIZARD = [s for s in Step if s.number is not None]
POST_PAYMENT = [Step.PAYMENT_COMPLETE, Step.DOWNLOAD_PERMIT]


class RecordingCheckpointStore(MemoryCheckpointStore):
    """Memory store that remembers the step of every write."""

    def __init__(self) -> None:
        super().__init__()
        self.saved_steps: List[Step] = []

    async def save(self, state):
        self.saved_steps.append(state.current_step)
        return await super().save(state)


def advancing(calls: List[Step]):
    async def handler(ctx):
        calls.append(ctx.step)
        if ctx.step == Step.CONFIRMATION:
            return StepResult.advance(Step.AWAITING_PAYMENT)
        if ctx.step == Step.DOWNLOAD_PERMIT:
            ctx.state.data["permit_number"] = "CTR-2025-004821"
        return StepResult.advance(ctx.step.successor())
    return handler


def scripted_table(calls: List[Step], **overrides) -> List[StepEntry]:
    table = []
    for step in WIZARD + POST_PAYMENT:
        table.append(StepEntry(step, overrides.get(step.value, advancing(calls))))
    return table


def make_sequencer(page: FakePage, store, table, tmp_path) -> StepSequencer:
    return StepSequencer(
        page,
        store,
        policy=fast_policy(),
        step_table=table,
        screenshot_dir=str(tmp_path / "screenshots"),
        download_dir=str(tmp_path / "downloads"),
    )


class TestAllowedNextSteps:

    def test_successor_only(self):
        state = SubmissionState.fresh(make_request())
        assert allowed_next_steps(Step.ADDRESS, state) == [Step.PERMIT_DETAILS]
        assert allowed_next_steps(Step.CONFIRMATION, state) == [Step.AWAITING_PAYMENT]

    def test_confirmation_may_complete_with_permit_number(self):
        state = SubmissionState.fresh(make_request())
        state.data["permit_number"] = "CTR-2025-004821"
        assert allowed_next_steps(Step.CONFIRMATION, state) == [Step.AWAITING_PAYMENT, Step.COMPLETE]


class TestRun:

    @pytest.mark.asyncio
    async def test_runs_wizard_in_order_and_pauses(self, page, tmp_path):
        calls: List[Step] = []
        store = RecordingCheckpointStore()
        sequencer = make_sequencer(page, store, scripted_table(calls), tmp_path)

        result = await sequencer.run(make_request())

        assert result.success is True
        assert result.status == SubmissionStatus.PENDING_PAYMENT
        assert result.steps_completed == WIZARD
        assert calls == WIZARD
        # Initial write, then one per step naming the next step
        assert store.saved_steps == [Step.LOGIN] + [s.successor() for s in WIZARD]
        positions = [s.position for s in store.saved_steps]
        assert positions == sorted(positions)

        saved = await store.load("sub-0001")
        assert saved.current_step == Step.AWAITING_PAYMENT
        assert saved.last_completed_step == Step.CONFIRMATION
        assert [t["step"] for t in result.step_timings] == [s.value for s in WIZARD]

    @pytest.mark.asyncio
    async def test_illegal_transition_fails_the_run(self, page, tmp_path):
        async def skips_ahead(ctx):
            return StepResult.advance(Step.PERMIT_DETAILS)

        store = RecordingCheckpointStore()
        table = scripted_table([], applicant=skips_ahead)
        result = await make_sequencer(page, store, table, tmp_path).run(make_request())

        assert result.status == SubmissionStatus.FAILED
        assert result.error == "applicant: Step applicant handed over to permit_details; expected address"
        assert result.steps_completed == [Step.LOGIN]
        assert any("error-state" in path for path in page.screenshots)

        saved = await store.load("sub-0001")
        assert saved.current_step == Step.APPLICANT
        assert saved.errors == [result.error]

    @pytest.mark.asyncio
    async def test_handler_failure_returns_failed_result(self, page, tmp_path):
        async def broken(ctx):
            raise ElementNotFound("Element not found: label='Address'")

        store = MemoryCheckpointStore()
        table = scripted_table([], address=broken)
        result = await make_sequencer(page, store, table, tmp_path).run(make_request())

        assert result.success is False
        assert result.status == SubmissionStatus.FAILED
        assert result.error == "address: Element not found: label='Address'"
        assert result.steps_completed == [Step.LOGIN, Step.APPLICANT]
        assert any("error-state" in path for path in page.screenshots)

        saved = await store.load("sub-0001")
        assert saved.current_step == Step.ADDRESS
        assert saved.last_completed_step == Step.APPLICANT
        assert saved.errors == [result.error]

    @pytest.mark.asyncio
    async def test_unsuccessful_result_fails_run(self, page, tmp_path):
        async def declines(ctx):
            return StepResult.failed(ctx.step, "portal rejected the valuation")

        table = scripted_table([], project_details=declines)
        result = await make_sequencer(page, MemoryCheckpointStore(), table, tmp_path).run(make_request())
        assert result.error == "portal rejected the valuation"

    @pytest.mark.asyncio
    async def test_session_expired_propagates(self, page, tmp_path):
        async def logged_out(ctx):
            raise SessionExpired("Portal session expired")

        store = MemoryCheckpointStore()
        table = scripted_table([], login=logged_out)
        with pytest.raises(SessionExpired):
            await make_sequencer(page, store, table, tmp_path).run(make_request())

        saved = await store.load("sub-0001")
        assert saved.errors == ["login: Portal session expired"]

    @pytest.mark.asyncio
    async def test_cancel_stops_at_step_boundary(self, page, tmp_path):
        store = MemoryCheckpointStore()
        calls: List[Step] = []
        sequencer = None

        async def cancels(ctx):
            calls.append(ctx.step)
            sequencer.cancel()
            return StepResult.advance(ctx.step.successor())

        sequencer = make_sequencer(page, store, scripted_table(calls, applicant=cancels), tmp_path)
        result = await sequencer.run(make_request())

        assert result.error == "cancelled"
        assert calls == [Step.LOGIN, Step.APPLICANT]
        assert page.screenshots == []
        assert (await store.load("sub-0001")).current_step == Step.ADDRESS

    @pytest.mark.asyncio
    async def test_parked_submission_is_not_resubmitted(self, page, tmp_path):
        store = MemoryCheckpointStore()
        state = SubmissionState.fresh(make_request())
        state.current_step = Step.AWAITING_PAYMENT
        await store.save(state)

        calls: List[Step] = []
        result = await make_sequencer(page, store, scripted_table(calls), tmp_path).run(make_request())

        assert result.status == SubmissionStatus.PENDING_PAYMENT
        assert calls == []

    @pytest.mark.asyncio
    async def test_interrupted_wizard_starts_over(self, page, tmp_path):
        store = MemoryCheckpointStore()
        state = SubmissionState.fresh(make_request())
        state.current_step = Step.WORK_ITEMS
        await store.save(state)

        calls: List[Step] = []
        await make_sequencer(page, store, scripted_table(calls), tmp_path).run(make_request())
        assert calls[0] == Step.LOGIN

    @pytest.mark.asyncio
    async def test_missing_handler_fails(self, page, tmp_path):
        table = [StepEntry(Step.LOGIN, advancing([]))]
        result = await make_sequencer(page, MemoryCheckpointStore(), table, tmp_path).run(make_request())
        assert result.error == "No handler for step applicant"


class TestResume:

    async def _parked(self, page, tmp_path):
        store = MemoryCheckpointStore()
        await make_sequencer(page, store, scripted_table([]), tmp_path).run(make_request())
        return store

    @pytest.mark.asyncio
    async def test_plan_resume_is_idempotent(self, page, tmp_path):
        store = await self._parked(page, tmp_path)
        sequencer = make_sequencer(page, store, scripted_table([]), tmp_path)

        first = await sequencer.plan_resume("sub-0001")
        second = await sequencer.plan_resume("sub-0001")

        assert first.current_step == second.current_step == Step.PAYMENT_COMPLETE
        assert (await store.load("sub-0001")).current_step == Step.AWAITING_PAYMENT

    @pytest.mark.asyncio
    async def test_resume_completes(self, page, tmp_path):
        store = await self._parked(page, tmp_path)
        calls: List[Step] = []
        result = await make_sequencer(page, store, scripted_table(calls), tmp_path).resume("sub-0001")

        assert calls == POST_PAYMENT
        assert result.status == SubmissionStatus.SUBMITTED
        assert result.permit_number == "CTR-2025-004821"
        assert (await store.load("sub-0001")).current_step == Step.COMPLETE

    @pytest.mark.asyncio
    async def test_resume_of_complete_runs_nothing(self, page, tmp_path):
        store = await self._parked(page, tmp_path)
        await make_sequencer(page, store, scripted_table([]), tmp_path).resume("sub-0001")

        calls: List[Step] = []
        result = await make_sequencer(page, store, scripted_table(calls), tmp_path).resume("sub-0001")
        assert calls == []
        assert result.status == SubmissionStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_run_after_completion_returns_stored_result(self, page, tmp_path):
        store = await self._parked(page, tmp_path)
        await make_sequencer(page, store, scripted_table([]), tmp_path).resume("sub-0001")

        calls: List[Step] = []
        result = await make_sequencer(page, store, scripted_table(calls), tmp_path).run(make_request())
        assert calls == []
        assert result.permit_number == "CTR-2025-004821"

    @pytest.mark.asyncio
    async def test_no_checkpoint(self, page, tmp_path):
        sequencer = make_sequencer(page, MemoryCheckpointStore(), scripted_table([]), tmp_path)
        with pytest.raises(CheckpointError):
            await sequencer.resume("unknown")

    @pytest.mark.asyncio
    async def test_pre_payment_checkpoint_cannot_resume(self, page, tmp_path):
        store = MemoryCheckpointStore()
        state = SubmissionState.fresh(make_request())
        state.current_step = Step.DOCUMENTS
        await store.save(state)
        with pytest.raises(CheckpointError):
            await make_sequencer(page, store, scripted_table([]), tmp_path).resume("sub-0001")
