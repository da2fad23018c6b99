# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for vision-assisted recovery."""

from __future__ import annotations

import pytest

from conftest import ScriptedAnalyzer
from permitpilot.exceptions import (
    ElementNotFound,
    LowConfidenceRecovery,
    SessionExpired,
    StepVerificationFailed,
)
from permitpilot.orchestrator.models import (
    ActionDescriptor,
    ElementAction,
    ReferenceKind,
    Step,
    StepResult,
    VisionAnalysis,
)
from permitpilot.orchestrator.recovery import RecoveryWrapper, apply_analysis, execute_analysis


def _valuation_analysis(confidence: int, recommendations=None) -> VisionAnalysis:
    return VisionAnalysis(
        step_number=4,
        step_name="Project Details",
        fields=[
            ActionDescriptor(
                reference_kind=ReferenceKind.LABEL,
                reference_name="Project Valuation",
                element_action=ElementAction.FILL,
                value="5000",
                required=True,
            ),
        ],
        recommendations=recommendations if recommendations is not None else ["Fill valuation", "Click Next"],
        confidence=confidence,
    )


async def _failing_handler(ctx):
    raise ElementNotFound("Element not found: label='Project Valuation'")


class TestExecuteAnalysis:

    @pytest.mark.asyncio
    async def test_skips_optional_empty_and_already_filled(self, make_context, page):
        ctx = make_context(Step.PROJECT_DETAILS)
        analysis = VisionAnalysis(
            step_number=4,
            step_name="Project Details",
            fields=[
                ActionDescriptor(
                    reference_kind=ReferenceKind.LABEL,
                    reference_name="Notes",
                    element_action=ElementAction.FILL,
                ),
                ActionDescriptor(
                    reference_kind=ReferenceKind.LABEL,
                    reference_name="Project Valuation",
                    element_action=ElementAction.FILL,
                    value="5000",
                    current_value="5000",
                ),
                ActionDescriptor(
                    reference_kind=ReferenceKind.ROLE,
                    reference_name="Plan Submission Type",
                    element_action=ElementAction.SELECT,
                    value="No Plans Required",
                    required=True,
                ),
            ],
            confidence=90,
        )
        assert await execute_analysis(ctx, analysis) == 1
        assert page.operations("fill") == []

    @pytest.mark.asyncio
    async def test_missing_control_is_skipped(self, make_context, page):
        page.absent.add("label=Project Valuation")
        ctx = make_context(Step.PROJECT_DETAILS)
        assert await execute_analysis(ctx, _valuation_analysis(90)) == 0

    @pytest.mark.asyncio
    async def test_gate_refuses_low_confidence(self, make_context, page):
        ctx = make_context(Step.WORK_DETAILS)
        with pytest.raises(LowConfidenceRecovery) as exc_info:
            await apply_analysis(ctx, _valuation_analysis(49), "work item cost")
        assert exc_info.value.confidence == 49
        assert exc_info.value.threshold == 50
        assert page.actions == []

    @pytest.mark.asyncio
    async def test_gate_accepts_threshold(self, make_context, page):
        ctx = make_context(Step.WORK_DETAILS)
        assert await apply_analysis(ctx, _valuation_analysis(50), "work item cost") == 1


class TestRecoveryWrapper:

    @pytest.mark.asyncio
    async def test_success_passes_through(self, make_context):
        ctx = make_context(Step.APPLICANT)

        async def handler(c):
            return StepResult.advance(Step.ADDRESS)

        result = await RecoveryWrapper().wrap("applicant", handler, ctx)
        assert result == StepResult.advance(Step.ADDRESS)
        assert ctx.analyses == []

    @pytest.mark.asyncio
    async def test_recovers_with_confident_analysis(self, make_context, page):
        analyzer = ScriptedAnalyzer([_valuation_analysis(85)])
        ctx = make_context(Step.PROJECT_DETAILS, analyzer=analyzer)

        result = await RecoveryWrapper().wrap("project_details", _failing_handler, ctx)

        assert result == StepResult.advance(Step.CITY_USE)
        assert page.actions == [
            ("fill", "label=Project Valuation", "5000"),
            ("click", "role=button[Next]", None),
        ]
        assert "project_details failed" in analyzer.calls[0]["context"]
        assert analyzer.calls[0]["step_number"] == 4
        assert len(page.screenshots) == 1

    @pytest.mark.asyncio
    async def test_no_advance_without_recommendation(self, make_context, page):
        analyzer = ScriptedAnalyzer([_valuation_analysis(85, recommendations=["Fill valuation"])])
        ctx = make_context(Step.PROJECT_DETAILS, analyzer=analyzer)
        await RecoveryWrapper().wrap("project_details", _failing_handler, ctx)
        assert page.operations("click") == []

    @pytest.mark.asyncio
    async def test_low_confidence_executes_nothing(self, make_context, page):
        analyzer = ScriptedAnalyzer([_valuation_analysis(30)])
        ctx = make_context(Step.PROJECT_DETAILS, analyzer=analyzer)

        with pytest.raises(LowConfidenceRecovery) as exc_info:
            await RecoveryWrapper().wrap("project_details", _failing_handler, ctx)

        assert page.actions == []
        assert isinstance(exc_info.value.__cause__, ElementNotFound)

    @pytest.mark.asyncio
    async def test_without_analyzer_nothing_runs(self, make_context, page):
        ctx = make_context(Step.PROJECT_DETAILS)
        with pytest.raises(LowConfidenceRecovery):
            await RecoveryWrapper().wrap("project_details", _failing_handler, ctx)
        assert page.actions == []
        assert ctx.analyses[0].confidence == 0

    @pytest.mark.asyncio
    async def test_session_expired_is_never_recovered(self, make_context):
        analyzer = ScriptedAnalyzer([_valuation_analysis(95)])
        ctx = make_context(Step.LOGIN, analyzer=analyzer)

        async def handler(c):
            raise SessionExpired("Portal session expired")

        with pytest.raises(SessionExpired):
            await RecoveryWrapper().wrap("login", handler, ctx)
        assert analyzer.calls == []

    @pytest.mark.asyncio
    async def test_verification_after_recovery(self, make_context, page):
        analyzer = ScriptedAnalyzer([_valuation_analysis(85)])
        ctx = make_context(Step.PERMIT_DETAILS, analyzer=analyzer)
        page.absent.add("text=Project Valuation")

        async def verify(c):
            await c.wait_for_anchor("Project Valuation")

        with pytest.raises(StepVerificationFailed):
            await RecoveryWrapper().wrap("permit_details", _failing_handler, ctx, verify=verify)

    @pytest.mark.asyncio
    async def test_single_attempt(self, make_context, page):
        analyzer = ScriptedAnalyzer([_valuation_analysis(85), _valuation_analysis(85)])
        ctx = make_context(Step.PROJECT_DETAILS, analyzer=analyzer)
        page.absent.add("role=button[Next]")

        with pytest.raises(ElementNotFound):
            await RecoveryWrapper().wrap("project_details", _failing_handler, ctx)
        assert len(analyzer.calls) == 1

    @pytest.mark.asyncio
    async def test_nothing_actionable_reraises_original_error(self, make_context, page):
        analyzer = ScriptedAnalyzer([
            VisionAnalysis(
                step_number=6,
                step_name="Select Your Work Items",
                recommendations=["Wait for the page"],
                confidence=90,
            ),
        ])
        ctx = make_context(Step.WORK_ITEMS, analyzer=analyzer)

        async def missing_work_item(c):
            raise ElementNotFound("Work item 'Replace Furnace or Air Conditioner' not found")

        with pytest.raises(ElementNotFound, match="Replace Furnace"):
            await RecoveryWrapper().wrap("work_items", missing_work_item, ctx)
        assert page.actions == []
        assert len(analyzer.calls) == 1

    @pytest.mark.asyncio
    async def test_fields_that_all_fail_reraise(self, make_context, page):
        page.absent.add("label=Project Valuation")
        analyzer = ScriptedAnalyzer([_valuation_analysis(85, recommendations=["Fill valuation"])])
        ctx = make_context(Step.PROJECT_DETAILS, analyzer=analyzer)

        with pytest.raises(ElementNotFound):
            await RecoveryWrapper().wrap("project_details", _failing_handler, ctx)
        assert page.actions == []

    @pytest.mark.asyncio
    async def test_advance_alone_counts_as_recovery(self, make_context, page):
        analyzer = ScriptedAnalyzer([
            VisionAnalysis(
                step_number=4,
                step_name="Project Details",
                recommendations=["All fields are filled, click Next"],
                confidence=80,
            ),
        ])
        ctx = make_context(Step.PROJECT_DETAILS, analyzer=analyzer)

        result = await RecoveryWrapper().wrap("project_details", _failing_handler, ctx)

        assert result == StepResult.advance(Step.CITY_USE)
        assert page.actions == [("click", "role=button[Next]", None)]
