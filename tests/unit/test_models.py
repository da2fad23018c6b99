# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for orchestrator models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from permitpilot.orchestrator.models import (
    STEP_ORDER,
    ActionDescriptor,
    ElementAction,
    InstallationType,
    ReferenceKind,
    Step,
    SubmissionRequest,
    SubmissionState,
    VisionAnalysis,
)


class TestStep:

    def test_order(self):
        assert STEP_ORDER[0] == Step.LOGIN
        assert STEP_ORDER[-1] == Step.COMPLETE
        assert Step.CONFIRMATION.successor() == Step.AWAITING_PAYMENT
        assert Step.AWAITING_PAYMENT.successor() == Step.PAYMENT_COMPLETE

    def test_wizard_numbers(self):
        assert Step.LOGIN.number == 0
        assert Step.CONFIRMATION.number == 9
        assert Step.AWAITING_PAYMENT.number is None
        assert Step.DOWNLOAD_PERMIT.number is None

    def test_complete_is_terminal(self):
        assert Step.COMPLETE.successor() == Step.COMPLETE


class TestInstallationType:

    @pytest.mark.parametrize("legacy,expected", [
        ("ac-furnace", InstallationType.COMPLETE_SYSTEM),
        ("ac-only", InstallationType.COOLING_ONLY),
        ("furnace-only", InstallationType.HEATING_ONLY),
        ("mini-split", InstallationType.DUCTLESS),
        ("custom", InstallationType.OTHER),
        ("Cooling-Only", InstallationType.COOLING_ONLY),
    ])
    def test_normalize(self, legacy, expected):
        assert InstallationType.normalize(legacy) == expected

    def test_unknown_value_rejected(self):
        with pytest.raises(ValidationError):
            SubmissionRequest(submission_id="s", street_address="1 Main St", installation_type="geothermal")


class TestSubmissionRequest:

    def test_defaults(self):
        request = SubmissionRequest(submission_id="s", street_address="1 Main St")
        assert request.city == "Phoenix"
        assert request.state == "AZ"
        assert request.valuation == 5000
        assert request.equipment_tonnage == 3
        assert request.installation_type == InstallationType.COMPLETE_SYSTEM

    def test_frozen(self):
        request = SubmissionRequest(submission_id="s", street_address="1 Main St")
        with pytest.raises(ValidationError):
            request.valuation = 10

    def test_valuation_text(self):
        assert SubmissionRequest(submission_id="s", street_address="x", valuation=5000).valuation_text == "5000"
        assert SubmissionRequest(submission_id="s", street_address="x", valuation=1234.5).valuation_text == "1234.50"

    def test_requires_address(self):
        with pytest.raises(ValidationError):
            SubmissionRequest(submission_id="s", street_address="")


class TestActionDescriptor:

    def test_role_defaults_from_action(self):
        descriptor = ActionDescriptor(
            reference_kind=ReferenceKind.ROLE,
            reference_name="Use Type",
            element_action=ElementAction.SELECT,
            value="Single Family",
        )
        assert descriptor.role == "combobox"
        assert descriptor.describe() == "combobox[name='Use Type']"

    def test_required_fill_needs_value(self):
        with pytest.raises(ValidationError):
            ActionDescriptor(
                reference_kind=ReferenceKind.LABEL,
                reference_name="Project Valuation",
                element_action=ElementAction.FILL,
                required=True,
            )

    def test_is_filled(self):
        descriptor = ActionDescriptor(
            reference_kind=ReferenceKind.LABEL,
            reference_name="Project Valuation",
            element_action=ElementAction.FILL,
            value="5000",
            current_value="5000",
        )
        assert descriptor.is_filled


class TestVisionAnalysis:

    def test_recommends_advance(self):
        analysis = VisionAnalysis(step_number=3, step_name="Permit Details",
                                  recommendations=["Fill valuation", "Click Next to continue"])
        assert analysis.recommends_advance()

    def test_no_advance(self):
        analysis = VisionAnalysis(step_number=3, step_name="Permit Details",
                                  recommendations=["Fill valuation"])
        assert not analysis.recommends_advance()


class TestSubmissionState:

    def test_fresh_state_starts_at_login(self):
        request = SubmissionRequest(submission_id="s-1", street_address="1 Main St")
        state = SubmissionState.fresh(request)
        assert state.current_step == Step.LOGIN
        assert state.last_completed_step is None
        assert state.request == request
        assert state.permit_number is None
