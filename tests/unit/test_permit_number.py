# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for permit number extraction from final page text."""

from __future__ import annotations

import re

from permitpilot.orchestrator.permit_number import PermitNumberExtractor


class TestPermitNumberExtractor:

    def test_extracts_application_number(self):
        extractor = PermitNumberExtractor()
        text = "Your application CTR-2025-004821 has been received"
        assert extractor.extract(text) == "CTR-2025-004821"

    def test_payment_redirect_has_no_number(self):
        assert PermitNumberExtractor().extract("Redirected to payment") is None

    def test_empty_text(self):
        extractor = PermitNumberExtractor()
        assert extractor.extract("") is None
        assert extractor.extract(None) is None

    def test_labelled_number_is_uppercased(self):
        text = "Permit Number: mec-2024-00456 issued"
        assert PermitNumberExtractor().extract(text) == "MEC-2024-00456"

    def test_short_candidates_are_rejected(self):
        extractor = PermitNumberExtractor()
        assert not extractor.is_valid("AB-1234")
        assert extractor.extract("Reference AB-12-345 only") is None

    def test_later_match_qualifies(self):
        extractor = PermitNumberExtractor(
            patterns=[re.compile(r"([A-Z]{2,4}-\d+)")],
        )
        assert extractor.extract("Ref AB-1 then PHX-2025004821") == "PHX-2025004821"

    def test_labelled_free_form_tokens(self):
        extractor = PermitNumberExtractor()
        assert extractor.extract("Confirmation Number: ABCD123456") == "ABCD123456"
        assert extractor.extract("Permit Number: PRMT25A00123") == "PRMT25A00123"
        assert extractor.extract("Application #: app-2025-77a1") == "APP-2025-77A1"

    def test_labelled_words_are_not_numbers(self):
        extractor = PermitNumberExtractor()
        assert extractor.extract("Your application has been received. Confirmation pending.") is None
        assert extractor.extract("Permit Application submitted") is None

    def test_candidate_must_start_alphanumeric(self):
        extractor = PermitNumberExtractor()
        assert not extractor.is_valid("-ABCD123456")
        assert not extractor.is_valid("ABCDEFGHIJK")
        assert extractor.is_valid("PRMT25A00123")
