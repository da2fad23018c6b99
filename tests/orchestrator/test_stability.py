# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for the page stability gate."""

from __future__ import annotations

import pytest

from conftest import FakePage, fast_policy
from permitpilot.core.stability import StabilityGate


class TestStabilityGate:

    @pytest.mark.asyncio
    async def test_quiet_page_is_stable(self, page: FakePage):
        assert await StabilityGate(page, fast_policy()).wait() is True

    @pytest.mark.asyncio
    async def test_spinner_that_hides(self, page: FakePage):
        page.absent.discard(".slds-spinner")
        assert await StabilityGate(page, fast_policy()).wait() is True
        assert ".slds-spinner" in page.absent

    @pytest.mark.asyncio
    async def test_spinner_that_never_hides_times_out(self, page: FakePage):
        page.absent.discard("lightning-spinner")
        page.never_hides.add("lightning-spinner")
        assert await StabilityGate(page, fast_policy()).wait(max_wait_ms=50) is False

    @pytest.mark.asyncio
    async def test_custom_probes(self, page: FakePage):
        page.absent.discard(".slds-spinner")
        page.never_hides.add(".slds-spinner")
        gate = StabilityGate(page, fast_policy(), probes=[".modal-backdrop-loading"])
        page.absent.add(".modal-backdrop-loading")
        assert await gate.wait(max_wait_ms=50) is True
