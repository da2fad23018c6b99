# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Tests for checkpoint backends."""

from __future__ import annotations

import pytest

from conftest import make_request
from permitpilot.exceptions import CheckpointError
from permitpilot.orchestrator.checkpoint import LocalCheckpointStore, MemoryCheckpointStore
from permitpilot.orchestrator.models import Step, SubmissionState


def _state() -> SubmissionState:
    state = SubmissionState.fresh(make_request(submission_id="sub/0042"))
    state.current_step = Step.AWAITING_PAYMENT
    state.last_completed_step = Step.CONFIRMATION
    state.data.update({"payment_url": "https://shapephx.phoenix.gov/s/cart", "fee_text": "$129.00"})
    state.screenshots.append("screenshots/sub-0042-confirmation-before-submit.png")
    return state


@pytest.fixture(params=["memory", "local"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryCheckpointStore()
    return LocalCheckpointStore(str(tmp_path / "checkpoints"))


class TestCheckpointStores:

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        state = _state()
        await store.save(state)
        loaded = await store.load(state.submission_id)
        assert loaded == state
        assert loaded is not state

    @pytest.mark.asyncio
    async def test_missing_is_fresh_run(self, store):
        assert await store.load("never-saved") is None
        assert await store.load_record("never-saved") is None

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store):
        state = _state()
        await store.save(state)
        state.current_step = Step.COMPLETE
        state.data["permit_number"] = "CTR-2025-004821"
        await store.save(state)

        record = await store.load_record(state.submission_id)
        assert record.current_step == Step.COMPLETE
        assert record.state.permit_number == "CTR-2025-004821"

    @pytest.mark.asyncio
    async def test_delete(self, store):
        state = _state()
        await store.save(state)
        assert await store.delete(state.submission_id) is True
        assert await store.delete(state.submission_id) is False
        assert await store.load(state.submission_id) is None


class TestLocalCheckpointStore:

    @pytest.mark.asyncio
    async def test_unsafe_id_is_sanitized(self, tmp_path):
        store = LocalCheckpointStore(str(tmp_path))
        await store.save(_state())
        assert (tmp_path / "sub_0042.json").exists()
        assert await store.list_ids() == ["sub_0042"]

    @pytest.mark.asyncio
    async def test_corrupt_checkpoint_raises(self, tmp_path):
        store = LocalCheckpointStore(str(tmp_path))
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(CheckpointError):
            await store.load("broken")
