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
Checkpoint storage for orchestration progress.

This module provides checkpoint backends keyed by submission id:
- LocalCheckpointStore: one JSON file per submission, for single-host runs
- MemoryCheckpointStore: process-local dict, for tests and dry runs

Writes are upserts and the last write wins. No cross-process lock is taken;
callers must not run two orchestrators against the same submission id.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from permitpilot.exceptions import CheckpointError
from permitpilot.orchestrator.models import CheckpointRecord, SubmissionState
from permitpilot.utils.logger import logger

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class CheckpointStore(ABC):
    """Abstract checkpoint backend."""

    @abstractmethod
    async def save(self, state: SubmissionState) -> CheckpointRecord:
        """
        Upsert the checkpoint for ``state.submission_id``.

        Returns:
            The record that was written
        """
        pass

    @abstractmethod
    async def load_record(self, submission_id: str) -> Optional[CheckpointRecord]:
        """Return the stored record, or None if the submission was never checkpointed."""
        pass

    @abstractmethod
    async def delete(self, submission_id: str) -> bool:
        """Remove a checkpoint. Returns True if one existed."""
        pass

    @abstractmethod
    async def list_ids(self) -> List[str]:
        """Ids of all checkpointed submissions."""
        pass

    async def load(self, submission_id: str) -> Optional[SubmissionState]:
        """
        Load the saved state for a submission.

        Returns:
            The state, or None meaning "fresh run"
        """
        record = await self.load_record(submission_id)
        return record.state if record else None


class MemoryCheckpointStore(CheckpointStore):
    """In-memory backend. Records are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._records: Dict[str, str] = {}

    async def save(self, state: SubmissionState) -> CheckpointRecord:
        record = CheckpointRecord.from_state(state)
        self._records[state.submission_id] = record.model_dump_json()
        return record

    async def load_record(self, submission_id: str) -> Optional[CheckpointRecord]:
        raw = self._records.get(submission_id)
        if raw is None:
            return None
        return CheckpointRecord.model_validate_json(raw)

    async def delete(self, submission_id: str) -> bool:
        return self._records.pop(submission_id, None) is not None

    async def list_ids(self) -> List[str]:
        return sorted(self._records)


class LocalCheckpointStore(CheckpointStore):
    """
    Local filesystem backend.

    Each submission is stored as ``<base_dir>/<submission_id>.json`` and
    replaced atomically on every save.
    """

    def __init__(self, base_dir: str = "./checkpoints") -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"LocalCheckpointStore initialized at {self.base_dir}")

    def _path_for(self, submission_id: str) -> Path:
        return self.base_dir / f"{_UNSAFE_CHARS.sub('_', submission_id)}.json"

    def _write(self, path: Path, payload: str) -> None:
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, path)

    async def save(self, state: SubmissionState) -> CheckpointRecord:
        record = CheckpointRecord.from_state(state)
        path = self._path_for(state.submission_id)
        try:
            await asyncio.to_thread(self._write, path, record.model_dump_json(indent=2))
        except OSError as e:
            raise CheckpointError(
                f"Failed to write checkpoint for {state.submission_id}: {e}",
                details={"path": str(path)},
            ) from e
        logger.debug(
            f"Checkpoint saved: {state.submission_id} -> {state.current_step.value}",
            extra={"submission_id": state.submission_id},
        )
        return record

    async def load_record(self, submission_id: str) -> Optional[CheckpointRecord]:
        path = self._path_for(submission_id)
        if not path.exists():
            return None

        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return CheckpointRecord.model_validate(json.loads(raw))
        except (OSError, ValueError, ValidationError) as e:
            # A corrupt checkpoint must not be mistaken for a fresh run
            raise CheckpointError(
                f"Failed to read checkpoint for {submission_id}: {e}",
                details={"path": str(path)},
            ) from e

    async def delete(self, submission_id: str) -> bool:
        path = self._path_for(submission_id)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        logger.info(f"Deleted checkpoint {submission_id}")
        return True

    async def list_ids(self) -> List[str]:
        paths = await asyncio.to_thread(lambda: sorted(self.base_dir.glob("*.json")))
        return [p.stem for p in paths]
