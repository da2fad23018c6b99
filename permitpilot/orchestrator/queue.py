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
Submission queue and batch runner.

Submissions waiting for the bot are stored one file per record (YAML or
JSON) in the queue directory. Each record holds the request fields plus the
workflow bookkeeping: status, attempt counter, last error and the permit
number once issued.

The QueueRunner owns the retry policy the orchestrator deliberately leaves
to its caller: it counts attempts per submission, routes a submission to
manual (admin) handling once the cap is reached, and spaces submissions out
with a cooldown.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from permitpilot.config import Settings
from permitpilot.core.browser import BrowserManager
from permitpilot.core.policy import OrchestratorPolicy, get_policy
from permitpilot.core.session import SessionStore
from permitpilot.exceptions import MaxRetriesExceeded, PermitPilotError, SessionExpired
from permitpilot.orchestrator.checkpoint import CheckpointStore
from permitpilot.orchestrator.models import SubmissionRequest, SubmissionResult, SubmissionStatus
from permitpilot.orchestrator.sequencer import StepSequencer
from permitpilot.orchestrator.vision import VisionAnalyzer
from permitpilot.utils.logger import logger

RECORD_SUFFIXES = (".yaml", ".yml", ".json")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WorkflowStatus(str, Enum):
    """Where a queued submission is in the overall workflow."""

    PENDING_BOT = "pending_bot"
    BOT_PROCESSING = "bot_processing"
    SUBMITTED = "submitted"
    PENDING_PAYMENT = "pending_payment"
    PENDING_ADMIN = "pending_admin"
    FAILED = "failed"


WORKFLOW_FIELDS = ("workflow_status", "bot_attempts", "bot_error", "permit_number", "created_at", "updated_at")


class QueueRecord(BaseModel):
    """A queued submission: the request plus workflow bookkeeping."""

    request: SubmissionRequest
    workflow_status: WorkflowStatus = WorkflowStatus.PENDING_BOT
    bot_attempts: int = Field(0, ge=0)
    bot_error: Optional[str] = None
    permit_number: Optional[str] = None
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    @property
    def submission_id(self) -> str:
        return self.request.submission_id

    @classmethod
    def from_flat(cls, data: Dict[str, Any]) -> "QueueRecord":
        """Build a record from the flat on-disk layout."""
        workflow = {k: data[k] for k in WORKFLOW_FIELDS if data.get(k) is not None}
        request_fields = {k: v for k, v in data.items() if k not in WORKFLOW_FIELDS}
        return cls(request=SubmissionRequest(**request_fields), **workflow)

    def to_flat(self) -> Dict[str, Any]:
        data = self.request.model_dump(mode="json")
        data.update(self.model_dump(mode="json", include=set(WORKFLOW_FIELDS)))
        return data


class SubmissionQueue:
    """
    File-backed submission queue.

    Attributes:
        queue_dir: Directory holding one record file per submission
    """

    def __init__(self, queue_dir: str = "./queue") -> None:
        self.queue_dir = Path(queue_dir)
        self._paths: Dict[str, Path] = {}

    def _read(self, path: Path) -> QueueRecord:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
        if not isinstance(data, dict):
            raise ValueError("record is not a mapping")
        return QueueRecord.from_flat(data)

    def _write(self, path: Path, record: QueueRecord) -> None:
        data = record.to_flat()
        if path.suffix == ".json":
            payload = json.dumps(data, indent=2)
        else:
            payload = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(path)

    def list_all(self) -> List[QueueRecord]:
        """Every readable record; unreadable files are reported and left alone."""
        if not self.queue_dir.exists():
            return []
        records = []
        for path in sorted(self.queue_dir.iterdir()):
            if path.suffix not in RECORD_SUFFIXES:
                continue
            try:
                record = self._read(path)
            except (OSError, ValueError, ValidationError) as e:
                logger.error(f"Skipping unreadable queue record {path.name}: {e}")
                continue
            self._paths[record.submission_id] = path
            records.append(record)
        return records

    def get(self, submission_id: str) -> Optional[QueueRecord]:
        for record in self.list_all():
            if record.submission_id == submission_id:
                return record
        return None

    def list_pending(self, limit: int = 10) -> List[QueueRecord]:
        """Records waiting for the bot, oldest first."""
        pending = [r for r in self.list_all() if r.workflow_status == WorkflowStatus.PENDING_BOT]
        pending.sort(key=lambda r: r.created_at)
        return pending[:limit] if limit > 0 else pending

    def add(self, request: SubmissionRequest, fmt: str = "yaml") -> QueueRecord:
        """Queue a new submission for the bot."""
        record = QueueRecord(request=request)
        self.queue_dir.mkdir(parents=True, exist_ok=True)
        path = self.queue_dir / f"{request.submission_id}.{fmt}"
        self._write(path, record)
        self._paths[record.submission_id] = path
        return record

    def update(self, record: QueueRecord) -> None:
        record.updated_at = _now()
        path = self._paths.get(record.submission_id)
        if path is None:
            self.queue_dir.mkdir(parents=True, exist_ok=True)
            path = self.queue_dir / f"{record.submission_id}.yaml"
            self._paths[record.submission_id] = path
        self._write(path, record)

    def stats(self) -> Dict[str, int]:
        """Record count per workflow status."""
        counts = {status.value: 0 for status in WorkflowStatus}
        for record in self.list_all():
            counts[record.workflow_status.value] += 1
        return counts


SubmitFn = Callable[[SubmissionRequest], Awaitable[SubmissionResult]]


class BrowserRunner:
    """
    Runs the sequencer in a fresh browser session per submission.

    The saved portal session is required before any browser is started.
    """

    def __init__(
        self,
        settings: Settings,
        checkpoints: CheckpointStore,
        session_store: SessionStore,
        analyzer: Optional[VisionAnalyzer] = None,
        policy: Optional[OrchestratorPolicy] = None,
        headless: Optional[bool] = None,
    ) -> None:
        self.settings = settings
        self.checkpoints = checkpoints
        self.session_store = session_store
        self.analyzer = analyzer
        self.policy = policy or get_policy()
        self.headless = settings.headless if headless is None else headless

    @asynccontextmanager
    async def sequencer(self) -> AsyncIterator[StepSequencer]:
        storage_state = await self.session_store.require()
        async with BrowserManager(
            headless=self.headless,
            browser_type=self.settings.browser_type,
            storage_state=storage_state,
        ) as browser:
            yield StepSequencer(
                browser.page,
                self.checkpoints,
                analyzer=self.analyzer,
                policy=self.policy,
                portal_url=self.settings.portal_url,
                screenshot_dir=self.settings.screenshot_dir,
                download_dir=self.settings.download_dir,
            )

    async def run(self, request: SubmissionRequest) -> SubmissionResult:
        async with self.sequencer() as sequencer:
            return await sequencer.run(request)

    async def resume(self, submission_id: str) -> SubmissionResult:
        async with self.sequencer() as sequencer:
            return await sequencer.resume(submission_id)


class QueueRunner:
    """
    Processes queued submissions one at a time.

    Attributes:
        queue: Submission queue
        submit: Coroutine running one submission in its own browser session
        policy: Attempt cap and cooldown
    """

    def __init__(
        self,
        queue: SubmissionQueue,
        submit: SubmitFn,
        policy: Optional[OrchestratorPolicy] = None,
    ) -> None:
        self.queue = queue
        self.submit = submit
        self.policy = policy or get_policy()

    async def process(self, record: QueueRecord) -> SubmissionResult:
        """
        Run one submission and record the outcome on its queue record.

        Raises:
            SessionExpired: The portal session is unusable; the attempt is not
                counted and the batch should stop
        """
        record.bot_attempts += 1
        max_attempts = self.policy.max_attempts
        if record.bot_attempts > max_attempts:
            error = MaxRetriesExceeded(
                f"Submission {record.submission_id} exceeded {max_attempts} bot attempts",
                details={"attempts": record.bot_attempts},
            )
            logger.warning(str(error))
            record.workflow_status = WorkflowStatus.PENDING_ADMIN
            record.bot_error = str(error)
            self.queue.update(record)
            return SubmissionResult(
                submission_id=record.submission_id,
                success=False,
                status=SubmissionStatus.FAILED,
                error=str(error),
            )

        record.workflow_status = WorkflowStatus.BOT_PROCESSING
        self.queue.update(record)
        logger.info(f"Processing {record.submission_id} (attempt {record.bot_attempts}/{max_attempts})")

        try:
            result = await self.submit(record.request)
        except SessionExpired as e:
            record.bot_attempts -= 1
            record.workflow_status = WorkflowStatus.PENDING_BOT
            record.bot_error = str(e)
            self.queue.update(record)
            raise
        except PermitPilotError as e:
            result = SubmissionResult(
                submission_id=record.submission_id,
                success=False,
                status=SubmissionStatus.FAILED,
                error=str(e),
            )

        if result.success:
            record.workflow_status = (
                WorkflowStatus.PENDING_PAYMENT if result.is_pending else WorkflowStatus.SUBMITTED
            )
            record.permit_number = result.permit_number
            record.bot_error = None
        else:
            at_cap = record.bot_attempts >= max_attempts
            record.workflow_status = WorkflowStatus.PENDING_ADMIN if at_cap else WorkflowStatus.PENDING_BOT
            record.bot_error = result.error
            if at_cap:
                logger.warning(f"{record.submission_id} routed to manual handling after {record.bot_attempts} attempts")
        self.queue.update(record)
        return result

    async def run_batch(self, limit: int = 10) -> List[SubmissionResult]:
        """Process up to ``limit`` pending submissions with a cooldown between them."""
        records = self.queue.list_pending(limit)
        logger.info(f"Found {len(records)} pending submission(s)")
        results: List[SubmissionResult] = []
        for i, record in enumerate(records):
            results.append(await self.process(record))
            if i < len(records) - 1 and self.policy.cooldown_seconds > 0:
                await asyncio.sleep(self.policy.cooldown_seconds)
        return results
