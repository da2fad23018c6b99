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
Step timing for orchestration runs.

The sequencer wraps every wizard step in ``time_step`` so that a run's result
carries how long each portal step took and whether it succeeded.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class StepTiming:
    """Duration of one executed step."""

    step: str
    duration_ms: float
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "duration_ms": round(self.duration_ms, 2),
            "success": self.success,
        }


class StepTimer:
    """
    Records per-step durations for a single run.

    Example:
        >>> timer = StepTimer()
        >>> timer.start()
        >>> async with time_step(timer, "address"):
        ...     ...
        >>> timer.timings[0].step
        'address'
    """

    def __init__(self) -> None:
        self._start_times: Dict[str, float] = {}
        self._overall_start: Optional[float] = None
        self.timings: List[StepTiming] = []

    def start(self) -> None:
        """Start overall timing."""
        self._overall_start = time.perf_counter()

    def start_step(self, step_name: str) -> None:
        self._start_times[step_name] = time.perf_counter()

    def end_step(self, step_name: str, success: bool = True) -> float:
        """
        Stop timing ``step_name`` and record it.

        Returns:
            Duration in milliseconds, or 0.0 if the step was never started
        """
        started = self._start_times.pop(step_name, None)
        if started is None:
            return 0.0

        duration = (time.perf_counter() - started) * 1000
        self.timings.append(StepTiming(step=step_name, duration_ms=duration, success=success))
        return duration

    def get_total_ms(self) -> float:
        """Elapsed time since ``start()``."""
        if self._overall_start is None:
            return 0.0
        return (time.perf_counter() - self._overall_start) * 1000

    def to_list(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self.timings]


@asynccontextmanager
async def time_step(timer: StepTimer, step_name: str):
    """
    Async context manager that times a step.

    The step is recorded as failed when the body raises; the exception is
    re-raised unchanged.
    """
    timer.start_step(step_name)
    success = True
    try:
        yield
    except Exception:
        success = False
        raise
    finally:
        timer.end_step(step_name, success)
