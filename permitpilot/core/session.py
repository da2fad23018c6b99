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
Portal session storage.

The portal login is performed once by an operator; the resulting Playwright
``storage_state`` (cookies and local storage) is saved and reused by every
run. The orchestrator treats it as an opaque blob.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from permitpilot.exceptions import SessionExpired
from permitpilot.utils.logger import logger


class SessionStore(ABC):
    """Load/save capability for a serialized browser session."""

    @abstractmethod
    async def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored storage state, or None if there is none."""
        pass

    @abstractmethod
    async def save(self, storage_state: Dict[str, Any]) -> None:
        pass

    async def require(self) -> Dict[str, Any]:
        """
        Return the stored session.

        Raises:
            SessionExpired: If no session has been saved
        """
        state = await self.load()
        if not state:
            raise SessionExpired(
                "No saved portal session. Run `permitpilot save-session` and log in."
            )
        return state


class FileSessionStore(SessionStore):
    """Session stored as a JSON file (Playwright ``storage_state`` format)."""

    def __init__(self, path: str = "shape-phx-session.json") -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    async def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            return json.loads(raw)
        except (OSError, ValueError) as e:
            raise SessionExpired(f"Session file is unreadable: {self.path}: {e}") from e

    async def save(self, storage_state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(storage_state, indent=2)
        await asyncio.to_thread(self.path.write_text, payload, encoding="utf-8")
        logger.info(f"Portal session saved to {self.path}")
