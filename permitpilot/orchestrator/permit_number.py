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

"""Confirmation identifier extraction from final page text."""

from __future__ import annotations

import re
from typing import List, Optional, Pattern

# Most specific first. Examples: CTR-2025-004821, MEC-2024-00456, PRMT25A00123
_LABELLED_TOKEN = r"\b\s*(?:number|#|no\.?)?\s*:?\s*([A-Z0-9][A-Z0-9-]+)"
DEFAULT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"([A-Z]{2,4}-\d{4}-\d{3,})"),
    re.compile(r"\bpermit" + _LABELLED_TOKEN, re.IGNORECASE),
    re.compile(r"\bapplication" + _LABELLED_TOKEN, re.IGNORECASE),
    re.compile(r"\bconfirmation" + _LABELLED_TOKEN, re.IGNORECASE),
]

_SHAPE = re.compile(r"^[A-Z0-9][A-Z0-9-]*$", re.IGNORECASE)
_DIGIT = re.compile(r"\d")
MIN_LENGTH = 10


class PermitNumberExtractor:
    """
    Scans page text for a portal-assigned permit or application number.

    Absence is an expected outcome (the portal assigns numbers only after
    payment for most permit classes), so ``extract`` returns None rather than
    raising.
    """

    def __init__(
        self,
        patterns: Optional[List[Pattern[str]]] = None,
        min_length: int = MIN_LENGTH,
    ) -> None:
        self.patterns = patterns if patterns is not None else DEFAULT_PATTERNS
        self.min_length = min_length

    def is_valid(self, candidate: str) -> bool:
        """Long enough, alphanumeric from the first character, and carrying a digit."""
        return (
            len(candidate) >= self.min_length
            and bool(_SHAPE.match(candidate))
            and bool(_DIGIT.search(candidate))
        )

    def extract(self, page_text: Optional[str]) -> Optional[str]:
        if not page_text:
            return None
        for pattern in self.patterns:
            # Later matches of the same pattern may qualify when the first does not
            for match in pattern.finditer(page_text):
                candidate = match.group(1).strip()
                if self.is_valid(candidate):
                    return candidate.upper()
        return None
