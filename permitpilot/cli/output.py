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


"""CLI output formatting for batch runs and diagnostics."""

import sys
from typing import Any, Dict, List, Optional

from permitpilot.orchestrator.models import SubmissionResult, SubmissionStatus

BANNER = r"""                         _ _         _ _       _
 _ __   ___ _ __ _ __ ___ (_) |_ _ __ (_) | ___ | |_
| '_ \ / _ \ '__| '_ ` _ \| | __| '_ \| | |/ _ \| __|
| |_) |  __/ |  | | | | | | | |_| |_) | | | (_) | |_
| .__/ \___|_|  |_| |_| |_|_|\__| .__/|_|_|\___/ \__|
|_|                             |_|"""


class CLIOutput:
    """
    Console formatting shared by all commands.

    Commands print a banner and a summary of what they are about to do, then
    let the logger take over, and finish with per-submission status lines.
    """

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    CYAN = "\033[36m"

    def __init__(self, use_colors: bool = True):
        self.use_colors = use_colors and sys.stdout.isatty()

    def _color(self, text: str, color: str) -> str:
        if self.use_colors:
            return f"{color}{text}{self.RESET}"
        return text

    def _bold(self, text: str) -> str:
        return self._color(text, self.BOLD)

    def _dim(self, text: str) -> str:
        return self._color(text, self.DIM)

    def print_banner(self, version: Optional[str] = None) -> None:
        print()
        print(self._color(BANNER, self.CYAN))
        print()
        print(f"  {self._dim('Phoenix SHAPE PHX permit submissions')}")
        if version:
            print(f"  {self._dim(f'Version: {version}')}")
        print()

    def print_summary(self, title: str, items: Dict[str, Any], show_divider: bool = True) -> None:
        """
        Print aligned key-value pairs under a title.

        Args:
            title: Summary title (e.g. "Batch", "Queue")
            items: Pairs to display; None values print as "-"
            show_divider: Whether to print a divider afterwards
        """
        print(self._bold(f"> {title}"))
        print()
        width = max((len(str(k)) for k in items), default=0)
        for key, value in items.items():
            shown = str(value) if value is not None else "-"
            print(f"  {self._dim(str(key).ljust(width))}  {shown}")
        print()
        if show_divider:
            self.print_divider()

    def print_section(self, title: str) -> None:
        print()
        print(self._bold(f"--- {title} ---"))
        print()

    def print_divider(self, char: str = "─", width: int = 50) -> None:
        print(self._dim(char * width))

    def print_status_line(self, status: str, message: str, ok: bool = True, warn: bool = False) -> None:
        """Print ``[STATUS] message``, green when ok, yellow when warn, red otherwise."""
        if ok:
            icon = self._color(f"[{status}]", self.GREEN)
        elif warn:
            icon = self._color(f"[{status}]", self.YELLOW)
        else:
            icon = self._color(f"[{status}]", self.RED)
        print(f"{icon} {message}")

    def print_list(self, title: str, items: List[str], bullet: str = "•") -> None:
        if title:
            print(self._bold(title))
        for item in items:
            print(f"  {bullet} {item}")

    def print_result(self, result: SubmissionResult) -> None:
        """One status line per submission outcome."""
        if result.status == SubmissionStatus.SUBMITTED:
            permit = result.permit_number or "no permit number"
            self.print_status_line("OK", f"{result.submission_id}: submitted ({permit})")
        elif result.status == SubmissionStatus.PENDING_PAYMENT:
            fee = result.data.get("fee_text")
            suffix = f", fee {fee}" if fee else ""
            self.print_status_line("PAY", f"{result.submission_id}: awaiting manual payment{suffix}", ok=False, warn=True)
        else:
            self.print_status_line("FAIL", f"{result.submission_id}: {result.error}", ok=False)

    def print_batch_totals(self, results: List[SubmissionResult]) -> None:
        succeeded = sum(1 for r in results if r.success)
        self.print_summary("Batch results", {
            "Processed": len(results),
            "Succeeded": succeeded,
            "Pending payment": sum(1 for r in results if r.is_pending),
            "Failed": len(results) - succeeded,
        })

