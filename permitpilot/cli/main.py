#!/usr/bin/env python3
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
PermitPilot CLI.

Usage:
    permitpilot run [--submission-id ID] [--headless] [--dry-run] [--limit N]
    permitpilot resume SUBMISSION_ID [--headless]
    permitpilot analyze SCREENSHOT --step N [--submission-id ID]
    permitpilot save-session [--timeout SECONDS]
    permitpilot version [--json]

Examples:
    # Show what would be submitted
    permitpilot run --dry-run

    # Submit one queued request with a visible browser
    permitpilot run --submission-id sub-0042 --no-headless

    # Continue after the operator paid the permit fee
    permitpilot resume sub-0042
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import platform
import sys
from pathlib import Path
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError

from permitpilot.cli.output import CLIOutput
from permitpilot.config import Settings, get_settings, load_settings_from_file
from permitpilot.core.browser import BrowserManager
from permitpilot.core.session import FileSessionStore
from permitpilot.exceptions import ConfigurationError, PermitPilotError, SessionExpired
from permitpilot.llm.factory import create_provider_from_env
from permitpilot.orchestrator.checkpoint import LocalCheckpointStore
from permitpilot.orchestrator.handlers import LOGGED_IN_ANCHOR
from permitpilot.orchestrator.models import SubmissionRequest
from permitpilot.orchestrator.queue import BrowserRunner, QueueRunner, SubmissionQueue, WorkflowStatus
from permitpilot.orchestrator.vision import VisionAnalyzer
from permitpilot.utils.logger import configure_logging, logger

DEFAULT_LIMIT = 10
SAVE_SESSION_TIMEOUT_S = 300

# Global CLI output instance
cli_output = CLIOutput()


def get_version() -> str:
    """Get the PermitPilot version."""
    import permitpilot
    return getattr(permitpilot, "__version__", "unknown")


def load_settings(args: argparse.Namespace) -> Settings:
    if getattr(args, "config", None):
        return load_settings_from_file(args.config)
    return get_settings()


def build_analyzer(settings: Settings) -> Optional[VisionAnalyzer]:
    """Vision analyzer from the environment, or None when no provider is configured."""
    try:
        provider = create_provider_from_env(settings.llm_provider, settings.llm_model)
    except ConfigurationError as e:
        logger.warning(f"Vision fallback disabled: {e}")
        return None
    return VisionAnalyzer(provider)


def build_runner(settings: Settings, headless: Optional[bool]) -> BrowserRunner:
    return BrowserRunner(
        settings,
        LocalCheckpointStore(settings.checkpoint_dir),
        FileSessionStore(settings.session_file),
        analyzer=build_analyzer(settings),
        policy=settings.policy(),
        headless=headless,
    )


# ==================== Commands ====================


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    version = get_version()
    if args.json:
        info = {
            "permitpilot": version,
            "python": platform.python_version(),
            "platform": platform.system(),
        }
        print(json.dumps(info, indent=2))
    else:
        print(f"PermitPilot {version}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Process pending submissions, or a single one with --submission-id."""
    settings = load_settings(args)
    queue = SubmissionQueue(settings.queue_dir)

    if args.submission_id:
        record = queue.get(args.submission_id)
        if record is None:
            cli_output.print_status_line("FAIL", f"Submission {args.submission_id} not found in {settings.queue_dir}", ok=False)
            return 1
        records = [record]
    else:
        records = queue.list_pending(args.limit)

    cli_output.print_banner(version=get_version())
    cli_output.print_summary("Batch", {
        "Portal": settings.portal_url,
        "Queue": settings.queue_dir,
        "Submissions": len(records),
        "Headless": settings.headless if args.headless is None else args.headless,
        "Mode": "dry run" if args.dry_run else "submit",
    })

    if args.dry_run:
        cli_output.print_list("Would submit:", [
            f"{r.submission_id}  {r.request.short_address}  "
            f"{r.request.installation_type.value}  ${r.request.valuation_text}  "
            f"(attempts {r.bot_attempts}, {r.workflow_status.value})"
            for r in records
        ])
        return 0

    if not FileSessionStore(settings.session_file).exists():
        cli_output.print_status_line(
            "FAIL",
            f"SessionExpired: no saved portal session at {settings.session_file}. "
            "Run `permitpilot save-session` first.",
            ok=False,
        )
        return 1

    runner = QueueRunner(queue, build_runner(settings, args.headless).run, settings.policy())
    try:
        if args.submission_id:
            results = [asyncio.run(runner.process(records[0]))]
        else:
            results = asyncio.run(runner.run_batch(args.limit))
    except SessionExpired as e:
        cli_output.print_status_line("FAIL", f"SessionExpired: {e}", ok=False)
        return 1
    except PermitPilotError as e:
        logger.error(f"Batch aborted: {e}")
        cli_output.print_status_line("FAIL", str(e), ok=False)
        return 1

    cli_output.print_section("Results")
    for result in results:
        cli_output.print_result(result)
    print()
    cli_output.print_batch_totals(results)
    cli_output.print_summary("Queue", queue.stats(), show_divider=False)
    return 0


def cmd_resume(args: argparse.Namespace) -> int:
    """Continue a submission parked at the payment pause."""
    settings = load_settings(args)
    runner = build_runner(settings, args.headless)
    try:
        result = asyncio.run(runner.resume(args.submission_id))
    except PermitPilotError as e:
        cli_output.print_status_line("FAIL", f"{type(e).__name__}: {e}", ok=False)
        return 1

    queue = SubmissionQueue(settings.queue_dir)
    record = queue.get(args.submission_id)
    if record is not None and result.success:
        record.workflow_status = WorkflowStatus.PENDING_PAYMENT if result.is_pending else WorkflowStatus.SUBMITTED
        record.permit_number = result.permit_number
        queue.update(record)

    cli_output.print_result(result)
    if result.data.get("pdf_path"):
        cli_output.print_status_line("PDF", result.data["pdf_path"])
    return 0 if result.success else 1


def cmd_analyze(args: argparse.Namespace) -> int:
    """Run the vision analyzer on a saved screenshot."""
    settings = load_settings(args)
    path = Path(args.screenshot)
    if not path.exists():
        cli_output.print_status_line("FAIL", f"Screenshot not found: {path}", ok=False)
        return 1

    request: Optional[SubmissionRequest] = None
    if args.submission_id:
        record = SubmissionQueue(settings.queue_dir).get(args.submission_id)
        if record is None:
            cli_output.print_status_line("FAIL", f"Submission {args.submission_id} not found", ok=False)
            return 1
        request = record.request
    else:
        request = SubmissionRequest(submission_id="diagnostic", street_address="(not provided)")

    try:
        provider = create_provider_from_env(settings.llm_provider, settings.llm_model)
    except ConfigurationError as e:
        cli_output.print_status_line("FAIL", str(e), ok=False)
        return 1

    analyzer = VisionAnalyzer(provider)
    analysis = asyncio.run(analyzer.analyze_step(path.read_bytes(), args.step, request))
    print(analysis.model_dump_json(indent=2))
    return 0


async def _save_session(settings: Settings, timeout_s: int) -> None:
    store = FileSessionStore(settings.session_file)
    async with BrowserManager(headless=False, browser_type=settings.browser_type) as browser:
        await browser.page.goto(settings.portal_url, wait_until="domcontentloaded")
        logger.info("Log in to the portal in the opened browser window")
        await browser.page.get_by_text(LOGGED_IN_ANCHOR).first.wait_for(
            state="visible", timeout=timeout_s * 1000
        )
        await store.save(await browser.storage_snapshot())


def cmd_save_session(args: argparse.Namespace) -> int:
    """Open a browser, wait for the operator to log in and save the session."""
    settings = load_settings(args)
    try:
        asyncio.run(_save_session(settings, args.timeout))
    except PlaywrightError as e:
        cli_output.print_status_line("FAIL", f"Login not detected: {str(e).splitlines()[0]}", ok=False)
        return 1
    except PermitPilotError as e:
        cli_output.print_status_line("FAIL", str(e), ok=False)
        return 1
    cli_output.print_status_line("OK", f"Session saved to {settings.session_file}")
    return 0


# ==================== Parser ====================


def _add_headless(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run the browser without a window (default: from settings)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="permitpilot",
        description="PermitPilot - HVAC permit submissions for the Phoenix SHAPE PHX portal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run           Process pending submissions
  resume        Continue a submission after manual payment
  analyze       Vision analysis of a saved screenshot
  save-session  Log in once and save the portal session
  version       Show version information
""",
    )

    # Global options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("PERMITPILOT_LOG_LEVEL", "INFO"),
        help="Set logging level (default: INFO)",
    )
    parser.add_argument(
        "--human-readable", "--human",
        action="store_true",
        default=os.environ.get("PERMITPILOT_LOG_FORMAT", "json").lower() == "human",
        help="Use human-readable log format instead of JSON",
    )
    parser.add_argument("--config", help="YAML or JSON settings file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Process pending submissions")
    run_parser.add_argument("--submission-id", help="Process only this submission")
    _add_headless(run_parser)
    run_parser.add_argument("--dry-run", action="store_true", help="List submissions without executing")
    run_parser.add_argument("--limit", type=int, default=DEFAULT_LIMIT, help="Maximum submissions to process (default: 10)")
    run_parser.set_defaults(func=cmd_run)

    resume_parser = subparsers.add_parser("resume", help="Continue a submission after manual payment")
    resume_parser.add_argument("submission_id", help="Submission ID")
    _add_headless(resume_parser)
    resume_parser.set_defaults(func=cmd_resume)

    analyze_parser = subparsers.add_parser("analyze", help="Vision analysis of a saved screenshot")
    analyze_parser.add_argument("screenshot", help="PNG screenshot of a wizard step")
    analyze_parser.add_argument("--step", type=int, required=True, help="Wizard step number (0-9)")
    analyze_parser.add_argument("--submission-id", help="Use this queued submission's data in the prompt")
    analyze_parser.set_defaults(func=cmd_analyze)

    session_parser = subparsers.add_parser("save-session", help="Log in once and save the portal session")
    session_parser.add_argument(
        "--timeout", type=int, default=SAVE_SESSION_TIMEOUT_S,
        help="Seconds to wait for the login (default: 300)",
    )
    session_parser.set_defaults(func=cmd_save_session)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.add_argument("--json", action="store_true", help="Output as JSON")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=getattr(args, "log_level", "INFO"),
        human_readable=getattr(args, "human_readable", False),
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
