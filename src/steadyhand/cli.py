"""
steadyhand Command-Line Interface

Runs scripted UI actions from a JSON file, once or across a batch of URLs.

Usage:
    steadyhand run actions.json --url https://example.com
    steadyhand run actions.json --url https://example.com --headless --retries 3
    steadyhand batch urls.txt actions.json --concurrency 3 --abort-on-error
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from steadyhand.batch import ParallelBatchProcessor
from steadyhand.core.config import Config
from steadyhand.core.errors import AutomationFailure, ConfigurationError
from steadyhand.core.logging import configure_logging
from steadyhand.core.types import (
    ActionRequest,
    ActionType,
    ElementLocator,
    RecognitionTarget,
    WorkItem,
    WorkStatus,
)
from steadyhand.driver import BrowserSession, PlaywrightDriver
from steadyhand.engine import ReliableInteractionEngine
from steadyhand.metrics import ActionMetrics, BatchMetrics
from steadyhand.recognition import Recognizer, TesseractRecognizer
from steadyhand.snapshots import SnapshotRecorder


LOCATOR_FIELDS = ("css", "xpath", "text", "role", "label", "exact", "nth")
REQUEST_FIELDS = ("timeout", "retries", "clear_first", "press_enter", "verify_text", "select_by")


def add_cli_status_messages(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add user-friendly CLI status messages for key events."""
    event = event_dict.get("event", "")
    level = event_dict.get("level", "info")

    # Only show status for important events at INFO level or higher
    if level not in ("info", "warning", "error"):
        return event_dict

    status_messages = {
        "action_started": lambda d: f"🔄 {d.get('action', '?')} - {d.get('target', '?')}",
        "action_succeeded": lambda d: f"✅ {d.get('target', '?')} via {d.get('strategy', '?')}",
        "action_attempt_failed": lambda d: f"⚠️  Attempt {d.get('attempt', '?')} failed, {d.get('retries_left', 0)} left",
        "action_failed": lambda d: f"❌ Action failed: {d.get('target', 'unknown target')}",
        "item_retry": lambda d: f"🔁 Retrying item {d.get('item_id', '?')}",
        "item_failed": lambda d: f"❌ Item {d.get('item_id', '?')} failed: {d.get('error', 'Unknown error')}",
        "chunk_completed": lambda d: f"📦 Chunk {d.get('chunk', '?')}: {d.get('successful', 0)} ok, {d.get('failed', 0)} failed",
        "error_threshold_exceeded": "🛑 Error threshold exceeded - skipping remaining items",
    }

    if event in status_messages:
        msg = status_messages[event]
        status = msg(event_dict) if callable(msg) else msg
        print(status, flush=True)

    return event_dict


def action_from_entry(entry: dict[str, Any], fuzzy_threshold: float = 70.0) -> ActionRequest:
    """Build an ActionRequest from one JSON action entry.

    Args:
        entry: Mapping with ``kind``, ``name``, locator fields and options
        fuzzy_threshold: Threshold applied to ``fallback_text``

    Returns:
        Validated ActionRequest
    """
    locator = ElementLocator(**{k: entry[k] for k in LOCATOR_FIELDS if k in entry})

    fallback = None
    if entry.get("fallback_text") or entry.get("fallback_image"):
        fallback = RecognitionTarget(
            text=entry.get("fallback_text"),
            image=Path(entry["fallback_image"]) if entry.get("fallback_image") else None,
            threshold=fuzzy_threshold,
        )

    value = entry.get("value")
    if isinstance(value, bool):
        value = "true" if value else "false"

    return ActionRequest(
        kind=ActionType(str(entry.get("kind", "")).upper()),
        locator=locator,
        name=entry.get("name") or locator.describe(),
        value=value,
        fallback=fallback,
        **{k: entry[k] for k in REQUEST_FIELDS if k in entry},
    )


def load_actions(path: Path, fuzzy_threshold: float = 70.0) -> list[ActionRequest]:
    """Load a JSON list of action entries.

    Raises:
        ValueError: File is not a JSON list or an entry is invalid
    """
    data = json.loads(path.read_text())
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of actions")

    actions = []
    for index, entry in enumerate(data, start=1):
        try:
            actions.append(action_from_entry(entry, fuzzy_threshold))
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            raise ValueError(f"Invalid action #{index} in {path}: {e}") from e
    return actions


def load_urls(path: Path) -> list[str]:
    """Read one URL per line, ignoring blanks and ``#`` comments."""
    return [
        line.strip()
        for line in path.read_text().splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for CLI."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--headless",
        action="store_true",
        help="Run browser in headless mode (no visible window)"
    )
    common.add_argument(
        "--screenshots",
        type=str,
        default="./screenshots",
        help="Directory to save failure screenshots (default: ./screenshots)"
    )
    common.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )
    common.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines instead of console output"
    )
    common.add_argument(
        "--retries",
        type=int,
        default=2,
        help="Additional attempts per action (default: 2)"
    )
    common.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Per-attempt element timeout in seconds (default: 10.0)"
    )
    common.add_argument(
        "--storage-state",
        type=str,
        default=None,
        help="Path to storage state JSON file with saved login session"
    )
    common.add_argument(
        "--user-data-dir",
        type=str,
        default=None,
        help="Browser profile directory to persist login sessions"
    )
    common.add_argument(
        "--no-ocr",
        action="store_true",
        help="Disable the recognition fallback"
    )

    parser = argparse.ArgumentParser(
        prog="steadyhand",
        description="steadyhand - Reliable UI automation with structural and recognition strategies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  steadyhand run login.json --url https://example.com
  steadyhand run search.json --url https://example.com --headless --retries 3
  steadyhand batch urls.txt update.json --concurrency 3 --batch-size 10

Action file format (JSON list):
  [
    {"kind": "TYPE", "name": "Search box", "css": "#q", "value": "trucks",
     "press_enter": true},
    {"kind": "CLICK", "name": "Heated Seats", "text": "Heated Seats",
     "fallback_text": "Heated Seats"},
    {"kind": "SELECT", "name": "Trim", "label": "Trim", "value": "Sport"},
    {"kind": "CHECK", "name": "Accept terms", "label": "Accept terms", "value": true}
  ]

Environment Variables:
  STEADYHAND_SCREENSHOTS_DIR, STEADYHAND_MAX_CONCURRENCY, STEADYHAND_BATCH_SIZE,
  STEADYHAND_ITEM_TIMEOUT, STEADYHAND_ERROR_THRESHOLD, TESSERACT_CMD
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", parents=[common], help="Execute actions on one page")
    run.add_argument("actions", type=str, help="JSON file with the actions to execute")
    run.add_argument(
        "--url",
        type=str,
        default=None,
        help="Starting URL to navigate to before executing actions"
    )

    batch = subparsers.add_parser(
        "batch", parents=[common], help="Execute actions once per URL in parallel"
    )
    batch.add_argument("urls", type=str, help="Text file with one URL per line")
    batch.add_argument("actions", type=str, help="JSON file with the actions to execute")
    batch.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum items processed at once (default: 3)"
    )
    batch.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Items per chunk (default: 10)"
    )
    batch.add_argument(
        "--item-timeout",
        type=float,
        default=None,
        help="Seconds allowed per item (default: 300)"
    )
    batch.add_argument(
        "--attempts",
        type=int,
        default=2,
        help="Total attempts per item (default: 2)"
    )
    batch.add_argument(
        "--abort-on-error",
        action="store_true",
        help="Stop when the failure rate exceeds the error threshold"
    )
    batch.add_argument(
        "--error-threshold",
        type=float,
        default=None,
        help="Failure rate that aborts the batch (default: 0.5)"
    )

    return parser


def get_next_run_number(screenshots_dir: Path) -> int:
    """Get the next run number by finding existing numbered subfolders.

    Args:
        screenshots_dir: Base screenshots directory

    Returns:
        Next available run number
    """
    if not screenshots_dir.exists():
        return 1

    existing_runs = [
        int(item.name)
        for item in screenshots_dir.iterdir()
        if item.is_dir() and item.name.isdigit()
    ]
    return max(existing_runs) + 1 if existing_runs else 1


def build_config(args: argparse.Namespace, screenshots_dir: Path) -> Config:
    """Create the run configuration from CLI arguments and environment."""
    options: dict[str, Any] = {
        "headless": args.headless,
        "screenshots_dir": screenshots_dir,
        "log_level": args.log_level,
        "action_timeout": args.timeout,
        "action_retries": args.retries,
        "user_data_dir": Path(args.user_data_dir) if args.user_data_dir else None,
        "storage_state": Path(args.storage_state) if args.storage_state else None,
    }
    if args.command == "batch":
        options["retry_attempts"] = args.attempts
        options["abort_on_error"] = args.abort_on_error
        for option, value in (
            ("max_concurrency", args.concurrency),
            ("batch_size", args.batch_size),
            ("per_item_timeout", args.item_timeout),
            ("error_threshold", args.error_threshold),
        ):
            if value is not None:
                options[option] = value
    return Config(**options)


def build_recognizer(config: Config, disabled: bool) -> Recognizer | None:
    if disabled:
        return None
    return TesseractRecognizer(language=config.ocr_language, tesseract_cmd=config.tesseract_cmd)


async def run_actions(args: argparse.Namespace, config: Config, actions: list[ActionRequest]) -> bool:
    """Execute actions in order on a single page."""
    metrics = ActionMetrics()

    async with BrowserSession(config.browser) as session:
        if args.url:
            print(f"Navigating to {args.url}...")
            await session.navigate(args.url)

        driver = PlaywrightDriver(session.page, config.engine)
        engine = ReliableInteractionEngine(
            driver,
            recognizer=build_recognizer(config, args.no_ocr),
            config=config.engine,
            snapshots=SnapshotRecorder(driver, config.screenshots_dir),
            on_attempt=metrics,
        )

        success = True
        for request in actions:
            outcome = await engine.try_execute(request)
            if not outcome.success:
                success = False
                if outcome.error and outcome.error.snapshot_path:
                    print(f"📸 Failure screenshot: {outcome.error.snapshot_path}")
                break
            await engine.wait_for_stable()

    summary = metrics.summary()
    print()
    print(f"Attempts: {summary['attempts']}  Strategies: {summary['strategies']}")
    if summary["failure_patterns"]:
        print(f"Failure patterns: {summary['failure_patterns']}")
    return success


async def run_batch(args: argparse.Namespace, config: Config, actions: list[ActionRequest]) -> bool:
    """Execute the actions once per URL, each item on its own page."""
    urls = load_urls(Path(args.urls))
    items = [
        WorkItem(id=str(index), payload=url, labels={"url": url})
        for index, url in enumerate(urls, start=1)
    ]
    recognizer = build_recognizer(config, args.no_ocr)
    action_metrics = ActionMetrics()
    batch_metrics = BatchMetrics()

    async with BrowserSession(config.browser) as session:

        async def process(item: WorkItem) -> dict[str, str]:
            page = await session.new_page()
            try:
                await session.navigate(item.payload, page=page)
                driver = PlaywrightDriver(page, config.engine)
                engine = ReliableInteractionEngine(
                    driver,
                    recognizer=recognizer,
                    config=config.engine,
                    snapshots=SnapshotRecorder(driver, config.screenshots_dir / item.id),
                    on_attempt=action_metrics,
                )
                strategies = {}
                for request in actions:
                    outcome = await engine.execute(request)
                    strategies[request.name] = outcome.strategy.value
                    await engine.wait_for_stable()
                return strategies
            finally:
                await page.close()

        processor = ParallelBatchProcessor(
            config.batch,
            on_chunk_complete=batch_metrics.on_chunk,
            on_item_complete=batch_metrics.on_item,
        )
        result = await processor.process_batch(items, process)

    print()
    print(f"Processed {result.total} item(s): {result.successes} succeeded, "
          f"{result.failures} failed, {result.skipped} skipped")
    print(f"Success rate: {result.success_rate * 100:.1f}%  "
          f"Average duration: {result.average_duration:.2f}s")
    for failed in result.by_status(WorkStatus.FAILED):
        cause = failed.error.__cause__ if failed.error else None
        if isinstance(cause, AutomationFailure) and cause.snapshot_path:
            print(f"📸 {failed.item.labels.get('url')}: {cause.snapshot_path}")
    summary = batch_metrics.summary()
    if summary["error_types"]:
        print(f"Errors: {summary['error_types']}")

    return result.failures == 0 and not result.aborted


async def run_command(args: argparse.Namespace) -> bool:
    """Execute the selected subcommand."""
    base_screenshots_dir = Path(args.screenshots)
    run_number = get_next_run_number(base_screenshots_dir)
    run_screenshots_dir = base_screenshots_dir / str(run_number)

    try:
        config = build_config(args, run_screenshots_dir)
        actions = load_actions(Path(args.actions), config.fuzzy_threshold)
    except (ConfigurationError, ValidationError, ValueError, OSError) as e:
        print(f"❌ Error: {e}")
        return False

    print("=" * 70)
    print("🖐️  steadyhand - Reliable UI Automation")
    print("=" * 70)
    print(f"📋 Actions: {args.actions} ({len(actions)})")
    if args.command == "batch":
        print(f"🌐 URLs: {args.urls}")
        print(f"⚙️  Concurrency: {config.max_concurrency}  Batch size: {config.batch_size}")
    elif args.url:
        print(f"🌐 Starting URL: {args.url}")
    print(f"🖥️  Headless: {args.headless}")
    print(f"📸 Screenshots: {run_screenshots_dir} (Run #{run_number})")
    print(f"👁️  Recognition fallback: {'off' if args.no_ocr else 'on'}")
    print("=" * 70)
    print()

    try:
        if args.command == "batch":
            success = await run_batch(args, config, actions)
        else:
            success = await run_actions(args, config, actions)
    except KeyboardInterrupt:
        print("\n\n⚠️  Run interrupted by user")
        return False
    except Exception as e:
        print(f"\n❌ Error occurred: {e}")
        if args.log_level == "DEBUG":
            import traceback
            traceback.print_exc()
        else:
            print("💡 Run with --log-level DEBUG to see full error details")
        return False

    print()
    print("=" * 70)
    print("✅ Run completed successfully!" if success else "❌ Run failed")
    print("=" * 70)
    return success


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    argv = sys.argv[1:] if argv is None else argv

    # Handle no arguments case
    if not argv:
        parser.print_help()
        return 1

    args = parser.parse_args(argv)
    configure_logging(
        args.log_level,
        json=args.json_logs,
        extra_processors=[add_cli_status_messages],
    )

    success = asyncio.run(run_command(args))

    # Return exit code (0 = success, 1 = failure)
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
