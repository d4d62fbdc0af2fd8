# src/todoist_autolabel/cli/main.py

"""
CLI entrypoint.

Subcommands:
- run       (default) poll Todoist forever; SIGINT/SIGTERM stop it gracefully
- once      one sync tick plus one retry pass, then exit
- status    task counts, sync state and the most recent errors from the local DB
- validate  check configuration and exit 0 / 1
- labels    compare labels.json with the labels defined in Todoist
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from datetime import datetime

from ..cli.bootstrap import create_initial_state, create_store, shutdown_state
from ..config import get_settings
from ..llm.client import load_labels
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import run_sync_scheduler
from ..todoist.client import TodoistTaskProvider

logger = logging.getLogger(__name__)


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "never"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M:%S")


async def _run_forever(settings) -> None:
    state = create_initial_state(settings=settings)
    stop = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        logger.info("Signal %s received, finishing current tick and shutting down...", signum)
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except (NotImplementedError, RuntimeError):
            # Some platforms (Windows) have no loop signal handlers.
            pass

    logger.info(
        "Polling every %.1fs (retry pass every %.1fs)",
        settings.poll_interval_ms / 1000.0,
        settings.retry_interval_ms / 1000.0,
    )
    try:
        await run_sync_scheduler(
            state.orchestrator,
            interval_seconds=settings.poll_interval_ms / 1000.0,
            retry_interval_seconds=settings.retry_interval_ms / 1000.0,
            stop_event=stop,
        )
    finally:
        await shutdown_state(state)


async def _run_once(settings) -> dict[str, dict[str, int]]:
    state = create_initial_state(settings=settings)
    try:
        tick = await state.orchestrator.run_tick()
        retry = await state.orchestrator.retry_pending_tasks()
        return {"tick": tick.as_dict(), "retry": retry.as_dict()}
    finally:
        await shutdown_state(state)


def cmd_validate(settings) -> int:
    problems = settings.validate()
    if problems:
        print("Configuration is invalid:")
        for p in problems:
            print(f"  - {p}")
        print("\nCheck your .env file (see config.example.py for the variable list).")
        return 1

    print("Configuration OK")
    if getattr(settings, "offline", False):
        print("  Classifier: offline keyword matcher")
    else:
        print(f"  Models: {', '.join(settings.llm_models)}")
    print(f"  Poll interval: {settings.poll_interval_ms}ms")
    print(f"  Retry interval: {settings.retry_interval_ms}ms")
    print(f"  Log level: {settings.log_level}")
    print(f"  Max labels per task: {settings.max_labels_per_task}")
    print(f"  Database path: {settings.db_path}")
    print(f"  Labels path: {settings.labels_path}")
    return 0


def cmd_status(settings, *, errors_limit: int = 10) -> int:
    store = create_store(settings)
    try:
        stats = store.get_stats()
        sync = store.get_sync_state()
        errors = store.get_recent_errors(errors_limit)
    finally:
        store.close()

    print(
        "Tasks: total={} classified={} pending={} failed={} skipped={}".format(
            stats.total, stats.classified, stats.pending, stats.failed, stats.skipped
        )
    )
    print(f"Last sync: {_fmt_ts(sync.last_sync_at)}")
    print(f"Inbox project: {sync.inbox_project_id or 'unknown'}")
    if errors:
        print(f"Recent errors ({len(errors)}):")
        for e in errors:
            task = f" task={e.task_id}" if e.task_id else ""
            print(f"  [{_fmt_ts(e.created_at)}] {e.error_type}{task}: {e.error_message}")
    else:
        print("Recent errors: none")
    return 0


async def _check_labels(settings) -> tuple[list[str], list[str]]:
    names = load_labels(settings.labels_path)
    async with TodoistTaskProvider(
        settings.todoist_api_token or "", base_url=settings.todoist_base_url
    ) as provider:
        return await provider.validate_labels(names)


def cmd_labels(settings) -> int:
    valid, invalid = asyncio.run(_check_labels(settings))
    print(f"Labels defined in Todoist: {len(valid)}")
    if invalid:
        print(f"Missing in Todoist ({len(invalid)}): {', '.join(invalid)}")
        print("Create them in Todoist or remove them from the labels file.")
        return 1
    print("All labels exist in Todoist.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todoist-autolabel",
        description="Label new Todoist inbox tasks with an LLM.",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="poll Todoist until interrupted (default)")
    sub.add_parser("once", help="run one sync tick and one retry pass")
    status = sub.add_parser("status", help="show local task stats and recent errors")
    status.add_argument("--errors", type=int, default=10, help="number of recent errors to show")
    sub.add_parser("validate", help="validate configuration")
    sub.add_parser("labels", help="check labels.json against the labels defined in Todoist")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "run"
    settings = get_settings()

    if command == "validate":
        return cmd_validate(settings)

    setup_logging(log_dir=settings.log_dir, console_level=settings.log_level_value)

    if command == "status":
        return cmd_status(settings, errors_limit=args.errors)

    if command == "labels":
        return cmd_labels(settings)

    # run and once refuse to start on any config problem.
    problems = settings.validate()
    if problems:
        for p in problems:
            logger.error("Config: %s", p)
        return 1

    logger.info("Starting %s (%s)...", settings.app_name, command)

    if command == "once":
        result = asyncio.run(_run_once(settings))
        print(json.dumps(result, indent=2))
        return 0

    asyncio.run(_run_forever(settings))
    logger.info("Bye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
