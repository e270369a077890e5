from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Dict, Optional

from catalog.errors import CategoryConfigError
from core.context import AppContext, build_context
from core.logging_utils import configure_json_logging

from .cycle import CycleResult, CycleStatus, Updater
from .state import StateStore
from .status import collect_status

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_VALIDATION_FAILED = 2

_EXIT_CODES: Dict[CycleStatus, int] = {
    CycleStatus.UPDATED: EXIT_OK,
    CycleStatus.NOT_MODIFIED: EXIT_OK,
    CycleStatus.VALIDATION_FAILED: EXIT_VALIDATION_FAILED,
    CycleStatus.ERROR: EXIT_ERROR,
}


def exit_code_for(result: CycleResult) -> int:
    return _EXIT_CODES.get(result.status, EXIT_ERROR)


def _setup_logging(context: AppContext, *, verbose: bool) -> None:
    raw = context.settings.get("logging")
    options = raw if isinstance(raw, dict) else {}
    level = "DEBUG" if verbose else str(options.get("level") or "INFO")
    if options.get("json_file", True):
        configure_json_logging(working_dir=context.working_dir, level=level, console=verbose)
    else:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def format_result(result: CycleResult) -> str:
    line = f"status={result.status.value} phase={result.phase.value} duration={result.duration_s:.1f}s"
    if result.error:
        line += f" error={result.error}"
    lines = [line]
    for reason in result.errors:
        lines.append(f" - {reason}")
    stats = result.stats or {}
    if stats:
        lines.append(
            " imported={imported} rejected={rejected} failed={failed} pruned={pruned}".format(
                imported=stats.get("imported", 0),
                rejected=stats.get("rejected", 0),
                failed=stats.get("failed", 0),
                pruned=stats.get("pruned", 0),
            )
        )
    return "\n".join(lines)


def _cmd_run(context: AppContext, args: argparse.Namespace) -> int:
    if args.if_stale:
        state = StateStore(context.state_path).load()
        if not state.needs_refresh(context.source.refresh_max_age_s, now=time.time()):
            if args.json:
                print(json.dumps({"status": "skipped", "last_success_at": state.last_success_at}))
            else:
                print(f"status=skipped last_success_at={state.last_success_at}")
            return EXIT_OK
    try:
        updater = Updater(context)
    except CategoryConfigError as exc:
        print(f"error: {exc}")
        return EXIT_ERROR
    result = updater.run_cycle(url=args.url)
    if args.json:
        print(json.dumps(result.as_dict(), indent=2, default=str))
    else:
        print(format_result(result))
    return exit_code_for(result)


def _cmd_status(context: AppContext, args: argparse.Namespace) -> int:
    payload = collect_status(context)
    if args.json:
        print(json.dumps(payload, indent=2, default=str))
        return EXIT_OK
    state = payload["state"] if isinstance(payload["state"], dict) else {}
    catalog = payload["catalog"] if isinstance(payload.get("catalog"), dict) else {}
    print(f"working_dir: {payload['working_dir']}")
    print(f"source: {payload['source_url']}")
    print(f"last_success_at: {state.get('last_success_at')}")
    print(f"last_attempt_at: {state.get('last_attempt_at')}")
    print(f"needs_refresh: {payload['needs_refresh']}")
    print(f"catalog items: {catalog.get('total_count', 0)}")
    return EXIT_OK


def _cmd_cleanup(context: AppContext, args: argparse.Namespace) -> int:
    try:
        removed = Updater(context).cleanup()
    except (CategoryConfigError, OSError) as exc:
        print(f"error: {exc}")
        return EXIT_ERROR
    if args.json:
        print(json.dumps({"removed": removed}))
    else:
        print(f"removed {removed} staged files")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Synchronise the media catalog with its upstream snapshot")
    parser.add_argument(
        "--working-dir",
        type=Path,
        default=None,
        help="Override working directory",
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to the console")
    parser.set_defaults(url=None, if_stale=False)
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run one update cycle (default)")
    run.add_argument("--url", default=None, help="Override the upstream snapshot URL")
    run.add_argument(
        "--if-stale",
        action="store_true",
        help="Skip the cycle when the last success is recent enough",
    )
    sub.add_parser("status", help="Show cycle state and catalog statistics")
    sub.add_parser("cleanup", help="Remove leftover staged files")
    return parser


def cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"
    context = build_context(args.working_dir)
    _setup_logging(context, verbose=args.verbose)
    handlers = {
        "run": _cmd_run,
        "status": _cmd_status,
        "cleanup": _cmd_cleanup,
    }
    return handlers[command](context, args)


__all__ = ["build_parser", "cli", "exit_code_for", "format_result"]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(cli())
