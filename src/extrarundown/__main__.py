"""CLI entry point for extrarundown.

Usage:
    python -m extrarundown diff <old.json|-> <new.json|->
    python -m extrarundown parse <values.json> --id <rundown_id> [--name NAME]
    python -m extrarundown check <spreadsheet_id_or_url> [--since old.json] [--output new.json]
    python -m extrarundown watch [<spreadsheet_id_or_url>...] [--folder ID] [--interval S]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from extrarundown.config import Settings, get_settings
from extrarundown.diff import RundownChange, diff_rundowns, summarize_changes
from extrarundown.exceptions import RundownError
from extrarundown.logging import configure_logging
from extrarundown.models import Rundown, dump_rundown, load_rundown
from extrarundown.sheet_parser import parse_rundown
from extrarundown.sink import ChangeSink, HttpChangeSink, LoggingSink, RecordingSink
from extrarundown.transport import (
    GoogleSheetsTransport,
    LocalFileTransport,
    Transport,
    TransportError,
)
from extrarundown.utils import parse_spreadsheet_id
from extrarundown.watcher import RundownWatcher

ABSENT = "-"


def _load_optional(path: str) -> Rundown | None:
    if path == ABSENT:
        return None
    return load_rundown(path)


def _print_changes(changes: list[RundownChange]) -> None:
    print(json.dumps([change.to_dict() for change in changes], indent=2))
    summary = summarize_changes(changes)
    if summary:
        parts = ", ".join(f"{count} {kind}" for kind, count in summary.items())
        print(f"\n# {len(changes)} change(s): {parts}", file=sys.stderr)
    else:
        print("\n# No changes detected.", file=sys.stderr)


def _create_transport(args: argparse.Namespace, settings: Settings) -> Transport:
    if args.golden:
        return LocalFileTransport(Path(args.golden))
    if not settings.access_token:
        raise RundownError(
            "No access token configured. Set EXTRARUNDOWN_ACCESS_TOKEN or use --golden."
        )
    return GoogleSheetsTransport(
        access_token=settings.access_token, timeout=settings.request_timeout
    )


def _create_sink(settings: Settings) -> ChangeSink:
    if settings.core_url:
        return HttpChangeSink(settings.core_url, timeout=settings.request_timeout)
    return LoggingSink()


async def cmd_diff(args: argparse.Namespace, settings: Settings) -> int:
    """Diff two snapshot files and print the changes."""
    try:
        old_rundown = _load_optional(args.old)
        new_rundown = _load_optional(args.new)
    except RundownError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_changes(diff_rundowns(old_rundown, new_rundown))
    return 0


async def cmd_parse(args: argparse.Namespace, settings: Settings) -> int:
    """Parse a values API response into a snapshot."""
    values_file = Path(args.values_file)
    if not values_file.exists():
        print(f"Error: Values file not found: {values_file}", file=sys.stderr)
        return 1

    try:
        payload: Any = json.loads(values_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in {values_file}: {e}", file=sys.stderr)
        return 1

    cells = payload.get("values", []) if isinstance(payload, dict) else payload
    try:
        day = date.fromisoformat(args.day) if args.day else None
    except ValueError:
        print(f"Error: Invalid --day {args.day!r}, expected YYYY-MM-DD", file=sys.stderr)
        return 1

    try:
        result = parse_rundown(args.id, args.name or args.id, cells, day=day)
    except RundownError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.rundown.to_dict(), indent=2, ensure_ascii=False))
    for update in result.sheet_updates:
        print(f"# generated id {update.value} for {update.cell_position}", file=sys.stderr)
    return 0


async def cmd_check(args: argparse.Namespace, settings: Settings) -> int:
    """Fetch a spreadsheet once and diff it against a previous snapshot."""
    spreadsheet_id = parse_spreadsheet_id(args.spreadsheet)

    try:
        transport = _create_transport(args, settings)
    except RundownError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sink = RecordingSink()
    watcher = RundownWatcher(
        transport,
        sink,
        sheet_name=settings.sheet_name,
        gateway_version=settings.gateway_version or None,
        write_back_ids=settings.write_back_ids and not args.no_write_back,
    )

    try:
        if args.since:
            await watcher.apply(spreadsheet_id, load_rundown(args.since))
        changes = await watcher.check(spreadsheet_id)
    except (RundownError, TransportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await transport.close()

    _print_changes(changes)

    if args.output:
        rundown = watcher.snapshots.get(spreadsheet_id)
        if rundown is None:
            print("# Rundown no longer exists, no snapshot written.", file=sys.stderr)
        else:
            path = dump_rundown(rundown, args.output)
            print(f"# Snapshot written to {path}", file=sys.stderr)
    return 0


async def cmd_watch(args: argparse.Namespace, settings: Settings) -> int:
    """Poll spreadsheets and forward changes until interrupted."""
    spreadsheet_ids = [parse_spreadsheet_id(s) for s in args.spreadsheets]
    folder_id = args.folder or settings.sheet_folder or None
    if not spreadsheet_ids and not folder_id:
        print(
            "Error: Nothing to watch. Pass spreadsheet ids or --folder.",
            file=sys.stderr,
        )
        return 1

    try:
        transport = _create_transport(args, settings)
    except RundownError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sink = _create_sink(settings)
    watcher = RundownWatcher(
        transport,
        sink,
        sheet_name=settings.sheet_name,
        gateway_version=settings.gateway_version or None,
        write_back_ids=settings.write_back_ids and not args.no_write_back,
    )
    interval = settings.poll_interval if args.interval is None else args.interval

    try:
        await watcher.run(
            spreadsheet_ids,
            folder_id=folder_id,
            interval=interval,
            iterations=args.iterations,
        )
        return 0
    except RundownError as e:
        logger.exception("Watcher aborted: {}", e)
        return 1
    finally:
        await sink.close()
        await transport.close()


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="extrarundown",
        description="Watch Google Sheets rundowns and emit rundown change events",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # diff subcommand
    diff_parser = subparsers.add_parser(
        "diff",
        help="Show changes between two rundown snapshot files",
    )
    diff_parser.add_argument("old", help=f"Old snapshot JSON ('{ABSENT}' for none)")
    diff_parser.add_argument("new", help=f"New snapshot JSON ('{ABSENT}' for none)")
    diff_parser.set_defaults(func=cmd_diff)

    # parse subcommand
    parse_parser = subparsers.add_parser(
        "parse",
        help="Parse a values API response into a rundown snapshot",
    )
    parse_parser.add_argument(
        "values_file",
        help="JSON file with a values response or a plain list of rows",
    )
    parse_parser.add_argument("--id", required=True, help="Rundown external id")
    parse_parser.add_argument("--name", default=None, help="Rundown name")
    parse_parser.add_argument(
        "--day",
        default=None,
        help="Show date as YYYY-MM-DD (default: today)",
    )
    parse_parser.set_defaults(func=cmd_parse)

    # check subcommand
    check_parser = subparsers.add_parser(
        "check",
        help="Fetch a spreadsheet once and print its changes",
    )
    check_parser.add_argument(
        "spreadsheet",
        help="Spreadsheet ID or full Google Sheets URL",
    )
    check_parser.add_argument(
        "--since",
        default=None,
        help="Previous snapshot JSON to diff against (default: none)",
    )
    check_parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Write the fetched snapshot to this file",
    )
    _add_source_arguments(check_parser)
    check_parser.set_defaults(func=cmd_check)

    # watch subcommand
    watch_parser = subparsers.add_parser(
        "watch",
        help="Poll spreadsheets and forward changes",
    )
    watch_parser.add_argument(
        "spreadsheets",
        nargs="*",
        help="Spreadsheet IDs or full Google Sheets URLs",
    )
    watch_parser.add_argument(
        "--folder",
        default=None,
        help="Also watch every spreadsheet in this Drive folder"
        " (default: EXTRARUNDOWN_SHEET_FOLDER)",
    )
    watch_parser.add_argument(
        "--interval",
        type=_positive_float,
        default=None,
        help="Seconds between checks (default: EXTRARUNDOWN_POLL_INTERVAL)",
    )
    watch_parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Stop after this many check cycles",
    )
    _add_source_arguments(watch_parser)
    watch_parser.set_defaults(func=cmd_watch)

    return parser


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if not number > 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0, got {value}")
    return number


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--golden",
        default=None,
        help="Read spreadsheets from a local golden directory instead of Google",
    )
    parser.add_argument(
        "--no-write-back",
        action="store_true",
        help="Don't write generated ids back to the sheet",
    )


def main() -> int:
    """Main entry point."""
    args = build_parser().parse_args()

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(is_production=settings.is_production, log_level=settings.log_level)

    try:
        result: int = asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        return 130
    return result


if __name__ == "__main__":
    sys.exit(main())
