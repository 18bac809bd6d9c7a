"""Command-line access to pending counts, pages, and exports."""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from export_console.core.config import Settings, load_settings
from export_console.core.errors import ExportConsoleError, ExportPartiallyApplied
from export_console.core.logging import configure_logging
from export_console.core.models import ExportFile
from export_console.reporting.templates import records_to_template_rows, template_headers
from export_console.store.base import RecordStore
from export_console.store.memory import MemoryRecordStore
from export_console.ui.session import ChannelSession

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI entry point."""

    parser = argparse.ArgumentParser(description="Browse and export pending records")
    parser.add_argument(
        "--fixture",
        type=Path,
        help="JSON file of collections to use instead of MongoDB",
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL for this run")
    commands = parser.add_subparsers(dest="command", required=True)

    def _with_channel(command: argparse.ArgumentParser) -> argparse.ArgumentParser:
        command.add_argument("--channel", required=True, help="Channel name, e.g. ussd or website")
        command.add_argument("--network", default="", help="Only include this network")
        return command

    _with_channel(commands.add_parser("count", help="Print the pending total for a channel"))

    list_parser = _with_channel(commands.add_parser("list", help="Print pending rows page by page"))
    list_parser.add_argument("--pages", type=int, default=1, help="How many pages to walk")
    list_parser.add_argument("--view", default="pending", help="Browsing view, e.g. all or failed")

    export_parser = _with_channel(commands.add_parser("export", help="Export and flag pending records"))
    export_parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Folder the export file is written to",
    )
    export_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    return parser


def _open_store(fixture: Optional[Path], settings: Settings) -> RecordStore:
    if fixture:
        return MemoryRecordStore.from_json(fixture)

    from export_console.store.mongo import MongoRecordStore

    return MongoRecordStore.from_settings(settings)


def _save(export_file: ExportFile, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / export_file.filename
    path.write_bytes(export_file.content)
    return path


def _print_rows(session: ChannelSession, page: int) -> None:
    rows = records_to_template_rows(session.pagination.rows, session.channel.name)
    print(f"Page {page} ({len(rows)} rows)")
    headers = template_headers(session.channel.name)
    print(" | ".join(headers))
    for row in rows:
        print(" | ".join(row[header] for header in headers))


def _run_count(session: ChannelSession) -> int:
    total = session.coordinator.refresh_total()
    print(f"{total} pending {session.channel.label} records")
    return 0


def _run_list(session: ChannelSession, pages: int) -> int:
    session.pagination.go_to_page(1)
    _print_rows(session, 1)
    for _ in range(pages - 1):
        if not session.pagination.has_more:
            break
        session.pagination.next()
        _print_rows(session, session.pagination.page)
    return 0


def _run_export(session: ChannelSession, output_dir: Path, assume_yes: bool) -> int:
    prompt = session.coordinator.open_confirm()
    print(prompt.message)
    if prompt.count == 0:
        session.coordinator.cancel()
        return 0
    if not assume_yes and input("Proceed? [y/N] ").strip().lower() not in {"y", "yes"}:
        session.coordinator.cancel()
        print("Export cancelled.")
        return 0

    try:
        result = session.coordinator.confirm()
    except ExportPartiallyApplied as exc:
        if exc.export_file is not None:
            print(f"Wrote {_save(exc.export_file, output_dir)}")
        raise
    path = _save(result.file, output_dir)
    print(
        f"Wrote {path} with {result.exported_groups} rows; "
        f"flagged {result.flagged_documents} documents. {result.pending_total} still pending."
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint for running counts and exports from the command line."""

    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = load_settings()
        channel = settings.channel(args.channel)
        session = ChannelSession(_open_store(args.fixture, settings), channel, settings)
        if args.network:
            session.set_network(args.network)

        if args.command == "count":
            return _run_count(session)
        if args.command == "list":
            session.set_view(args.view)
            return _run_list(session, args.pages)
        return _run_export(session, args.output_dir, args.yes)
    except ExportConsoleError as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
