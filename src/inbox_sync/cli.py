"""Command-line entry point for Inbox Sync."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from inbox_sync.core import AppSettings, configure_logging, load_app_settings
from inbox_sync.core.interfaces import StoreError
from inbox_sync.core.models import IngestOutcome
from inbox_sync.storage import SqliteEmailStore
from inbox_sync.sync import Supervisor


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Multi-account mailbox sync")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "run", "backfill", "serve", "search"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "--query",
        "-q",
        default=None,
        help="Free-text query for the search command.",
    )
    parser.add_argument(
        "--account",
        default=None,
        help="Restrict the search command to one account.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum records printed by the search command (default: 20).",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Bind address for the serve command (default from settings).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the serve command (default from settings).",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit status."""
    command = args.command
    if command == "info":
        _print_info(settings)
        return 0
    if command == "run":
        return _run_supervisor(settings)
    if command == "backfill":
        return _run_backfill(settings)
    if command == "serve":
        return _serve(settings, host=args.host, port=args.port)
    if command == "search":
        return _search(settings, query=args.query, account=args.account, limit=args.limit)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    return execute(args, settings)


def _print_info(settings: AppSettings) -> None:
    print(f"Configured accounts: {len(settings.accounts)}")
    for account in settings.accounts:
        print(
            f"  {account.key}: {account.host}:{account.port} "
            f"(primary folder {account.primary_folder})"
        )
    print(f"Database path: {settings.storage.db_path}")
    print(f"Retention window: {settings.sync.retention_days} day(s)")
    sinks = [
        name
        for name, url in (
            ("webhook", settings.notifications.webhook_url),
            ("slack", settings.notifications.slack_webhook_url),
        )
        if url
    ]
    print(f"Notification sinks: {', '.join(sinks) or 'none'}")


def _run_supervisor(settings: AppSettings) -> int:
    """Sync every account until interrupted."""
    if not settings.accounts:
        print("No accounts configured.")
        return 1
    with SqliteEmailStore(settings.storage) as store:
        supervisor = Supervisor(settings, store)
        supervisor.start()
        try:
            while not supervisor.join(timeout=1.0):
                pass
        except KeyboardInterrupt:
            print("Stopping...")
        finally:
            supervisor.stop()
    return 0


def _run_backfill(settings: AppSettings) -> int:
    """Run one backfill pass for every account and report the outcome."""
    if not settings.accounts:
        print("No accounts configured.")
        return 1
    with SqliteEmailStore(settings.storage) as store:
        reports = Supervisor(settings, store).backfill_all()

    for report in reports:
        failed = sum(folder.count(IngestOutcome.FAILED) for folder in report.folders)
        print(
            f"{report.account}: indexed {report.indexed} message(s) across "
            f"{len(report.folders)} folder(s); {failed} failed"
        )
        for folder in report.skipped:
            print(f"  skipped folder: {folder}")
    return 0 if len(reports) == len(settings.accounts) else 1


def _serve(settings: AppSettings, *, host: str | None, port: int | None) -> int:
    """Serve the read API until interrupted."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    from inbox_sync.web import create_app  # pylint: disable=import-outside-toplevel

    uvicorn.run(
        create_app(settings),
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_config=None,
    )
    return 0


def _search(
    settings: AppSettings, *, query: str | None, account: str | None, limit: int
) -> int:
    """Print records matching ``query``."""
    try:
        with SqliteEmailStore(settings.storage) as store:
            records = store.search(query, account=account, limit=max(limit, 1))
    except StoreError as exc:
        print(f"Search failed: {exc}")
        return 1

    if not records:
        print("No matching emails found.")
        return 0

    print(f"Showing {len(records)} email(s):")
    header = f"{'Date':<20}  {'Account':<12}  {'Category':<15}  Subject"
    print(header)
    print("-" * len(header))
    for record in records:
        date_text = record.sent_at.isoformat(timespec="minutes")
        print(
            f"{date_text:<20}  {record.account:<12}  "
            f"{record.category.value:<15}  {record.subject or '(no subject)'}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
