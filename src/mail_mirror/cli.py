"""Command-line interface for Mail Mirror.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from datetime import datetime
from pathlib import Path

import structlog

from mail_mirror.config import Settings, get_settings
from mail_mirror.exceptions import MailMirrorError
from mail_mirror.gmail.client import GmailClient
from mail_mirror.models import INBOX, Message
from mail_mirror.session import Draft, MailSession
from mail_mirror.store import MailStore

logger = structlog.get_logger()


def _add_db_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite mirror (default: settings store_db_path)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mail-mirror", description="Mail Mirror")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level (same as MAIL_MIRROR_DEBUG=true)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Mirror the mailbox into the local store")
    sync_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit",
    )
    _add_db_argument(sync_parser)

    labels_parser = subparsers.add_parser("labels", help="List mirrored labels")
    _add_db_argument(labels_parser)

    list_parser = subparsers.add_parser("list", help="List threads under a label")
    list_parser.add_argument("--label", default=INBOX, help="Label ID (default: INBOX)")
    list_parser.add_argument("--limit", type=int, default=None, help="Max threads")
    _add_db_argument(list_parser)

    thread_parser = subparsers.add_parser("thread", help="Show every message of a thread")
    thread_parser.add_argument("thread_id", help="Gmail thread ID")
    _add_db_argument(thread_parser)

    search_parser = subparsers.add_parser("search", help="Full-text search the local store")
    search_parser.add_argument("query", help="FTS query")
    search_parser.add_argument("--limit", type=int, default=25, help="Max results")
    _add_db_argument(search_parser)

    stats_parser = subparsers.add_parser("stats", help="Show message and label counts")
    _add_db_argument(stats_parser)

    for name, help_text in (
        ("archive", "Archive a thread (removes INBOX or the given category)"),
        ("delete", "Move a thread to the trash"),
    ):
        action_parser = subparsers.add_parser(name, help=help_text)
        action_parser.add_argument("thread_id", help="Gmail thread ID")
        action_parser.add_argument(
            "--label",
            default=INBOX,
            help="Label the thread is listed under (default: INBOX)",
        )
        _add_db_argument(action_parser)

    send_parser = subparsers.add_parser("send", help="Send a plain-text message")
    send_parser.add_argument("--to", required=True, help="Comma separated recipients")
    send_parser.add_argument("--cc", default="", help="Comma separated Cc recipients")
    send_parser.add_argument("--bcc", default="", help="Comma separated Bcc recipients")
    send_parser.add_argument("--subject", required=True, help="Subject line")
    send_parser.add_argument("--body", required=True, help="Message body")
    _add_db_argument(send_parser)

    auth_parser = subparsers.add_parser("auth", help="Manage the cached Gmail token")
    auth_sub = auth_parser.add_subparsers(dest="auth_command", required=True)
    auth_sub.add_parser("reset", help="Delete the cached OAuth token")

    return parser


def _open_store(args: argparse.Namespace, settings: Settings) -> MailStore:
    db_path: Path = args.db or settings.store_db_path
    store = MailStore(db_path)
    store.initialize()
    return store


def _format_date(internal_date: int) -> str:
    if not internal_date:
        return "(no date)"
    return datetime.fromtimestamp(internal_date / 1000).strftime("%Y-%m-%d %H:%M")


def _format_row(message: Message) -> str:
    read = "READ" if message.is_read else "UNREAD"
    sender = message.from_address or "(unknown sender)"
    return (
        f"{read}\t{_format_date(message.internal_date)}\t{message.thread_id}"
        f"\t{sender}\t{message.subject or '(no subject)'}"
    )


async def _open_session(args: argparse.Namespace, settings: Settings) -> MailSession:
    store = _open_store(args, settings)
    gmail = GmailClient(settings)
    await gmail.authenticate()
    return MailSession(store, gmail, settings)


async def _cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    session = await _open_session(args, settings)
    reconciler = session.reconciler

    if args.once:
        report = await reconciler.sync_once()
        print(
            f"Synced {len(report.labels_synced)} labels "
            f"({len(report.labels_skipped)} skipped): "
            f"{report.messages_added} new messages, "
            f"{report.associations_added} labels added, "
            f"{report.associations_removed} labels removed"
        )
        return 0 if not report.errors else 1

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, reconciler.stop)

    print(
        f"Syncing into {session.store.db_path} every "
        f"{settings.sync_interval_seconds:g}s, Ctrl-C to stop"
    )
    reconciler.start()
    await reconciler.wait_stopped()
    return 0


def _cmd_labels(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(args, settings)
    for label in store.get_labels():
        print(f"{label.id}\t{label.kind.value}\t{label.display_name}")
    return 0


def _cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(args, settings)
    limit = args.limit or settings.display_page_size
    for message in store.get_messages_by_label(args.label, limit):
        print(_format_row(message))
    return 0


def _cmd_thread(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(args, settings)
    messages = store.get_messages_by_thread(args.thread_id)
    if not messages:
        print(f"Thread not found: {args.thread_id}", file=sys.stderr)
        return 1

    for message in messages:
        print(f"From: {message.from_address or '(unknown sender)'}")
        print(f"To: {message.to_address or ''}")
        print(f"Date: {_format_date(message.internal_date)}")
        print(f"Subject: {message.subject or '(no subject)'}")
        print()
        print(message.body_plain or message.snippet or "")
        print("-" * 72)
    return 0


def _cmd_search(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(args, settings)
    for message in store.search(args.query, limit=args.limit):
        print(_format_row(message))
    return 0


def _cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    store = _open_store(args, settings)
    stats = store.stats()
    print(f"Total messages: {stats.total_messages}")
    print(f"Unread messages: {stats.unread_messages}")
    print(f"Threads: {stats.total_threads}")

    print("\nLabels:")
    for count in stats.labels:
        print(f"- {count.name}: {count.total_messages} messages ({count.unread_messages} unread)")
    return 0


async def _cmd_thread_action(args: argparse.Namespace, settings: Settings) -> int:
    session = await _open_session(args, settings)
    thread = await asyncio.to_thread(session.store.get_messages_by_thread, args.thread_id)
    if not thread:
        print(f"Thread not found: {args.thread_id}", file=sys.stderr)
        return 1

    view = session.view
    view.current_label_id = args.label
    view.messages = [thread[0]]
    view.selected_index = 0

    if args.command == "archive":
        ok = await session.archive()
    else:
        ok = await session.delete()
    await session.stop()

    print(view.status or "")
    return 0 if ok else 1


async def _cmd_send(args: argparse.Namespace, settings: Settings) -> int:
    session = await _open_session(args, settings)
    draft = Draft(to=args.to, cc=args.cc, bcc=args.bcc, subject=args.subject, body=args.body)
    sent_id = await session.send(draft)
    print(session.view.status or "")
    return 0 if sent_id else 1


def _cmd_auth_reset(settings: Settings) -> int:
    if GmailClient(settings).reset_token():
        print(f"Removed cached token {settings.gmail_token_path}")
    else:
        print(f"No cached token at {settings.gmail_token_path}")
    return 0


def _dispatch(parsed: argparse.Namespace, settings: Settings) -> int:
    if parsed.command == "sync":
        return asyncio.run(_cmd_sync(parsed, settings))
    if parsed.command == "labels":
        return _cmd_labels(parsed, settings)
    if parsed.command == "list":
        return _cmd_list(parsed, settings)
    if parsed.command == "thread":
        return _cmd_thread(parsed, settings)
    if parsed.command == "search":
        return _cmd_search(parsed, settings)
    if parsed.command == "stats":
        return _cmd_stats(parsed, settings)
    if parsed.command in ("archive", "delete"):
        return asyncio.run(_cmd_thread_action(parsed, settings))
    if parsed.command == "send":
        return asyncio.run(_cmd_send(parsed, settings))
    if parsed.command == "auth" and parsed.auth_command == "reset":
        return _cmd_auth_reset(settings)

    logger.error("unknown_command", command=parsed.command)
    return 2


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Mail Mirror CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    parsed = parser.parse_args(args)

    settings = get_settings()
    if parsed.debug:
        settings = settings.model_copy(update={"debug": True})

    # Configure logging
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(settings.effective_log_level),
    )

    logger.info("mail_mirror_started", version="0.1.0", debug=settings.debug)

    try:
        return _dispatch(parsed, settings)
    except MailMirrorError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
