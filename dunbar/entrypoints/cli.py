#!/usr/bin/env python3
"""CLI Entrypoint - コマンドラインから連絡先を操作

使い方:
    python -m dunbar.entrypoints.cli list
    python -m dunbar.entrypoints.cli add --name "Jane Doe" --category Client
    python -m dunbar.entrypoints.cli log <id> --type Call --notes "Caught up"
    python -m dunbar.entrypoints.cli sync

環境変数:
    SPREADSHEET_ID: 連絡先を保存するスプレッドシート（必須）
    LOG_LEVEL: ログレベル (DEBUG, INFO, WARNING, ERROR) デフォルト: INFO
"""

import argparse
import logging
import sys
import time
from typing import Any

from dunbar.config import AppConfig
from dunbar.domain.errors import ConfigError
from dunbar.domain.formatting import format_address, format_phone_number
from dunbar.domain.intents import (
    CreateContact,
    DeleteContact,
    LogCommunication,
    MarkContacted,
    UpdateContact,
)
from dunbar.domain.models import Contact
from dunbar.entrypoints.factory import create_contact_book, create_notifier
from dunbar.logging_config import setup_logging
from dunbar.services.contact_book import ContactBook
from dunbar.services.dispatcher import DispatchResult

logger = logging.getLogger(__name__)

# CLIオプション名 -> 連絡先フィールド名
_FIELD_OPTIONS = {
    "name": "name",
    "role": "role",
    "status": "status",
    "category": "category",
    "description": "description",
    "picture": "picture",
    "birthday": "birthday",
    "age": "age",
    "has_kids": "has_kids",
    "kids": "number_of_kids",
    "marital_status": "marital_status",
    "details": "additional_details",
    "phone": "phone_number",
    "email": "email",
}
_ADDRESS_OPTIONS = ("street", "city", "state", "zip_code", "country")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dunbar", description="Offline-tolerant contact manager"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List contacts")
    p.add_argument("--all", action="store_true", help="Include deleted (unsynced) contacts")

    p = sub.add_parser("show", help="Show a contact")
    p.add_argument("contact_id")

    p = sub.add_parser("add", help="Create a contact")
    _add_field_options(p, require_name=True)

    p = sub.add_parser("update", help="Update a contact")
    p.add_argument("contact_id")
    _add_field_options(p, require_name=False)

    p = sub.add_parser("delete", help="Delete a contact")
    p.add_argument("contact_id")

    p = sub.add_parser("log", help="Log a communication")
    p.add_argument("contact_id")
    p.add_argument(
        "--type", dest="types", action="append", required=True,
        help="Call, Video, In-Person or Email (repeatable)",
    )
    p.add_argument("--notes", default="")
    p.add_argument("--date", help="ISO8601 date (defaults to now)")

    p = sub.add_parser("contacted", help="Mark a contact as contacted")
    p.add_argument("contact_id")
    p.add_argument("--at", help="ISO8601 date (defaults to now)")

    sub.add_parser("sync", help="Upload offline changes")
    sub.add_parser("status", help="Show sync status")
    sub.add_parser("stats", help="Show contact statistics")

    p = sub.add_parser("remind", help="List contacts that need attention")
    p.add_argument("--notify", action="store_true", help="Send reminders to Slack")

    p = sub.add_parser("watch", help="Probe connectivity periodically while offline")
    p.add_argument("--interval", type=float, help="Seconds between probes")
    p.add_argument("--count", type=int, default=0, help="Stop after N probes (0 = forever)")

    return parser


def _add_field_options(parser: argparse.ArgumentParser, require_name: bool) -> None:
    parser.add_argument("--name", required=require_name)
    parser.add_argument("--role")
    parser.add_argument("--status")
    parser.add_argument("--category")
    parser.add_argument("--description")
    parser.add_argument("--picture")
    parser.add_argument("--birthday", help="YYYY-MM-DD or --MM-DD")
    parser.add_argument("--age", type=int)
    parser.add_argument("--has-kids", dest="has_kids", action=argparse.BooleanOptionalAction)
    parser.add_argument("--kids", type=int)
    parser.add_argument("--marital-status", dest="marital_status")
    parser.add_argument("--details")
    parser.add_argument("--phone")
    parser.add_argument("--email")
    for option in _ADDRESS_OPTIONS:
        parser.add_argument(f"--{option.replace('_', '-')}", dest=option)


def _collect_fields(args: argparse.Namespace) -> dict[str, Any]:
    values = {
        field: getattr(args, option)
        for option, field in _FIELD_OPTIONS.items()
        if getattr(args, option) is not None
    }
    address = {
        option: getattr(args, option)
        for option in _ADDRESS_OPTIONS
        if getattr(args, option) is not None
    }
    if address:
        values["address"] = address
    return values


# ── Commands ─────────────────────────────────────────────────────────────────


def _cmd_list(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    contacts = book.state.contacts if args.all else book.state.visible_contacts
    for contact in contacts:
        print(_summary_line(contact))
    print(f"{len(contacts)} contact(s)")
    return 0


def _cmd_show(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    contact = book.state.find(args.contact_id)
    if contact is None or contact.deleted:
        print(f"Contact not found: {args.contact_id}", file=sys.stderr)
        return 1
    print(_detail(contact))
    return 0


def _cmd_add(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    return _report(book.dispatch(CreateContact(_collect_fields(args))), "Created")


def _cmd_update(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    result = book.dispatch(UpdateContact(args.contact_id, _collect_fields(args)))
    return _report(result, "Updated")


def _cmd_delete(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    return _report(book.dispatch(DeleteContact(args.contact_id)), "Deleted")


def _cmd_log(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    intent = LogCommunication(
        contact_id=args.contact_id,
        types=args.types,
        notes=args.notes,
        date=args.date,
    )
    return _report(book.dispatch(intent), "Logged communication for")


def _cmd_contacted(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    result = book.dispatch(MarkContacted(args.contact_id, at=args.at))
    return _report(result, "Marked contacted")


def _cmd_sync(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    report = book.sync()
    print(f"Synced: {report.succeeded} succeeded, {report.failed} failed")
    for error in report.errors:
        print(f"  {error.name} ({error.contact_id}): {error.error}")
    if report.message:
        print(report.message)
    return 0 if report.started and report.failed == 0 else 1


def _cmd_status(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    state = book.state
    print(f"Mode: {'offline' if state.offline_mode else 'online'}")
    print(f"Contacts: {len(state.visible_contacts)}")
    print(f"Unsynced: {len(state.unsynced_contacts)}")
    print(f"Pending changes: {len(state.pending_changes)}")
    if state.error:
        print(f"Notice: {state.error}")
    return 0


def _cmd_stats(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    stats = book.stats()
    print(f"Total: {stats.total}")
    print(f"Active: {stats.active}")
    print(f"Inactive: {stats.inactive}")
    print(f"Recently contacted: {stats.recently_contacted}")
    if stats.never_contacted:
        print(f"Never contacted: {', '.join(stats.never_contacted)}")
    return 0


def _cmd_remind(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    reminders = book.reminders()
    for reminder in reminders:
        print(reminder.message)
    if not reminders:
        print("Everyone is up to date.")
    if args.notify:
        create_notifier(config).notify_reminders(reminders)
    return 0


def _cmd_watch(book: ContactBook, args: argparse.Namespace, config: AppConfig) -> int:
    interval = args.interval or config.probe_interval_seconds
    last_notice = [book.state.error]

    def _print_notice(state) -> None:
        if state.error and state.error != last_notice[0]:
            print(state.error)
        last_notice[0] = state.error

    unsubscribe = book.subscribe(_print_notice)
    try:
        probes = 0
        while True:
            available = book.check_connectivity()
            logger.info("Probe: available=%s offline=%s", available, book.state.offline_mode)
            probes += 1
            if args.count and probes >= args.count:
                return 0
            time.sleep(interval)
    finally:
        unsubscribe()


_COMMANDS = {
    "list": _cmd_list,
    "show": _cmd_show,
    "add": _cmd_add,
    "update": _cmd_update,
    "delete": _cmd_delete,
    "log": _cmd_log,
    "contacted": _cmd_contacted,
    "sync": _cmd_sync,
    "status": _cmd_status,
    "stats": _cmd_stats,
    "remind": _cmd_remind,
    "watch": _cmd_watch,
}


# ── Output ───────────────────────────────────────────────────────────────────


def _report(result: DispatchResult, verb: str) -> int:
    if not result.ok:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    suffix = " (queued for sync)" if result.queued else ""
    print(f"{verb} {result.contact_id}{suffix}")
    if result.went_offline:
        print("Network connection lost. Working in offline mode.")
    return 0


def _summary_line(contact: Contact) -> str:
    flags = ""
    if not contact.synced:
        flags += " *"
    if contact.deleted:
        flags += " (deleted)"
    last = contact.last_contacted_at or "never"
    return (
        f"{contact.id}  {contact.name}  [{contact.category.value}/{contact.status.value}]"
        f"  last contacted: {last}{flags}"
    )


def _detail(contact: Contact) -> str:
    lines = [
        f"{contact.name} ({contact.id})",
        f"  Role: {contact.role}",
        f"  Status: {contact.status.value}",
        f"  Category: {contact.category.value}",
    ]
    if contact.phone_number:
        lines.append(f"  Phone: {format_phone_number(contact.phone_number)}")
    if contact.email:
        lines.append(f"  Email: {contact.email}")
    address = format_address(contact.address)
    if address:
        lines.append(f"  Address: {address}")
    if contact.birthday:
        lines.append(f"  Birthday: {contact.birthday}")
    if contact.age is not None:
        lines.append(f"  Age: {contact.age}")
    if contact.has_kids:
        lines.append(f"  Kids: {contact.number_of_kids}")
    if contact.marital_status:
        lines.append(f"  Marital status: {contact.marital_status.value}")
    if contact.description:
        lines.append(f"  Description: {contact.description}")
    if contact.additional_details:
        lines.append(f"  Details: {contact.additional_details}")
    lines.append(f"  Last contacted: {contact.last_contacted_at or 'never'}")
    if contact.communications:
        lines.append("  Communications:")
        for c in contact.communications:
            types = ", ".join(sorted(t.value for t in c.types))
            note = f" - {c.notes}" if c.notes else ""
            lines.append(f"    {c.date} [{types}]{note}")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """メインエントリーポイント。終了コードを返す"""
    setup_logging()
    args = build_parser().parse_args(argv)

    try:
        config = AppConfig.from_env()
        book = create_contact_book(config)
        book.start()
        return _COMMANDS[args.command](book, args, config)

    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
