"""OrderFlow management CLI.

Database schema management for every service, and operator disposition of
dead-lettered messages.

Usage:
    python src/manage.py setup-db                          # Create all tables
    python src/manage.py drop-db --service payments        # Drop one service's tables
    python src/manage.py dead-letters list inventory --status PENDING
    python src/manage.py dead-letters ignore inventory <id> --memo "SKU retired"
    python src/manage.py dead-letters replay inventory <id>
"""

import argparse
import sys

from messaging.utils.db import drop_db, setup_db
from services import SERVICE_NAMES, load_service


def setup_databases(services=None):
    """Create database schemas for the specified (or all) services."""
    for name in services or SERVICE_NAMES:
        print(f"Initializing {name} service...")
        domain, _ = load_service(name)
        print(f"Creating {name} database schema...")
        setup_db(domain)
        print(f"  {name} schema ready.")

    print("Done.")


def drop_databases(services=None):
    """Drop database schemas for the specified (or all) services."""
    for name in services or SERVICE_NAMES:
        print(f"Initializing {name} service...")
        domain, _ = load_service(name)
        print(f"Dropping {name} database schema...")
        drop_db(domain)
        print(f"  {name} schema dropped.")

    print("Done.")


def _print_record(record):
    print(
        f"{record.id}  {record.status:<12}  {record.topic}[{record.partition}]@{record.offset}  "
        f"{record.event_type}  retries={record.retry_count}  {record.exception_message or ''}"
    )


def dead_letters(args):
    """Operator actions on one service's dead letters."""
    _, runtime = load_service(args.service)
    admin = runtime.dead_letters

    if args.action == "list":
        records = admin.list(status=args.status)
        for record in records:
            _print_record(record)
        print(f"{len(records)} dead letter(s).")
        return

    if args.action == "show":
        record = admin.get(args.record_id)
        _print_record(record)
        print(f"payload: {record.payload}")
        print(f"memo: {record.memo or ''}")
        print(record.stack_trace or "(no stack trace)")
        return

    if args.action == "replay":
        message = admin.replay(args.record_id, runtime.broker)
        print(f"Replayed to {message.topic}[{message.partition}]@{message.offset}")
        return

    actions = {
        "processing": lambda: admin.start_processing(args.record_id),
        "processed": lambda: admin.mark_processed(args.record_id, memo=args.memo),
        "retry-failed": lambda: admin.mark_retry_failed(args.record_id, memo=args.memo),
        "ignore": lambda: admin.mark_ignored(args.record_id, memo=args.memo),
    }
    record = actions[args.action]()
    _print_record(record)


def main():
    parser = argparse.ArgumentParser(description="OrderFlow management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    setup_parser = subparsers.add_parser("setup-db", help="Create all database tables")
    setup_parser.add_argument(
        "--service",
        choices=SERVICE_NAMES,
        nargs="*",
        help="Specific service(s) to set up (default: all)",
    )

    drop_parser = subparsers.add_parser("drop-db", help="Drop all database tables")
    drop_parser.add_argument(
        "--service",
        choices=SERVICE_NAMES,
        nargs="*",
        help="Specific service(s) to drop (default: all)",
    )

    dlq_parser = subparsers.add_parser("dead-letters", help="Inspect and dispose of dead-lettered messages")
    dlq_parser.add_argument(
        "action",
        choices=["list", "show", "processing", "processed", "retry-failed", "ignore", "replay"],
    )
    dlq_parser.add_argument("service", choices=SERVICE_NAMES)
    dlq_parser.add_argument("record_id", nargs="?", help="Dead letter id (all actions except list)")
    dlq_parser.add_argument("--status", help="Filter list by status")
    dlq_parser.add_argument("--memo", help="Operator note stored with the disposition")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases(args.service)
    elif args.command == "drop-db":
        drop_databases(args.service)
    elif args.command == "dead-letters":
        if args.action != "list" and not args.record_id:
            parser.error(f"dead-letters {args.action} requires a record id")
        dead_letters(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
