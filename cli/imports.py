#!/usr/bin/env python3

import sys
import time
from decimal import Decimal, InvalidOperation
from pathlib import Path

from logger import get_logger
from models.import_session import supported_extensions
from models.import_summary import ImportOptions

logger = get_logger()


def build_options(args) -> ImportOptions:
    """Build ImportOptions from preview/execute arguments.

    --map FIELD=HEADER may repeat; headers for the same field accumulate.
    """
    default_commission = None
    if args.default_commission is not None:
        try:
            default_commission = Decimal(args.default_commission)
        except InvalidOperation:
            raise ValueError(
                f"Invalid --default-commission value: {args.default_commission}"
            ) from None
        if default_commission < 0:
            raise ValueError("--default-commission cannot be negative")

    field_mapping = None
    if args.map:
        field_mapping = {}
        for item in args.map:
            field_name, sep, header = item.partition("=")
            if not sep or not field_name.strip() or not header.strip():
                raise ValueError(f"Invalid --map value '{item}', expected FIELD=HEADER")
            field_mapping.setdefault(field_name.strip(), []).append(header.strip())

    return ImportOptions(
        skip_duplicates=not args.allow_duplicates,
        default_commission=default_commission,
        field_mapping=field_mapping,
        create_missing_strategies=args.create_strategies,
    )


def print_summary(summary, title):
    logger.info(f"\n{title}")
    logger.info("=" * 80)
    counts = summary.counts()
    logger.info(
        f"Total: {counts['total']}  Imported: {counts['imported']}  "
        f"Skipped: {counts['skipped']}  Duplicate: {counts['duplicate']}  "
        f"Errored: {counts['errored']}"
    )
    if summary.data_import_id is not None:
        logger.info(f"Data import ID: {summary.data_import_id}")

    for issue in summary.errors:
        logger.info(f"  Row {issue.row_number} ERROR: {issue.reason}")
        logger.info(f"    {issue.raw_text[:100]}")
    for issue in summary.warnings:
        logger.info(f"  Row {issue.row_number} warning: {issue.reason}")


def cmd_upload(args, services):
    """Stage a trade log and open an import session.

    Args:
        args: Parsed command-line arguments with file and owner
        services: Services container with the imports service
    """
    file_path = Path(args.file)
    if not file_path.exists():
        logger.error(f"File not found: {args.file}")
        sys.exit(1)

    with open(file_path, "rb") as f:
        session_id = services.imports.create_session(
            f, file_path.name, args.owner, size_hint=file_path.stat().st_size
        )

    logger.info(f"✓ Created import session for {file_path.name}")
    logger.info(
        f"  Expires in {services.config.session_ttl_minutes} minutes. "
        f"Run 'python -m cli imports preview {session_id} --owner {args.owner}'"
    )
    # Session ID on stdout alone so scripts can capture it
    print(session_id)


def cmd_preview(args, services):
    """Dry-run an import session."""
    summary = services.imports.preview(args.session_id, args.owner, build_options(args))
    print_summary(summary, "Import preview (nothing saved)")


def cmd_execute(args, services):
    """Import a session's trades."""
    summary = services.imports.execute(args.session_id, args.owner, build_options(args))
    print_summary(summary, "Import results")
    if summary.errored:
        logger.info(f"\n{summary.imported} of {summary.total} row(s) imported")
    else:
        logger.info(f"\n✓ Successfully imported {summary.imported} trade(s)")


def cmd_status(args, services):
    """Show an import session's state."""
    status = services.imports.get_status(args.session_id, args.owner)

    logger.info("\nImport session:")
    logger.info("=" * 80)
    logger.info(f"ID: {status['session_id']}")
    logger.info(f"File: {status['file_name']} ({status['file_format']})")
    logger.info(f"Size: {status['file_size_bytes']} bytes")
    logger.info(f"Uploaded: {status['uploaded_at']}")
    logger.info(f"Expires: {status['expires_at']}")
    logger.info(f"Previewed: {'yes' if status['preview_completed'] else 'no'}")
    last_preview = status["metadata"].get("last_preview")
    if last_preview:
        logger.info(f"Last preview: {last_preview}")


def cmd_delete(args, services):
    """Delete an import session and its staged file."""
    services.imports.delete_session(args.session_id, args.owner)
    logger.info(f"✓ Deleted import session {args.session_id}")


def cmd_history(args, services):
    """List executed imports for an owner."""
    data_imports = services.data_imports.find_by_owner(args.owner)

    if not data_imports:
        logger.info("No imports found.")
        return

    logger.info("\nImports:")
    logger.info("=" * 80)
    for data_import in data_imports:
        logger.info(
            f"{data_import.id:>5}  {data_import.created_at:%Y-%m-%d %H:%M}  "
            f"{data_import.status:<10}  {data_import.imported_rows}/{data_import.total_rows} "
            f"imported, {data_import.duplicate_rows} duplicate, "
            f"{data_import.error_rows} errored  {data_import.filename or ''}"
        )

    logger.info(f"\nTotal imports: {len(data_imports)}")


def cmd_sweep(args, services):
    """Delete expired import sessions, once or until interrupted."""
    scheduler = services.cleanup_scheduler()

    if not args.watch:
        deleted = scheduler.sweep_once()
        logger.info(f"Deleted {deleted} expired session(s), {len(services.sessions)} active")
        return

    logger.info(
        f"Sweeping expired sessions every {scheduler.interval_seconds}s. "
        "Press Ctrl-C to stop."
    )
    scheduler.start()
    try:
        while scheduler.running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("\nStopping...")
    finally:
        scheduler.stop()


def _add_owner_argument(parser):
    parser.add_argument("--owner", required=True, help="Owner identity")


def _add_import_options(parser):
    parser.add_argument(
        "--allow-duplicates",
        action="store_true",
        help="Import rows that match an existing trade",
    )
    parser.add_argument(
        "--default-commission",
        help="Commission for rows without one (default: per-contract rate)",
    )
    parser.add_argument(
        "--create-strategies",
        action="store_true",
        help="Create strategies named in the file that do not exist yet",
    )
    parser.add_argument(
        "--map",
        action="append",
        metavar="FIELD=HEADER",
        help="Read FIELD from the column named HEADER (repeatable)",
    )


def setup_parser(subparsers):
    """Setup imports subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "imports",
        help="Import trade logs",
        description="Upload, preview and import broker trade logs",
    )

    imports_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available import commands",
        dest="subcommand",
        required=True,
    )

    # imports upload
    upload_parser = imports_subparsers.add_parser(
        "upload",
        help="Stage a trade log and open an import session",
        description=f"Accepted extensions: {', '.join(supported_extensions())}",
    )
    upload_parser.add_argument("file", help="Path to the trade log")
    _add_owner_argument(upload_parser)
    upload_parser.set_defaults(func=cmd_upload)

    # imports preview
    preview_parser = imports_subparsers.add_parser(
        "preview", help="Show what an import would do without saving"
    )
    preview_parser.add_argument("session_id", help="Import session ID")
    _add_owner_argument(preview_parser)
    _add_import_options(preview_parser)
    preview_parser.set_defaults(func=cmd_preview)

    # imports execute
    execute_parser = imports_subparsers.add_parser(
        "execute", help="Import the session's trades"
    )
    execute_parser.add_argument("session_id", help="Import session ID")
    _add_owner_argument(execute_parser)
    _add_import_options(execute_parser)
    execute_parser.set_defaults(func=cmd_execute)

    # imports status
    status_parser = imports_subparsers.add_parser(
        "status", help="Show an import session"
    )
    status_parser.add_argument("session_id", help="Import session ID")
    _add_owner_argument(status_parser)
    status_parser.set_defaults(func=cmd_status)

    # imports delete
    delete_parser = imports_subparsers.add_parser(
        "delete", help="Delete an import session"
    )
    delete_parser.add_argument("session_id", help="Import session ID")
    _add_owner_argument(delete_parser)
    delete_parser.set_defaults(func=cmd_delete)

    # imports history
    history_parser = imports_subparsers.add_parser(
        "history", help="List executed imports"
    )
    _add_owner_argument(history_parser)
    history_parser.set_defaults(func=cmd_history)

    # imports sweep
    sweep_parser = imports_subparsers.add_parser(
        "sweep", help="Delete expired import sessions"
    )
    sweep_parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep sweeping on the configured interval until Ctrl-C",
    )
    sweep_parser.set_defaults(func=cmd_sweep)
