#!/usr/bin/env python3
"""
Fillbook CLI - Import broker trade logs into a local trade journal.

Usage:
    python -m cli <command> <subcommand> [options]

Commands:
    imports      Upload, preview and import trade logs
    trades       Browse imported trades
    migrate      Database migrations

Examples:
    python -m cli migrate apply
    python -m cli imports upload "NinjaTrader Grid.csv" --owner alice
    python -m cli imports preview <session-id> --owner alice
    python -m cli imports execute <session-id> --owner alice --create-strategies
    python -m cli trades list --owner alice
"""

import sys
import argparse
from cli import imports, trades, migrate
from config import load_config
from services.base import Services
from db.manager import DatabaseManager
from logger import setup_logging


def main():
    """Main CLI entry point with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cli",
        description="Fillbook - Trade log import and journal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Create subparsers for each command
    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    # Register each command's subparser
    imports.setup_parser(subparsers)
    trades.setup_parser(subparsers)
    migrate.setup_parser(subparsers)

    # Parse arguments and execute
    args = parser.parse_args()

    # Call the appropriate handler function
    if hasattr(args, "func"):
        try:
            # Load configuration
            config = load_config()

            # Set up logging
            setup_logging(config)

            # Migrate commands need db_manager for raw database operations
            if args.command == "migrate":
                args.func(args, DatabaseManager(config))
            else:
                args.func(args, Services(config))
        except Exception as e:
            print(f"Error: {e}")
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
