"""Checkout database management CLI.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys

from checkout.config import get_settings
from checkout.utils.db import drop_db, init_db, setup_db
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def setup_database(database_uri: str | None = None) -> None:
    """Create the checkout schema."""
    uri = database_uri or get_settings().database_uri
    init_db(uri)
    print("Creating checkout database schema...")
    setup_db()
    logger.info("Checkout schema created", database_uri=uri)
    print("Done.")


def drop_database(database_uri: str | None = None) -> None:
    """Drop the checkout schema."""
    uri = database_uri or get_settings().database_uri
    init_db(uri)
    print("Dropping checkout database schema...")
    drop_db()
    logger.info("Checkout schema dropped", database_uri=uri)
    print("Done.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Checkout database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("setup-db", "Create all database tables"), ("drop-db", "Drop all database tables")):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument(
            "--database-url",
            default=None,
            help="SQLAlchemy database URL (default: DATABASE_URL or sqlite:///checkout.db)",
        )

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_database(args.database_url)
    elif args.command == "drop-db":
        drop_database(args.database_url)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
