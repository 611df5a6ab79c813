"""Courier database management CLI.

Creates and drops the event, audit and rule tables for the configured
providers. Only SQL providers (the ``production`` overlay) are touched; the
default memory provider needs no schema.

Usage:
    PROTEAN_ENV=production python src/manage.py setup-db   # Create all tables
    PROTEAN_ENV=production python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    """Create the courier schema."""
    from courier.domain import courier
    from courier.utils.db import setup_db

    print("Initializing courier domain...")
    courier.init()
    print("Creating courier database schema...")
    touched = setup_db(courier)
    print(f"  schema ready for: {', '.join(touched) or 'no SQL providers'}.")
    print("Done.")
    return touched


def drop_database():
    """Drop the courier schema."""
    from courier.domain import courier
    from courier.utils.db import drop_db

    print("Initializing courier domain...")
    courier.init()
    print("Dropping courier database schema...")
    touched = drop_db(courier)
    print(f"  schema dropped for: {', '.join(touched) or 'no SQL providers'}.")
    print("Done.")
    return touched


def main(argv=None):
    parser = argparse.ArgumentParser(description="Courier database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
