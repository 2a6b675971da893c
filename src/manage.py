"""Custody database management CLI.

Provides commands to create and drop the database schema of the custody
domain, reusing the setup_db/drop_db utilities defined alongside it.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    """Create the database schema for the custody domain."""
    from custody.domain import custody
    from custody.utils.db import setup_db

    print("Initializing custody domain...")
    custody.init()
    print("Creating custody database schema...")
    setup_db(custody)
    print("  custody schema ready.")

    print("Done.")


def drop_database():
    """Drop the database schema of the custody domain."""
    from custody.domain import custody
    from custody.utils.db import drop_db

    print("Initializing custody domain...")
    custody.init()
    print("Dropping custody database schema...")
    drop_db(custody)
    print("  custody schema dropped.")

    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Custody database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
