"""Marketplace management CLI.

Creates and drops the database schema and runs the daily delivery sweep.

Usage:
    python src/manage.py setup-db                  # Create all tables
    python src/manage.py drop-db                   # Drop all tables
    python src/manage.py auto-confirm-deliveries   # Confirm overdue deliveries
"""

import argparse
import sys


def setup_database():
    """Create the marketplace database schema."""
    from marketplace.domain import marketplace
    from marketplace.utils.db import setup_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Creating marketplace database schema...")
    setup_db(marketplace)
    print("Done.")


def drop_database():
    """Drop the marketplace database schema."""
    from marketplace.domain import marketplace
    from marketplace.utils.db import drop_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Dropping marketplace database schema...")
    drop_db(marketplace)
    print("Done.")


def auto_confirm_deliveries(threshold_days=None):
    """Confirm deliveries the seller marked delivered long enough ago."""
    from marketplace.domain import marketplace
    from marketplace.suborder.delivery import AutoConfirmDeliveries
    from marketplace.utils.logging import configure_logging

    configure_logging()
    marketplace.init()
    with marketplace.domain_context():
        confirmed = marketplace.process(AutoConfirmDeliveries(threshold_days=threshold_days), asynchronous=False)
    print(f"Auto-confirmed {confirmed} deliveries.")


def main():
    parser = argparse.ArgumentParser(description="Marketplace management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    sweep_parser = subparsers.add_parser("auto-confirm-deliveries", help="Confirm overdue deliveries")
    sweep_parser.add_argument(
        "--threshold-days",
        type=int,
        default=None,
        help="Days after the seller marked delivery (default: configured threshold)",
    )

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "auto-confirm-deliveries":
        auto_confirm_deliveries(args.threshold_days)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
