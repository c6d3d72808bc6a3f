"""Storefront management CLI.

Creates and drops database schemas and exposes the periodic jobs an
external scheduler (cron, K8s CronJob) should run.

Usage:
    python src/manage.py setup-db                  # Create domain and webhook ledger tables
    python src/manage.py drop-db                   # Drop them
    python src/manage.py expire-payments           # Expire payment attempts past their window
    python src/manage.py purge-webhooks --days 90  # Apply webhook ledger retention
"""

import argparse
import sys
from datetime import timedelta


def _domain():
    from storefront.domain import storefront

    storefront.init()
    return storefront


def setup_databases():
    from storefront.utils.db import setup_db

    domain = _domain()
    print("Creating storefront database schema...")
    setup_db(domain)
    print("Done.")


def drop_databases():
    from storefront.utils.db import drop_db

    domain = _domain()
    print("Dropping storefront database schema...")
    drop_db(domain)
    print("Done.")


def expire_payments():
    from storefront.order.expiry import expire_stale_payments

    domain = _domain()
    with domain.domain_context():
        expired = expire_stale_payments()
    print(f"Expired {len(expired)} payment attempt(s).")
    return expired


def purge_webhooks(days: int):
    from storefront.ledger import get_ledger
    from storefront.utils.clock import utc_now

    domain = _domain()
    with domain.domain_context():
        removed = get_ledger().purge_older_than(utc_now() - timedelta(days=days))
    print(f"Removed {removed} webhook ledger entr{'y' if removed == 1 else 'ies'} older than {days} days.")
    return removed


def main(argv=None):
    from storefront.config import get_settings
    from storefront.utils.logging import configure_logging

    configure_logging()

    parser = argparse.ArgumentParser(description="Storefront management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("expire-payments", help="Expire stale payment attempts")

    purge_parser = subparsers.add_parser("purge-webhooks", help="Delete old webhook ledger entries")
    purge_parser.add_argument(
        "--days",
        type=int,
        default=get_settings().ledger_retention_days,
        help="Retention window in days (default: %(default)s)",
    )

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "expire-payments":
        expire_payments()
    elif args.command == "purge-webhooks":
        if args.days < 1:
            parser.error("--days must be at least 1")
        purge_webhooks(args.days)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
