#!/usr/bin/env python3
"""
Create the brokerage tables (brokers, products, clients, offers, policies,
commissions, activity_logs) in the database named by DATABASE_URL.

Does NOT drop existing tables. Optionally seeds a first administrator broker
record with --seed-admin EMAIL.
"""

from __future__ import annotations

import argparse
import os
import sys
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

# Make sure src is on sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

from src.database.postgres_real import BrokerageDB
from src.integrations.contracts.interfaces import Broker, Role


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--seed-admin", metavar="EMAIL", help="create an ADMINISTRATOR broker record with this email")
    args = parser.parse_args()

    url = os.environ.get("DATABASE_URL")
    if not url:
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1

    try:
        db = BrokerageDB(connection_string=url)

        with db.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("Database connection OK")

        # Only missing tables are created
        db.create_tables()
        tables = inspect(db.engine).get_table_names()
        print("Brokerage tables now exist:", sorted(tables))

        if args.seed_admin:
            if any(b.email == args.seed_admin for b in db.list_brokers()):
                print(f"Administrator {args.seed_admin} already exists")
            else:
                admin = db.create_broker(
                    Broker(
                        first_name="System",
                        last_name="Administrator",
                        email=args.seed_admin,
                        commission_rate=Decimal("0"),
                        role=Role.ADMINISTRATOR,
                    )
                )
                print(f"Created administrator broker id={admin.id}")
        return 0

    except OperationalError as e:
        print(f"Failed to connect to database: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
