#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# PURPOSE: Deploy the jobtrack schema to PostgreSQL using PydanticToSQL
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
# ============================================================================

import sys
import os
import argparse
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import psycopg

from core.config import get_defaults
from core.logging import configure_logging
from core.schema import PydanticToSQL
from repositories.database import SCHEMA, get_connection_string, mask_conninfo


def main():
    defaults = get_defaults()

    parser = argparse.ArgumentParser(
        description="Deploy the jobtrack schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/deploy_schema.py --dry-run     # Print DDL without executing
  python scripts/deploy_schema.py               # Deploy schema and notify triggers

Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  POSTGRES_PORT         Database port (default: 5432)
        """
    )
    parser.add_argument("--dry-run", action="store_true", help="Print DDL without executing")
    parser.add_argument(
        "--channel",
        default=defaults.realtime.notify_channel,
        help="NOTIFY channel the change triggers publish on",
    )
    parser.add_argument("--connection", type=str, help="PostgreSQL connection string (overrides environment)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    generator = PydanticToSQL(schema_name=SCHEMA)

    print("=" * 70)
    print("JOBTRACK - Schema Deployment")
    print("=" * 70)

    if args.dry_run:
        statements = generator.generate_all(notify_channel=args.channel)
        for i, stmt in enumerate(statements, 1):
            print(f"-- Statement {i}")
            print(f"{stmt.as_string(None)};")
            print()
        print("=" * 70)
        print(f"DRY RUN: {len(statements)} statements, nothing executed")
        return

    conninfo = args.connection or get_connection_string()
    print(f"Target: {mask_conninfo(conninfo)}")
    print(f"Schema: {SCHEMA}  Channel: {args.channel}")

    try:
        with psycopg.connect(conninfo) as conn:
            count = generator.execute(conn, notify_channel=args.channel)
    except psycopg.Error as e:
        print(f"Deployment failed: {e}")
        sys.exit(1)

    print("=" * 70)
    print(f"Deployment completed: {count} statements executed")
    print("=" * 70)


if __name__ == "__main__":
    main()
