#!/usr/bin/env python3
# ============================================================================
# CLI JOB WATCHER
# ============================================================================
# STATUS: Tool - Live job notifications in the terminal
# PURPOSE: Run a JobMonitor against the jobs API and print notifications
# CREATED: 18 OCT 2026
# ============================================================================
"""
Watch one user's jobs and print every notification the session produces.

Reads go through the jobs API (httpx), or straight through the service
layer with --direct. Live changes come from PostgreSQL
LISTEN/NOTIFY when a database URL is available, otherwise the session runs
in poll-only mode.

Usage:
    # Live channel + polling fallback
    python tools/watch_jobs.py --token $USER_TOKEN --database-url $DATABASE_URL

    # Poll-only
    python tools/watch_jobs.py --token $USER_TOKEN --poll-only --poll-interval 2000

    # Read straight from the database instead of the API
    python tools/watch_jobs.py --user-id $USER_ID --direct --database-url $DATABASE_URL

Requires:
    A user bearer token (the "sub" claim is the user id), or --user-id
    with --direct
"""

import argparse
import asyncio
import os
import sys
from dataclasses import replace

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import jwt

from client import JobReader, JobsApiClient, ServiceJobReader
from core.config import get_defaults
from core.logging import configure_logging
from core.models import Notification
from notifications import JobMonitor, NotificationSink
from realtime import PostgresNotifyTransport
from repositories import DatabasePool
from services import JobService


class ConsoleSink(NotificationSink):
    """Prints notifications and follow-up actions."""

    MARKERS = {
        "default": "[i]",
        "success": "[+]",
        "primary": "[*]",
        "destructive": "[!]",
    }

    async def show(self, notification: Notification) -> None:
        marker = self.MARKERS.get(notification.variant.value, "[ ]")
        print(f"{marker} {notification.title}")
        if notification.description:
            print(f"    {notification.description}")

    async def navigate_to_resource(self, resource_id: str) -> None:
        print(f"--> open resource {resource_id}")

    async def refresh(self) -> None:
        print("--> refresh job view")


async def run_monitor(reader: JobReader, transport, user_id: str, realtime, notifications, source: str) -> None:
    monitor = JobMonitor(reader, transport, user_id, ConsoleSink(), realtime, notifications)

    print("=" * 60)
    print(f"Watching jobs for {user_id}")
    print(f"  Reads: {source}")
    print(f"  Mode: {'poll-only' if transport is None else 'LISTEN/NOTIFY + polling fallback'}")
    print("=" * 60)

    try:
        await monitor.start()
        for job in monitor.active_jobs:
            print(f"  active: {job.workflow_name} ({job.status.value}) {job.id}")

        last_mode = None
        while True:
            await asyncio.sleep(1)
            state = monitor.state
            if state.mode != last_mode:
                detail = f" ({state.error})" if state.error else ""
                print(f"~~ connection: {state.mode.value}{detail}")
                last_mode = state.mode
    finally:
        await monitor.aclose()
        if transport is not None:
            await transport.disconnect()


async def watch(args) -> None:
    defaults = get_defaults()
    realtime = replace(defaults.realtime, poll_interval_ms=args.poll_interval)

    user_id = args.user_id
    if not user_id and args.token:
        user_id = jwt.decode(args.token, options={"verify_signature": False}).get("sub")
    if not user_id:
        print("ERROR: no user id; pass --user-id or a token with a subject", file=sys.stderr)
        sys.exit(1)

    needs_database = args.direct or not args.poll_only
    if needs_database and not args.database_url:
        print("ERROR: --database-url (or DATABASE_URL) is required for --direct or the live channel", file=sys.stderr)
        sys.exit(1)

    transport = None
    if not args.poll_only:
        transport = PostgresNotifyTransport(args.database_url, channel=realtime.notify_channel)

    if args.direct:
        async with DatabasePool(connection_string=args.database_url) as pool:
            reader = ServiceJobReader(JobService(pool, defaults.jobs), user_id)
            await run_monitor(reader, transport, user_id, realtime, defaults.notifications, "database (direct)")
        return

    reader = JobsApiClient(args.api_url, token=args.token)
    try:
        await run_monitor(reader, transport, user_id, realtime, defaults.notifications, args.api_url)
    finally:
        await reader.aclose()


def main():
    parser = argparse.ArgumentParser(
        description="Print job notifications for one user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--api-url", "-u",
        default=os.environ.get("JOBTRACK_API_URL", "http://localhost:8000"),
        help="Jobs API base URL",
    )
    parser.add_argument(
        "--token", "-t",
        default=os.environ.get("JOBTRACK_TOKEN"),
        help="User bearer token",
    )
    parser.add_argument("--user-id", help="Override the user id taken from the token")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="PostgreSQL URL for LISTEN/NOTIFY",
    )
    parser.add_argument("--poll-only", action="store_true", help="Do not use the live channel")
    parser.add_argument(
        "--direct",
        action="store_true",
        help="Read jobs through the service layer on --database-url instead of the API",
    )
    parser.add_argument(
        "--poll-interval",
        type=int,
        default=get_defaults().realtime.poll_interval_ms,
        help="Polling interval in ms",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if not args.token and not (args.direct and args.user_id):
        print("ERROR: --token (or JOBTRACK_TOKEN) is required unless --direct --user-id", file=sys.stderr)
        sys.exit(1)

    configure_logging(level="DEBUG" if args.verbose else "WARNING")

    try:
        asyncio.run(watch(args))
    except KeyboardInterrupt:
        print("\nStopped")


if __name__ == "__main__":
    main()
