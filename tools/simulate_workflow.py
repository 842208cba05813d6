#!/usr/bin/env python3
# ============================================================================
# CLI WORKFLOW SIMULATOR
# ============================================================================
# STATUS: Tool - Act as the external workflow engine
# PURPOSE: Create a job and advance its steps through the jobs API
# CREATED: 18 OCT 2026
# ============================================================================
"""
Drive a job through its lifecycle the way the workflow engine does, using
the service role. Pair with tools/watch_jobs.py to see the notifications.

Usage:
    # Happy path for a user
    python tools/simulate_workflow.py --user-email reader@example.com

    # Fail a step
    python tools/simulate_workflow.py --user-id <uuid> --fail-step "AI Complete"

    # Same-user duplicate (navigates to the existing resource)
    python tools/simulate_workflow.py --user-id <uuid> --duplicate same --reference-id 42

    # Workflow-level error outside any step
    python tools/simulate_workflow.py --user-id <uuid> --report-error "OpenRouter model1"

Requires:
    JWT_SECRET (to mint a service token) or --token
"""

import argparse
import asyncio
import os
import sys
import time
import uuid

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import jwt

from client import JobsApiClient, JobsApiError
from core.config import get_defaults


DEFAULT_STEPS = [
    "Duplicates Check",
    "Content Type Detection",
    "Content Extracted",
    "AI Complete",
    "Database Save",
]


def mint_service_token(ttl_seconds: int = 3600) -> str:
    """Sign a short-lived service role token with JWT_SECRET."""
    auth = get_defaults().auth
    if not auth.jwt_secret:
        print("ERROR: set JWT_SECRET or pass --token", file=sys.stderr)
        sys.exit(1)
    now = int(time.time())
    claims = {"role": auth.service_role, "iat": now, "exp": now + ttl_seconds}
    if auth.jwt_audience:
        claims["aud"] = auth.jwt_audience
    return jwt.encode(claims, auth.jwt_secret, algorithm=auth.jwt_algorithm)


def build_steps(args) -> list:
    steps = [{"name": name, "type": "task", "order": i + 1} for i, name in enumerate(DEFAULT_STEPS)]
    if args.duplicate == "same":
        steps.insert(1, {"name": "Handle Duplicates: Same User", "type": "duplicate", "order": 2})
    elif args.duplicate == "other":
        steps.insert(1, {"name": "Handle Duplicates: Different User", "type": "duplicate", "order": 2})
    for i, step in enumerate(steps):
        step["order"] = i + 1
    return steps


async def advance(client: JobsApiClient, job_id: str, name: str, status: str, delay: float, **fields) -> None:
    result = await client.update_step(job_id, name, status, **fields)
    job = result["job"]
    print(f"  {name:<40} -> {status:<9} job={job.status.value}")
    await asyncio.sleep(delay)


async def simulate(args) -> None:
    token = args.token or mint_service_token()
    execution_id = f"sim-{uuid.uuid4().hex[:8]}"

    async with JobsApiClient(args.api_url, token=token) as client:
        owner = {"user_id": args.user_id} if args.user_id else {"user_email": args.user_email}

        if args.report_error:
            error = await client.report_error(
                args.workflow,
                args.error_message,
                error_node=args.report_error,
                **owner,
            )
            print(f"Reported workflow error {error.id} at node '{error.error_node}'")
            return

        job = await client.create_job(
            args.workflow,
            build_steps(args),
            workflow_execution_id=execution_id,
            **owner,
        )
        print(f"Created job {job.id} ({len(job.steps)} steps, execution {execution_id})")
        await asyncio.sleep(args.delay)

        for step in job.steps:
            name = step.step_name

            if args.duplicate == "same" and name == "Handle Duplicates: Same User":
                await advance(client, job.id, name, "running", args.delay)
                await advance(
                    client, job.id, name, "completed", args.delay,
                    metadata={"reference_id": args.reference_id, "reference_title": args.reference_title},
                )
                # Duplicate found: the remaining steps do not run
                for rest in job.steps:
                    if rest.step_order > step.step_order:
                        await advance(client, job.id, rest.step_name, "skipped", 0)
                break

            await advance(client, job.id, name, "running", args.delay)
            if name == args.fail_step:
                await advance(client, job.id, name, "failed", args.delay, error_message=f"{name} failed in simulation")
                break
            await advance(client, job.id, name, "completed", args.delay)

        final = await client.get_job(job.id)
        progress = await client.get_progress(job.id)
        print(f"Final status: {final.status.value} ({progress['completed']}/{progress['total']} steps)")


def main():
    parser = argparse.ArgumentParser(
        description="Simulate the workflow engine against the jobs API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--api-url", "-u",
        default=os.environ.get("JOBTRACK_API_URL", "http://localhost:8000"),
        help="Jobs API base URL",
    )
    parser.add_argument("--token", "-t", help="Service role token (minted from JWT_SECRET if omitted)")
    owner = parser.add_mutually_exclusive_group(required=True)
    owner.add_argument("--user-id", help="Owner user id")
    owner.add_argument("--user-email", help="Owner email (looked up by the service)")
    parser.add_argument("--workflow", "-w", default="Add Resource", help="Workflow name")
    parser.add_argument("--delay", "-d", type=float, default=1.5, help="Seconds between updates")
    parser.add_argument("--fail-step", help="Step name to fail")
    parser.add_argument("--duplicate", choices=["same", "other"], help="Insert a duplicate-handling step")
    parser.add_argument("--reference-id", default="1", help="Existing resource id for --duplicate same")
    parser.add_argument("--reference-title", default="Existing resource", help="Existing resource title")
    parser.add_argument("--report-error", metavar="NODE", help="Report a workflow error at NODE instead")
    parser.add_argument(
        "--error-message",
        default="Workflow execution failed",
        help="Message for --report-error",
    )
    args = parser.parse_args()

    try:
        asyncio.run(simulate(args))
    except JobsApiError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
