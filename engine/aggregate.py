# ============================================================================
# JOB AGGREGATE STATE MACHINE
# ============================================================================
# STATUS: Core - Job status derivation from step states
# PURPOSE: One canonical algorithm shared by the API and the job monitor
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Aggregate State Machine

Given a job and its steps, decides whether the job's status should change.
The same functions run server-side after every step update and
consumer-side when reasoning about synthetic poll events, so both always
agree.

Derivation (applied after any step update):
    1. A terminal job (completed, failed, cancelled) never changes.
    2. Any failed step                    -> FAILED
    3. Every step completed/failed/skipped -> COMPLETED
    4. Job pending and any step past pending -> RUNNING
    5. Otherwise no change

The evaluator is stateless - it takes a job and its steps as input and
returns decisions. apply_job_transition() is the only mutating helper.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from core.contracts import JobStatus, StepStatus, utc_now
from core.models import Job, JobStep, JobProgress

logger = logging.getLogger(__name__)


# ============================================================================
# STATUS DERIVATION
# ============================================================================

def derive_job_status(
    current: JobStatus,
    step_statuses: Iterable[StepStatus],
) -> JobStatus:
    """
    Derive the job status implied by its steps.

    Args:
        current: The job's current status
        step_statuses: Status of every step of the job

    Returns:
        The new status, or current when nothing changes
    """
    if current.is_terminal():
        return current

    statuses = list(step_statuses)
    if not statuses:
        return current

    if any(s == StepStatus.FAILED for s in statuses):
        return JobStatus.FAILED
    if all(s.is_terminal() for s in statuses):
        return JobStatus.COMPLETED
    if current == JobStatus.PENDING and any(s != StepStatus.PENDING for s in statuses):
        return JobStatus.RUNNING
    return current


@dataclass(frozen=True)
class JobTransition:
    """A decided change to a job's status and timestamps."""
    old_status: JobStatus
    new_status: JobStatus
    set_started_at: bool
    set_completed_at: bool


def evaluate_job_transition(job: Job, steps: Sequence[JobStep]) -> Optional[JobTransition]:
    """
    Decide the transition a job should make after a step update.

    started_at is set the first time the job leaves pending, even when it
    jumps straight to a terminal status.

    Returns:
        JobTransition, or None when the job stays as it is
    """
    new_status = derive_job_status(job.status, (s.status for s in steps))
    if new_status == job.status:
        return None

    return JobTransition(
        old_status=job.status,
        new_status=new_status,
        set_started_at=job.started_at is None,
        set_completed_at=new_status.is_terminal(),
    )


def apply_job_transition(
    job: Job,
    transition: JobTransition,
    now: Optional[datetime] = None,
) -> Job:
    """Apply a transition to the job in place and return it."""
    now = now or utc_now()
    job.status = transition.new_status
    if transition.set_started_at:
        job.started_at = now
    if transition.set_completed_at:
        job.completed_at = now
    logger.debug(
        f"Job {job.id}: {transition.old_status.value} -> {transition.new_status.value}"
    )
    return job


def finalize_job(
    job: Job,
    steps: Sequence[JobStep],
    now: Optional[datetime] = None,
) -> Optional[JobTransition]:
    """
    Evaluate and apply in one call.

    Returns:
        The applied transition, or None when nothing changed
    """
    transition = evaluate_job_transition(job, steps)
    if transition is not None:
        apply_job_transition(job, transition, now)
    return transition


# ============================================================================
# PROGRESS
# ============================================================================

def compute_progress(steps: Sequence[JobStep]) -> JobProgress:
    """Completed and skipped steps count as done."""
    return JobProgress.from_steps(list(steps))


def infer_current_step(steps: Sequence[JobStep]) -> Optional[JobStep]:
    """
    Infer the step the user should see as "current".

    1. The lowest-order running step.
    2. Else the lowest-order pending step ordered after every terminal
       step. Lower-order pending steps left behind by a branch are not next.
    3. Else the lowest-order step that is running or pending.

    Returns:
        The inferred step, or None when every step is terminal
    """
    ordered: List[JobStep] = sorted(steps, key=lambda s: s.step_order)

    for step in ordered:
        if step.status == StepStatus.RUNNING:
            return step

    terminal_orders = [s.step_order for s in ordered if s.status.is_terminal()]
    frontier = max(terminal_orders) if terminal_orders else None

    for step in ordered:
        if step.status != StepStatus.PENDING:
            continue
        if frontier is None or step.step_order > frontier:
            return step

    for step in ordered:
        if step.status in (StepStatus.RUNNING, StepStatus.PENDING):
            return step
    return None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "derive_job_status",
    "JobTransition",
    "evaluate_job_transition",
    "apply_job_transition",
    "finalize_job",
    "compute_progress",
    "infer_current_step",
]
