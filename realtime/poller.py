# ============================================================================
# JOB SNAPSHOT POLLER
# ============================================================================
# STATUS: Realtime - Polling fallback for the change feed
# PURPOSE: Re-fetch the owner's jobs and diff against the last snapshot
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Snapshot Poller

When the live channel is unavailable the change feed asks the poller for
synthetic events. Each poll re-fetches the owner's jobs through a
JobReader (so visibility scoping is the same owner-only scoping the live
sources use) and compares them with the previous snapshot:

    new job                   -> jobs INSERT
    job status changed        -> jobs UPDATE (old row attached)
    new step, notable status  -> job_steps UPDATE
    step status changed       -> job_steps UPDATE (old row attached)

The snapshot is owned by this instance alone and is replaced wholesale on
every poll. Until the poller has been primed, the first poll only records
a baseline so jobs that already existed do not replay as new.
"""

import logging
from typing import Dict, Iterable, List, Optional

from client.base import JobReader
from core.contracts import ChangeType
from core.models import (
    ChangePayload,
    Job,
    JobChange,
    JobStep,
    JobWithSteps,
    StepChange,
)

logger = logging.getLogger(__name__)


class JobSnapshotPoller:
    """Produces synthetic change events by diffing polled job snapshots."""

    def __init__(self, reader: JobReader, limit: Optional[int] = None):
        self._reader = reader
        self._limit = limit
        self._jobs: Dict[str, Job] = {}
        self._steps: Dict[str, JobStep] = {}
        self._primed = False

    @property
    def primed(self) -> bool:
        return self._primed

    def prime(self, jobs: Iterable[JobWithSteps]) -> None:
        """Record a baseline snapshot without producing events."""
        self._replace_snapshot(jobs)
        self._primed = True

    async def poll(self) -> List:
        """
        Fetch the current jobs and return the changes since the last poll.

        Raises:
            Whatever the reader raises; the change feed logs and retries
            on its next interval.
        """
        jobs = await self._reader.list_jobs(self._limit)
        if not self._primed:
            self.prime(jobs)
            logger.debug(f"Poller primed with {len(jobs)} jobs")
            return []
        return self.diff(jobs)

    def diff(self, jobs: List[JobWithSteps]) -> List:
        """Compare jobs with the snapshot, then make them the new snapshot."""
        events: List = []

        for job in jobs:
            previous_job = self._jobs.get(job.id)
            current_job = job.as_job()

            if previous_job is None:
                events.append(self._job_event(ChangeType.INSERT, current_job, None))
            elif previous_job.status != current_job.status:
                events.append(self._job_event(ChangeType.UPDATE, current_job, previous_job))

            for step in job.steps:
                previous_step = self._steps.get(step.id)
                if previous_step is None:
                    if step.status.is_notable():
                        events.append(self._step_event(step, None))
                elif previous_step.status != step.status:
                    events.append(self._step_event(step, previous_step))

        self._replace_snapshot(jobs)
        if events:
            logger.debug(f"Poll produced {len(events)} synthetic events")
        return events

    def _replace_snapshot(self, jobs: Iterable[JobWithSteps]) -> None:
        job_map: Dict[str, Job] = {}
        step_map: Dict[str, JobStep] = {}
        for job in jobs:
            job_map[job.id] = job.as_job()
            for step in job.steps:
                step_map[step.id] = step.model_copy()
        self._jobs = job_map
        self._steps = step_map

    @staticmethod
    def _job_event(event_type: ChangeType, new: Job, old: Optional[Job]) -> JobChange:
        return JobChange(
            payload=ChangePayload[Job](event_type=event_type, new=new, old=old),
            is_synthetic=True,
        )

    @staticmethod
    def _step_event(new: JobStep, old: Optional[JobStep]) -> StepChange:
        return StepChange(
            payload=ChangePayload[JobStep](event_type=ChangeType.UPDATE, new=new, old=old),
            is_synthetic=True,
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["JobSnapshotPoller"]
