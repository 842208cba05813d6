# ============================================================================
# JOB READER INTERFACE
# ============================================================================
# STATUS: Consumer - Read access used by poller, dispatcher and monitor
# PURPOSE: Owner-scoped reads of jobs with steps, independent of transport
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Reader

The consumer side of the system only ever reads jobs. Everything that
needs job state (the snapshot poller, the notification dispatcher, the
job monitor) depends on this interface, so the same session logic runs
against the HTTP API or directly against the service layer.

Every implementation is scoped to one user: jobs of other users are
never returned.
"""

import abc
from typing import List, Optional

from core.models import JobWithSteps


class JobReader(metaclass=abc.ABCMeta):
    """Owner-scoped read access to jobs."""

    @abc.abstractmethod
    async def list_jobs(self, limit: Optional[int] = None) -> List[JobWithSteps]:
        """The owner's most recent jobs, newest first, steps embedded."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_job(self, job_id: str) -> Optional[JobWithSteps]:
        """One job with steps, or None if missing or not owned."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release resources (no-op by default)."""
        pass


__all__ = ["JobReader"]
