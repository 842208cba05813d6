# ============================================================================
# IN-PROCESS JOB READER
# ============================================================================
# STATUS: Consumer - JobReader over the service layer
# PURPOSE: Read one user's jobs without an HTTP hop (watch_jobs --direct)
# CREATED: 18 OCT 2026
# EXPORTS: ServiceJobReader
# ============================================================================
"""JobReader backed directly by the service layer (same process)."""

from typing import List, Optional

from core.models import JobWithSteps
from services import Caller, JobService, NotFoundOrDenied
from .base import JobReader


class ServiceJobReader(JobReader):
    """Reads one user's jobs through JobService, no HTTP hop."""

    def __init__(self, job_service: JobService, user_id: str):
        self._service = job_service
        self._caller = Caller.user(user_id)

    async def list_jobs(self, limit: Optional[int] = None) -> List[JobWithSteps]:
        return await self._service.list_jobs(self._caller, limit=limit)

    async def get_job(self, job_id: str) -> Optional[JobWithSteps]:
        try:
            return await self._service.get_job(self._caller, job_id)
        except NotFoundOrDenied:
            return None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["ServiceJobReader"]
