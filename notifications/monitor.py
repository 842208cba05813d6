# ============================================================================
# JOB MONITOR
# ============================================================================
# STATUS: Notifications - One user's job tracking session
# PURPOSE: Load jobs, run the change feed, keep the job list and notify
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Monitor

Wires one user's session:

    JobReader ──► load_jobs() ──► poller.prime / dispatcher.prime
                                      │
    ChangeTransport ──► ReliableChangeFeed ──► _on_event
                                      │            ├─► local job list
                                      │            └─► JobNotificationDispatcher ──► sink

Sources:
    jobs             *       where user_id = owner
    job_steps        UPDATE  where user_id = owner
    workflow_errors  INSERT  where user_id = owner

Step rows get their job's user_id added by the notify trigger; the
dispatcher still checks ownership of the fetched job before notifying.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from client.base import JobReader
from core.config import NotificationDefaults, RealtimeDefaults
from core.contracts import ChangeType, utc_now
from core.logging import log_context
from core.models import (
    SOURCE_JOBS,
    SOURCE_JOB_STEPS,
    SOURCE_WORKFLOW_ERRORS,
    Job,
    JobChange,
    JobProgress,
    JobWithSteps,
)
from engine import compute_progress
from realtime import (
    ChangeSource,
    ChangeTransport,
    FeedState,
    JobSnapshotPoller,
    ReliableChangeFeed,
    SourceFilter,
)
from .dispatcher import JobNotificationDispatcher, NotificationSink

logger = logging.getLogger(__name__)


def job_sources(user_id: str) -> List[ChangeSource]:
    """The change sources one user's session subscribes to."""
    owner = SourceFilter("user_id", user_id)
    return [
        ChangeSource(SOURCE_JOBS, "jobs", "*", owner),
        ChangeSource(SOURCE_JOB_STEPS, "job_steps", ChangeType.UPDATE.value, owner),
        ChangeSource(SOURCE_WORKFLOW_ERRORS, "workflow_errors", ChangeType.INSERT.value, owner),
    ]


class JobMonitor:
    """
    Job list and notifications for one user.

    Args:
        reader: Owner-scoped job reads
        transport: Live push channel, or None for poll-only
        user_id: Session owner
        sink: Notification sink
        realtime_settings: Change feed settings
        notification_settings: Notification durations and delays
    """

    def __init__(
        self,
        reader: JobReader,
        transport: Optional[ChangeTransport],
        user_id: str,
        sink: NotificationSink,
        realtime_settings: Optional[RealtimeDefaults] = None,
        notification_settings: Optional[NotificationDefaults] = None,
    ):
        self.user_id = user_id
        self._reader = reader
        self._jobs: Dict[str, Job] = {}
        self.error: Optional[str] = None
        self.is_loading = False

        self.poller = JobSnapshotPoller(reader)
        self.dispatcher = JobNotificationDispatcher(reader, user_id, sink, notification_settings)
        self.feed = ReliableChangeFeed(
            transport,
            job_sources(user_id),
            self._on_event,
            poller=self.poller,
            settings=realtime_settings,
        )

    # =========================================================================
    # JOB LIST
    # =========================================================================

    @property
    def jobs(self) -> List[Job]:
        """Newest first."""
        return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)

    @property
    def active_jobs(self) -> List[Job]:
        return [j for j in self.jobs if j.status.is_active()]

    def recent_jobs(self, now: Optional[datetime] = None) -> List[Job]:
        """Jobs created today (UTC)."""
        today = (now or utc_now()).date()
        return [j for j in self.jobs if j.created_at.date() == today]

    async def load_jobs(self) -> List[JobWithSteps]:
        """
        Fetch the job list. A failure is recorded on self.error, not raised.

        Returns:
            The loaded jobs (empty on failure)
        """
        self.is_loading = True
        try:
            loaded = await self._reader.list_jobs()
        except Exception as exc:
            self.error = str(exc) or "Failed to load jobs"
            logger.warning(f"Failed to load jobs: {exc}")
            return []
        finally:
            self.is_loading = False

        self.error = None
        self._jobs = {job.id: job.as_job() for job in loaded}
        return loaded

    async def refresh(self) -> None:
        await self.load_jobs()

    async def get_job_progress(self, job_id: str) -> JobProgress:
        """Progress of one job; zeros when it cannot be fetched."""
        try:
            job = await self._reader.get_job(job_id)
        except Exception as exc:
            logger.warning(f"Progress lookup for {job_id} failed: {exc}")
            return JobProgress()
        if job is None:
            return JobProgress()
        return compute_progress(job.steps)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def state(self) -> FeedState:
        return self.feed.state

    async def start(self) -> None:
        with log_context(user_id=self.user_id):
            loaded = await self.load_jobs()
            if self.error is None:
                self.poller.prime(loaded)
            self.dispatcher.prime(loaded)
            await self.feed.start()
            logger.info(f"Job monitor started with {len(loaded)} jobs ({self.feed.mode.value})")

    async def aclose(self) -> None:
        await self.feed.aclose()
        await self.dispatcher.aclose()

    async def __aenter__(self) -> "JobMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def _on_event(self, event) -> None:
        if isinstance(event, JobChange):
            self._apply_job_change(event)
        await self.dispatcher.handle(event)

    def _apply_job_change(self, event: JobChange) -> None:
        payload = event.payload
        if payload.event_type == ChangeType.DELETE:
            removed = payload.old
            if removed is not None:
                self._jobs.pop(removed.id, None)
            return
        job = payload.new
        if job is not None and job.is_owned_by(self.user_id):
            self._jobs[job.id] = job


__all__ = ["JobMonitor", "job_sources"]
