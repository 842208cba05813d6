# ============================================================================
# NOTIFICATION DISPATCHER
# ============================================================================
# STATUS: Notifications - Change events to user-visible notifications
# PURPOSE: Dedup transitions, apply business rules, hand off to a sink
# CREATED: 18 OCT 2026
# ============================================================================
"""
Notification Dispatcher

Turns change events (live or synthetic) into at most one notification per
transition. A transition is identified by a dedup key:

    job created           {job_id}:job:created
    job failed            {job_id}:job:failed
    step status reached   {job_id}:{step_id}:{status}
    workflow error        error:{error_id}

Live and polled events share the same seen-key set, so a transition seen
through both transports is notified once.

Step rules (evaluated against a freshly fetched job with steps):
    - job missing, not owned or already failed: nothing
    - same-user duplicate completed: "Resource Already Available",
      navigate to the existing resource after a short delay
    - other-user duplicate completed: silent
    - other-user duplicate failed: "Failed to process resource"
    - last step completed: success message, refresh after a short delay
    - otherwise: running / failed / "Currently running step: <next>"

Fetch failures are logged and the event is skipped; the key is released
so a later event for the same transition can still notify.
"""

import abc
import asyncio
import logging
from typing import Dict, Iterable, Optional, Set

from client.base import JobReader
from core.config import NotificationDefaults
from core.contracts import (
    ChangeType,
    JobStatus,
    NotificationKind,
    NotificationVariant,
    StepOutcome,
    StepStatus,
)
from core.logging import log_context
from core.models import (
    FollowUp,
    FollowUpAction,
    JobChange,
    JobStep,
    JobWithSteps,
    Notification,
    StepChange,
    WorkflowErrorChange,
)
from engine import compute_progress, infer_current_step
from .labels import classify_step_outcome, friendly_node_label

logger = logging.getLogger(__name__)


class NotificationSink(metaclass=abc.ABCMeta):
    """Where notifications and their follow-up actions end up."""

    @abc.abstractmethod
    async def show(self, notification: Notification) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def navigate_to_resource(self, resource_id: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def refresh(self) -> None:
        raise NotImplementedError


class JobNotificationDispatcher:
    """
    Dedup and dispatch notifications for one user's session.

    Args:
        reader: Used to fetch the job behind a step event
        user_id: Session owner; events for other users are ignored
        sink: Receives notifications and follow-up actions
        settings: Durations and follow-up delay
    """

    def __init__(
        self,
        reader: JobReader,
        user_id: str,
        sink: NotificationSink,
        settings: Optional[NotificationDefaults] = None,
    ):
        self._reader = reader
        self._user_id = user_id
        self._sink = sink
        self._settings = settings or NotificationDefaults()

        self._seen: Set[str] = set()
        self._last_job_status: Dict[str, JobStatus] = {}
        self._follow_ups: Set[asyncio.Task] = set()

    def has_seen(self, dedup_key: str) -> bool:
        return dedup_key in self._seen

    def prime(self, jobs: Iterable[JobWithSteps]) -> None:
        """Remember the statuses of already loaded jobs."""
        for job in jobs:
            self._last_job_status[job.id] = job.status

    async def handle(self, event) -> Optional[Notification]:
        """
        Process one change event.

        Returns:
            The notification shown, or None
        """
        if isinstance(event, JobChange):
            notification = self._on_job_change(event)
        elif isinstance(event, StepChange):
            notification = await self._on_step_change(event)
        elif isinstance(event, WorkflowErrorChange):
            notification = self._on_workflow_error(event)
        else:
            logger.debug(f"Ignoring event of type {type(event).__name__}")
            return None

        if notification is not None:
            await self._emit(notification)
        return notification

    async def aclose(self) -> None:
        """Cancel pending follow-up actions."""
        tasks = list(self._follow_ups)
        self._follow_ups.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # JOBS
    # =========================================================================

    def _on_job_change(self, event: JobChange) -> Optional[Notification]:
        payload = event.payload
        job = payload.new
        if job is None or not job.is_owned_by(self._user_id):
            return None

        if payload.event_type == ChangeType.INSERT:
            self._last_job_status[job.id] = job.status
            key = f"{job.id}:job:created"
            if not self._claim(key):
                return None
            return Notification(
                kind=NotificationKind.JOB_CREATED,
                title="Workflow started",
                description=f'Workflow "{job.workflow_name}" started (status: {job.status.value}).',
                duration_ms=self._settings.default_duration_ms,
                dedup_key=key,
                job_id=job.id,
            )

        if payload.event_type != ChangeType.UPDATE:
            return None

        previous = self._last_job_status.get(job.id)
        if previous is None and payload.old is not None:
            previous = payload.old.status
        self._last_job_status[job.id] = job.status
        if previous == job.status or job.status != JobStatus.FAILED:
            return None

        key = f"{job.id}:job:failed"
        if not self._claim(key):
            return None
        return Notification(
            kind=NotificationKind.JOB_FAILED,
            title="Workflow failed",
            description=job.error_message or f'Workflow "{job.workflow_name}" failed',
            variant=NotificationVariant.DESTRUCTIVE,
            duration_ms=self._settings.default_duration_ms,
            dedup_key=key,
            job_id=job.id,
        )

    # =========================================================================
    # STEPS
    # =========================================================================

    async def _on_step_change(self, event: StepChange) -> Optional[Notification]:
        payload = event.payload
        step = payload.new
        if step is None or payload.event_type != ChangeType.UPDATE:
            return None

        old = payload.old
        if old is not None and old.status == step.status:
            return None
        if not step.status.is_notable():
            return None

        key = f"{step.job_id}:{step.id}:{step.status.value}"
        if not self._claim(key):
            return None

        with log_context(job_id=step.job_id, step_name=step.step_name):
            try:
                job = await self._reader.get_job(step.job_id)
            except Exception as exc:
                self._seen.discard(key)
                logger.warning(f"Could not fetch job for step notification: {exc}")
                return None

            if job is None or not job.is_owned_by(self._user_id):
                return None
            if job.status == JobStatus.FAILED:
                logger.debug("Job already failed, step notification suppressed")
                return None

            return self._build_step_notification(job, step, key)

    def _build_step_notification(
        self,
        job: JobWithSteps,
        step: JobStep,
        key: str,
    ) -> Optional[Notification]:
        # NOTIFY may drop metadata from large rows; the fetched row has it
        current = next((s for s in job.steps if s.id == step.id), None)
        metadata = (current.metadata if current is not None else None) or step.metadata or {}
        detailed = step.model_copy(update={"metadata": metadata})
        outcome = classify_step_outcome(detailed)

        status = step.status
        title = f"Step: {step.step_name}"
        description: Optional[str] = None
        variant = NotificationVariant.DEFAULT
        follow_up: Optional[FollowUp] = None

        if status == StepStatus.RUNNING:
            description = "Running..."

        elif status == StepStatus.FAILED:
            title = f"Step failed: {step.step_name}"
            variant = NotificationVariant.DESTRUCTIVE
            if outcome == StepOutcome.DUPLICATE_OTHER_USER:
                description = "Failed to process resource"
            else:
                description = step.error_message or "Failed."

        elif outcome == StepOutcome.DUPLICATE_SAME_USER:
            title = "Resource Already Available"
            variant = NotificationVariant.PRIMARY
            reference_id = metadata.get("reference_id")
            reference_title = metadata.get("reference_title")
            if reference_title:
                description = f"Resource already in your collection: {reference_title}"
            else:
                description = "Resource already in your collection"
            if reference_id is not None:
                follow_up = FollowUp(
                    action=FollowUpAction.NAVIGATE_TO_RESOURCE,
                    delay_ms=self._settings.follow_up_delay_ms,
                    resource_id=str(reference_id),
                )

        elif outcome == StepOutcome.DUPLICATE_OTHER_USER:
            logger.debug(f"Other-user duplicate handled silently ({key})")
            return None

        else:
            title = f"Step completed: {step.step_name}"
            variant = NotificationVariant.SUCCESS
            if compute_progress(job.steps).is_complete:
                description = "Resource successfully added to your collection"
                follow_up = FollowUp(
                    action=FollowUpAction.REFRESH,
                    delay_ms=self._settings.follow_up_delay_ms,
                )
            else:
                next_step = infer_current_step(job.steps)
                if next_step is not None:
                    description = f"Currently running step: {next_step.step_name}"

        return Notification(
            kind=NotificationKind.STEP_UPDATED,
            title=title,
            description=description,
            variant=variant,
            duration_ms=self._settings.duration_for(status == StepStatus.RUNNING),
            dedup_key=key,
            job_id=job.id,
            step_id=step.id,
            follow_up=follow_up,
        )

    # =========================================================================
    # WORKFLOW ERRORS
    # =========================================================================

    def _on_workflow_error(self, event: WorkflowErrorChange) -> Optional[Notification]:
        payload = event.payload
        error = payload.new
        if payload.event_type != ChangeType.INSERT or error is None:
            return None
        if error.user_id != self._user_id:
            return None

        key = f"error:{error.id}"
        if not self._claim(key):
            return None
        return Notification(
            kind=NotificationKind.WORKFLOW_ERROR,
            title=f"Workflow Error: {friendly_node_label(error.error_node or 'Node Failed')}",
            description=error.error_message or "An error occurred during workflow execution",
            variant=NotificationVariant.DESTRUCTIVE,
            duration_ms=self._settings.default_duration_ms,
            dedup_key=key,
        )

    # =========================================================================
    # DELIVERY
    # =========================================================================

    def _claim(self, key: str) -> bool:
        if key in self._seen:
            logger.debug(f"Already notified {key}")
            return False
        self._seen.add(key)
        return True

    async def _emit(self, notification: Notification) -> None:
        logger.info(f"Notify [{notification.variant.value}] {notification.title}")
        try:
            await self._sink.show(notification)
        except Exception:
            logger.exception(f"Notification sink failed for {notification.dedup_key}")
            return

        if notification.follow_up is not None:
            task = asyncio.create_task(self._run_follow_up(notification.follow_up))
            self._follow_ups.add(task)
            task.add_done_callback(self._follow_ups.discard)

    async def _run_follow_up(self, follow_up: FollowUp) -> None:
        await asyncio.sleep(follow_up.delay_ms / 1000)
        try:
            if follow_up.action == FollowUpAction.NAVIGATE_TO_RESOURCE:
                await self._sink.navigate_to_resource(follow_up.resource_id)
            else:
                await self._sink.refresh()
        except Exception:
            logger.exception(f"Follow-up {follow_up.action.value} failed")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["NotificationSink", "JobNotificationDispatcher"]
