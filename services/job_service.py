# ============================================================================
# JOB SERVICE
# ============================================================================
# STATUS: Core - Job lifecycle management
# PURPOSE: Create jobs, advance steps, derive job status, list and cancel
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Service

Manages the job lifecycle driven by the external workflow engine:
- Create a job with its ordered steps (compensating delete on failure)
- Update a step by (job_id, step_name) and re-derive the job status in the
  same transaction
- Read jobs with embedded steps, owner-scoped
- Cancel a job, clean up old terminal jobs, report progress
"""

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

import psycopg
from pydantic import ValidationError as PydanticValidationError
from psycopg_pool import AsyncConnectionPool

from core.config import JobDefaults
from core.contracts import JobStatus, StepStatus, utc_now
from core.logging import log_context
from core.models import Job, JobProgress, JobStep, JobWithSteps, StepDefinition
from engine import JobTransition, compute_progress, finalize_job
from repositories import JobRepository, StepRepository, UserRepository
from .errors import InvalidTransition, NotFoundOrDenied, StorageError, ValidationError
from .identity import Caller, IdentityResolver

logger = logging.getLogger(__name__)


@dataclass
class StepUpdateResult:
    """Outcome of one step update."""
    updated_step: JobStep
    job: JobWithSteps
    transition: Optional[JobTransition] = None


def _with_steps(job: Job, steps: Sequence[JobStep]) -> JobWithSteps:
    return JobWithSteps(**job.model_dump(exclude={"is_terminal"}), steps=list(steps))


class JobService:
    """Service for job lifecycle management."""

    def __init__(
        self,
        pool: AsyncConnectionPool,
        defaults: Optional[JobDefaults] = None,
    ):
        """
        Initialize job service.

        Args:
            pool: Database connection pool
            defaults: Listing and housekeeping defaults
        """
        self.pool = pool
        self.defaults = defaults or JobDefaults()
        self.job_repo = JobRepository(pool)
        self.step_repo = StepRepository(pool)
        self.user_repo = UserRepository(pool)
        self.identity = IdentityResolver(self.user_repo, self.job_repo)

    @asynccontextmanager
    async def _transaction(self):
        async with self.pool.connection() as conn:
            async with conn.transaction():
                yield conn

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_job(
        self,
        caller: Caller,
        workflow_name: Optional[str],
        steps: Optional[Sequence[Union[StepDefinition, Dict[str, Any]]]],
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        resource_id: Optional[int] = None,
        workflow_execution_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> JobWithSteps:
        """
        Create a pending job with pending steps.

        If the steps cannot be stored the job row is deleted again; a failed
        cleanup is logged, not raised.

        Raises:
            ValidationError: missing workflow_name/steps or malformed steps
            UserResolutionError: service caller named no resolvable user
            StorageError: job or step insert failed
        """
        if not workflow_name or not steps:
            raise ValidationError("workflow_name and steps are required")

        definitions = self._parse_step_definitions(steps)
        owner_id = await self.identity.resolve_owner(caller, user_id=user_id, user_email=user_email)

        job = Job(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            workflow_name=workflow_name,
            workflow_execution_id=workflow_execution_id,
            status=JobStatus.PENDING,
            metadata=metadata or {},
            resource_id=resource_id,
        )

        with log_context(job_id=job.id, user_id=owner_id):
            try:
                await self.job_repo.create(job)
            except psycopg.Error as e:
                logger.error(f"Failed to create job: {e}")
                raise StorageError("Failed to create job") from e

            job_steps = [
                JobStep(
                    id=str(uuid.uuid4()),
                    job_id=job.id,
                    step_name=d.step_name,
                    step_type=d.step_type,
                    step_order=d.step_order if d.step_order is not None else index + 1,
                    status=StepStatus.PENDING,
                    metadata=d.metadata,
                )
                for index, d in enumerate(definitions)
            ]

            try:
                await self.step_repo.create_many(job_steps)
            except psycopg.Error as e:
                logger.error(f"Failed to create steps for job {job.id}: {e}")
                await self._delete_orphaned_job(job.id)
                raise StorageError("Failed to create job steps") from e

            logger.info(f"Created job {job.id} ({workflow_name}) with {len(job_steps)} steps")
            return _with_steps(job, job_steps)

    def _parse_step_definitions(
        self,
        steps: Sequence[Union[StepDefinition, Dict[str, Any]]],
    ) -> List[StepDefinition]:
        definitions = []
        for index, raw in enumerate(steps):
            if isinstance(raw, StepDefinition):
                definitions.append(raw)
                continue
            try:
                definitions.append(StepDefinition.model_validate(raw))
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid step definition at index {index}: {e.errors()[0]['msg']}") from e

        names = [d.step_name for d in definitions]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate step names: {', '.join(duplicates)}")
        return definitions

    async def _delete_orphaned_job(self, job_id: str) -> None:
        try:
            await self.job_repo.delete(job_id)
            logger.info(f"Deleted job {job_id} after step insert failure")
        except psycopg.Error as e:
            logger.error(f"Cleanup of job {job_id} failed: {e}")

    # =========================================================================
    # STEP UPDATE
    # =========================================================================

    async def update_step(
        self,
        caller: Caller,
        job_id: Optional[str],
        step_name: Optional[str],
        status: Optional[Union[StepStatus, str]],
        error_message: Optional[str] = None,
        output_data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        workflow_execution_id: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> StepUpdateResult:
        """
        Apply an engine-reported step status and re-derive the job status.

        The job row is locked for the duration so concurrent updates of
        sibling steps see each other.

        Raises:
            ValidationError: missing job_id/step_name/status or unknown status
            NotFoundOrDenied: unknown job/step, or job not owned by the caller
            StorageError: storage failure (nothing is applied)
        """
        if not job_id or not step_name or not status:
            raise ValidationError("job_id, step_name and status are required")
        try:
            new_status = StepStatus(status)
        except ValueError as e:
            raise ValidationError(f"Invalid step status: {status}") from e

        now = utc_now()
        with log_context(job_id=job_id, step_name=step_name):
            try:
                async with self._transaction() as conn:
                    job = await self.job_repo.get(job_id, conn=conn, for_update=True)
                    if job is None or not caller.can_access(job.user_id):
                        raise NotFoundOrDenied()

                    step = await self.step_repo.get_by_name(job_id, step_name, conn=conn)
                    if step is None:
                        raise NotFoundOrDenied()

                    step.mark_status(
                        new_status,
                        error_message=error_message,
                        output_data=output_data,
                        metadata=metadata,
                        now=now,
                    )
                    await self.step_repo.update(step, conn=conn)

                    job_changed = False
                    if workflow_execution_id:
                        job.workflow_execution_id = workflow_execution_id
                        job_changed = True
                    if resource_id is not None:
                        job.resource_id = resource_id
                        job_changed = True

                    steps = await self.step_repo.list_for_job(job_id, conn=conn)
                    transition = finalize_job(job, steps, now)
                    if transition is not None or job_changed:
                        await self.job_repo.update(job, conn=conn)
            except psycopg.Error as e:
                logger.error(f"Step update failed: {e}")
                raise StorageError("Failed to update job step") from e

            if transition is not None:
                logger.info(
                    f"Job {job_id} {transition.old_status.value} -> {transition.new_status.value} "
                    f"after step {step_name} became {new_status.value}"
                )
            return StepUpdateResult(updated_step=step, job=_with_steps(job, steps), transition=transition)

    # =========================================================================
    # READ
    # =========================================================================

    async def get_job(
        self,
        caller: Caller,
        job_id: str,
        user_id: Optional[str] = None,
    ) -> JobWithSteps:
        """
        Get one job with its steps.

        A service caller that names user_id only sees that user's job.

        Raises:
            NotFoundOrDenied: job missing or not visible to the caller
        """
        job = await self.job_repo.get(job_id)
        if job is None or not caller.can_access(job.user_id):
            raise NotFoundOrDenied()
        if caller.is_service and user_id and job.user_id != user_id:
            raise NotFoundOrDenied()

        steps = await self.step_repo.list_for_job(job_id)
        return _with_steps(job, steps)

    async def list_jobs(
        self,
        caller: Caller,
        user_id: Optional[str] = None,
        status: Optional[Union[JobStatus, str]] = None,
        limit: Optional[int] = None,
    ) -> List[JobWithSteps]:
        """
        List jobs (newest first) with embedded steps.

        Raises:
            ValidationError: service caller without user_id, bad status or limit
        """
        owner_id = self._listing_owner(caller, user_id)

        status_filter = None
        if status:
            try:
                status_filter = JobStatus(status)
            except ValueError as e:
                raise ValidationError(f"Invalid job status: {status}") from e

        limit = self.defaults.list_limit if limit is None else limit
        if limit < 1:
            raise ValidationError("limit must be positive")
        limit = min(limit, self.defaults.max_list_limit)

        jobs = await self.job_repo.list_for_user(owner_id, status=status_filter, limit=limit)
        steps_by_job = await self.step_repo.list_for_jobs([j.id for j in jobs])
        return [_with_steps(job, steps_by_job.get(job.id, [])) for job in jobs]

    async def get_progress(self, caller: Caller, job_id: str) -> JobProgress:
        job = await self.get_job(caller, job_id)
        return compute_progress(job.steps)

    def _listing_owner(self, caller: Caller, user_id: Optional[str]) -> str:
        if not caller.is_service:
            return caller.user_id
        if not user_id:
            raise ValidationError("user_id or job_id is required for the service role")
        return user_id

    # =========================================================================
    # CANCEL / CLEANUP
    # =========================================================================

    async def cancel_job(self, caller: Caller, job_id: str) -> JobWithSteps:
        """
        Cancel a job and skip its pending and running steps.

        Raises:
            NotFoundOrDenied: job missing or not owned
            InvalidTransition: job already terminal
        """
        now = utc_now()
        with log_context(job_id=job_id):
            try:
                async with self._transaction() as conn:
                    job = await self.job_repo.get(job_id, conn=conn, for_update=True)
                    if job is None or not caller.can_access(job.user_id):
                        raise NotFoundOrDenied()
                    try:
                        job.mark_cancelled(now)
                    except ValueError as e:
                        raise InvalidTransition(f"Job is already {job.status.value}") from e

                    await self.job_repo.update(job, conn=conn)
                    skipped = await self.step_repo.skip_open_steps(job_id, now, conn=conn)
                    steps = await self.step_repo.list_for_job(job_id, conn=conn)
            except psycopg.Error as e:
                logger.error(f"Cancel failed: {e}")
                raise StorageError("Failed to cancel job") from e

            logger.info(f"Cancelled job {job_id}, skipped {skipped} open steps")
            return _with_steps(job, steps)

    async def cleanup_old_jobs(
        self,
        caller: Caller,
        days: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> int:
        """
        Delete the owner's terminal jobs completed more than `days` ago.

        Returns:
            Number of jobs deleted
        """
        owner_id = self._listing_owner(caller, user_id)
        days = self.defaults.cleanup_days if days is None else days
        if days < 0:
            raise ValidationError("days must not be negative")

        cutoff = utc_now() - timedelta(days=days)
        try:
            return await self.job_repo.delete_terminal_before(owner_id, cutoff)
        except psycopg.Error as e:
            logger.error(f"Cleanup failed for user {owner_id}: {e}")
            raise StorageError("Failed to clean up old jobs") from e


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["JobService", "StepUpdateResult"]
