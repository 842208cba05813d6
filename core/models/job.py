# ============================================================================
# JOB MODEL
# ============================================================================
# STATUS: Core model - Job aggregate root
# PURPOSE: Track one run of an externally executed workflow
# CREATED: 18 OCT 2026
# EXPORTS: Job, JobWithSteps, JobProgress
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Model

A Job represents one run of a workflow executed by the external engine.
Jobs are passive rows: the engine creates them and advances their steps
through the mutation endpoints, and the job's own status is derived from
its steps (see engine.aggregate).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, ClassVar
from pydantic import AliasChoices, BaseModel, Field, computed_field

from core.contracts import JobStatus, utc_now
from core.models.step import JobStep


class Job(BaseModel):
    """
    A job - one run of an external workflow.

    Maps to: jobtrack.jobs table

    Lifecycle:
        1. Created with status=PENDING together with N pending steps
        2. Transitions to RUNNING when any step shows progress
        3. Transitions to COMPLETED when every step is terminal
        4. Transitions to FAILED as soon as any step fails
        5. CANCELLED only through an explicit cancel
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "jobs"
    __sql_schema__: ClassVar[str] = "jobtrack"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_foreign_keys__: ClassVar[Dict[str, str]] = {}
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_jobs_user_created", ["user_id", "created_at"]),
        ("idx_jobs_status", ["status"]),
        ("idx_jobs_execution", ["workflow_execution_id"], "workflow_execution_id IS NOT NULL"),
    ]

    id: str = Field(..., max_length=64)
    user_id: str = Field(..., max_length=64, description="Owning user")
    workflow_name: str = Field(..., max_length=255)
    workflow_execution_id: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Execution id assigned by the workflow engine"
    )

    status: JobStatus = Field(default=JobStatus.PENDING)

    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = Field(
        default=None,
        description="When the job first left pending"
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        description="When the job reached a terminal state"
    )

    error_message: Optional[str] = Field(default=None, max_length=2000)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    resource_id: Optional[int] = Field(
        default=None,
        description="Resource produced by the workflow"
    )

    @computed_field
    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        return user_id is not None and self.user_id == user_id

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """
        Validate a manual status transition.

        Valid transitions:
            PENDING -> RUNNING, COMPLETED, FAILED, CANCELLED
            RUNNING -> COMPLETED, FAILED, CANCELLED
            COMPLETED, FAILED, CANCELLED -> (none, terminal)
        """
        if self.status == new_status:
            return True
        if self.status.is_terminal():
            return False
        return new_status != JobStatus.PENDING

    def mark_cancelled(self, now: Optional[datetime] = None) -> None:
        """Mark job as cancelled."""
        if not self.can_transition_to(JobStatus.CANCELLED):
            raise ValueError(f"Cannot transition from {self.status.value} to cancelled")
        now = now or utc_now()
        self.status = JobStatus.CANCELLED
        self.completed_at = now
        if self.started_at is None:
            self.started_at = now


class JobWithSteps(Job):
    """
    A job with its steps embedded, steps sorted by step_order.

    Accepts "job_steps" as an alias for "steps" when parsing API bodies.
    """

    steps: List[JobStep] = Field(
        default_factory=list,
        validation_alias=AliasChoices("steps", "job_steps"),
    )

    def model_post_init(self, __context: Any) -> None:
        self.steps.sort(key=lambda s: s.step_order)

    def get_step(self, step_name: str) -> Optional[JobStep]:
        for step in self.steps:
            if step.step_name == step_name:
                return step
        return None

    def as_job(self) -> Job:
        return Job.model_validate(self.model_dump(exclude={"steps", "is_terminal"}))


class JobProgress(BaseModel):
    """Completion accounting for one job."""

    completed: int = 0
    total: int = 0

    @computed_field
    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)

    @classmethod
    def from_steps(cls, steps: List[JobStep]) -> "JobProgress":
        completed = sum(1 for s in steps if s.status.is_done())
        return cls(completed=completed, total=len(steps))

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.completed == self.total


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["Job", "JobWithSteps", "JobProgress"]
