# ============================================================================
# JOB STEP MODEL
# ============================================================================
# STATUS: Core model - Step runtime state
# PURPOSE: Track state of each ordered step within a job
# CREATED: 18 OCT 2026
# EXPORTS: JobStep, StepDefinition
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job Step Model

A JobStep is one ordered sub-unit of a Job. The workflow engine refers to
steps by name, so (job_id, step_name) is unique. step_order defines the
intended sequence but need not be contiguous: conditional branches may
skip ahead.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, ClassVar
from pydantic import AliasChoices, BaseModel, Field

from core.contracts import StepStatus, utc_now


class JobStep(BaseModel):
    """
    Runtime state of a step within a job.

    Maps to: jobtrack.job_steps table
    Unique: (job_id, step_name)

    Lifecycle:
        1. Created with status=PENDING when the job is created
        2. RUNNING when the engine starts it (sets started_at)
        3. COMPLETED / FAILED / SKIPPED when the engine reports (sets completed_at)
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "job_steps"
    __sql_schema__: ClassVar[str] = "jobtrack"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_foreign_keys__: ClassVar[Dict[str, str]] = {
        "job_id": "jobtrack.jobs(id)"
    }
    __sql_indexes__: ClassVar[List[Any]] = [
        {"name": "idx_job_steps_job_name", "columns": ["job_id", "step_name"], "type": "unique"},
        ("idx_job_steps_job_order", ["job_id", "step_order"]),
    ]

    id: str = Field(..., max_length=64)
    job_id: str = Field(..., max_length=64)
    step_name: str = Field(..., max_length=255)
    step_type: str = Field(default="task", max_length=64)
    step_order: int = Field(default=0)

    status: StepStatus = Field(default=StepStatus.PENDING)

    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    error_message: Optional[str] = Field(default=None, max_length=2000)
    output_data: Optional[Dict[str, Any]] = Field(default=None)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def mark_status(
        self,
        status: StepStatus,
        error_message: Optional[str] = None,
        output_data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Apply a status reported by the engine.

        RUNNING stamps started_at. A terminal status stamps completed_at and
        backfills started_at when the engine never reported RUNNING. Any
        non-terminal status clears completed_at.
        """
        now = now or utc_now()
        self.status = status

        if not status.is_terminal():
            self.completed_at = None

        if status == StepStatus.RUNNING:
            self.started_at = now
        elif status.is_terminal():
            self.completed_at = now
            if self.started_at is None:
                self.started_at = now

        if error_message is not None:
            self.error_message = error_message[:2000]
        if output_data is not None:
            self.output_data = output_data
        if metadata is not None:
            self.metadata = metadata


class StepDefinition(BaseModel):
    """
    A step as declared by the engine when it creates a job.

    step_order defaults to the position in the submitted list (1-based).
    """

    step_name: str = Field(..., min_length=1, max_length=255, validation_alias=AliasChoices("step_name", "name"))
    step_type: str = Field(default="task", max_length=64, validation_alias=AliasChoices("step_type", "type"))
    step_order: Optional[int] = Field(default=None, validation_alias=AliasChoices("step_order", "order"))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["JobStep", "StepDefinition"]
