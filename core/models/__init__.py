# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# CREATED: 18 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Table models define SQL metadata via __sql_* ClassVar attributes for DDL
generation (see core.schema.PydanticToSQL).
"""

from core.models.step import JobStep, StepDefinition
from core.models.job import Job, JobWithSteps, JobProgress
from core.models.workflow_error import WorkflowError
from core.models.user import UserAccount
from core.models.events import (
    SOURCE_JOBS,
    SOURCE_JOB_STEPS,
    SOURCE_WORKFLOW_ERRORS,
    ChangePayload,
    JobChange,
    StepChange,
    WorkflowErrorChange,
    ChangeEvent,
    parse_change,
)
from core.models.notification import Notification, FollowUp, FollowUpAction

__all__ = [
    # Jobs
    "Job",
    "JobWithSteps",
    "JobProgress",
    "JobStep",
    "StepDefinition",
    # Errors / identity
    "WorkflowError",
    "UserAccount",
    # Change feed
    "SOURCE_JOBS",
    "SOURCE_JOB_STEPS",
    "SOURCE_WORKFLOW_ERRORS",
    "ChangePayload",
    "JobChange",
    "StepChange",
    "WorkflowErrorChange",
    "ChangeEvent",
    "parse_change",
    # Notifications
    "Notification",
    "FollowUp",
    "FollowUpAction",
]
