# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models, and schema utilities
# CREATED: 18 OCT 2026
# ============================================================================

from core.contracts import JobStatus, StepStatus, ChangeType, ConnectionMode
from core.models import (
    Job,
    JobWithSteps,
    JobStep,
    WorkflowError,
    Notification,
)
from core.schema import PydanticToSQL

__all__ = [
    # Enums
    "JobStatus",
    "StepStatus",
    "ChangeType",
    "ConnectionMode",
    # Models
    "Job",
    "JobWithSteps",
    "JobStep",
    "WorkflowError",
    "Notification",
    # Schema
    "PydanticToSQL",
]
