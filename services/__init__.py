# ============================================================================
# SERVICES MODULE
# ============================================================================
# STATUS: Core - Business logic layer
# PURPOSE: Job lifecycle and workflow error reporting
# CREATED: 18 OCT 2026
# ============================================================================
"""
Services Module

Business logic between the HTTP routes and the repositories.
"""

from .errors import (
    ServiceError,
    ValidationError,
    UserResolutionError,
    NotFoundOrDenied,
    InvalidTransition,
    StorageError,
)
from .identity import Caller, IdentityResolver
from .job_service import JobService, StepUpdateResult
from .workflow_error_service import WorkflowErrorService

__all__ = [
    "ServiceError",
    "ValidationError",
    "UserResolutionError",
    "NotFoundOrDenied",
    "InvalidTransition",
    "StorageError",
    "Caller",
    "IdentityResolver",
    "JobService",
    "StepUpdateResult",
    "WorkflowErrorService",
]
