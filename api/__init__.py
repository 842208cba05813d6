# ============================================================================
# API MODULE
# ============================================================================
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for jobs, steps and workflow errors
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the job tracking service.
"""

from .routes import router, set_services
from .auth import get_caller, set_auth_settings
from .schemas import (
    CreateJobRequest,
    UpdateStepRequest,
    ReportErrorRequest,
    StepUpdateResponse,
)

__all__ = [
    "router",
    "set_services",
    "get_caller",
    "set_auth_settings",
    "CreateJobRequest",
    "UpdateStepRequest",
    "ReportErrorRequest",
    "StepUpdateResponse",
]
