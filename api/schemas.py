# ============================================================================
# API SCHEMAS
# ============================================================================
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the jobs API. Required business fields
are optional at the schema level so that the service layer reports them
as 400 with a domain message; type errors are mapped to 400 by the app.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from core.models import JobStep, JobWithSteps


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class CreateJobRequest(BaseModel):
    """Request to create a job (from the workflow engine or a user)."""
    workflow_name: Optional[str] = Field(None, max_length=255)
    steps: Optional[List[Dict[str, Any]]] = Field(
        None,
        description="Ordered step definitions: name, type, order, metadata",
    )
    resource_id: Optional[int] = None
    workflow_execution_id: Optional[str] = Field(None, max_length=255)
    metadata: Optional[Dict[str, Any]] = None

    # Service role only: the user the job belongs to
    user_id: Optional[str] = Field(None, max_length=64)
    user_email: Optional[str] = Field(None, max_length=320)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "workflow_name": "Add Resource",
                    "user_email": "reader@example.com",
                    "steps": [
                        {"name": "Duplicates Check", "type": "check", "order": 1},
                        {"name": "Content Extracted", "type": "extract", "order": 2},
                        {"name": "AI Complete", "type": "ai", "order": 3},
                        {"name": "Database Save", "type": "save", "order": 4},
                    ],
                }
            ]
        }
    }


class UpdateStepRequest(BaseModel):
    """Request to advance a step, addressed by job id and step name."""
    job_id: Optional[str] = Field(None, max_length=64)
    step_name: Optional[str] = Field(None, max_length=255)
    status: Optional[str] = None
    error_message: Optional[str] = Field(None, max_length=2000)
    output_data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    workflow_execution_id: Optional[str] = Field(None, max_length=255)
    resource_id: Optional[int] = None


class ReportErrorRequest(BaseModel):
    """Workflow-level error raised outside any step."""
    workflow_name: Optional[str] = Field(None, max_length=255)
    error_message: Optional[str] = Field(None, max_length=4000)
    user_id: Optional[str] = Field(None, max_length=64)
    workflow_execution_id: Optional[str] = Field(None, max_length=255)
    error_node: Optional[str] = Field(None, max_length=255)
    error_data: Optional[Dict[str, Any]] = None


class CleanupRequest(BaseModel):
    days: Optional[int] = Field(None, ge=0)
    user_id: Optional[str] = Field(None, max_length=64)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class StepUpdateResponse(BaseModel):
    """Updated step plus its job with all steps."""
    updated_step: JobStep
    job: JobWithSteps


class CleanupResponse(BaseModel):
    deleted: int


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str


__all__ = [
    "CreateJobRequest",
    "UpdateStepRequest",
    "ReportErrorRequest",
    "CleanupRequest",
    "StepUpdateResponse",
    "CleanupResponse",
    "ErrorResponse",
]
