# ============================================================================
# API ROUTES
# ============================================================================
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for jobs, steps and workflow errors
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Routes

Endpoints called by the workflow engine (service token) and by end users:

    POST   /jobs                  create job with steps
    POST   /jobs/steps/update     advance a step (PATCH also accepted)
    GET    /jobs                  list, or one job with ?job_id=
    GET    /jobs/{job_id}         one job with steps
    GET    /jobs/{job_id}/progress
    POST   /jobs/{job_id}/cancel
    POST   /jobs/cleanup
    POST   /workflow-errors       report a workflow-level error
    GET    /workflow-errors

Service errors are translated to HTTP status codes here and nowhere else.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from core.models import JobProgress, JobWithSteps, WorkflowError
from services import (
    Caller,
    InvalidTransition,
    JobService,
    NotFoundOrDenied,
    ServiceError,
    StorageError,
    ValidationError,
    WorkflowErrorService,
)
from .auth import get_caller
from .schemas import (
    CleanupRequest,
    CleanupResponse,
    CreateJobRequest,
    ErrorResponse,
    ReportErrorRequest,
    StepUpdateResponse,
    UpdateStepRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_job_service: Optional[JobService] = None
_error_service: Optional[WorkflowErrorService] = None


def set_services(job_service, error_service) -> None:
    """Set service instances for dependency injection."""
    global _job_service, _error_service
    _job_service = job_service
    _error_service = error_service


def get_job_service() -> JobService:
    if _job_service is None:
        raise HTTPException(503, "Services not initialized")
    return _job_service


def get_error_service() -> WorkflowErrorService:
    if _error_service is None:
        raise HTTPException(503, "Services not initialized")
    return _error_service


def to_http_error(e: ServiceError) -> HTTPException:
    """Map a service error to its HTTP status."""
    if isinstance(e, ValidationError):
        return HTTPException(400, e.message)
    if isinstance(e, NotFoundOrDenied):
        return HTTPException(404, e.message)
    if isinstance(e, InvalidTransition):
        return HTTPException(409, e.message)
    if isinstance(e, StorageError):
        return HTTPException(500, e.message)
    return HTTPException(500, "Internal server error")


_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    401: {"model": ErrorResponse, "description": "Missing or invalid token"},
    404: {"model": ErrorResponse, "description": "Job not found or access denied"},
}


# ============================================================================
# JOBS
# ============================================================================

@router.post(
    "/jobs",
    response_model=JobWithSteps,
    status_code=201,
    tags=["Jobs"],
    responses={**_ERRORS, 500: {"model": ErrorResponse, "description": "Storage failure"}},
)
async def create_job(request: CreateJobRequest, caller: Caller = Depends(get_caller)):
    """
    Create a pending job with pending steps.

    The service role names the owner with user_id or user_email.
    """
    service = get_job_service()
    try:
        return await service.create_job(
            caller,
            workflow_name=request.workflow_name,
            steps=request.steps,
            user_id=request.user_id,
            user_email=request.user_email,
            resource_id=request.resource_id,
            workflow_execution_id=request.workflow_execution_id,
            metadata=request.metadata,
        )
    except ServiceError as e:
        raise to_http_error(e)


@router.api_route(
    "/jobs/steps/update",
    methods=["POST", "PATCH"],
    response_model=StepUpdateResponse,
    tags=["Jobs"],
    responses=_ERRORS,
)
async def update_step(request: UpdateStepRequest, caller: Caller = Depends(get_caller)):
    """
    Advance one step and re-derive the job status.

    Returns the updated step and the job with all its steps.
    """
    service = get_job_service()
    try:
        result = await service.update_step(
            caller,
            job_id=request.job_id,
            step_name=request.step_name,
            status=request.status,
            error_message=request.error_message,
            output_data=request.output_data,
            metadata=request.metadata,
            workflow_execution_id=request.workflow_execution_id,
            resource_id=request.resource_id,
        )
    except ServiceError as e:
        raise to_http_error(e)
    return StepUpdateResponse(updated_step=result.updated_step, job=result.job)


@router.get("/jobs", tags=["Jobs"], responses=_ERRORS)
async def list_jobs(
    job_id: Optional[str] = Query(None, description="Return this job only"),
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: Optional[str] = Query(None, description="Service role only"),
    caller: Caller = Depends(get_caller),
):
    """
    List the caller's jobs (newest first) with embedded steps.

    With job_id, returns that single job instead.
    """
    service = get_job_service()
    try:
        if job_id:
            return await service.get_job(caller, job_id, user_id=user_id)
        return await service.list_jobs(caller, user_id=user_id, status=status, limit=limit)
    except ServiceError as e:
        raise to_http_error(e)


@router.post("/jobs/cleanup", response_model=CleanupResponse, tags=["Jobs"], responses=_ERRORS)
async def cleanup_jobs(request: CleanupRequest, caller: Caller = Depends(get_caller)):
    """Delete the owner's terminal jobs older than `days` (default 30)."""
    service = get_job_service()
    try:
        deleted = await service.cleanup_old_jobs(caller, days=request.days, user_id=request.user_id)
    except ServiceError as e:
        raise to_http_error(e)
    logger.info(f"Cleanup removed {deleted} jobs")
    return CleanupResponse(deleted=deleted)


@router.get("/jobs/{job_id}", response_model=JobWithSteps, tags=["Jobs"], responses=_ERRORS)
async def get_job(job_id: str, caller: Caller = Depends(get_caller)):
    """Get one job with its steps sorted by step_order."""
    service = get_job_service()
    try:
        return await service.get_job(caller, job_id)
    except ServiceError as e:
        raise to_http_error(e)


@router.get("/jobs/{job_id}/progress", response_model=JobProgress, tags=["Jobs"], responses=_ERRORS)
async def get_job_progress(job_id: str, caller: Caller = Depends(get_caller)):
    """Completed (completed + skipped) versus total steps."""
    service = get_job_service()
    try:
        return await service.get_progress(caller, job_id)
    except ServiceError as e:
        raise to_http_error(e)


@router.post(
    "/jobs/{job_id}/cancel",
    response_model=JobWithSteps,
    tags=["Jobs"],
    responses={**_ERRORS, 409: {"model": ErrorResponse, "description": "Job already terminal"}},
)
async def cancel_job(job_id: str, caller: Caller = Depends(get_caller)):
    """Cancel a job; its open steps become skipped."""
    service = get_job_service()
    try:
        return await service.cancel_job(caller, job_id)
    except ServiceError as e:
        raise to_http_error(e)


# ============================================================================
# WORKFLOW ERRORS
# ============================================================================

@router.post(
    "/workflow-errors",
    response_model=WorkflowError,
    status_code=201,
    tags=["Workflow Errors"],
    responses=_ERRORS,
)
async def report_workflow_error(request: ReportErrorRequest, caller: Caller = Depends(get_caller)):
    """
    Record an error raised by the workflow engine outside any step.

    The owner is user_id, else the owner of the job with the given
    workflow_execution_id.
    """
    service = get_error_service()
    try:
        return await service.report_error(
            caller,
            workflow_name=request.workflow_name,
            error_message=request.error_message,
            user_id=request.user_id,
            workflow_execution_id=request.workflow_execution_id,
            error_node=request.error_node,
            error_data=request.error_data,
        )
    except ServiceError as e:
        raise to_http_error(e)


@router.get("/workflow-errors", response_model=List[WorkflowError], tags=["Workflow Errors"], responses=_ERRORS)
async def list_workflow_errors(
    user_id: Optional[str] = Query(None, description="Service role only"),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_caller),
):
    """Most recent workflow errors of the caller."""
    service = get_error_service()
    try:
        return await service.list_errors(caller, user_id=user_id, limit=limit)
    except ServiceError as e:
        raise to_http_error(e)


__all__ = ["router", "set_services", "to_http_error"]
