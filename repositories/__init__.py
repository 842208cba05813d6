# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# STATUS: Core - Database access layer
# PURPOSE: CRUD operations for jobs, steps, workflow errors and users
# CREATED: 18 OCT 2026
# ============================================================================
"""
Repositories Module

Provides database access for job tracking entities.
Uses psycopg3 async with connection pooling.

Usage:
    from repositories import DatabasePool, JobRepository

    async with DatabasePool() as pool:
        job_repo = JobRepository(pool)
        job = await job_repo.get(job_id)
"""

from .database import DatabasePool, open_pool, get_connection_string
from .job_repo import JobRepository
from .step_repo import StepRepository
from .workflow_error_repo import WorkflowErrorRepository
from .user_repo import UserRepository

__all__ = [
    "DatabasePool",
    "open_pool",
    "get_connection_string",
    "JobRepository",
    "StepRepository",
    "WorkflowErrorRepository",
    "UserRepository",
]
