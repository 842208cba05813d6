# ============================================================================
# WORKFLOW ERROR SERVICE
# ============================================================================
# STATUS: Core - Engine error reporting
# PURPOSE: Record errors raised outside any step for the owning user
# CREATED: 18 OCT 2026
# ============================================================================
"""
Workflow Error Service

The engine reports unrecoverable errors that happen outside a specific
step. The record is attached to the owning user, named directly or found
through the workflow execution id of one of their jobs.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

import psycopg
from psycopg_pool import AsyncConnectionPool

from core.logging import log_context
from core.models import WorkflowError
from repositories import JobRepository, UserRepository, WorkflowErrorRepository
from .errors import StorageError, ValidationError
from .identity import Caller, IdentityResolver

logger = logging.getLogger(__name__)


class WorkflowErrorService:
    """Service for workflow error records."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool
        self.error_repo = WorkflowErrorRepository(pool)
        self.identity = IdentityResolver(UserRepository(pool), JobRepository(pool))

    async def report_error(
        self,
        caller: Caller,
        workflow_name: Optional[str],
        error_message: Optional[str],
        user_id: Optional[str] = None,
        workflow_execution_id: Optional[str] = None,
        error_node: Optional[str] = None,
        error_data: Optional[Dict[str, Any]] = None,
    ) -> WorkflowError:
        """
        Insert a workflow error for its owner.

        Raises:
            ValidationError: missing workflow_name or error_message
            UserResolutionError: owner cannot be resolved
            StorageError: insert failed
        """
        if not workflow_name or not error_message:
            raise ValidationError("workflow_name and error_message are required")

        owner_id = await self.identity.resolve_owner(
            caller,
            user_id=user_id,
            workflow_execution_id=workflow_execution_id,
        )

        error = WorkflowError(
            id=str(uuid.uuid4()),
            user_id=owner_id,
            workflow_execution_id=workflow_execution_id,
            workflow_name=workflow_name,
            error_message=error_message,
            error_node=error_node,
            error_data=error_data,
        )

        with log_context(user_id=owner_id, operation="report_workflow_error"):
            try:
                return await self.error_repo.create(error)
            except psycopg.Error as e:
                logger.error(f"Failed to record workflow error for {workflow_name}: {e}")
                raise StorageError("Failed to record workflow error") from e

    async def list_errors(
        self,
        caller: Caller,
        user_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[WorkflowError]:
        """A user's most recent workflow errors."""
        if caller.is_service:
            if not user_id:
                raise ValidationError("user_id is required for the service role")
            owner_id = user_id
        else:
            owner_id = caller.user_id
        return await self.error_repo.list_for_user(owner_id, limit=max(1, min(limit, 100)))


__all__ = ["WorkflowErrorService"]
