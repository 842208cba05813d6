# ============================================================================
# WORKFLOW ERROR REPOSITORY
# ============================================================================
# STATUS: Core - Workflow error persistence
# PURPOSE: Database access for workflow_errors table
# CREATED: 18 OCT 2026
# ============================================================================
"""
Workflow Error Repository

Insert-mostly storage for errors the engine reports outside any step.
"""

import logging
from typing import Any, Dict, List, Optional

from psycopg import AsyncConnection, sql
from psycopg.types.json import Json

from core.models import WorkflowError
from .base import BaseRepository
from .database import TABLE_WORKFLOW_ERRORS

logger = logging.getLogger(__name__)


class WorkflowErrorRepository(BaseRepository):
    """Repository for WorkflowError entities."""

    async def create(
        self,
        error: WorkflowError,
        conn: Optional[AsyncConnection] = None,
    ) -> WorkflowError:
        """Insert an error record."""
        async with self._connection(conn) as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    id, user_id, workflow_execution_id, workflow_name,
                    error_message, error_node, error_data, created_at
                ) VALUES (
                    %(id)s, %(user_id)s, %(workflow_execution_id)s, %(workflow_name)s,
                    %(error_message)s, %(error_node)s, %(error_data)s, %(created_at)s
                )
                """).format(TABLE_WORKFLOW_ERRORS),
                {
                    "id": error.id,
                    "user_id": error.user_id,
                    "workflow_execution_id": error.workflow_execution_id,
                    "workflow_name": error.workflow_name,
                    "error_message": error.error_message,
                    "error_node": error.error_node,
                    "error_data": Json(error.error_data) if error.error_data is not None else None,
                    "created_at": error.created_at,
                },
            )
            logger.info(
                f"Recorded workflow error {error.id} for {error.workflow_name} "
                f"(node={error.error_node}, user={error.user_id})"
            )
            return error

    async def list_for_user(
        self,
        user_id: str,
        limit: int = 20,
        conn: Optional[AsyncConnection] = None,
    ) -> List[WorkflowError]:
        """A user's most recent workflow errors."""
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """).format(TABLE_WORKFLOW_ERRORS),
                (user_id, limit),
            )
            rows = await result.fetchall()
            return [self._row_to_error(row) for row in rows]

    def _row_to_error(self, row: Dict[str, Any]) -> WorkflowError:
        return WorkflowError(
            id=row["id"],
            user_id=row["user_id"],
            workflow_execution_id=row.get("workflow_execution_id"),
            workflow_name=row["workflow_name"],
            error_message=row["error_message"],
            error_node=row.get("error_node"),
            error_data=row.get("error_data"),
            created_at=row["created_at"],
        )


__all__ = ["WorkflowErrorRepository"]
