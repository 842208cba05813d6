# ============================================================================
# JOB REPOSITORY
# ============================================================================
# STATUS: Core - Job CRUD operations
# PURPOSE: Database access for jobs table
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Repository

CRUD operations for jobs. Owner scoping (user_id) is applied in SQL so
that a job that exists but belongs to someone else is indistinguishable
from one that does not exist.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from psycopg import AsyncConnection, sql
from psycopg.types.json import Json

from core.models import Job
from core.contracts import JobStatus
from .base import BaseRepository
from .database import TABLE_JOBS

logger = logging.getLogger(__name__)


class JobRepository(BaseRepository):
    """Repository for Job entities."""

    async def create(self, job: Job, conn: Optional[AsyncConnection] = None) -> Job:
        """
        Create a new job.

        Args:
            job: Job instance to persist

        Returns:
            The persisted job
        """
        async with self._connection(conn) as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    id, user_id, workflow_name, workflow_execution_id, status,
                    created_at, started_at, completed_at, error_message,
                    metadata, resource_id
                ) VALUES (
                    %(id)s, %(user_id)s, %(workflow_name)s, %(workflow_execution_id)s,
                    %(status)s, %(created_at)s, %(started_at)s, %(completed_at)s,
                    %(error_message)s, %(metadata)s, %(resource_id)s
                )
                """).format(TABLE_JOBS),
                {
                    "id": job.id,
                    "user_id": job.user_id,
                    "workflow_name": job.workflow_name,
                    "workflow_execution_id": job.workflow_execution_id,
                    "status": job.status.value,
                    "created_at": job.created_at,
                    "started_at": job.started_at,
                    "completed_at": job.completed_at,
                    "error_message": job.error_message,
                    "metadata": Json(job.metadata or {}),
                    "resource_id": job.resource_id,
                },
            )
            logger.info(f"Created job {job.id} ({job.workflow_name}) for user {job.user_id}")
            return job

    async def get(
        self,
        job_id: str,
        conn: Optional[AsyncConnection] = None,
        for_update: bool = False,
    ) -> Optional[Job]:
        """
        Get a job by ID.

        Args:
            job_id: Job identifier
            for_update: Lock the row until the surrounding transaction ends

        Returns:
            Job instance or None if not found
        """
        query = sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_JOBS)
        if for_update:
            query = sql.SQL("{} FOR UPDATE").format(query)

        async with self._connection(conn) as conn:
            result = await conn.execute(query, (job_id,))
            row = await result.fetchone()
            if row is None:
                return None
            return self._row_to_job(row)

    async def get_for_user(
        self,
        job_id: str,
        user_id: str,
        conn: Optional[AsyncConnection] = None,
        for_update: bool = False,
    ) -> Optional[Job]:
        """Get a job only if it belongs to user_id."""
        job = await self.get(job_id, conn=conn, for_update=for_update)
        if job is None or not job.is_owned_by(user_id):
            return None
        return job

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[JobStatus] = None,
        limit: int = 10,
        conn: Optional[AsyncConnection] = None,
    ) -> List[Job]:
        """
        List a user's jobs, newest first.

        Args:
            user_id: Owner
            status: Optional status filter
            limit: Maximum number of jobs

        Returns:
            List of jobs
        """
        conditions = [sql.SQL("user_id = %(user_id)s")]
        params: Dict[str, Any] = {"user_id": user_id, "limit": limit}
        if status is not None:
            conditions.append(sql.SQL("status::text = %(status)s"))
            params["status"] = status.value

        query = sql.SQL("""
            SELECT * FROM {table}
            WHERE {where}
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """).format(table=TABLE_JOBS, where=sql.SQL(" AND ").join(conditions))

        async with self._connection(conn) as conn:
            result = await conn.execute(query, params)
            rows = await result.fetchall()
            return [self._row_to_job(row) for row in rows]

    async def update(self, job: Job, conn: Optional[AsyncConnection] = None) -> bool:
        """
        Persist the mutable fields of a job.

        Returns:
            True if a row was updated
        """
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET
                    status = %(status)s,
                    workflow_execution_id = %(workflow_execution_id)s,
                    started_at = %(started_at)s,
                    completed_at = %(completed_at)s,
                    error_message = %(error_message)s,
                    metadata = %(metadata)s,
                    resource_id = %(resource_id)s
                WHERE id = %(id)s
                """).format(TABLE_JOBS),
                {
                    "id": job.id,
                    "status": job.status.value,
                    "workflow_execution_id": job.workflow_execution_id,
                    "started_at": job.started_at,
                    "completed_at": job.completed_at,
                    "error_message": job.error_message,
                    "metadata": Json(job.metadata or {}),
                    "resource_id": job.resource_id,
                },
            )
            if result.rowcount == 0:
                logger.warning(f"Update matched no job {job.id}")
                return False
            logger.debug(f"Updated job {job.id} status={job.status.value}")
            return True

    async def delete(self, job_id: str, conn: Optional[AsyncConnection] = None) -> bool:
        """Delete a job (its steps cascade)."""
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("DELETE FROM {} WHERE id = %s").format(TABLE_JOBS),
                (job_id,),
            )
            return result.rowcount > 0

    async def delete_terminal_before(
        self,
        user_id: str,
        cutoff: datetime,
        conn: Optional[AsyncConnection] = None,
    ) -> int:
        """
        Delete a user's terminal jobs completed before cutoff.

        Returns:
            Number of jobs deleted
        """
        terminal = [s.value for s in JobStatus if s.is_terminal()]
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("""
                DELETE FROM {}
                WHERE user_id = %s
                  AND status::text = ANY(%s)
                  AND completed_at < %s
                """).format(TABLE_JOBS),
                (user_id, terminal, cutoff),
            )
            count = result.rowcount
            logger.info(f"Deleted {count} terminal jobs for user {user_id} older than {cutoff.isoformat()}")
            return count

    async def find_owner_by_execution_id(
        self,
        workflow_execution_id: str,
        conn: Optional[AsyncConnection] = None,
    ) -> Optional[str]:
        """Resolve the owning user of the job run by a workflow execution."""
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT user_id FROM {}
                WHERE workflow_execution_id = %s
                ORDER BY created_at DESC
                LIMIT 1
                """).format(TABLE_JOBS),
                (workflow_execution_id,),
            )
            row = await result.fetchone()
            return row["user_id"] if row else None

    def _row_to_job(self, row: Dict[str, Any]) -> Job:
        """Convert database row to Job model."""
        return Job(
            id=row["id"],
            user_id=row["user_id"],
            workflow_name=row["workflow_name"],
            workflow_execution_id=row.get("workflow_execution_id"),
            status=JobStatus(row["status"]),
            created_at=row["created_at"],
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            error_message=row.get("error_message"),
            metadata=row.get("metadata") or {},
            resource_id=row.get("resource_id"),
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["JobRepository"]
