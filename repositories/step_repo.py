# ============================================================================
# STEP REPOSITORY
# ============================================================================
# STATUS: Core - Job step CRUD operations
# PURPOSE: Database access for job_steps table
# CREATED: 18 OCT 2026
# ============================================================================
"""
Step Repository

CRUD operations for job steps. Steps are addressed by (job_id, step_name)
because the workflow engine refers to them by name.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from psycopg import AsyncConnection, sql
from psycopg.types.json import Json

from core.models import JobStep
from core.contracts import StepStatus
from .base import BaseRepository
from .database import TABLE_JOB_STEPS

logger = logging.getLogger(__name__)


class StepRepository(BaseRepository):
    """Repository for JobStep entities."""

    async def create_many(
        self,
        steps: List[JobStep],
        conn: Optional[AsyncConnection] = None,
    ) -> List[JobStep]:
        """
        Create multiple steps in a single transaction.

        Args:
            steps: JobStep instances

        Returns:
            List of created steps
        """
        if not steps:
            return []

        async with self._connection(conn) as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.executemany(
                        sql.SQL("""
                        INSERT INTO {} (
                            id, job_id, step_name, step_type, step_order, status,
                            started_at, completed_at, error_message, output_data, metadata
                        ) VALUES (
                            %(id)s, %(job_id)s, %(step_name)s, %(step_type)s,
                            %(step_order)s, %(status)s, %(started_at)s, %(completed_at)s,
                            %(error_message)s, %(output_data)s, %(metadata)s
                        )
                        """).format(TABLE_JOB_STEPS),
                        [self._step_params(step) for step in steps],
                    )
            logger.info(f"Created {len(steps)} steps for job {steps[0].job_id}")
            return steps

    async def get_by_name(
        self,
        job_id: str,
        step_name: str,
        conn: Optional[AsyncConnection] = None,
    ) -> Optional[JobStep]:
        """Get a step by its job and name."""
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE job_id = %s AND step_name = %s").format(TABLE_JOB_STEPS),
                (job_id, step_name),
            )
            row = await result.fetchone()
            return self._row_to_step(row) if row else None

    async def list_for_job(
        self,
        job_id: str,
        conn: Optional[AsyncConnection] = None,
    ) -> List[JobStep]:
        """All steps of a job ordered by step_order."""
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE job_id = %s ORDER BY step_order, step_name").format(TABLE_JOB_STEPS),
                (job_id,),
            )
            rows = await result.fetchall()
            return [self._row_to_step(row) for row in rows]

    async def list_for_jobs(
        self,
        job_ids: Sequence[str],
        conn: Optional[AsyncConnection] = None,
    ) -> Dict[str, List[JobStep]]:
        """Steps of several jobs, grouped by job id and ordered by step_order."""
        grouped: Dict[str, List[JobStep]] = defaultdict(list)
        if not job_ids:
            return grouped

        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE job_id = ANY(%s)
                ORDER BY job_id, step_order, step_name
                """).format(TABLE_JOB_STEPS),
                (list(job_ids),),
            )
            for row in await result.fetchall():
                step = self._row_to_step(row)
                grouped[step.job_id].append(step)
        return grouped

    async def update(self, step: JobStep, conn: Optional[AsyncConnection] = None) -> bool:
        """
        Persist status, timestamps and payload of a step.

        Returns:
            True if a row was updated
        """
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET
                    status = %(status)s,
                    started_at = %(started_at)s,
                    completed_at = %(completed_at)s,
                    error_message = %(error_message)s,
                    output_data = %(output_data)s,
                    metadata = %(metadata)s
                WHERE id = %(id)s
                """).format(TABLE_JOB_STEPS),
                self._step_params(step),
            )
            if result.rowcount == 0:
                logger.warning(f"Update matched no step {step.id}")
                return False
            logger.debug(f"Updated step {step.step_name} of job {step.job_id} status={step.status.value}")
            return True

    async def skip_open_steps(
        self,
        job_id: str,
        now: datetime,
        conn: Optional[AsyncConnection] = None,
    ) -> int:
        """
        Mark a job's pending and running steps as skipped.

        Returns:
            Number of steps skipped
        """
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {} SET
                    status = %s,
                    completed_at = %s,
                    started_at = COALESCE(started_at, %s)
                WHERE job_id = %s
                  AND status::text = ANY(%s)
                """).format(TABLE_JOB_STEPS),
                (
                    StepStatus.SKIPPED.value,
                    now,
                    now,
                    job_id,
                    [StepStatus.PENDING.value, StepStatus.RUNNING.value],
                ),
            )
            return result.rowcount

    def _step_params(self, step: JobStep) -> Dict[str, Any]:
        return {
            "id": step.id,
            "job_id": step.job_id,
            "step_name": step.step_name,
            "step_type": step.step_type,
            "step_order": step.step_order,
            "status": step.status.value,
            "started_at": step.started_at,
            "completed_at": step.completed_at,
            "error_message": step.error_message,
            "output_data": Json(step.output_data) if step.output_data is not None else None,
            "metadata": Json(step.metadata or {}),
        }

    def _row_to_step(self, row: Dict[str, Any]) -> JobStep:
        """Convert database row to JobStep model."""
        return JobStep(
            id=row["id"],
            job_id=row["job_id"],
            step_name=row["step_name"],
            step_type=row.get("step_type") or "task",
            step_order=row.get("step_order") or 0,
            status=StepStatus(row["status"]),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            error_message=row.get("error_message"),
            output_data=row.get("output_data"),
            metadata=row.get("metadata") or {},
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["StepRepository"]
