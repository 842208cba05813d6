# ============================================================================
# REPOSITORY BASE
# ============================================================================
# STATUS: Core - Shared connection handling
# PURPOSE: Let services run several repository calls in one transaction
# CREATED: 18 OCT 2026
# ============================================================================
"""
Repository Base

Every repository method accepts an optional ``conn``. Without one, the
method borrows a pooled connection for the single call. With one, it runs
on the caller's connection, so a service can wrap a step update and the
job finalization in a single transaction:

    async with pool.connection() as conn:
        async with conn.transaction():
            await step_repo.update(step, conn=conn)
            await job_repo.update(job, conn=conn)
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool


class BaseRepository:
    """Holds the pool and hands out connections."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    @asynccontextmanager
    async def _connection(
        self, conn: Optional[AsyncConnection] = None
    ) -> AsyncIterator[AsyncConnection]:
        if conn is not None:
            conn.row_factory = dict_row
            yield conn
            return
        async with self.pool.connection() as pooled:
            pooled.row_factory = dict_row
            yield pooled


__all__ = ["BaseRepository"]
