# ============================================================================
# USER REPOSITORY
# ============================================================================
# STATUS: Core - Identity lookups
# PURPOSE: Resolve user ids for the service caller
# CREATED: 18 OCT 2026
# ============================================================================
"""
User Repository

Read-only identity lookups backing service-caller resolution.
"""

import logging
from typing import Optional

from psycopg import AsyncConnection, sql

from .base import BaseRepository
from .database import TABLE_USERS

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository):
    """Repository for user identity rows."""

    async def get_id_by_email(
        self,
        email: str,
        conn: Optional[AsyncConnection] = None,
    ) -> Optional[str]:
        """Find a user id by email (case-insensitive)."""
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("SELECT id FROM {} WHERE lower(email) = lower(%s)").format(TABLE_USERS),
                (email,),
            )
            row = await result.fetchone()
            return row["id"] if row else None

    async def exists(self, user_id: str, conn: Optional[AsyncConnection] = None) -> bool:
        async with self._connection(conn) as conn:
            result = await conn.execute(
                sql.SQL("SELECT 1 FROM {} WHERE id = %s").format(TABLE_USERS),
                (user_id,),
            )
            return await result.fetchone() is not None


__all__ = ["UserRepository"]
