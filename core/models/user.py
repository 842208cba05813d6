# ============================================================================
# USER ACCOUNT MODEL
# ============================================================================
# STATUS: Core model - Identity lookup table
# PURPOSE: Resolve service-caller requests to an owning user
# CREATED: 18 OCT 2026
# EXPORTS: UserAccount
# ============================================================================
"""
User Account Model

Minimal identity rows. The service caller may name a user by email
instead of id when creating a job; this table backs that lookup.
"""

from datetime import datetime
from typing import Dict, List, ClassVar
from pydantic import BaseModel, Field

from core.contracts import utc_now


class UserAccount(BaseModel):
    """Maps to: jobtrack.users table"""

    __sql_table__: ClassVar[str] = "users"
    __sql_schema__: ClassVar[str] = "jobtrack"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_foreign_keys__: ClassVar[Dict[str, str]] = {}
    __sql_indexes__: ClassVar[List[dict]] = [
        {"name": "idx_users_email", "columns": ["email"], "type": "unique"},
    ]

    id: str = Field(..., max_length=64)
    email: str = Field(..., max_length=320)
    created_at: datetime = Field(default_factory=utc_now)


__all__ = ["UserAccount"]
