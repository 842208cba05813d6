# ============================================================================
# WORKFLOW ERROR MODEL
# ============================================================================
# STATUS: Core model - Errors raised outside any step
# PURPOSE: Record unrecoverable engine errors for the owning user
# CREATED: 18 OCT 2026
# EXPORTS: WorkflowError
# DEPENDENCIES: pydantic
# ============================================================================
"""
Workflow Error Model

Standalone error records reported by the workflow engine when it fails
outside of a specific step (infrastructure failures, node crashes).
error_node carries the engine's internal node name; the notification
layer maps it to a user-facing stage label.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, ClassVar
from pydantic import BaseModel, Field

from core.contracts import utc_now


class WorkflowError(BaseModel):
    """
    An error reported by the workflow engine.

    Maps to: jobtrack.workflow_errors table
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "workflow_errors"
    __sql_schema__: ClassVar[str] = "jobtrack"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_foreign_keys__: ClassVar[Dict[str, str]] = {}
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_workflow_errors_user", ["user_id", "created_at"]),
    ]

    id: str = Field(..., max_length=64)
    user_id: str = Field(..., max_length=64)
    workflow_execution_id: Optional[str] = Field(default=None, max_length=255)
    workflow_name: str = Field(..., max_length=255)
    error_message: str = Field(..., max_length=4000)
    error_node: Optional[str] = Field(default=None, max_length=255)
    error_data: Optional[Dict[str, Any]] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["WorkflowError"]
