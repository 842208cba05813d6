# ============================================================================
# SCHEMA MODULE
# ============================================================================
# STATUS: Core - Schema generation from Pydantic models
# PURPOSE: Generate PostgreSQL DDL from Pydantic models (single source of truth)
# CREATED: 18 OCT 2026
# ============================================================================

from core.schema.ddl_utils import (
    IndexBuilder,
    NotifyTriggerBuilder,
    SchemaUtils,
)
from core.schema.sql_generator import PydanticToSQL

__all__ = [
    # Generator
    "PydanticToSQL",
    # Utilities
    "IndexBuilder",
    "NotifyTriggerBuilder",
    "SchemaUtils",
]
