# ============================================================================
# PYDANTIC TO SQL GENERATOR
# ============================================================================
# STATUS: Core - DDL generation from the table models
# PURPOSE: Render the jobtrack schema (enums, tables, indexes, notify triggers)
# CREATED: 18 OCT 2026
# EXPORTS: PydanticToSQL
# DEPENDENCIES: pydantic, psycopg
# ============================================================================
"""
Pydantic to PostgreSQL Schema Generator.

The table models in core.models are the single source of truth for the
schema. Each one carries its SQL metadata as ClassVars:

    __sql_table__        table name
    __sql_primary_key__  list of key columns
    __sql_foreign_keys__ {column: "schema.table(column)"}, always ON DELETE CASCADE
    __sql_indexes__      (name, columns[, where]) tuples or
                         {"name", "columns", "type": "unique"|"btree", "where"} dicts

Tables are always created in the generator's schema, so the same models can
be deployed under a different schema name (tests, staging).

Usage:
    generator = PydanticToSQL(schema_name="jobtrack")
    with psycopg.connect(conninfo, autocommit=True) as conn:
        generator.execute(conn)
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union, get_args, get_origin

from annotated_types import MaxLen
from pydantic import BaseModel
from pydantic.fields import FieldInfo
from psycopg import sql

from core.contracts import JobStatus, StepStatus
from core.schema.ddl_utils import IndexBuilder, NotifyTriggerBuilder, SchemaUtils

logger = logging.getLogger(__name__)

# "schema.table(column)"
_FK_PATTERN = re.compile(r"^(?:\w+\.)?(\w+)\((\w+)\)$")

# Columns filled by the database when the row is inserted
_NOW_COLUMNS = ("created_at", "updated_at")


class PydanticToSQL:
    """
    Convert the table models to PostgreSQL DDL statements.

    Status enums are rendered as native ENUM types named after the
    column's enum (job_status, step_status); everything else maps
    through SCALAR_TYPES, with dicts and lists stored as JSONB.
    """

    SCALAR_TYPES = {
        str: "VARCHAR",
        int: "INTEGER",
        float: "DOUBLE PRECISION",
        bool: "BOOLEAN",
        datetime: "TIMESTAMPTZ",
    }

    ENUM_TYPES: Dict[Type[Enum], str] = {
        JobStatus: "job_status",
        StepStatus: "step_status",
    }

    def __init__(self, schema_name: str = "jobtrack"):
        self.schema_name = schema_name

    # =========================================================================
    # METADATA
    # =========================================================================

    @staticmethod
    def table_name(model: Type[BaseModel]) -> str:
        table = getattr(model, "__sql_table__", None)
        if not table:
            raise ValueError(f"Model {model.__name__} missing __sql_table__ attribute")
        return table

    @staticmethod
    def _unwrap_optional(annotation: Any):
        """Return (inner type, nullable) for Optional[X] / X | None."""
        args = get_args(annotation)
        if args and type(None) in args:
            inner = [a for a in args if a is not type(None)]
            return (inner[0] if len(inner) == 1 else Union[tuple(inner)]), True
        return annotation, False

    # =========================================================================
    # COLUMNS
    # =========================================================================

    def _column_type(self, annotation: Any, field_info: FieldInfo) -> sql.Composable:
        origin = get_origin(annotation)
        if annotation in (dict, list) or origin in (dict, list, Dict, List):
            return sql.SQL("JSONB")

        if isinstance(annotation, type) and issubclass(annotation, Enum):
            enum_name = self.ENUM_TYPES.get(annotation)
            if enum_name is None:
                raise ValueError(f"No SQL enum registered for {annotation.__name__}")
            return sql.SQL("{}.{}").format(sql.Identifier(self.schema_name), sql.Identifier(enum_name))

        if annotation is str:
            max_len = next((m.max_length for m in field_info.metadata if isinstance(m, MaxLen)), None)
            return sql.SQL(f"VARCHAR({max_len})" if max_len else "VARCHAR")

        return sql.SQL(self.SCALAR_TYPES.get(annotation, "JSONB"))

    def _column_default(self, name: str, field_info: FieldInfo, column_type: sql.Composable) -> Optional[sql.Composable]:
        if name in _NOW_COLUMNS:
            return sql.SQL("NOW()")

        if field_info.default_factory is not None:
            # dict factories only; list factories get no server default
            return sql.SQL("'{}'::jsonb") if field_info.default_factory is dict else None

        default = field_info.default
        if default is None or default is ...:
            return None
        if isinstance(default, Enum):
            return sql.SQL("{}::{}").format(sql.Literal(default.value), column_type)
        if isinstance(default, bool):
            return sql.SQL("TRUE" if default else "FALSE")
        if isinstance(default, (str, int, float)):
            return sql.Literal(default)
        return None

    def column_definition(self, name: str, field_info: FieldInfo, primary_key: List[str]) -> sql.Composed:
        """Render one column: name, type, NOT NULL and DEFAULT."""
        annotation, nullable = self._unwrap_optional(field_info.annotation)
        column_type = self._column_type(annotation, field_info)

        parts = [sql.Identifier(name), column_type]
        if not nullable and name not in primary_key:
            parts.append(sql.SQL("NOT NULL"))

        default = self._column_default(name, field_info, column_type)
        if default is not None:
            parts.append(sql.SQL("DEFAULT {}").format(default))

        return sql.SQL(" ").join(parts)

    # =========================================================================
    # TABLES AND INDEXES
    # =========================================================================

    def generate_table(self, model: Type[BaseModel]) -> sql.Composed:
        """CREATE TABLE IF NOT EXISTS for one model, keys and cascades included."""
        table = self.table_name(model)
        primary_key = list(getattr(model, "__sql_primary_key__", []) or [])
        foreign_keys = getattr(model, "__sql_foreign_keys__", {}) or {}

        logger.debug(f"Generating table {self.schema_name}.{table} from {model.__name__}")

        parts = [
            self.column_definition(name, info, primary_key)
            for name, info in model.model_fields.items()
        ]

        if primary_key:
            parts.append(sql.SQL("PRIMARY KEY ({})").format(
                sql.SQL(", ").join(map(sql.Identifier, primary_key))
            ))

        for column, reference in foreign_keys.items():
            match = _FK_PATTERN.match(reference)
            if not match:
                raise ValueError(f"Bad foreign key reference on {table}.{column}: {reference}")
            ref_table, ref_column = match.groups()
            parts.append(sql.SQL("FOREIGN KEY ({}) REFERENCES {}.{} ({}) ON DELETE CASCADE").format(
                sql.Identifier(column),
                sql.Identifier(self.schema_name),
                sql.Identifier(ref_table),
                sql.Identifier(ref_column),
            ))

        return sql.SQL("CREATE TABLE IF NOT EXISTS {}.{} ({})").format(
            sql.Identifier(self.schema_name),
            sql.Identifier(table),
            sql.SQL(", ").join(parts),
        )

    def generate_indexes(self, model: Type[BaseModel]) -> List[sql.Composed]:
        table = self.table_name(model)
        statements = []

        for index in getattr(model, "__sql_indexes__", []) or []:
            if isinstance(index, dict):
                name, columns = index["name"], index["columns"]
                where = index.get("where")
                unique = index.get("type") == "unique"
            else:
                name, columns = index[0], index[1]
                where = index[2] if len(index) > 2 else None
                unique = False

            statements.append(IndexBuilder.index(
                self.schema_name, table, columns, name=name, unique=unique, where=where
            ))

        return statements

    def generate_enum(self, enum_name: str, enum_class: Type[Enum]) -> sql.Composed:
        """
        CREATE TYPE guarded by a pg_type lookup.

        Existing types are left alone; adding a status value needs an
        explicit ALTER TYPE ... ADD VALUE.
        """
        return sql.SQL(
            "DO $$ BEGIN "
            "IF NOT EXISTS (SELECT 1 FROM pg_type t JOIN pg_namespace n ON n.oid = t.typnamespace "
            "WHERE t.typname = {name_lit} AND n.nspname = {schema_lit}) THEN "
            "CREATE TYPE {schema}.{name} AS ENUM ({values}); "
            "END IF; END $$"
        ).format(
            name_lit=sql.Literal(enum_name),
            schema_lit=sql.Literal(self.schema_name),
            schema=sql.Identifier(self.schema_name),
            name=sql.Identifier(enum_name),
            values=sql.SQL(", ").join(sql.Literal(member.value) for member in enum_class),
        )

    # =========================================================================
    # COMPLETE SCHEMA
    # =========================================================================

    def generate_all(self, notify_channel: str = "job_changes") -> List[sql.Composed]:
        """
        Every statement needed for a fresh or existing database, in order:
        schema, enums, tables (foreign key order), indexes and table
        comments, then the row-change notify function and its triggers.
        """
        from core.models import Job, JobStep, UserAccount, WorkflowError

        tables = [UserAccount, Job, JobStep, WorkflowError]
        watched = [Job, JobStep, WorkflowError]

        statements = SchemaUtils.create_schema(
            self.schema_name, comment="Job and step tracking for external workflows"
        )
        statements.append(SchemaUtils.set_search_path(self.schema_name))
        statements.extend(self.generate_enum(name, enum) for enum, name in self.ENUM_TYPES.items())
        statements.extend(self.generate_table(model) for model in tables)

        for model in tables:
            statements.extend(self.generate_indexes(model))
            if model.__doc__:
                summary = model.__doc__.strip().splitlines()[0]
                statements.append(SchemaUtils.comment_on_table(self.schema_name, self.table_name(model), summary))

        statements.extend(NotifyTriggerBuilder.notify_statements(
            self.schema_name, notify_channel, owner_table=self.table_name(Job)
        ))
        for model in watched:
            statements.extend(NotifyTriggerBuilder.notify_trigger(self.schema_name, self.table_name(model)))

        logger.info(f"Generated {len(statements)} DDL statements for schema {self.schema_name}")
        return statements

    def execute(self, conn, dry_run: bool = False, notify_channel: str = "job_changes") -> int:
        """
        Run generate_all() on a psycopg connection.

        With dry_run the statements are only logged. Returns the number of
        statements.
        """
        statements = self.generate_all(notify_channel=notify_channel)

        if dry_run:
            for stmt in statements:
                logger.info(f"[DRY RUN] {stmt.as_string(conn)}")
            return len(statements)

        with conn.cursor() as cur:
            for stmt in statements:
                cur.execute(stmt)

        logger.info(f"Executed {len(statements)} DDL statements on schema {self.schema_name}")
        return len(statements)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ['PydanticToSQL']
