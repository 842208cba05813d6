# ============================================================================
# DDL UTILITIES
# ============================================================================
# STATUS: Core - psycopg.sql building blocks for the schema generator
# PURPOSE: Index, row-change notify trigger and schema statements
# CREATED: 18 OCT 2026
# EXPORTS: IndexBuilder, NotifyTriggerBuilder, SchemaUtils
# DEPENDENCIES: psycopg
# ============================================================================
"""
DDL Utilities.

Every builder returns psycopg.sql.Composed objects; identifiers and
literals are never spliced into SQL text by hand.

Usage:
    from core.schema.ddl_utils import IndexBuilder, NotifyTriggerBuilder

    cursor.execute(IndexBuilder.index("jobtrack", "jobs", ["status"]))

    for stmt in NotifyTriggerBuilder.notify_statements("jobtrack", "job_changes"):
        cursor.execute(stmt)
    for stmt in NotifyTriggerBuilder.notify_trigger("jobtrack", "job_steps"):
        cursor.execute(stmt)
"""

from typing import List, Optional, Sequence, Union
from psycopg import sql


# ============================================================================
# INDEX BUILDER
# ============================================================================

class IndexBuilder:
    """CREATE [UNIQUE] INDEX IF NOT EXISTS statements."""

    @staticmethod
    def index(
        schema: str,
        table: str,
        columns: Union[str, Sequence[str]],
        name: Optional[str] = None,
        unique: bool = False,
        where: Optional[str] = None,
    ) -> sql.Composed:
        """
        Build a B-tree index, optionally unique and/or partial.

        The default name is idx_<table>_<columns>, or uidx_<table>_<columns>
        for unique indexes. `where` is trusted SQL taken from model
        metadata, never from user input.
        """
        cols = [columns] if isinstance(columns, str) else list(columns)
        if not cols:
            raise ValueError(f"Index on {table} needs at least one column")
        index_name = name or f"{'uidx' if unique else 'idx'}_{table}_{'_'.join(cols)}"

        stmt = sql.SQL("CREATE {unique}INDEX IF NOT EXISTS {name} ON {schema}.{table} ({columns})").format(
            unique=sql.SQL("UNIQUE " if unique else ""),
            name=sql.Identifier(index_name),
            schema=sql.Identifier(schema),
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(map(sql.Identifier, cols)),
        )
        if where:
            stmt = sql.SQL("{} WHERE {}").format(stmt, sql.SQL(where))
        return stmt


# ============================================================================
# NOTIFY TRIGGER BUILDER
# ============================================================================

class NotifyTriggerBuilder:
    """
    Builder for row-change NOTIFY triggers.

    Every INSERT/UPDATE/DELETE publishes one JSON payload on a single
    channel:

        {"table": "...", "type": "INSERT", "record": {...}, "old_record": {...}}

    Rows that carry a job_id but no user_id (job_steps) get the owning
    job's user_id added, so every source can be filtered by owner.

    pg_notify rejects payloads over 8000 bytes, and an error raised in the
    trigger would abort the row change itself. Oversized payloads are
    therefore shrunk in steps until they fit:

        1. drop the open key-value bags (output_data, error_data, metadata)
        2. also cut every string value to TEXT_LIMIT characters
        3. keep only KEY_COLUMNS, cut to KEY_TEXT_LIMIT characters

    Shrunk payloads carry "truncated": true; consumers refetch the row
    when they need the full content.
    """

    MAX_PAYLOAD_BYTES = 7800
    BAG_COLUMNS = ("output_data", "error_data", "metadata")
    TEXT_LIMIT = 200
    KEY_COLUMNS = ("id", "job_id", "user_id", "step_order", "status")
    KEY_TEXT_LIMIT = 64

    @staticmethod
    def shrink_function(schema: str) -> sql.Composed:
        """
        Create shrink_change_row(row, keep, text_limit).

        Keeps the keys listed in `keep` (all keys when NULL) and cuts string
        values to `text_limit` characters (no cut when NULL).
        """
        return sql.SQL("""
            CREATE OR REPLACE FUNCTION {schema}.shrink_change_row(
                row_data jsonb, keep text[], text_limit integer
            )
            RETURNS jsonb
            LANGUAGE sql
            IMMUTABLE
            AS $$
                SELECT jsonb_object_agg(
                    key,
                    CASE
                        WHEN text_limit IS NOT NULL AND jsonb_typeof(value) = 'string'
                        THEN to_jsonb(left(value #>> '{{}}', text_limit))
                        ELSE value
                    END
                )
                FROM jsonb_each(row_data)
                WHERE keep IS NULL OR key = ANY(keep)
            $$
        """).format(schema=sql.Identifier(schema))

    @staticmethod
    def notify_function(schema: str, channel: str, owner_table: str = "jobs") -> sql.Composed:
        """
        Create the notify_row_change() trigger function.

        Depends on shrink_change_row(); see notify_statements().
        """
        bags = sql.SQL(" ").join(
            sql.SQL("- {}").format(sql.Literal(column)) for column in NotifyTriggerBuilder.BAG_COLUMNS
        )
        key_columns = sql.SQL("ARRAY[{}]::text[]").format(
            sql.SQL(", ").join(map(sql.Literal, NotifyTriggerBuilder.KEY_COLUMNS))
        )
        return sql.SQL("""
            CREATE OR REPLACE FUNCTION {schema}.notify_row_change()
            RETURNS TRIGGER
            LANGUAGE plpgsql
            AS $$
            DECLARE
                new_row jsonb := CASE WHEN TG_OP = 'DELETE' THEN NULL ELSE to_jsonb(NEW) END;
                old_row jsonb := CASE WHEN TG_OP = 'INSERT' THEN NULL ELSE to_jsonb(OLD) END;
                owner_id text;
                payload jsonb;
            BEGIN
                IF COALESCE(new_row, old_row) ? 'job_id' AND NOT COALESCE(new_row, old_row) ? 'user_id' THEN
                    SELECT j.user_id INTO owner_id
                    FROM {schema}.{owner_table} j
                    WHERE j.id = COALESCE(new_row, old_row) ->> 'job_id';
                    IF owner_id IS NOT NULL THEN
                        new_row := new_row || jsonb_build_object('user_id', owner_id);
                        old_row := old_row || jsonb_build_object('user_id', owner_id);
                    END IF;
                END IF;

                payload := jsonb_build_object(
                    'table', TG_TABLE_NAME, 'type', TG_OP,
                    'record', new_row, 'old_record', old_row
                );
                IF octet_length(payload::text) > {limit} THEN
                    new_row := new_row {bags};
                    old_row := old_row {bags};
                    payload := jsonb_build_object(
                        'table', TG_TABLE_NAME, 'type', TG_OP, 'truncated', true,
                        'record', new_row, 'old_record', old_row
                    );
                END IF;
                IF octet_length(payload::text) > {limit} THEN
                    payload := jsonb_build_object(
                        'table', TG_TABLE_NAME, 'type', TG_OP, 'truncated', true,
                        'record', {schema}.shrink_change_row(new_row, NULL, {text_limit}),
                        'old_record', {schema}.shrink_change_row(old_row, NULL, {text_limit})
                    );
                END IF;
                IF octet_length(payload::text) > {limit} THEN
                    payload := jsonb_build_object(
                        'table', TG_TABLE_NAME, 'type', TG_OP, 'truncated', true,
                        'record', {schema}.shrink_change_row(new_row, {key_columns}, {key_text_limit}),
                        'old_record', {schema}.shrink_change_row(old_row, {key_columns}, {key_text_limit})
                    );
                END IF;
                PERFORM pg_notify({channel}, payload::text);
                RETURN NULL;
            END;
            $$
        """).format(
            schema=sql.Identifier(schema),
            owner_table=sql.Identifier(owner_table),
            channel=sql.Literal(channel),
            limit=sql.Literal(NotifyTriggerBuilder.MAX_PAYLOAD_BYTES),
            bags=bags,
            text_limit=sql.Literal(NotifyTriggerBuilder.TEXT_LIMIT),
            key_columns=key_columns,
            key_text_limit=sql.Literal(NotifyTriggerBuilder.KEY_TEXT_LIMIT),
        )

    @staticmethod
    def notify_statements(schema: str, channel: str, owner_table: str = "jobs") -> List[sql.Composed]:
        """The shrink helper followed by notify_row_change(), in creation order."""
        return [
            NotifyTriggerBuilder.shrink_function(schema),
            NotifyTriggerBuilder.notify_function(schema, channel, owner_table),
        ]

    @staticmethod
    def notify_trigger(
        schema: str,
        table: str,
        trigger_name: Optional[str] = None
    ) -> List[sql.Composed]:
        """
        Create trigger that calls notify_row_change() after every row change.

        Returns DROP + CREATE for idempotency.
        """
        trig_name = trigger_name or f"trg_{table}_notify"

        drop_stmt = sql.SQL("DROP TRIGGER IF EXISTS {name} ON {schema}.{table}").format(
            name=sql.Identifier(trig_name),
            schema=sql.Identifier(schema),
            table=sql.Identifier(table)
        )

        create_stmt = sql.SQL("""
            CREATE TRIGGER {name}
            AFTER INSERT OR UPDATE OR DELETE ON {schema}.{table}
            FOR EACH ROW
            EXECUTE FUNCTION {schema}.notify_row_change()
        """).format(
            name=sql.Identifier(trig_name),
            schema=sql.Identifier(schema),
            table=sql.Identifier(table)
        )

        return [drop_stmt, create_stmt]



# ============================================================================
# SCHEMA UTILITIES
# ============================================================================

class SchemaUtils:
    """Schema-level statements: create, search_path, comments."""

    @staticmethod
    def create_schema(schema: str, comment: Optional[str] = None) -> List[sql.Composed]:
        stmts = [sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(schema))]
        if comment:
            stmts.append(sql.SQL("COMMENT ON SCHEMA {} IS {}").format(
                sql.Identifier(schema), sql.Literal(comment)
            ))
        return stmts

    @staticmethod
    def set_search_path(schema: str) -> sql.Composed:
        return sql.SQL("SET search_path TO {}, public").format(sql.Identifier(schema))

    @staticmethod
    def comment_on_table(schema: str, table: str, comment: str) -> sql.Composed:
        return sql.SQL("COMMENT ON TABLE {}.{} IS {}").format(
            sql.Identifier(schema), sql.Identifier(table), sql.Literal(comment)
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "IndexBuilder",
    "NotifyTriggerBuilder",
    "SchemaUtils",
]
