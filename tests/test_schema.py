# ============================================================================
# SCHEMA GENERATION TESTS
# ============================================================================
# STATUS: Tests - DDL generated from the Pydantic models
# PURPOSE: Verify tables, unique step names and change-notify triggers
# CREATED: 18 OCT 2026
# ============================================================================
"""
Schema Generation Tests

Statements are rendered without a connection, so no database is needed.

Run with:
    pytest tests/test_schema.py -v
"""

import json

import pytest

from core.models import WorkflowError
from core.schema import NotifyTriggerBuilder, PydanticToSQL


@pytest.fixture(scope="module")
def ddl():
    generator = PydanticToSQL(schema_name="jobtrack")
    return [stmt.as_string(None) for stmt in generator.generate_all(notify_channel="job_changes")]


def _joined(ddl):
    return "\n".join(ddl)


class TestSchemaGeneration:

    def test_tables_created(self, ddl):
        text = _joined(ddl)
        for table in ("jobs", "job_steps", "workflow_errors"):
            assert f'CREATE TABLE IF NOT EXISTS "jobtrack"."{table}"' in text

    def test_status_enums(self, ddl):
        text = _joined(ddl)
        assert '"job_status"' in text
        assert '"step_status"' in text
        assert "'cancelled'" in text
        assert "'skipped'" in text

    def test_step_name_unique_per_job(self, ddl):
        unique = [s for s in ddl if "idx_job_steps_job_name" in s]
        assert unique
        assert "UNIQUE" in unique[0]

    def test_steps_cascade_with_job(self, ddl):
        steps_table = next(s for s in ddl if '"jobtrack"."job_steps" (' in s)
        assert "ON DELETE CASCADE" in steps_table

    def test_notify_function_uses_channel(self, ddl):
        function = next(s for s in ddl if "notify_row_change()" in s and "CREATE OR REPLACE" in s)
        assert "pg_notify('job_changes'" in function
        assert "'old_record'" in function

    def test_trigger_per_table(self, ddl):
        triggers = [s for s in ddl if "CREATE TRIGGER" in s]
        assert len(triggers) == 3
        assert any('"trg_job_steps_notify"' in s for s in triggers)

    def test_custom_channel(self):
        generator = PydanticToSQL(schema_name="jobtrack")
        text = "\n".join(s.as_string(None) for s in generator.generate_all(notify_channel="other"))
        assert "pg_notify('other'" in text


class TestNotifyPayloadSize:

    def _function(self, ddl):
        return next(s for s in ddl if "notify_row_change()" in s and "CREATE OR REPLACE" in s)

    def test_shrink_helper_created_first(self, ddl):
        helper = next(i for i, s in enumerate(ddl) if "FUNCTION \"jobtrack\".shrink_change_row(" in s)
        function = next(i for i, s in enumerate(ddl) if "FUNCTION \"jobtrack\".notify_row_change()" in s)
        assert helper < function
        assert "'{}'" in ddl[helper]

    def test_oversized_rows_shrink_in_steps(self, ddl):
        function = self._function(ddl)
        assert function.count("> 7800") == 3
        assert "- 'output_data' - 'error_data' - 'metadata'" in function
        assert 'shrink_change_row(new_row, NULL, 200)' in function
        assert "shrink_change_row(new_row, ARRAY['id', 'job_id', 'user_id', 'step_order', 'status']::text[], 64)" in function
        assert "'truncated', true" in function

    def test_step_rows_carry_owner(self, ddl):
        function = self._function(ddl)
        assert 'FROM "jobtrack"."jobs" j' in function
        assert "jsonb_build_object('user_id', owner_id)" in function

    def test_long_error_message_needs_string_cut(self):
        # A valid 4000-character error still overflows once the bags are gone
        row = WorkflowError(
            id="e" * 64, user_id="u" * 64, workflow_name="Add Resource", error_message="失" * 4000,
        ).model_dump(mode="json")
        for column in NotifyTriggerBuilder.BAG_COLUMNS:
            row.pop(column, None)
        bags_dropped = {"table": "workflow_errors", "type": "INSERT", "record": row, "old_record": None}
        assert _pg_bytes(bags_dropped) > NotifyTriggerBuilder.MAX_PAYLOAD_BYTES

        cut = {k: v[:NotifyTriggerBuilder.TEXT_LIMIT] if isinstance(v, str) else v for k, v in row.items()}
        shrunk = {**bags_dropped, "truncated": True, "record": cut}
        assert _pg_bytes(shrunk) < NotifyTriggerBuilder.MAX_PAYLOAD_BYTES

    def test_key_columns_always_fit(self):
        widest = "\U0001F600" * NotifyTriggerBuilder.KEY_TEXT_LIMIT
        row = {column: widest for column in NotifyTriggerBuilder.KEY_COLUMNS}
        payload = {"table": "job_steps", "type": "UPDATE", "truncated": True, "record": row, "old_record": row}
        assert _pg_bytes(payload) < NotifyTriggerBuilder.MAX_PAYLOAD_BYTES


def _pg_bytes(payload):
    """Byte length of the jsonb text PostgreSQL would send (non-ASCII unescaped)."""
    return len(json.dumps(payload, ensure_ascii=False).encode("utf-8"))
