# ============================================================================
# STEP CLASSIFICATION & NODE LABEL TESTS
# ============================================================================
# STATUS: Tests - Name-based business rules
# PURPOSE: Verify notifications/labels.py
# CREATED: 18 OCT 2026
# ============================================================================
"""
Step Classification & Node Label Tests

Run with:
    pytest tests/test_labels.py -v
"""

import pytest

from core.contracts import StepOutcome
from core.models import JobStep
from notifications.labels import classify_step_outcome, friendly_node_label


def _step(name, metadata=None):
    return JobStep(id="s1", job_id="job-1", step_name=name, metadata=metadata or {})


class TestClassifyStepOutcome:

    def test_same_user_by_name(self):
        assert classify_step_outcome(_step("Handle Duplicates: Same User")) == StepOutcome.DUPLICATE_SAME_USER

    def test_other_user_by_name(self):
        assert classify_step_outcome(_step("Handle Duplicates: Different User")) == StepOutcome.DUPLICATE_OTHER_USER

    def test_standard(self):
        assert classify_step_outcome(_step("Database Save")) == StepOutcome.STANDARD

    def test_same_user_requires_exact_name(self):
        assert classify_step_outcome(_step("handle duplicates: same user")) == StepOutcome.STANDARD

    def test_metadata_wins_over_name(self):
        step = _step("Handle Duplicates: Same User", {"outcome_kind": "standard"})
        assert classify_step_outcome(step) == StepOutcome.STANDARD

    def test_metadata_marks_duplicate(self):
        step = _step("Dedup", {"outcome_kind": "duplicate_other_user"})
        assert classify_step_outcome(step) == StepOutcome.DUPLICATE_OTHER_USER

    def test_unknown_metadata_falls_back_to_name(self):
        step = _step("Handle Duplicates: Same User", {"outcome_kind": "something-else"})
        assert classify_step_outcome(step) == StepOutcome.DUPLICATE_SAME_USER


class TestFriendlyNodeLabel:

    @pytest.mark.parametrize("node,label", [
        ("Basic LLM Chain2", "AI Model"),
        ("OpenRouter fallback model", "AI Backup Model"),
        ("Create a row1", "Database Save"),
        ("Scrape website", "Website Content Extraction"),
        ("Check if YouTube Video", "Content Type Detection"),
        ("Get Resource Language Detector", "Language Detection"),
        ("Update Step - AI Complete", "AI Processing"),
        ("Update Step - Handle Duplicates: Same User", "Duplicate Handling"),
        ("Update Step - Custom Stage", "Custom Stage"),
        ("HTTP Request3", "HTTP Request"),
    ])
    def test_labels(self, node, label):
        assert friendly_node_label(node) == label

    def test_missing_node(self):
        assert friendly_node_label(None) == "Workflow Node"
        assert friendly_node_label("") == "Workflow Node"

    def test_digits_only(self):
        assert friendly_node_label("123") == "Workflow Node"
