# ============================================================================
# STEP CLASSIFICATION & NODE LABELS
# ============================================================================
# STATUS: Notifications - Name-based business rules in one place
# PURPOSE: Classify step outcomes and map workflow node names to labels
# CREATED: 18 OCT 2026
# ============================================================================
"""
Step Classification & Node Labels

The workflow engine signals duplicate handling through step names today.
classify_step_outcome() is the only place that reads those names. An
explicit metadata["outcome_kind"] set by the engine always wins, so the
name matching can be retired once every workflow sets it.

friendly_node_label() maps internal workflow node identifiers (as reported
in workflow error records) to stage names a user understands.
"""

import re
from typing import Optional

from core.contracts import StepOutcome
from core.models import JobStep


OUTCOME_METADATA_KEY = "outcome_kind"

SAME_USER_DUPLICATE_STEP = "Handle Duplicates: Same User"
OTHER_USER_DUPLICATE_MARKER = "Different User"

DEFAULT_NODE_LABEL = "Workflow Node"

_TRAILING_DIGITS = re.compile(r"\d+$")


def classify_step_outcome(step: JobStep) -> StepOutcome:
    """
    Business outcome of a step.

    Order:
        1. metadata["outcome_kind"] if it names a known outcome
        2. step named exactly "Handle Duplicates: Same User"
        3. step name containing "Different User"
        4. standard
    """
    explicit = (step.metadata or {}).get(OUTCOME_METADATA_KEY)
    if explicit:
        try:
            return StepOutcome(explicit)
        except ValueError:
            pass

    if step.step_name == SAME_USER_DUPLICATE_STEP:
        return StepOutcome.DUPLICATE_SAME_USER
    if OTHER_USER_DUPLICATE_MARKER in step.step_name:
        return StepOutcome.DUPLICATE_OTHER_USER
    return StepOutcome.STANDARD


# ============================================================================
# NODE LABELS
# ============================================================================

# Matched against the node name with trailing digits removed
_BASE_NAME_LABELS = {
    "Basic LLM Chain": "AI Model",
    "OpenRouter model": "AI Model",
    "OpenRouter fallback model": "AI Backup Model",
    "Structured Output Parser": "AI Response Processing",
    "Create a row": "Database Save",
}

# Matched against the full node name
_EXACT_LABELS = {
    "Get video transcription": "Video Transcription",
    "Scrape video": "Video Content Extraction",
    "Scrape website": "Website Content Extraction",
    "Get a row": "Database Check",
    "Get video ID": "Video Processing",
    "Set Resource Language": "Language Processing",
    "Check if resource link is not already in database": "Duplicate Check",
    "Check if YouTube Video": "Content Type Detection",
    "Switch": "Content Processing",
    "Same Language": "Language Processing",
}

_CONTAINS_LABELS = (
    ("Get Title, Author, Published Date", "Content Analysis"),
    ("Get Resource Language", "Language Detection"),
    ("Check If Resource Is In Current User Collection", "Duplicate Check"),
    ("Check If Current User Already Has Resource", "Duplicate Check"),
)

UPDATE_STEP_PREFIX = "Update Step - "

_UPDATE_STEP_LABELS = (
    ("Duplicates Check", "Duplicate Check"),
    ("Content Type Detection", "Content Type Detection"),
    ("Content Extracted", "Content Extraction"),
    ("AI Complete", "AI Processing"),
    ("Database Save", "Database Save"),
    ("Handle Duplicates", "Duplicate Handling"),
)


def _base_name(node_name: str) -> str:
    return _TRAILING_DIGITS.sub("", node_name).strip()


def friendly_node_label(node_name: Optional[str]) -> str:
    """
    User-facing label for a workflow node.

    Unknown nodes fall back to the node name without its numeric suffix
    ("HTTP Request3" -> "HTTP Request").
    """
    if not node_name:
        return DEFAULT_NODE_LABEL

    base = _base_name(node_name)
    if base in _BASE_NAME_LABELS:
        return _BASE_NAME_LABELS[base]
    if node_name in _EXACT_LABELS:
        return _EXACT_LABELS[node_name]
    for fragment, label in _CONTAINS_LABELS:
        if fragment in node_name:
            return label

    if UPDATE_STEP_PREFIX in node_name:
        step_name = node_name.replace(UPDATE_STEP_PREFIX, "")
        for fragment, label in _UPDATE_STEP_LABELS:
            if fragment in step_name:
                return label
        return step_name

    return base or DEFAULT_NODE_LABEL


__all__ = [
    "classify_step_outcome",
    "friendly_node_label",
    "OUTCOME_METADATA_KEY",
    "SAME_USER_DUPLICATE_STEP",
    "DEFAULT_NODE_LABEL",
]
