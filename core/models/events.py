# ============================================================================
# CHANGE EVENT MODEL
# ============================================================================
# STATUS: Core model - Tagged union of row change events
# PURPOSE: One concrete schema per change-feed source, validated on receipt
# CREATED: 18 OCT 2026
# EXPORTS: ChangePayload, JobChange, StepChange, WorkflowErrorChange,
#          ChangeEvent, parse_change, SOURCE_JOBS, SOURCE_JOB_STEPS,
#          SOURCE_WORKFLOW_ERRORS
# DEPENDENCIES: pydantic
# ============================================================================
"""
Change Event Model

Every change delivered by the change feed, live or synthetic, is one of
three variants keyed by its source:

    jobs             -> JobChange            (payload rows are Job)
    job_steps        -> StepChange           (payload rows are JobStep)
    workflow_errors  -> WorkflowErrorChange  (payload rows are WorkflowError)

Raw payloads from the live channel have the shape
{"type": "INSERT", "record": {...}, "old_record": {...}} and are validated
into the matching variant by parse_change(). Synthetic events from the
poller are constructed directly with is_synthetic=True.
"""

from typing import Annotated, Any, Dict, Generic, Literal, Optional, TypeVar, Union
from pydantic import BaseModel, Field, TypeAdapter

from core.contracts import ChangeType
from core.models.job import Job
from core.models.step import JobStep
from core.models.workflow_error import WorkflowError


SOURCE_JOBS = "jobs"
SOURCE_JOB_STEPS = "job_steps"
SOURCE_WORKFLOW_ERRORS = "workflow_errors"

RowT = TypeVar("RowT")


class ChangePayload(BaseModel, Generic[RowT]):
    """The before/after rows of one change."""

    event_type: ChangeType
    new: Optional[RowT] = None
    old: Optional[RowT] = None


class JobChange(BaseModel):
    source: Literal["jobs"] = SOURCE_JOBS
    payload: ChangePayload[Job]
    is_synthetic: bool = False


class StepChange(BaseModel):
    source: Literal["job_steps"] = SOURCE_JOB_STEPS
    payload: ChangePayload[JobStep]
    is_synthetic: bool = False


class WorkflowErrorChange(BaseModel):
    source: Literal["workflow_errors"] = SOURCE_WORKFLOW_ERRORS
    payload: ChangePayload[WorkflowError]
    is_synthetic: bool = False


ChangeEvent = Annotated[
    Union[JobChange, StepChange, WorkflowErrorChange],
    Field(discriminator="source"),
]

_change_adapter: TypeAdapter = TypeAdapter(ChangeEvent)


def parse_change(
    source: str,
    raw: Dict[str, Any],
    is_synthetic: bool = False,
) -> Union[JobChange, StepChange, WorkflowErrorChange]:
    """
    Validate a raw channel payload into its source's variant.

    Empty record/old_record objects are treated as absent.

    Raises:
        pydantic.ValidationError: payload does not match the source schema
    """
    return _change_adapter.validate_python({
        "source": source,
        "payload": {
            "event_type": raw.get("type") or raw.get("eventType"),
            "new": raw.get("record") or raw.get("new") or None,
            "old": raw.get("old_record") or raw.get("old") or None,
        },
        "is_synthetic": is_synthetic,
    })


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "SOURCE_JOBS",
    "SOURCE_JOB_STEPS",
    "SOURCE_WORKFLOW_ERRORS",
    "ChangePayload",
    "JobChange",
    "StepChange",
    "WorkflowErrorChange",
    "ChangeEvent",
    "parse_change",
]
