# ============================================================================
# NOTIFICATION MODEL
# ============================================================================
# STATUS: Core model - User-facing notification
# PURPOSE: What the dispatcher hands to a notification sink
# CREATED: 18 OCT 2026
# EXPORTS: Notification, FollowUp, FollowUpAction
# DEPENDENCIES: pydantic
# ============================================================================
"""
Notification Model

A Notification is the rendered result of one state transition. Some carry
a follow-up action (navigate to a resource, refresh the job view) that the
dispatcher schedules on the sink after delay_ms.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from core.contracts import NotificationKind, NotificationVariant


class FollowUpAction(str, Enum):
    NAVIGATE_TO_RESOURCE = "navigate_to_resource"
    REFRESH = "refresh"


class FollowUp(BaseModel):
    action: FollowUpAction
    delay_ms: int = Field(default=2000, ge=0)
    resource_id: Optional[str] = None


class Notification(BaseModel):
    """One user-visible notification."""

    kind: NotificationKind
    title: str
    description: Optional[str] = None
    variant: NotificationVariant = NotificationVariant.DEFAULT
    duration_ms: int = Field(default=12000, ge=0)

    dedup_key: str = Field(..., description="Transition identity used for dedup")
    job_id: Optional[str] = None
    step_id: Optional[str] = None

    follow_up: Optional[FollowUp] = None


__all__ = ["Notification", "FollowUp", "FollowUpAction"]
