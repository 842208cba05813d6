# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums shared by server and consumer side
# PURPOSE: Status enums, change-feed vocabulary, notification vocabulary
# CREATED: 18 OCT 2026
# EXPORTS: JobStatus, StepStatus, ChangeType, ChannelStatus, ConnectionMode,
#          StepOutcome, NotificationKind, NotificationVariant, utc_now
# ============================================================================
"""
Base contracts for the job tracking system.

These enums cross every boundary:
- SQL (PostgreSQL enum types generated from these classes)
- HTTP (FastAPI request/response bodies)
- Change feed (LISTEN/NOTIFY payloads and synthetic poll events)
"""

from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    """Timezone-aware now, comparable with TIMESTAMPTZ values."""
    return datetime.now(timezone.utc)


# ============================================================================
# STATUS ENUMS
# ============================================================================

class JobStatus(str, Enum):
    """
    Job lifecycle states.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
                           -> CANCELLED
        PENDING -> COMPLETED / FAILED (steps jumped straight to terminal)
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (completed_at is set)."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)


class StepStatus(str, Enum):
    """
    Step lifecycle states within a job.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
        PENDING -> SKIPPED (branch not taken)
        PENDING -> COMPLETED / FAILED (engine never reported running)
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)

    def is_done(self) -> bool:
        """Counts toward completion accounting."""
        return self in (StepStatus.COMPLETED, StepStatus.SKIPPED)

    def is_notable(self) -> bool:
        """Statuses the user is told about."""
        return self in (StepStatus.RUNNING, StepStatus.COMPLETED, StepStatus.FAILED)


# ============================================================================
# CHANGE FEED
# ============================================================================

class ChangeType(str, Enum):
    """Row change kinds carried by the change feed."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChannelStatus(str, Enum):
    """Status signals a live channel reports for one source."""
    SUBSCRIBED = "SUBSCRIBED"
    TIMED_OUT = "TIMED_OUT"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    CLOSED = "CLOSED"


class ConnectionMode(str, Enum):
    """
    Change feed connection modes.

    INITIALIZING -> CONNECTED (every source acknowledged)
    INITIALIZING -> POLLING (any failure or ack timeout)
    POLLING -> CONNECTED (reconnect succeeded)
    ERROR is used when a live channel fails and no poller can cover it.
    """
    INITIALIZING = "initializing"
    CONNECTED = "connected"
    POLLING = "polling"
    ERROR = "error"


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class StepOutcome(str, Enum):
    """Business outcome a step carries beyond its status."""
    STANDARD = "standard"
    DUPLICATE_SAME_USER = "duplicate_same_user"
    DUPLICATE_OTHER_USER = "duplicate_other_user"


class NotificationKind(str, Enum):
    JOB_CREATED = "job_created"
    JOB_FAILED = "job_failed"
    STEP_UPDATED = "step_updated"
    WORKFLOW_ERROR = "workflow_error"


class NotificationVariant(str, Enum):
    """Visual severity of a notification."""
    DEFAULT = "default"
    SUCCESS = "success"
    PRIMARY = "primary"
    DESTRUCTIVE = "destructive"


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "JobStatus",
    "StepStatus",
    "ChangeType",
    "ChannelStatus",
    "ConnectionMode",
    "StepOutcome",
    "NotificationKind",
    "NotificationVariant",
    "utc_now",
]
