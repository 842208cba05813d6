# ============================================================================
# NOTIFICATIONS MODULE
# ============================================================================
# STATUS: Notifications - Exports
# PURPOSE: Dedup/dispatch, label mapping and the job monitor session
# CREATED: 18 OCT 2026
# ============================================================================
"""
Notifications Module

Exports:
    JobNotificationDispatcher: Dedup and render notifications
    NotificationSink: Destination for notifications and follow-ups
    JobMonitor: One user's job list, change feed and notifications
    classify_step_outcome, friendly_node_label: Name-based rules
"""

from .labels import classify_step_outcome, friendly_node_label
from .dispatcher import JobNotificationDispatcher, NotificationSink
from .monitor import JobMonitor, job_sources

__all__ = [
    "classify_step_outcome",
    "friendly_node_label",
    "JobNotificationDispatcher",
    "NotificationSink",
    "JobMonitor",
    "job_sources",
]
