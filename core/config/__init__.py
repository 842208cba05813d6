# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the job tracker.
"""

from core.config.defaults import (
    RealtimeDefaults,
    NotificationDefaults,
    AuthDefaults,
    DatabaseDefaults,
    JobDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "RealtimeDefaults",
    "NotificationDefaults",
    "AuthDefaults",
    "DatabaseDefaults",
    "JobDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
