# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for change feed, notifications, auth, storage
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for the change feed, notification dispatch, bearer
authentication and storage. Every value can be overridden via environment
variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RealtimeDefaults:
    """
    Defaults for the reliable change feed.

    Controls polling fallback, reconnect backoff and the LISTEN channel.
    """
    poll_interval_ms: int = 5000

    # Reconnect backoff: base * 2^(failures - threshold), capped
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 30000
    max_failures_before_backoff: int = 3

    # How long every source has to acknowledge before the attempt counts as timed out
    subscribe_timeout_ms: int = 10000

    notify_channel: str = "job_changes"

    def backoff_ms(self, failures: int) -> int:
        """Reconnect delay for the given consecutive failure count."""
        exponent = max(0, failures - self.max_failures_before_backoff)
        return min(self.backoff_max_ms, self.backoff_base_ms * (2 ** exponent))

    @classmethod
    def from_env(cls) -> "RealtimeDefaults":
        """Create from environment variables."""
        return cls(
            poll_interval_ms=int(os.getenv("REALTIME_POLL_INTERVAL_MS", 5000)),
            backoff_base_ms=int(os.getenv("REALTIME_BACKOFF_BASE_MS", 1000)),
            backoff_max_ms=int(os.getenv("REALTIME_BACKOFF_MAX_MS", 30000)),
            max_failures_before_backoff=int(os.getenv("REALTIME_MAX_FAILURES_BEFORE_BACKOFF", 3)),
            subscribe_timeout_ms=int(os.getenv("REALTIME_SUBSCRIBE_TIMEOUT_MS", 10000)),
            notify_channel=os.getenv("REALTIME_NOTIFY_CHANNEL", "job_changes"),
        )


@dataclass(frozen=True)
class NotificationDefaults:
    """
    Defaults for notification dispatch.

    Running steps stay on screen longer since they signal ongoing work.
    """
    running_duration_ms: int = 15000
    default_duration_ms: int = 12000
    follow_up_delay_ms: int = 2000

    def duration_for(self, is_running: bool) -> int:
        return self.running_duration_ms if is_running else self.default_duration_ms

    @classmethod
    def from_env(cls) -> "NotificationDefaults":
        """Create from environment variables."""
        return cls(
            running_duration_ms=int(os.getenv("NOTIFY_RUNNING_DURATION_MS", 15000)),
            default_duration_ms=int(os.getenv("NOTIFY_DEFAULT_DURATION_MS", 12000)),
            follow_up_delay_ms=int(os.getenv("NOTIFY_FOLLOW_UP_DELAY_MS", 2000)),
        )


@dataclass(frozen=True)
class AuthDefaults:
    """
    Defaults for bearer token verification.

    Tokens are HS256 JWTs. "sub" is the user id; a role claim equal to
    service_role marks the workflow engine's privileged credential.
    """
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None
    service_role: str = "service_role"

    @classmethod
    def from_env(cls) -> "AuthDefaults":
        """Create from environment variables."""
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_audience=os.getenv("JWT_AUDIENCE") or None,
            service_role=os.getenv("SERVICE_ROLE_NAME", "service_role"),
        )


@dataclass(frozen=True)
class DatabaseDefaults:
    """Defaults for the PostgreSQL connection pool."""
    schema: str = "jobtrack"
    pool_min_size: int = 2
    pool_max_size: int = 10

    @classmethod
    def from_env(cls) -> "DatabaseDefaults":
        """Create from environment variables."""
        return cls(
            schema=os.getenv("DB_SCHEMA", "jobtrack"),
            pool_min_size=int(os.getenv("DB_POOL_MIN_SIZE", 2)),
            pool_max_size=int(os.getenv("DB_POOL_MAX_SIZE", 10)),
        )


@dataclass(frozen=True)
class JobDefaults:
    """Defaults for job listing and housekeeping."""
    list_limit: int = 10
    max_list_limit: int = 100
    cleanup_days: int = 30

    @classmethod
    def from_env(cls) -> "JobDefaults":
        """Create from environment variables."""
        return cls(
            list_limit=int(os.getenv("JOB_LIST_LIMIT", 10)),
            max_list_limit=int(os.getenv("JOB_MAX_LIST_LIMIT", 100)),
            cleanup_days=int(os.getenv("JOB_CLEANUP_DAYS", 30)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    realtime: RealtimeDefaults = field(default_factory=RealtimeDefaults)
    notifications: NotificationDefaults = field(default_factory=NotificationDefaults)
    auth: AuthDefaults = field(default_factory=AuthDefaults)
    database: DatabaseDefaults = field(default_factory=DatabaseDefaults)
    jobs: JobDefaults = field(default_factory=JobDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            realtime=RealtimeDefaults.from_env(),
            notifications=NotificationDefaults.from_env(),
            auth=AuthDefaults.from_env(),
            database=DatabaseDefaults.from_env(),
            jobs=JobDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

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
