# ============================================================================
# REALTIME MODULE
# ============================================================================
# STATUS: Realtime - Change feed exports
# PURPOSE: Live push transports, polling fallback and the reliable feed
# CREATED: 18 OCT 2026
# ============================================================================
"""
Realtime Module

Exports:
    ChangeTransport, ChangeSource, SourceFilter: Transport abstraction
    PostgresNotifyTransport: LISTEN/NOTIFY transport
    InMemoryTransport: In-process transport
    JobSnapshotPoller: Polling fallback with snapshot diffing
    ReliableChangeFeed: Live push with polling fallback
"""

from .transport import Channel, ChangeSource, ChangeTransport, SourceFilter
from .inmemory import InMemoryTransport
from .postgres import PostgresNotifyTransport
from .poller import JobSnapshotPoller
from .feed import FeedState, ReliableChangeFeed, SubscriptionToken

__all__ = [
    "Channel",
    "ChangeSource",
    "ChangeTransport",
    "SourceFilter",
    "InMemoryTransport",
    "PostgresNotifyTransport",
    "JobSnapshotPoller",
    "ReliableChangeFeed",
    "SubscriptionToken",
    "FeedState",
]
