# ============================================================================
# CHANGE TRANSPORT INTERFACE
# ============================================================================
# STATUS: Realtime - Live push channel abstraction
# PURPOSE: Subscribe to row changes per source with status signalling
# CREATED: 18 OCT 2026
# ============================================================================
"""
Change Transport

A transport delivers raw row-change payloads for subscribed sources and
reports per-source channel status (SUBSCRIBED, TIMED_OUT, CHANNEL_ERROR,
CLOSED). It knows nothing about fallback or reconnect policy; that lives
in realtime.feed.

Raw payload shape:
    {"table": "jobs", "type": "UPDATE", "record": {...}, "old_record": {...}}
"""

import abc
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.contracts import ChangeType, ChannelStatus


OnChange = Callable[[Dict[str, Any]], None]
OnStatus = Callable[[ChannelStatus, Optional[BaseException]], None]


@dataclass(frozen=True)
class SourceFilter:
    """Row-level predicate: column equals value."""
    column: str
    value: Any

    def matches(self, row: Optional[Dict[str, Any]]) -> bool:
        if not row:
            return False
        return row.get(self.column) == self.value

    def __str__(self) -> str:
        return f"{self.column}=eq.{self.value}"


@dataclass(frozen=True)
class ChangeSource:
    """
    One subscribed collection.

    Args:
        key: Source identifier carried on every event ("jobs", "job_steps", ...)
        table: Table whose changes are delivered
        event: "INSERT", "UPDATE", "DELETE" or "*"
        filter: Optional owner predicate
    """
    key: str
    table: str
    event: str = "*"
    filter: Optional[SourceFilter] = None

    def matches(self, raw: Dict[str, Any]) -> bool:
        """Check whether a raw payload belongs to this source."""
        if raw.get("table") != self.table:
            return False
        event_type = raw.get("type")
        if self.event != "*" and event_type != self.event:
            return False
        if self.filter is None:
            return True
        row = raw.get("old_record") if event_type == ChangeType.DELETE.value else raw.get("record")
        return self.filter.matches(row)

    def describe(self) -> str:
        suffix = f" [{self.filter}]" if self.filter else ""
        return f"{self.key}:{self.event}:{self.table}{suffix}"


class Channel(metaclass=abc.ABCMeta):
    """Handle for one live subscription."""

    def __init__(self, source: ChangeSource):
        self.source = source

    @abc.abstractmethod
    async def release(self) -> None:
        """Stop delivery for this subscription."""
        raise NotImplementedError


class ChangeTransport(metaclass=abc.ABCMeta):
    """Abstract live push channel."""

    async def connect(self) -> None:
        """Open the underlying connection (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close the underlying connection (no-op by default)."""
        pass

    @abc.abstractmethod
    async def subscribe(
        self,
        source: ChangeSource,
        on_change: OnChange,
        on_status: OnStatus,
    ) -> Channel:
        """
        Start delivering changes for a source.

        Acknowledgement is reported asynchronously through on_status
        (SUBSCRIBED). Failures may be raised here or reported later
        through on_status.
        """
        raise NotImplementedError


__all__ = [
    "OnChange",
    "OnStatus",
    "SourceFilter",
    "ChangeSource",
    "Channel",
    "ChangeTransport",
]
