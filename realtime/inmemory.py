# ============================================================================
# IN-MEMORY CHANGE TRANSPORT
# ============================================================================
# STATUS: Realtime - Process-local live channel
# PURPOSE: Deliver published row changes to matching subscriptions in-process
# CREATED: 18 OCT 2026
# EXPORTS: InMemoryChannel, InMemoryTransport
# ============================================================================
"""In-memory change transport for tests and single-process setups."""

import asyncio
from typing import Any, Dict, List, Optional

from core.contracts import ChannelStatus
from .transport import Channel, ChangeSource, ChangeTransport, OnChange, OnStatus


class InMemoryChannel(Channel):
    def __init__(self, transport: "InMemoryTransport", source: ChangeSource, on_change: OnChange, on_status: OnStatus):
        super().__init__(source)
        self._transport = transport
        self.on_change = on_change
        self.on_status = on_status
        self.released = False

    async def release(self) -> None:
        self.released = True
        self._transport._remove(self)


class InMemoryTransport(ChangeTransport):
    """
    Delivers published payloads to matching subscriptions in-process.

    With auto_ack=True every subscription is acknowledged on the next loop
    iteration. Tests drive failures with emit_status() and fail_next().
    """

    def __init__(self, auto_ack: bool = True) -> None:
        self.auto_ack = auto_ack
        self.channels: List[InMemoryChannel] = []
        self.subscribe_calls = 0
        self._pending_failures: List[BaseException] = []

    def fail_next(self, error: BaseException, count: int = 1) -> None:
        """Make the next `count` subscribe() calls raise error."""
        self._pending_failures.extend([error] * count)

    async def subscribe(self, source: ChangeSource, on_change: OnChange, on_status: OnStatus) -> Channel:
        self.subscribe_calls += 1
        if self._pending_failures:
            raise self._pending_failures.pop(0)

        channel = InMemoryChannel(self, source, on_change, on_status)
        self.channels.append(channel)
        if self.auto_ack:
            asyncio.get_running_loop().call_soon(self._ack, channel)
        return channel

    def _ack(self, channel: InMemoryChannel) -> None:
        if not channel.released:
            channel.on_status(ChannelStatus.SUBSCRIBED, None)

    def _remove(self, channel: InMemoryChannel) -> None:
        if channel in self.channels:
            self.channels.remove(channel)

    def ack(self, source_key: str) -> None:
        """Acknowledge every live subscription of a source."""
        for channel in list(self.channels):
            if channel.source.key == source_key:
                self._ack(channel)

    def emit_status(
        self,
        source_key: str,
        status: ChannelStatus,
        error: Optional[BaseException] = None,
    ) -> None:
        """Report a channel status for every live subscription of a source."""
        for channel in list(self.channels):
            if channel.source.key == source_key:
                channel.on_status(status, error)

    def publish(
        self,
        table: str,
        change_type: str,
        record: Optional[Dict[str, Any]] = None,
        old_record: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Deliver a row change to every matching subscription.

        Returns:
            Number of subscriptions it was delivered to
        """
        raw = {"table": table, "type": change_type, "record": record, "old_record": old_record}
        delivered = 0
        for channel in list(self.channels):
            if channel.source.matches(raw):
                channel.on_change(raw)
                delivered += 1
        return delivered

    async def disconnect(self) -> None:
        for channel in list(self.channels):
            await channel.release()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["InMemoryChannel", "InMemoryTransport"]
