# ============================================================================
# POSTGRES LISTEN/NOTIFY TRANSPORT
# ============================================================================
# STATUS: Realtime - Live push channel over PostgreSQL notifications
# PURPOSE: Deliver row-change payloads published by the notify triggers
# CREATED: 18 OCT 2026
# ============================================================================
"""
Postgres Notify Transport

One autocommit connection LISTENs on the notify channel (default
"job_changes"). The row triggers installed by scripts/deploy_schema.py
publish one JSON payload per row change:

    {"table": "job_steps", "type": "UPDATE", "record": {...}, "old_record": {...}}

A listener task reads notifications and hands each payload to every
subscription whose source matches (table, event type, owner filter).

Payloads over the NOTIFY size limit are published without output_data,
error_data and metadata; consumers that need those fields re-fetch the row.

When the connection drops, every live subscription is told CHANNEL_ERROR
and the connection is discarded; the next subscribe() opens a new one.
"""

import asyncio
import json
import logging
from typing import List, Optional

import psycopg
from psycopg import AsyncConnection, sql

from core.contracts import ChannelStatus
from repositories.database import mask_conninfo
from .transport import Channel, ChangeSource, ChangeTransport, OnChange, OnStatus

logger = logging.getLogger(__name__)


class NotifyChannel(Channel):
    """One source subscription on the shared LISTEN connection."""

    def __init__(
        self,
        transport: "PostgresNotifyTransport",
        source: ChangeSource,
        on_change: OnChange,
        on_status: OnStatus,
    ):
        super().__init__(source)
        self._transport = transport
        self.on_change = on_change
        self.on_status = on_status
        self.released = False

    def acknowledge(self) -> None:
        if not self.released:
            self.on_status(ChannelStatus.SUBSCRIBED, None)

    async def release(self) -> None:
        self.released = True
        self._transport._remove(self)


class PostgresNotifyTransport(ChangeTransport):
    """
    LISTEN/NOTIFY change transport.

    Args:
        conninfo: PostgreSQL connection string
        channel: Notification channel the triggers publish on
    """

    def __init__(self, conninfo: str, channel: str = "job_changes"):
        self._conninfo = conninfo
        self._channel_name = channel
        self._conn: Optional[AsyncConnection] = None
        self._listener: Optional[asyncio.Task] = None
        self._channels: List[NotifyChannel] = []
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None and not self._conn.closed

    async def connect(self) -> None:
        """Open the LISTEN connection if it is not already open."""
        async with self._lock:
            if self.is_connected:
                return
            logger.info(f"Listening on '{self._channel_name}' at {mask_conninfo(self._conninfo)}")
            conn = await psycopg.AsyncConnection.connect(self._conninfo, autocommit=True)
            try:
                await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self._channel_name)))
            except psycopg.Error:
                await conn.close()
                raise
            self._conn = conn
            self._listener = asyncio.create_task(self._listen(conn))

    async def disconnect(self) -> None:
        """Stop listening and close the connection without signalling channels."""
        listener, self._listener = self._listener, None
        if listener is not None and not listener.done():
            listener.cancel()
            await asyncio.gather(listener, return_exceptions=True)
        self._channels.clear()
        await self._close(self._conn)
        self._conn = None

    async def subscribe(self, source: ChangeSource, on_change: OnChange, on_status: OnStatus) -> Channel:
        await self.connect()
        channel = NotifyChannel(self, source, on_change, on_status)
        self._channels.append(channel)
        # LISTEN is already active, acknowledge once the caller holds the handle
        asyncio.get_running_loop().call_soon(channel.acknowledge)
        logger.debug(f"Subscribed {source.describe()}")
        return channel

    def _remove(self, channel: NotifyChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    # =========================================================================
    # LISTENER
    # =========================================================================

    async def _listen(self, conn: AsyncConnection) -> None:
        try:
            async for notify in conn.notifies():
                self._dispatch(notify.payload)
        except asyncio.CancelledError:
            raise
        except psycopg.Error as exc:
            logger.warning(f"LISTEN connection lost: {exc}")
            await self._drop(conn, ChannelStatus.CHANNEL_ERROR, exc)
        else:
            await self._drop(conn, ChannelStatus.CLOSED, None)

    def _dispatch(self, payload: str) -> None:
        try:
            raw = json.loads(payload)
        except json.JSONDecodeError as exc:
            logger.warning(f"Ignoring non-JSON notification: {exc}")
            return
        if not isinstance(raw, dict):
            logger.warning("Ignoring notification that is not a JSON object")
            return

        for channel in list(self._channels):
            if channel.released or not channel.source.matches(raw):
                continue
            try:
                channel.on_change(raw)
            except Exception:
                logger.exception(f"Change callback failed for {channel.source.key}")

    async def _drop(
        self,
        conn: AsyncConnection,
        status: ChannelStatus,
        error: Optional[BaseException],
    ) -> None:
        if self._conn is conn:
            self._conn = None
            self._listener = None
        channels, self._channels = list(self._channels), []
        for channel in channels:
            if not channel.released:
                channel.on_status(status, error)
        await self._close(conn)

    async def _close(self, conn: Optional[AsyncConnection]) -> None:
        if conn is None or conn.closed:
            return
        try:
            await conn.close()
        except psycopg.Error as exc:
            logger.debug(f"Closing LISTEN connection failed: {exc}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["PostgresNotifyTransport", "NotifyChannel"]
