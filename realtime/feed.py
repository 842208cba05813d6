# ============================================================================
# RELIABLE CHANGE FEED
# ============================================================================
# STATUS: Realtime - Live push with polling fallback
# PURPOSE: Uniform change event stream regardless of transport health
# CREATED: 18 OCT 2026
# ============================================================================
"""
Reliable Change Feed

Wraps a ChangeTransport with an interval-polling fallback and exposes one
stream of validated change events to a single async callback.

Connection modes:

    INITIALIZING --(every source acknowledged)--> CONNECTED
    INITIALIZING --(error / timeout)------------> POLLING
    CONNECTED ----(error / timeout / closed)----> POLLING
    POLLING ------(reconnect acknowledged)------> CONNECTED
    ERROR: a live channel failed and there is no poller to cover it

Every subscription attempt gets a SubscriptionToken carrying a generation
number. Starting a new attempt cancels the previous token, and every
callback checks its captured token before acting, so callbacks from
superseded channels are dropped. Events are delivered through one queue
and the token is checked again at dequeue.

Reconnect delay: min(max, base * 2^max(0, failures - threshold)).
A generation counts at most one failure, however many of its sources
report errors.

Usage:
    feed = ReliableChangeFeed(transport, sources, on_event, poller=poller)
    await feed.start()
    ...
    await feed.aclose()
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from core.config import RealtimeDefaults
from core.contracts import ChannelStatus, ConnectionMode, utc_now
from core.models import parse_change
from .poller import JobSnapshotPoller
from .transport import Channel, ChangeSource, ChangeTransport

logger = logging.getLogger(__name__)


EventHandler = Callable[[Any], Awaitable[None]]


# ============================================================================
# CANCELLATION TOKEN
# ============================================================================

class SubscriptionToken:
    """Handle for one subscription attempt; cancelled when superseded."""

    def __init__(self, generation: int, source_keys: Sequence[str]):
        self.generation = generation
        self.pending: Set[str] = set(source_keys)
        self.channels: List[Channel] = []
        self.failed = False
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"SubscriptionToken(generation={self.generation}, {state})"


@dataclass(frozen=True)
class FeedState:
    """Snapshot of the feed's connection state."""
    mode: ConnectionMode
    error: Optional[str]
    failures: int
    last_activity_at: Optional[datetime]
    generation: int
    polling: bool
    online: bool

    @property
    def is_connected(self) -> bool:
        return self.mode == ConnectionMode.CONNECTED


# ============================================================================
# FEED
# ============================================================================

class ReliableChangeFeed:
    """
    Change events from a live transport, falling back to polling.

    Args:
        transport: Live push channel, or None for poll-only operation
        sources: Sources to subscribe
        on_event: Async callback receiving every validated change event
        poller: Snapshot poller used as the fallback (optional)
        settings: Poll interval, backoff and ack timeout
    """

    def __init__(
        self,
        transport: Optional[ChangeTransport],
        sources: Sequence[ChangeSource],
        on_event: EventHandler,
        poller: Optional[JobSnapshotPoller] = None,
        settings: Optional[RealtimeDefaults] = None,
    ):
        if not sources:
            raise ValueError("At least one change source is required")

        self._transport = transport
        self._sources = list(sources)
        self._on_event = on_event
        self._poller = poller
        self._settings = settings or RealtimeDefaults()

        self._alive = False
        self._online = True
        self._generation = 0
        self._token: Optional[SubscriptionToken] = None

        self._mode = ConnectionMode.INITIALIZING
        self._error: Optional[str] = None
        self._failures = 0
        self._last_activity_at: Optional[datetime] = None
        self._warned: Set[Tuple[str, str]] = set()

        self._queue: "asyncio.Queue[Tuple[Optional[SubscriptionToken], Any]]" = asyncio.Queue()
        self._delivery_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._ack_task: Optional[asyncio.Task] = None

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @property
    def state(self) -> FeedState:
        return FeedState(
            mode=self._mode,
            error=self._error,
            failures=self._failures,
            last_activity_at=self._last_activity_at,
            generation=self._generation,
            polling=self._poll_task is not None and not self._poll_task.done(),
            online=self._online,
        )

    @property
    def mode(self) -> ConnectionMode:
        return self._mode

    async def start(self) -> None:
        """Start delivery, subscribe every source and poll until acknowledged."""
        if self._alive:
            return
        self._alive = True
        self._delivery_task = asyncio.create_task(self._deliver_loop())

        if self._transport is None:
            if self._poller is None:
                self._set_mode(ConnectionMode.ERROR, "No transport and no poller configured")
            else:
                self._set_mode(ConnectionMode.POLLING)
                self._start_polling()
            logger.info("Change feed running without a live transport")
            return

        # Safety net until every source acknowledges
        self._start_polling()
        await self._subscribe()

    async def aclose(self) -> None:
        """Release all channels and stop timers; no callback fires afterwards."""
        if not self._alive:
            return
        self._alive = False

        token = self._token
        self._token = None
        if token is not None:
            token.cancel()

        tasks = [self._reconnect_task, self._ack_task, self._poll_task, self._delivery_task]
        self._reconnect_task = self._ack_task = self._poll_task = self._delivery_task = None
        current = asyncio.current_task()
        pending = [t for t in tasks if t is not None and t is not current and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if token is not None:
            await self._release(token)
        logger.info(f"Change feed closed (generation {self._generation})")

    async def force_reconnect(self) -> None:
        """Reset the failure count and resubscribe immediately."""
        if not self._alive or self._transport is None:
            return
        logger.info("Forced reconnect requested")
        self._failures = 0
        self._cancel_reconnect()
        await self._subscribe()

    def notify_online(self) -> None:
        """Network came back: reconnect right away if not connected."""
        self._online = True
        if not self._alive or self._transport is None:
            return
        if self._mode in (ConnectionMode.POLLING, ConnectionMode.ERROR):
            logger.info("Network online, attempting reconnect")
            self._cancel_reconnect()
            self._reconnect_task = asyncio.create_task(self._reconnect_after(0))

    def notify_offline(self) -> None:
        """Network went away: defer reconnect attempts until online again."""
        self._online = False
        logger.info("Network offline, reconnects deferred")
        self._cancel_reconnect()

    async def __aenter__(self) -> "ReliableChangeFeed":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    async def _subscribe(self) -> None:
        previous = self._token
        self._generation += 1
        token = SubscriptionToken(self._generation, [s.key for s in self._sources])
        self._token = token
        self._cancel_ack_watchdog()

        if previous is not None:
            previous.cancel()
            await self._release(previous)

        logger.debug(f"Subscribing {len(self._sources)} sources (generation {token.generation})")

        for source in self._sources:
            if not self._alive or not token.active:
                return
            try:
                channel = await self._transport.subscribe(
                    source,
                    partial(self._on_raw, token, source),
                    partial(self._on_status, token, source),
                )
            except Exception as exc:
                if token.active and self._alive:
                    self._handle_failure(token, source, ChannelStatus.CHANNEL_ERROR, exc)
                return

            if not token.active or not self._alive:
                await self._release_channel(channel)
                return
            token.channels.append(channel)

        if token.pending and not token.failed:
            self._ack_task = asyncio.create_task(self._ack_watchdog(token))

    async def _ack_watchdog(self, token: SubscriptionToken) -> None:
        await asyncio.sleep(self._settings.subscribe_timeout_ms / 1000)
        if not self._alive or not token.active or token.failed or not token.pending:
            return
        key = sorted(token.pending)[0]
        source = next(s for s in self._sources if s.key == key)
        self._handle_failure(
            token,
            source,
            ChannelStatus.TIMED_OUT,
            TimeoutError(f"Subscription not acknowledged within {self._settings.subscribe_timeout_ms}ms"),
        )

    async def _release(self, token: SubscriptionToken) -> None:
        channels, token.channels = token.channels, []
        for channel in channels:
            await self._release_channel(channel)

    async def _release_channel(self, channel: Channel) -> None:
        try:
            await channel.release()
        except Exception as exc:
            logger.debug(f"Releasing channel {channel.source.key} failed: {exc}")

    # =========================================================================
    # TRANSPORT CALLBACKS
    # =========================================================================

    def _on_raw(self, token: SubscriptionToken, source: ChangeSource, raw: Dict[str, Any]) -> None:
        if not self._alive or not token.active:
            return
        try:
            event = parse_change(source.key, raw)
        except ValidationError as exc:
            logger.warning(f"Dropping malformed {source.key} payload: {exc.error_count()} validation errors")
            return
        self._last_activity_at = utc_now()
        self._queue.put_nowait((token, event))

    def _on_status(
        self,
        token: SubscriptionToken,
        source: ChangeSource,
        status: ChannelStatus,
        error: Optional[BaseException] = None,
    ) -> None:
        if not self._alive or not token.active:
            return

        if status == ChannelStatus.SUBSCRIBED:
            token.pending.discard(source.key)
            if not token.pending and not token.failed:
                self._on_connected(token)
            return

        if status == ChannelStatus.CLOSED and self._mode != ConnectionMode.CONNECTED:
            logger.debug(f"Channel {source.key} closed while {self._mode.value}")
            return

        self._handle_failure(token, source, status, error)

    def _on_connected(self, token: SubscriptionToken) -> None:
        was_polling = self._mode == ConnectionMode.POLLING
        self._set_mode(ConnectionMode.CONNECTED)
        self._failures = 0
        self._warned.clear()
        self._cancel_ack_watchdog()
        self._cancel_reconnect()
        self._stop_polling()
        if was_polling:
            logger.info(f"Live channel restored (generation {token.generation}), polling stopped")
        else:
            logger.info(f"Live channel connected (generation {token.generation})")

    def _handle_failure(
        self,
        token: SubscriptionToken,
        source: ChangeSource,
        status: ChannelStatus,
        error: Optional[BaseException],
    ) -> None:
        self._log_transient(source, status, error)
        if token.failed:
            return
        token.failed = True
        self._failures += 1
        message = str(error) if error else f"{source.key}: {status.value}"

        if self._poller is None:
            self._set_mode(ConnectionMode.ERROR, message)
        else:
            self._set_mode(ConnectionMode.POLLING, message)
            self._start_polling()
        self._cancel_ack_watchdog()
        self._schedule_reconnect()

    def _log_transient(
        self,
        source: ChangeSource,
        status: ChannelStatus,
        error: Optional[BaseException],
    ) -> None:
        key = (source.key, status.value)
        detail = f": {error}" if error else ""
        if key in self._warned:
            logger.debug(f"Channel {source.key} {status.value}{detail}")
            return
        self._warned.add(key)
        logger.warning(f"Channel {source.key} {status.value}{detail}; falling back to polling")

    def _set_mode(self, mode: ConnectionMode, error: Optional[str] = None) -> None:
        if mode != self._mode:
            logger.debug(f"Change feed mode {self._mode.value} -> {mode.value}")
        self._mode = mode
        self._error = error

    # =========================================================================
    # RECONNECT
    # =========================================================================

    def _schedule_reconnect(self) -> None:
        if not self._alive or self._transport is None or not self._online:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        delay_ms = self._settings.backoff_ms(self._failures)
        logger.debug(f"Reconnect in {delay_ms}ms (failures={self._failures})")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms / 1000))

    async def _reconnect_after(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        if not self._alive:
            return
        # Cleared first so a failure during this attempt can schedule the next one
        self._reconnect_task = None
        await self._subscribe()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _cancel_ack_watchdog(self) -> None:
        task, self._ack_task = self._ack_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # =========================================================================
    # POLLING
    # =========================================================================

    def _start_polling(self) -> None:
        if self._poller is None or not self._alive:
            return
        if self._poll_task is not None and not self._poll_task.done():
            return
        logger.debug(f"Polling every {self._settings.poll_interval_ms}ms")
        self._poll_task = asyncio.create_task(self._poll_loop())

    def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _poll_loop(self) -> None:
        interval = self._settings.poll_interval_ms / 1000
        while self._alive:
            await asyncio.sleep(interval)
            if not self._alive:
                return
            try:
                events = await self._poller.poll()
            except Exception as exc:
                logger.warning(f"Poll failed: {exc}")
                continue
            self._last_activity_at = utc_now()
            for event in events:
                self._queue.put_nowait((None, event))

    # =========================================================================
    # DELIVERY
    # =========================================================================

    async def _deliver_loop(self) -> None:
        while True:
            token, event = await self._queue.get()
            if not self._alive:
                return
            if token is not None and not token.active:
                logger.debug(f"Dropped {event.source} event from stale generation {token.generation}")
                continue
            try:
                await self._on_event(event)
            except Exception:
                logger.exception(f"Change handler failed for {event.source} event")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["ReliableChangeFeed", "SubscriptionToken", "FeedState", "EventHandler"]
