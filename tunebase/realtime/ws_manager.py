"""
Realtime WebSocket connection manager.

Handles connection lifecycle, channel joins, heartbeats and routing of
change events to subscriptions.
"""

import asyncio
import logging
import time
from typing import Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets import ClientConnection

from .protocol import ChannelEvent, RealtimeCodec, RealtimeMessage, topic_for
from .subscription import RESYNC_EVENT, ChangeFilter, ChangeSubscription, Invalidation

logger = logging.getLogger(__name__)

# Connection constants
PROTOCOL_VERSION = "1.0.0"
DEFAULT_HEARTBEAT_INTERVAL = 25.0  # seconds
RECV_TIMEOUT = 1.0  # seconds (for periodic checks)
INITIAL_RECONNECT_DELAY = 1.0  # seconds
MAX_RECONNECT_DELAY = 60.0  # seconds
RECONNECT_BACKOFF_MULTIPLIER = 2.0


class RealtimeManager:
    """
    Manages the realtime socket.

    Handles:
    - Connection establishment with the project API key
    - Automatic reconnection with exponential backoff
    - Heartbeats; a heartbeat left unanswered drops the connection
    - Joining every open subscription, again after each reconnect
    - Routing postgres_changes frames to subscriptions by topic
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ):
        """
        Initialize realtime manager.

        Args:
            url: WebSocket endpoint (wss://<project>/realtime/v1/websocket)
            anon_key: Project API key
            heartbeat_interval: Seconds between heartbeats
        """
        self.url = url
        self.anon_key = anon_key
        self.heartbeat_interval = heartbeat_interval
        self._codec = RealtimeCodec()

        # Connection state
        self._ws: Optional[ClientConnection] = None
        self._access_token: Optional[str] = None
        self._is_connected = False
        self._should_run = False
        self._has_connected_before = False

        # Heartbeat state
        self._last_heartbeat = 0.0
        self._pending_heartbeat_ref: Optional[str] = None

        # Reconnection state
        self._reconnect_delay = INITIAL_RECONNECT_DELAY

        # Subscriptions: topic -> subscription
        self._subscriptions: dict[str, ChangeSubscription] = {}
        # Join refs awaiting reply: ref -> topic
        self._pending_joins: dict[str, str] = {}

        self._receive_task: Optional[asyncio.Task[None]] = None

        # Callbacks
        self._on_connected: Optional[Callable[[], None]] = None
        self._on_disconnected: Optional[Callable[[], None]] = None

    def on_connected(self, callback: Callable[[], None]) -> None:
        """Register callback fired when a socket opens."""
        self._on_connected = callback

    def on_disconnected(self, callback: Callable[[], None]) -> None:
        """Register callback fired before each reconnect wait."""
        self._on_disconnected = callback

    @property
    def is_connected(self) -> bool:
        """True while a socket is open."""
        return self._is_connected

    @property
    def subscriptions(self) -> list[ChangeSubscription]:
        return list(self._subscriptions.values())

    def endpoint(self) -> str:
        """Socket URL including API key and protocol version."""
        query = urlencode({"apikey": self.anon_key, "vsn": PROTOCOL_VERSION})
        return f"{self.url}?{query}"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start connection loop. Safe to call again after stop()."""
        if self._should_run:
            return
        self._should_run = True
        self._reconnect_delay = INITIAL_RECONNECT_DELAY
        self._receive_task = asyncio.create_task(self._connection_loop())
        logger.info("Realtime manager started")

    async def stop(self) -> None:
        """Close all subscriptions and the connection."""
        self._should_run = False
        for sub in list(self._subscriptions.values()):
            await sub.close()
        if self._ws:
            await self._ws.close()
        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        self._has_connected_before = False
        logger.info("Realtime manager stopped")

    async def set_access_token(self, access_token: Optional[str]) -> None:
        """Use a new user token for joins; pushes it to joined channels."""
        self._access_token = access_token
        if not access_token or not self._is_connected:
            return
        for sub in self._subscriptions.values():
            if sub.joined:
                frame, _ = self._codec.encode_access_token(sub.topic, access_token)
                await self._send(frame)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, name: str, filters: list[ChangeFilter]) -> ChangeSubscription:
        """
        Open a subscription for row changes matching any of filters.

        The channel is joined now if connected, otherwise on connect.

        Raises:
            ValueError: If filters is empty or name is already subscribed
        """
        if not filters:
            raise ValueError("At least one change filter is required")
        topic = topic_for(name)
        if topic in self._subscriptions:
            raise ValueError(f"Already subscribed to {topic}")

        sub = ChangeSubscription(name, topic, filters, on_close=self._unsubscribe)
        self._subscriptions[topic] = sub
        logger.debug(f"Subscribed {topic} to {[f.table for f in filters]}")

        if self._is_connected:
            await self._join(sub)
        return sub

    async def _unsubscribe(self, sub: ChangeSubscription) -> None:
        if self._subscriptions.get(sub.topic) is not sub:
            return
        del self._subscriptions[sub.topic]
        if sub.joined and self._is_connected:
            frame, _ = self._codec.encode_leave(sub.topic)
            await self._send(frame)
        sub.joined = False
        logger.debug(f"Left {sub.topic}")

    async def _join(self, sub: ChangeSubscription) -> None:
        frame, ref = self._codec.encode_join(
            sub.topic, sub.change_payload(), access_token=self._access_token
        )
        self._pending_joins[ref] = sub.topic
        await self._send(frame)
        logger.debug(f"Sent join for {sub.topic}")

    async def _join_all(self, resync: bool) -> None:
        """Join every open subscription; after a reconnect, also signal a resync."""
        self._pending_joins.clear()
        for sub in list(self._subscriptions.values()):
            sub.joined = False
            await self._join(sub)
            if resync:
                table = sub.filters[0].table
                sub.push(Invalidation(event=RESYNC_EVENT, table=table))

    async def _send(self, frame: str) -> bool:
        if not self._ws:
            return False
        try:
            await self._ws.send(frame)
            return True
        except websockets.ConnectionClosed:
            logger.warning("Send failed: connection closed")
        return False

    # -------------------------------------------------------------------------
    # Connection Loop
    # -------------------------------------------------------------------------

    async def _connection_loop(self) -> None:
        """Keep a socket open until stop(), backing off between attempts."""
        while self._should_run:
            try:
                await self._connect_and_run()
            except Exception as e:
                logger.error(f"Realtime connection error: {e}")

            if not self._should_run:
                break

            if self._on_disconnected:
                self._on_disconnected()

            # Exponential backoff
            logger.info(f"Reconnecting in {self._reconnect_delay:.1f}s...")
            await asyncio.sleep(self._reconnect_delay)
            self._reconnect_delay = min(
                self._reconnect_delay * RECONNECT_BACKOFF_MULTIPLIER,
                MAX_RECONNECT_DELAY,
            )

    async def _connect_and_run(self) -> None:
        """Connect, join channels, and handle messages."""
        logger.info(f"Connecting to {self.url}")

        try:
            async with websockets.connect(self.endpoint(), ping_interval=None) as ws:
                self._ws = ws
                self._is_connected = True
                self._reconnect_delay = INITIAL_RECONNECT_DELAY
                self._pending_heartbeat_ref = None
                self._last_heartbeat = time.monotonic()

                resync = self._has_connected_before
                self._has_connected_before = True
                logger.info("Realtime connected")

                if self._on_connected:
                    self._on_connected()

                await self._join_all(resync=resync)
                await self._receive_loop()

        except websockets.ConnectionClosed as e:
            logger.warning(f"Realtime connection closed: {e}")
        finally:
            self._is_connected = False
            self._ws = None
            for sub in self._subscriptions.values():
                sub.joined = False

    async def _receive_loop(self) -> None:
        """Receive and dispatch messages; send heartbeats when idle."""
        while self._should_run and self._ws:
            try:
                data = await asyncio.wait_for(self._ws.recv(), timeout=RECV_TIMEOUT)
                self._handle_message(data)
            except asyncio.TimeoutError:
                pass

            if not await self._heartbeat_if_due():
                logger.warning("Heartbeat timed out, reconnecting")
                await self._ws.close()
                return

    async def _heartbeat_if_due(self, now: Optional[float] = None) -> bool:
        """
        Send a heartbeat when the interval has elapsed.

        Returns:
            False if the previous heartbeat is still unanswered
        """
        now = time.monotonic() if now is None else now
        if now - self._last_heartbeat < self.heartbeat_interval:
            return True
        if self._pending_heartbeat_ref is not None:
            return False
        frame, ref = self._codec.encode_heartbeat()
        self._pending_heartbeat_ref = ref
        self._last_heartbeat = now
        await self._send(frame)
        return True

    def _handle_message(self, data: str | bytes) -> None:
        """Decode and route incoming frame."""
        message = self._codec.decode(data)
        if not message:
            return

        if message.is_reply:
            self._handle_reply(message)
            return

        sub = self._subscriptions.get(message.topic)
        if sub is None:
            logger.debug(f"No subscription for {message.topic} ({message.event})")
            return

        if message.event == ChannelEvent.POSTGRES_CHANGES.value:
            change = message.change
            if change is None:
                logger.warning(f"postgres_changes without data on {message.topic}")
                return
            sub.push(Invalidation.from_change(change))
        elif message.event in (ChannelEvent.ERROR.value, ChannelEvent.CLOSE.value):
            logger.warning(f"Channel {message.topic} {message.event}")
            sub.joined = False
        elif message.event == ChannelEvent.SYSTEM.value:
            logger.debug(f"System message on {message.topic}: {message.payload}")

    def _handle_reply(self, message: RealtimeMessage) -> None:
        if message.ref is not None and message.ref == self._pending_heartbeat_ref:
            self._pending_heartbeat_ref = None
            return

        topic = self._pending_joins.pop(message.ref, None) if message.ref else None
        if topic is None:
            return
        sub = self._subscriptions.get(topic)
        if sub is None:
            return
        if message.reply_ok:
            sub.joined = True
            logger.info(f"Joined {topic}")
        else:
            response = message.payload.get("response", {})
            logger.error(f"Join of {topic} rejected: {response}")
