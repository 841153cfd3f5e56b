"""
Change subscriptions.

A subscription turns database change events for one or more tables into a
stream of invalidation signals. Signals coalesce: a consumer that is busy
while several changes arrive sees one signal, not a backlog.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

RESYNC_EVENT = "RESYNC"  # Channel rejoined after a reconnect; changes may have been missed


@dataclass(frozen=True)
class ChangeFilter:
    """Which row changes to listen for."""

    table: str
    event: str = "*"  # INSERT, UPDATE, DELETE or *
    schema: str = "public"
    filter: Optional[str] = None  # e.g. "playlist_id=eq.<uuid>"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "event": self.event,
            "schema": self.schema,
            "table": self.table,
        }
        if self.filter:
            payload["filter"] = self.filter
        return payload


@dataclass(frozen=True)
class Invalidation:
    """Something changed; refetch."""

    event: str
    table: str
    record: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_change(cls, change: dict[str, Any]) -> "Invalidation":
        """Build from a postgres_changes data object."""
        event = change.get("eventType") or change.get("type") or "*"
        record = change.get("new") or change.get("record") or change.get("old") or {}
        return cls(
            event=str(event),
            table=str(change.get("table", "")),
            record=record if isinstance(record, dict) else {},
        )


class ChangeSubscription:
    """
    Async iterator of Invalidation signals.

    Iteration never ends on its own; close() (or leaving the ``async with``
    block) ends it and leaves the channel.

    Usage:
        async with await manager.subscribe("playlist-1", [ChangeFilter(...)]) as sub:
            async for signal in sub:
                await reload()
    """

    def __init__(
        self,
        name: str,
        topic: str,
        filters: list[ChangeFilter],
        on_close: Optional[Callable[["ChangeSubscription"], Awaitable[None]]] = None,
    ):
        self.name = name
        self.topic = topic
        self.filters = list(filters)
        self._on_close = on_close

        self._pending: Optional[Invalidation] = None
        self._wakeup = asyncio.Event()
        self._closed = False
        self.joined = False
        self.coalesced = 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def change_payload(self) -> list[dict[str, Any]]:
        return [f.to_payload() for f in self.filters]

    def push(self, signal: Invalidation) -> None:
        """Deliver a signal; replaces one not yet consumed."""
        if self._closed:
            return
        if self._pending is not None:
            self.coalesced += 1
        self._pending = signal
        self._wakeup.set()

    async def close(self) -> None:
        """Stop iteration and leave the channel. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._pending = None
        self._wakeup.set()
        logger.debug(f"Subscription {self.name} closed")
        if self._on_close:
            await self._on_close(self)

    # -------------------------------------------------------------------------
    # Protocols
    # -------------------------------------------------------------------------

    def __aiter__(self) -> "ChangeSubscription":
        return self

    async def __anext__(self) -> Invalidation:
        while True:
            if self._closed:
                raise StopAsyncIteration
            if self._pending is not None:
                signal = self._pending
                self._pending = None
                return signal
            self._wakeup.clear()
            await self._wakeup.wait()

    async def __aenter__(self) -> "ChangeSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
