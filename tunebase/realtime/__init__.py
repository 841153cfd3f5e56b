"""Realtime change feed."""

from .protocol import ChannelEvent, RealtimeCodec, RealtimeMessage, topic_for
from .subscription import (
    RESYNC_EVENT,
    ChangeFilter,
    ChangeSubscription,
    Invalidation,
)
from .ws_manager import RealtimeManager

__all__ = [
    "ChannelEvent",
    "RealtimeCodec",
    "RealtimeMessage",
    "topic_for",
    "RESYNC_EVENT",
    "ChangeFilter",
    "ChangeSubscription",
    "Invalidation",
    "RealtimeManager",
]
