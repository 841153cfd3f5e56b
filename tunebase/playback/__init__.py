"""Playback queue and media synchronization."""

from .player import (
    AudioOutput,
    PlaybackAbortedError,
    PlaybackError,
    QueuePlayer,
    format_time,
)
from .queue import InvalidQueueIndexError, PlaybackQueue, QueueState

__all__ = [
    "PlaybackQueue",
    "QueueState",
    "InvalidQueueIndexError",
    "AudioOutput",
    "PlaybackError",
    "PlaybackAbortedError",
    "QueuePlayer",
    "format_time",
]
