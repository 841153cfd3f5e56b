"""
Playback queue management for Tunebase.

Holds the tracks loaded for playback, the index of the playing one and the
play/pause flag. Transitions are synchronous and run to completion; the media
side observes them through listeners.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from tunebase.library.types import Track

logger = logging.getLogger(__name__)


class InvalidQueueIndexError(ValueError):
    """Raised when playback is requested at an index outside the track list."""

    pass


@dataclass(frozen=True)
class QueueState:
    """
    Snapshot of the queue.

    Passed to listeners after every transition.
    """

    tracks: tuple[Track, ...]
    current_index: Optional[int]
    is_playing: bool

    @property
    def current_track(self) -> Optional[Track]:
        if self.current_index is None:
            return None
        return self.tracks[self.current_index]


QueueListener = Callable[[QueueState], None]


class PlaybackQueue:
    """
    Queue controller.

    Invariant: when current_index is not None it is a valid index into tracks.

    Transitions:
    - play_at: replace tracks, select index, play
    - toggle_play_pause: flip play flag (only with a current track)
    - next / previous: move circularly, play
    - set_is_playing: force play flag (media error/ended handlers)
    - clear: drop everything
    """

    def __init__(self) -> None:
        """Initialize empty queue."""
        self._tracks: tuple[Track, ...] = ()
        self._current_index: Optional[int] = None
        self._is_playing: bool = False
        self._listeners: list[QueueListener] = []

    # =========================================================================
    # Listener Registration
    # =========================================================================

    def add_listener(self, listener: QueueListener) -> None:
        """Register a callback invoked with the new state after each transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: QueueListener) -> None:
        """Unregister a callback (no-op if unknown)."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify(self) -> None:
        state = self.get_state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Queue listener error: {e}", exc_info=True)

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def tracks(self) -> tuple[Track, ...]:
        return self._tracks

    @property
    def current_index(self) -> Optional[int]:
        return self._current_index

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def current_track(self) -> Optional[Track]:
        """Track at current_index, or None when nothing is selected."""
        if self._current_index is None:
            return None
        return self._tracks[self._current_index]

    @property
    def is_empty(self) -> bool:
        return not self._tracks

    def get_state(self) -> QueueState:
        """Current queue state snapshot."""
        return QueueState(
            tracks=self._tracks,
            current_index=self._current_index,
            is_playing=self._is_playing,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def play_at(self, tracks: Sequence[Track], index: int) -> None:
        """
        Replace the queue and start playing tracks[index].

        Raises:
            InvalidQueueIndexError: If index is not a valid index into tracks
        """
        tracks = tuple(tracks)
        if not 0 <= index < len(tracks):
            raise InvalidQueueIndexError(
                f"Cannot play index {index} of a {len(tracks)}-track list"
            )

        self._tracks = tracks
        self._current_index = index
        self._is_playing = True
        logger.info(f"Playing {tracks[index].title!r} ({index + 1}/{len(tracks)})")
        self._notify()

    def toggle_play_pause(self) -> None:
        """Flip play/pause; does nothing without a current track."""
        if self.current_track is None:
            return
        self._is_playing = not self._is_playing
        logger.debug(f"Playback {'resumed' if self._is_playing else 'paused'}")
        self._notify()

    def next(self) -> None:
        """Advance to the next track, wrapping to the first after the last."""
        if not self._tracks:
            return
        if self._current_index is None:
            self._current_index = 0
        else:
            self._current_index = (self._current_index + 1) % len(self._tracks)
        self._is_playing = True
        logger.debug(f"Next -> index {self._current_index}")
        self._notify()

    def previous(self) -> None:
        """Go back one track, wrapping to the last before the first."""
        if not self._tracks:
            return
        count = len(self._tracks)
        if self._current_index is None:
            self._current_index = 0
        else:
            self._current_index = (self._current_index - 1 + count) % count
        self._is_playing = True
        logger.debug(f"Previous -> index {self._current_index}")
        self._notify()

    def set_is_playing(self, is_playing: bool) -> None:
        """Force the play flag."""
        if is_playing == self._is_playing:
            return
        self._is_playing = is_playing
        self._notify()

    def clear(self) -> None:
        """Drop all tracks and stop."""
        self._tracks = ()
        self._current_index = None
        self._is_playing = False
        logger.info("Queue cleared")
        self._notify()
