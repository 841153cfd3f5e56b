"""
Tunebase Player.

Keeps an audio output in step with the playback queue.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .queue import PlaybackQueue, QueueState

logger = logging.getLogger(__name__)

# Event callback types
TrackEndedCallback = Callable[[], None]
PlaybackErrorCallback = Callable[[str], None]  # error_message

DEFAULT_UNMUTE_VOLUME = 0.5


class PlaybackError(Exception):
    """The output could not play the loaded source."""

    pass


class PlaybackAbortedError(PlaybackError):
    """Play request interrupted by a newer source (harmless)."""

    pass


class AudioOutput(ABC):
    """
    Abstract media element.

    Implementations decode and render audio; the player only tells them what
    to load and whether to play.
    """

    def __init__(self, name: str = "AudioOutput"):
        self.name = name
        self._on_track_ended: Optional[TrackEndedCallback] = None
        self._on_playback_error: Optional[PlaybackErrorCallback] = None

    @abstractmethod
    async def load(self, url: str) -> None:
        """Set the source URL (does not start playback)."""
        pass

    @abstractmethod
    async def play(self) -> None:
        """
        Start or resume playback of the loaded source.

        Raises:
            PlaybackError: If the source cannot be played
        """
        pass

    @abstractmethod
    async def pause(self) -> None:
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop playback and unload the source."""
        pass

    @abstractmethod
    async def set_volume(self, level: float) -> None:
        """Set volume (0.0-1.0)."""
        pass

    @abstractmethod
    async def set_muted(self, muted: bool) -> None:
        pass

    # =========================================================================
    # Events
    # =========================================================================

    def on_track_ended(self, callback: TrackEndedCallback) -> None:
        """Register callback for end of track."""
        self._on_track_ended = callback

    def on_playback_error(self, callback: PlaybackErrorCallback) -> None:
        """Register callback for asynchronous playback errors."""
        self._on_playback_error = callback

    def _notify_track_ended(self) -> None:
        if self._on_track_ended:
            self._on_track_ended()

    def _notify_playback_error(self, message: str) -> None:
        if self._on_playback_error:
            self._on_playback_error(message)


def format_time(seconds: float) -> str:
    """Render seconds as m:ss."""
    if seconds is None or math.isnan(seconds) or seconds <= 0:
        return "0:00"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


class QueuePlayer:
    """
    Mirrors queue state onto an AudioOutput.

    - A current track is loaded only when its URL differs from the loaded one
    - is_playing maps to play()/pause()
    - No current track stops the output and forgets the source
    - End of track advances the queue
    - Playback errors force the queue to paused
    """

    def __init__(self, queue: PlaybackQueue, output: AudioOutput):
        """Initialize player."""
        self.queue = queue
        self.output = output

        self._source: Optional[str] = None
        self._volume: float = 1.0
        self._muted: bool = False

        self._dirty = asyncio.Event()
        self._sync_task: Optional[asyncio.Task[None]] = None
        self._is_running = False

        self.queue.add_listener(self._on_queue_change)
        self.output.on_track_ended(self._on_track_ended)
        self.output.on_playback_error(self._on_playback_error)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start following the queue."""
        if self._is_running:
            return
        self._is_running = True
        self._dirty.set()
        self._sync_task = asyncio.create_task(self._sync_loop())
        logger.info(f"Player started on {self.output.name}")

    async def stop(self) -> None:
        """Stop following the queue and halt the output."""
        self._is_running = False
        self.queue.remove_listener(self._on_queue_change)
        if self._sync_task:
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass
            self._sync_task = None
        await self.output.stop()
        self._source = None
        logger.info("Player stopped")

    @property
    def source(self) -> Optional[str]:
        """URL currently loaded into the output."""
        return self._source

    # =========================================================================
    # Queue Synchronization
    # =========================================================================

    def _on_queue_change(self, state: QueueState) -> None:
        self._dirty.set()

    async def _sync_loop(self) -> None:
        while self._is_running:
            await self._dirty.wait()
            self._dirty.clear()
            try:
                await self.sync()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Player sync error: {e}", exc_info=True)

    async def sync(self) -> None:
        """Apply the queue's current track and play flag to the output."""
        state = self.queue.get_state()
        track = state.current_track

        if track is None:
            if self._source is not None:
                await self.output.stop()
                self._source = None
            return

        if self._source != track.file_url:
            await self.output.load(track.file_url)
            self._source = track.file_url
            logger.debug(f"Loaded {track.file_url}")

        if not state.is_playing:
            await self.output.pause()
            return

        try:
            await self.output.play()
        except PlaybackAbortedError:
            logger.debug("Play request superseded by a newer source")
        except PlaybackError as e:
            logger.error(f"Playback failed: {e}")
            self.queue.set_is_playing(False)

    def _on_track_ended(self) -> None:
        self.queue.next()

    def _on_playback_error(self, message: str) -> None:
        logger.error(f"Playback error: {message}")
        self.queue.set_is_playing(False)

    # =========================================================================
    # Volume Controls
    # =========================================================================

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def is_muted(self) -> bool:
        return self._muted

    async def set_volume(self, level: float) -> float:
        """
        Set volume; zero counts as muted.

        Returns:
            The clamped level
        """
        level = max(0.0, min(1.0, level))
        await self.output.set_volume(level)
        self._volume = level
        self._muted = level == 0
        return level

    async def toggle_mute(self) -> bool:
        """
        Flip mute. Unmuting at zero volume restores a default level.

        Returns:
            The new muted flag
        """
        muted = not self._muted
        await self.output.set_muted(muted)
        self._muted = muted
        if not muted and self._volume <= 0:
            await self.output.set_volume(DEFAULT_UNMUTE_VOLUME)
            self._volume = DEFAULT_UNMUTE_VOLUME
        return muted
