"""
Optimistic playlist editing.

Reorders and removals are applied to the local entry list immediately, then
persisted with one remote call. A failed call restores the snapshot taken
before the change.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from tunebase.backend.exceptions import BackendError

from .notifications import Notifier
from .types import Track

if TYPE_CHECKING:
    from tunebase.realtime.subscription import ChangeSubscription

    from .playlists import PlaylistRepository

logger = logging.getLogger(__name__)

REORDER_FAILED_MESSAGE = "Failed to save new order. Please refresh."
REMOVE_FAILED_MESSAGE = "Failed to remove song."
REMOVE_SUCCEEDED_MESSAGE = "Song removed from playlist."


class MutationState(Enum):
    """Lifecycle of a pending local mutation."""

    IDLE = "idle"
    APPLIED = "applied"  # Local change visible, remote call outstanding
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


class MutationInProgressError(Exception):
    """Raised when a mutation is requested while another one is in flight."""

    pass


def move_item(items: tuple[Track, ...], old_index: int, new_index: int) -> tuple[Track, ...]:
    """Return items with the element at old_index moved to new_index."""
    result = list(items)
    result.insert(new_index, result.pop(old_index))
    return tuple(result)


class PlaylistEditor:
    """
    Local entry list of one playlist with optimistic reorder and remove.

    State machine per mutation:
        IDLE -> APPLIED (local change applied)
        APPLIED -> CONFIRMED (remote call succeeded) -> IDLE
        APPLIED -> REVERTED (remote call failed, snapshot restored) -> IDLE

    Only one mutation may be in flight; a second one raises
    MutationInProgressError without touching local state.
    """

    def __init__(
        self,
        playlist_id: str,
        repository: "PlaylistRepository",
        notifier: Optional[Notifier] = None,
    ):
        self.playlist_id = playlist_id
        self._repository = repository
        self._notifier = notifier or Notifier()

        self._entries: tuple[Track, ...] = ()
        self._state = MutationState.IDLE
        self._in_flight = False
        self._refresh_deferred = False
        self._mutation_count = 0  # Mutations started so far
        self.last_outcome: Optional[MutationState] = None

        self.error: Optional[str] = None
        self.loaded = False

        self._on_change: Optional[Callable[[tuple[Track, ...]], None]] = None

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def entries(self) -> tuple[Track, ...]:
        """Entries in display order."""
        return self._entries

    @property
    def state(self) -> MutationState:
        return self._state

    @property
    def is_busy(self) -> bool:
        """True while a remote call is outstanding."""
        return self._in_flight

    def on_change(self, callback: Callable[[tuple[Track, ...]], None]) -> None:
        """Register callback invoked with the new entries after each change."""
        self._on_change = callback

    def index_of(self, song_id: str) -> int:
        """Display index of an entry, -1 when absent."""
        for i, entry in enumerate(self._entries):
            if entry.id == song_id:
                return i
        return -1

    def _set_entries(self, entries: tuple[Track, ...]) -> None:
        self._entries = entries
        if self._on_change:
            try:
                self._on_change(entries)
            except Exception as e:
                logger.error(f"Entry change callback failed: {e}", exc_info=True)

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(self) -> bool:
        """
        Fetch entries from the backend.

        A failure leaves the previous entries in place and records the error
        message in ``error``; there is no automatic retry. A result that
        arrives after a mutation has started is stale: it is dropped and the
        refetch runs again once the mutation settles.

        Returns:
            True if entries were loaded (or the refetch was deferred)
        """
        generation = self._mutation_count
        try:
            entries = await self._repository.fetch_entries(self.playlist_id)
        except BackendError as e:
            self.error = str(e)
            logger.error(f"Failed to load playlist {self.playlist_id}: {e}")
            return False

        if self._in_flight or generation != self._mutation_count:
            logger.debug(f"Discarding stale entries for playlist {self.playlist_id}")
            if self._in_flight:
                self._refresh_deferred = True
                return True
            return await self.load()

        self.error = None
        self.loaded = True
        self._set_entries(tuple(entries))
        logger.debug(f"Loaded {len(entries)} entries for playlist {self.playlist_id}")
        return True

    async def follow(self, subscription: "ChangeSubscription") -> None:
        """
        Refetch entries on every invalidation signal until the subscription closes.

        Signals that arrive during a mutation are deferred until it settles.
        """
        async for signal in subscription:
            if self._in_flight:
                logger.debug(f"Deferring refresh of {self.playlist_id} ({signal.event})")
                self._refresh_deferred = True
                continue
            await self.load()

    # =========================================================================
    # Mutations
    # =========================================================================

    def _begin(self) -> tuple[Track, ...]:
        if self._in_flight:
            raise MutationInProgressError(
                f"A change to playlist {self.playlist_id} is still being saved"
            )
        self._in_flight = True
        self._mutation_count += 1
        return self._entries

    def _settle(self, snapshot: tuple[Track, ...], failed: bool) -> None:
        if failed:
            self._set_entries(snapshot)
            self._state = MutationState.REVERTED
        else:
            self._state = MutationState.CONFIRMED
        self._in_flight = False
        self.last_outcome = self._state
        logger.debug(f"Playlist {self.playlist_id}: change {self._state.value}")
        self._state = MutationState.IDLE

    async def _run_deferred_refresh(self) -> None:
        if self._refresh_deferred:
            self._refresh_deferred = False
            await self.load()

    async def reorder(self, song_id: str, old_index: int, new_index: int) -> bool:
        """
        Move an entry and persist the move.

        The remote call carries the positions the entries at old_index and
        new_index held before the move; renumbering is done remotely.

        Returns:
            True if the move was saved (or was a no-op), False if it was reverted

        Raises:
            ValueError: If an index is out of range or song_id is not at old_index
            MutationInProgressError: If another change is still being saved
        """
        if old_index == new_index:
            return True

        count = len(self._entries)
        if not (0 <= old_index < count and 0 <= new_index < count):
            raise ValueError(f"Move {old_index} -> {new_index} outside 0..{count - 1}")
        if self._entries[old_index].id != song_id:
            raise ValueError(f"Song {song_id} is not at index {old_index}")

        snapshot = self._begin()
        old_position = snapshot[old_index].position
        new_position = snapshot[new_index].position

        self._set_entries(move_item(snapshot, old_index, new_index))
        self._state = MutationState.APPLIED
        logger.debug(
            f"Playlist {self.playlist_id}: moved {song_id} "
            f"{old_index} -> {new_index} (positions {old_position} -> {new_position})"
        )

        return await self._persist(
            snapshot,
            lambda: self._repository.reorder_entry(
                self.playlist_id, song_id, old_position, new_position
            ),
            failure_message=REORDER_FAILED_MESSAGE,
        )

    async def move(self, active_id: str, over_id: str) -> bool:
        """Drop the entry active_id onto the slot occupied by over_id."""
        if active_id == over_id:
            return True
        old_index = self.index_of(active_id)
        new_index = self.index_of(over_id)
        if old_index < 0 or new_index < 0:
            raise ValueError(f"Unknown entry in move {active_id} -> {over_id}")
        return await self.reorder(active_id, old_index, new_index)

    async def remove(self, song_id: str) -> bool:
        """
        Remove an entry and persist the removal.

        On success the entries are refetched so positions match the backend.

        Returns:
            True if removed, False if the removal was reverted

        Raises:
            ValueError: If song_id is not in the playlist
            MutationInProgressError: If another change is still being saved
        """
        if self.index_of(song_id) < 0:
            raise ValueError(f"Song {song_id} is not in playlist {self.playlist_id}")

        snapshot = self._begin()
        self._set_entries(tuple(e for e in snapshot if e.id != song_id))
        self._state = MutationState.APPLIED

        saved = await self._persist(
            snapshot,
            lambda: self._repository.remove_entry(self.playlist_id, song_id),
            failure_message=REMOVE_FAILED_MESSAGE,
            reload_after=True,
        )
        if saved:
            self._notifier.success(REMOVE_SUCCEEDED_MESSAGE)
            await self.load()
        return saved

    async def _persist(
        self,
        snapshot: tuple[Track, ...],
        call: Callable[[], Awaitable[None]],
        failure_message: str,
        reload_after: bool = False,
    ) -> bool:
        try:
            await call()
        except BackendError as e:
            logger.warning(f"Playlist {self.playlist_id}: reverting local change ({e})")
            self._settle(snapshot, failed=True)
            self._notifier.error(failure_message)
            await self._run_deferred_refresh()
            return False
        except BaseException:
            # Cancelled or unexpected failure: restore the snapshot before propagating
            self._settle(snapshot, failed=True)
            self._refresh_deferred = False
            raise

        self._settle(snapshot, failed=False)
        if reload_after:
            # Caller refetches itself
            self._refresh_deferred = False
        else:
            await self._run_deferred_refresh()
        return True
