"""Song library, playlists and optimistic playlist editing."""

from .editor import (
    MutationInProgressError,
    MutationState,
    PlaylistEditor,
    move_item,
)
from .notifications import Notifier
from .playlists import (
    REMOVE_FUNCTION,
    REORDER_FUNCTION,
    PlaylistRepository,
)
from .songs import SongLibrary
from .types import (
    Playlist,
    Profile,
    SearchResults,
    Track,
    UploadReport,
)

__all__ = [
    # Types
    "Playlist",
    "Profile",
    "SearchResults",
    "Track",
    "UploadReport",
    # Repositories
    "PlaylistRepository",
    "SongLibrary",
    "REORDER_FUNCTION",
    "REMOVE_FUNCTION",
    # Editing
    "MutationInProgressError",
    "MutationState",
    "PlaylistEditor",
    "move_item",
    "Notifier",
]
