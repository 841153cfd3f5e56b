"""
Playlist persistence.

Reads and writes the ``playlists`` and ``playlist_songs`` tables and invokes
the remote procedures that keep entry positions contiguous.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from tunebase.backend.api_client import BackendClient, eq, in_
from tunebase.backend.storage import StorageBucket

from .types import Playlist, Track
from .utils import guess_content_type, replace_whitespace, timestamped_path

logger = logging.getLogger(__name__)

PLAYLISTS_TABLE = "playlists"
PLAYLIST_SONGS_TABLE = "playlist_songs"

# Remote procedures (edge functions)
REORDER_FUNCTION = "reorder-playlist-songs"
REMOVE_FUNCTION = "remove-song-from-playlist"


class PlaylistRepository:
    """Playlist rows, their entries and cover images."""

    def __init__(self, client: BackendClient, storage: StorageBucket):
        self._client = client
        self._storage = storage

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_playlist(self, playlist_id: str) -> Playlist:
        """
        Fetch one playlist.

        Raises:
            BackendError: If missing or unreadable
        """
        row = await self._client.select(
            PLAYLISTS_TABLE, filters={"id": eq(playlist_id)}, single=True
        )
        return Playlist.from_row(row)

    async def fetch_entries(self, playlist_id: str) -> list[Track]:
        """Entries of a playlist in ascending position order."""
        rows = await self._client.select(
            PLAYLIST_SONGS_TABLE,
            filters={"playlist_id": eq(playlist_id)},
            columns="position, songs(*)",
            order="position.asc",
        )
        tracks = [t for t in (Track.from_entry_row(r) for r in rows) if t is not None]
        if len(tracks) != len(rows):
            logger.debug(
                f"Playlist {playlist_id}: dropped {len(rows) - len(tracks)} entries "
                f"without a song"
            )
        return tracks

    async def user_playlists(self, user_id: str) -> list[Playlist]:
        """Playlists owned by a user, newest first."""
        rows = await self._client.select(
            PLAYLISTS_TABLE,
            filters={"user_id": eq(user_id)},
            order="created_at.desc",
        )
        return [Playlist.from_row(r) for r in rows]

    # =========================================================================
    # Playlist rows
    # =========================================================================

    async def create_playlist(
        self, user_id: str, name: str, description: Optional[str] = None
    ) -> Playlist:
        """Create a playlist and return the stored row."""
        if not name.strip():
            raise ValueError("Playlist name is required")
        row: dict[str, Any] = {"user_id": user_id, "name": name}
        if description:
            row["description"] = description
        created = await self._client.insert(PLAYLISTS_TABLE, row, returning=True)
        if isinstance(created, list):
            created = created[0]
        playlist = Playlist.from_row(created)
        logger.info(f"Created playlist {playlist.id} ({playlist.name})")
        return playlist

    async def delete_playlist(self, playlist: Playlist) -> None:
        """
        Delete a playlist and its cover image.

        Entries go with it (ON DELETE CASCADE on ``playlist_songs``).
        """
        await self._client.delete(PLAYLISTS_TABLE, {"id": eq(playlist.id)})
        path = self._storage.path_from_url(playlist.cover_art_url)
        if path:
            await self._storage.remove([path])
        logger.info(f"Deleted playlist {playlist.id}")

    async def set_cover(
        self,
        playlist_id: str,
        cover_file: Path,
        current_cover_url: Optional[str] = None,
    ) -> str:
        """
        Upload a new cover image, point the playlist at it, drop the old one.

        Returns:
            Public URL of the new cover
        """
        path = timestamped_path(
            f"playlist-covers/{playlist_id}", replace_whitespace(cover_file.name)
        )
        await self._storage.upload(
            path, cover_file.read_bytes(), guess_content_type(cover_file.name, "image/jpeg")
        )
        public_url = self._storage.public_url(path)

        await self._client.update(
            PLAYLISTS_TABLE, {"cover_art_url": public_url}, {"id": eq(playlist_id)}
        )

        old_path = self._storage.path_from_url(current_cover_url)
        if old_path:
            await self._storage.remove([old_path])

        logger.info(f"Updated cover of playlist {playlist_id}")
        return public_url

    # =========================================================================
    # Entries
    # =========================================================================

    async def add_song(self, playlist_id: str, song_id: str) -> int:
        """
        Append a song at the end of a playlist.

        Returns:
            Position assigned to the new entry
        """
        position = await self._client.count(
            PLAYLIST_SONGS_TABLE, {"playlist_id": eq(playlist_id)}
        )
        await self._client.insert(
            PLAYLIST_SONGS_TABLE,
            {"playlist_id": playlist_id, "song_id": song_id, "position": position},
        )
        logger.debug(f"Added song {song_id} to playlist {playlist_id} at {position}")
        return position

    async def set_songs(self, playlist_id: str, song_ids: Iterable[str]) -> tuple[int, int]:
        """
        Make the playlist's membership equal to ``song_ids``.

        Removed songs are deleted first and the remaining entries renumbered
        to 0..n-1 in their current order; new songs are then appended after
        them. Positions stay contiguous, so add_song keeps appending at the end.

        Returns:
            (added, removed) counts
        """
        selected = list(dict.fromkeys(str(s) for s in song_ids))
        rows = await self._client.select(
            PLAYLIST_SONGS_TABLE,
            filters={"playlist_id": eq(playlist_id)},
            columns="song_id, position",
            order="position.asc",
        )
        existing = [str(r["song_id"]) for r in rows]

        existing_set = set(existing)
        selected_set = set(selected)
        to_add = [s for s in selected if s not in existing_set]
        to_remove = sorted(s for s in existing_set if s not in selected_set)

        if to_remove:
            await self._client.delete(
                PLAYLIST_SONGS_TABLE,
                {"song_id": in_(to_remove), "playlist_id": eq(playlist_id)},
            )

        survivors = [r for r in rows if str(r["song_id"]) in selected_set]
        for position, row in enumerate(survivors):
            if row.get("position") == position:
                continue
            await self._client.update(
                PLAYLIST_SONGS_TABLE,
                {"position": position},
                {"playlist_id": eq(playlist_id), "song_id": eq(row["song_id"])},
            )

        if to_add:
            start = len(survivors)
            await self._client.insert(
                PLAYLIST_SONGS_TABLE,
                [
                    {"playlist_id": playlist_id, "song_id": song_id, "position": start + i}
                    for i, song_id in enumerate(to_add)
                ],
            )

        logger.info(
            f"Playlist {playlist_id} updated: +{len(to_add)} -{len(to_remove)} songs"
        )
        return len(to_add), len(to_remove)

    async def reorder_entry(
        self, playlist_id: str, song_id: str, old_position: int, new_position: int
    ) -> None:
        """
        Persist a move; the remote procedure renumbers every affected entry.

        Raises:
            BackendError: On any non-2xx response
        """
        await self._client.invoke(
            REORDER_FUNCTION,
            {
                "playlist_id": playlist_id,
                "song_id": song_id,
                "old_position": old_position,
                "new_position": new_position,
            },
        )

    async def remove_entry(self, playlist_id: str, song_id: str) -> None:
        """
        Delete an entry; the remote procedure closes the position gap.

        Raises:
            BackendError: On any non-2xx response
        """
        await self._client.invoke(
            REMOVE_FUNCTION, {"playlist_id": playlist_id, "song_id": song_id}
        )
