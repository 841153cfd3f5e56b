"""
Song library browsing, search and administration.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from tunebase.backend.api_client import (
    BackendClient,
    and_,
    contains,
    eq,
    ilike,
    literal,
    or_,
)
from tunebase.backend.exceptions import BackendError
from tunebase.backend.storage import StorageBucket

from .playlists import PLAYLISTS_TABLE
from .types import Playlist, SearchResults, Track, UploadReport
from .utils import (
    guess_content_type,
    parse_song_filename,
    sanitize_file_name,
    timestamped_path,
)

logger = logging.getLogger(__name__)

SONGS_TABLE = "songs"


def _song_key(title: str, artist: Optional[str]) -> tuple[str, Optional[str]]:
    """Duplicate-detection key; an empty artist counts as no artist."""
    return title, artist or None


class SongLibrary:
    """
    Read and manage rows of the ``songs`` table.

    Write operations (upload, update, delete) are admin operations; callers
    are expected to check the role first (see TunebaseSession.require_admin).
    """

    def __init__(self, client: BackendClient, storage: StorageBucket):
        self._client = client
        self._storage = storage

    # =========================================================================
    # Browsing
    # =========================================================================

    async def get_song(self, song_id: str) -> Track:
        """
        Fetch one song.

        Raises:
            BackendError: If missing or unreadable
        """
        row = await self._client.select(SONGS_TABLE, filters={"id": eq(song_id)}, single=True)
        return Track.from_row(row)

    async def all_songs(self) -> list[Track]:
        """Every song, newest first."""
        rows = await self._client.select(SONGS_TABLE, order="created_at.desc")
        return [Track.from_row(r) for r in rows]

    async def songs_by_title(self) -> list[Track]:
        """Every song, alphabetical."""
        rows = await self._client.select(SONGS_TABLE, order="title.asc")
        return [Track.from_row(r) for r in rows]

    async def songs_by_artist(self, artist: str) -> list[Track]:
        """Songs of one artist, newest first."""
        rows = await self._client.select(
            SONGS_TABLE, filters={"artist": eq(artist)}, order="created_at.desc"
        )
        return [Track.from_row(r) for r in rows]

    async def search(self, query: str) -> SearchResults:
        """Songs whose title or artist, and playlists whose name, contain query."""
        query = query.strip()
        if not query:
            return SearchResults()

        pattern = contains(query)
        song_rows = await self._client.select(
            SONGS_TABLE,
            filters={"or": or_(f"title.{ilike(pattern)}", f"artist.{ilike(pattern)}")},
        )
        playlist_rows = await self._client.select(
            PLAYLISTS_TABLE, filters={"name": ilike(pattern)}
        )
        return SearchResults(
            songs=[Track.from_row(r) for r in song_rows],
            playlists=[Playlist.from_row(r) for r in playlist_rows],
        )

    # =========================================================================
    # Administration
    # =========================================================================

    async def upload_songs(self, files: Iterable[Path], user_id: str) -> UploadReport:
        """
        Upload audio files and create song rows for the new ones.

        Title and artist come from "Artist - Title.ext" file names. Files whose
        (title, artist) already exists in the library, or repeats one earlier
        in the batch, are skipped before anything is uploaded. If the rows
        cannot be inserted the uploaded files are removed again.
        """
        parsed: list[tuple[Path, Optional[str], str]] = []
        for file in files:
            artist, title = parse_song_filename(file.name)
            parsed.append((file, artist, title))

        if not parsed:
            return UploadReport()

        existing = await self._existing_keys([(artist, title) for _, artist, title in parsed])

        new_rows: list[dict[str, Any]] = []
        uploaded: list[str] = []
        for file, artist, title in parsed:
            key = _song_key(title, artist)
            if key in existing:
                logger.debug(f"Skipping duplicate {file.name}")
                continue
            existing.add(key)

            path = timestamped_path("songs", sanitize_file_name(file.name))
            await self._storage.upload(
                path, file.read_bytes(), guess_content_type(file.name, "audio/mpeg")
            )
            uploaded.append(path)
            new_rows.append(
                {
                    "user_id": user_id,
                    "title": title,
                    "artist": artist,
                    "file_url": self._storage.public_url(path),
                    "cover_art_url": None,
                }
            )

        skipped = len(parsed) - len(new_rows)
        if new_rows:
            try:
                await self._client.insert(SONGS_TABLE, new_rows)
            except BackendError:
                logger.error(f"Song insert failed, removing {len(uploaded)} uploaded file(s)")
                try:
                    await self._storage.remove(uploaded)
                except BackendError as e:
                    logger.warning(f"Could not remove uploaded files: {e}")
                raise

        logger.info(f"Upload finished: {len(new_rows)} added, {skipped} duplicates skipped")
        return UploadReport(added=new_rows, skipped=skipped)

    async def _existing_keys(
        self, candidates: list[tuple[Optional[str], str]]
    ) -> set[tuple[str, Optional[str]]]:
        conditions = []
        for artist, title in candidates:
            artist_condition = f"artist.eq.{literal(artist)}" if artist else "artist.is.null"
            conditions.append(and_(f"title.eq.{literal(title)}", artist_condition))
        rows = await self._client.select(
            SONGS_TABLE, filters={"or": or_(*conditions)}, columns="title, artist"
        )
        return {_song_key(r.get("title") or "", r.get("artist")) for r in rows}

    async def update_song(
        self,
        song: Track,
        title: str,
        artist: Optional[str] = None,
        cover_file: Optional[Path] = None,
    ) -> Track:
        """
        Edit a song's title/artist and optionally replace its cover.

        Returns:
            The updated track
        """
        if not title.strip():
            raise ValueError("Title is required")

        cover_art_url = song.cover_art_url
        if cover_file is not None:
            path = timestamped_path(f"covers/{song.id}", sanitize_file_name(cover_file.name))
            await self._storage.upload(
                path, cover_file.read_bytes(), guess_content_type(cover_file.name, "image/jpeg")
            )
            cover_art_url = self._storage.public_url(path)

            old_path = self._storage.path_from_url(song.cover_art_url)
            if old_path:
                await self._storage.remove([old_path])

        await self._client.update(
            SONGS_TABLE,
            {"title": title, "artist": artist, "cover_art_url": cover_art_url},
            {"id": eq(song.id)},
        )
        logger.info(f"Updated song {song.id}")
        return Track(
            id=song.id,
            title=title,
            file_url=song.file_url,
            artist=artist or None,
            cover_art_url=cover_art_url,
        )

    async def delete_song(self, song: Track) -> None:
        """
        Delete a song's files and row.

        Storage failures are logged and do not prevent the row deletion.
        """
        paths = [
            p
            for p in (
                self._storage.path_from_url(song.file_url),
                self._storage.path_from_url(song.cover_art_url),
            )
            if p
        ]
        if paths:
            try:
                await self._storage.remove(paths)
            except BackendError as e:
                logger.error(f"Could not delete storage files for song {song.id}: {e}")

        await self._client.delete(SONGS_TABLE, {"id": eq(song.id)})
        logger.info(f"Deleted song {song.id}")
