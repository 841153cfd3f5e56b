"""
Library data types.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional

ROLE_ADMIN = "admin"
ROLE_USER = "user"


@dataclass(frozen=True)
class Track:
    """
    A playable song.

    Attributes:
        id: Song row ID
        title: Song title
        artist: Artist name, if known
        file_url: Public URL of the audio file
        cover_art_url: Public URL of the artwork, if any
        position: Display position inside a playlist (None outside one)
    """

    id: str
    title: str
    file_url: str
    artist: Optional[str] = None
    cover_art_url: Optional[str] = None
    position: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Track":
        """Create from a ``songs`` row."""
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            file_url=row.get("file_url") or "",
            artist=row.get("artist") or None,
            cover_art_url=row.get("cover_art_url") or None,
            position=row.get("position"),
        )

    @classmethod
    def from_entry_row(cls, row: dict[str, Any]) -> Optional["Track"]:
        """
        Create from a ``playlist_songs`` row with its embedded song.

        Returns None when the referenced song no longer exists.
        """
        song = row.get("songs")
        if not song or not song.get("id"):
            return None
        return cls.from_row({**song, "position": row.get("position")})

    def with_position(self, position: Optional[int]) -> "Track":
        """Copy with a different playlist position."""
        return replace(self, position=position)

    @property
    def display_artist(self) -> str:
        return self.artist or "Unknown artist"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "file_url": self.file_url,
            "cover_art_url": self.cover_art_url,
            "position": self.position,
        }


@dataclass(frozen=True)
class Playlist:
    """A user-owned playlist."""

    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    cover_art_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Playlist":
        """Create from a ``playlists`` row."""
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id", "")),
            name=row.get("name") or "",
            description=row.get("description") or None,
            cover_art_url=row.get("cover_art_url") or None,
        )

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        return bool(user_id) and self.user_id == user_id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "cover_art_url": self.cover_art_url,
        }


@dataclass(frozen=True)
class Profile:
    """Per-user profile carrying the access role."""

    id: str
    role: str = ROLE_USER

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Profile":
        return cls(id=str(row.get("id", "")), role=row.get("role") or ROLE_USER)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass
class SearchResults:
    """Songs and playlists matching a search query."""

    songs: list[Track] = field(default_factory=list)
    playlists: list[Playlist] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.songs and not self.playlists


@dataclass
class UploadReport:
    """Outcome of a bulk song upload."""

    added: list[dict[str, Any]] = field(default_factory=list)
    skipped: int = 0

    @property
    def added_count(self) -> int:
        return len(self.added)
