"""
File name helpers for uploads.
"""

import mimetypes
import re
import time
import unicodedata
from typing import Optional

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_WHITESPACE = re.compile(r"\s")


def sanitize_file_name(file_name: str) -> str:
    """
    Make a file name safe for storage paths.

    Diacritics are stripped (ô -> o) and anything other than letters, digits,
    underscore, hyphen and dot becomes an underscore.
    """
    decomposed = unicodedata.normalize("NFD", file_name)
    without_diacritics = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _UNSAFE_CHARS.sub("_", without_diacritics)


def replace_whitespace(file_name: str) -> str:
    """Replace whitespace with underscores (playlist cover names)."""
    return _WHITESPACE.sub("_", file_name)


def parse_song_filename(file_name: str) -> tuple[Optional[str], str]:
    """
    Derive (artist, title) from an "Artist - Title.ext" file name.

    Without a " - " separator the whole stem is the title.
    """
    dot = file_name.rfind(".")
    stem = file_name[:dot] if dot > 0 else file_name
    parts = stem.split(" - ")
    if len(parts) > 1:
        return parts[0].strip() or None, parts[1].strip()
    return None, stem.strip()


def timestamped_path(prefix: str, file_name: str, now_ms: Optional[int] = None) -> str:
    """Storage path ``<prefix>/<epoch ms>-<file_name>``."""
    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    return f"{prefix.rstrip('/')}/{stamp}-{file_name}"


def guess_content_type(file_name: str, default: str = "application/octet-stream") -> str:
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or default
