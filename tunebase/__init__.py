"""
Tunebase - music library and playlist client.

Browses songs, edits playlists optimistically and drives a playback queue
on top of a hosted Postgres backend.
"""

__version__ = "0.1.0"

from .app import TunebaseSession
from .config import Config, load_config, ConfigError

__all__ = [
    "__version__",
    "TunebaseSession",
    "Config",
    "load_config",
    "ConfigError",
]
