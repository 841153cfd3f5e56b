"""
Tunebase CLI entry point.

Provides command-line access to the library, playlists and admin tools.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

from tunebase import __version__
from tunebase.app import TunebaseSession
from tunebase.backend import AuthenticationError, BackendError, PermissionDeniedError
from tunebase.config import Config, ConfigError, load_config
from tunebase.library import MutationInProgressError, Notifier, Playlist, Track

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_AUTH_ERROR = 2
EXIT_NETWORK_ERROR = 3

# Commands that keep a realtime connection open
REALTIME_COMMANDS = {("playlist", "watch")}


def setup_logging(level: str = "info") -> None:
    """Send log records to stdout at the given level."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


class ConsoleNotifier(Notifier):
    """Prints notifications for the terminal user."""

    def success(self, message: str) -> None:
        print(message)

    def info(self, message: str) -> None:
        print(message)

    def error(self, message: str) -> None:
        print(f"Error: {message}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="tunebase",
        description="Music library, playlists and queue on a hosted backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tunebase songs --sort title
  tunebase search "daft punk" --json
  tunebase playlist create "Road trip" --description "Summer 2024"
  tunebase playlist reorder <playlist-id> <song-id> 0
  tunebase playlist watch <playlist-id>
  tunebase admin upload "Artist - Title.mp3"

Environment Variables:
  TUNEBASE_URL, TUNEBASE_ANON_KEY, TUNEBASE_TIMEOUT
  TUNEBASE_EMAIL, TUNEBASE_PASSWORD, TUNEBASE_BUCKET
  TUNEBASE_REALTIME, TUNEBASE_HEARTBEAT_INTERVAL, TUNEBASE_LOG_LEVEL
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # Backend
    backend_group = parser.add_argument_group("Backend")
    backend_group.add_argument("--url", metavar="URL", help="Backend project URL")
    backend_group.add_argument("--anon-key", metavar="KEY", help="Backend anon API key")
    backend_group.add_argument("--bucket", metavar="NAME", help="Storage bucket name")

    # Authentication
    auth_group = parser.add_argument_group("Authentication")
    auth_group.add_argument("--email", metavar="TEXT", help="Account email")
    auth_group.add_argument("--password", metavar="TEXT", help="Account password")

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    # Library
    songs = commands.add_parser("songs", help="List all songs")
    songs.add_argument(
        "--sort", choices=["newest", "title"], default="newest", help="Sort order"
    )

    search = commands.add_parser("search", help="Search songs and playlists")
    search.add_argument("query")

    artist = commands.add_parser("artist", help="List songs of one artist")
    artist.add_argument("name")

    commands.add_parser("playlists", help="List your playlists")

    # Playlist
    playlist = commands.add_parser("playlist", help="Show or edit a playlist")
    playlist_commands = playlist.add_subparsers(
        dest="action", metavar="ACTION", required=True
    )

    show = playlist_commands.add_parser("show", help="Show playlist entries")
    show.add_argument("playlist_id")

    create = playlist_commands.add_parser("create", help="Create a playlist")
    create.add_argument("name")
    create.add_argument("--description", metavar="TEXT")
    create.add_argument("--cover", type=Path, metavar="PATH", help="Cover image")

    delete = playlist_commands.add_parser("delete", help="Delete a playlist")
    delete.add_argument("playlist_id")

    cover = playlist_commands.add_parser("cover", help="Replace the cover image")
    cover.add_argument("playlist_id")
    cover.add_argument("path", type=Path)

    add = playlist_commands.add_parser("add", help="Append a song")
    add.add_argument("playlist_id")
    add.add_argument("song_id")

    set_songs = playlist_commands.add_parser("set", help="Replace the set of songs")
    set_songs.add_argument("playlist_id")
    set_songs.add_argument("song_ids", nargs="*", metavar="song_id")

    reorder = playlist_commands.add_parser("reorder", help="Move a song to a new index")
    reorder.add_argument("playlist_id")
    reorder.add_argument("song_id")
    reorder.add_argument("new_index", type=int)

    remove = playlist_commands.add_parser("remove", help="Remove a song")
    remove.add_argument("playlist_id")
    remove.add_argument("song_id")

    watch = playlist_commands.add_parser("watch", help="Print entries on every change")
    watch.add_argument("playlist_id")

    # Admin
    admin = commands.add_parser("admin", help="Library administration (admin role)")
    admin_commands = admin.add_subparsers(dest="action", metavar="ACTION", required=True)

    upload = admin_commands.add_parser("upload", help="Upload 'Artist - Title' audio files")
    upload.add_argument("files", nargs="+", type=Path)

    edit = admin_commands.add_parser("edit", help="Edit a song")
    edit.add_argument("song_id")
    edit.add_argument("--title", required=True)
    edit.add_argument("--artist")
    edit.add_argument("--cover", type=Path, metavar="PATH")

    remove_song = admin_commands.add_parser("delete", help="Delete a song and its files")
    remove_song.add_argument("song_id")

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Store value under a nested config path."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Turn parsed options into the nested dict load_config merges last."""
    result: dict = {}

    # option dest -> config path
    mappings = {
        "url": ("backend", "url"),
        "anon_key": ("backend", "anon_key"),
        "bucket": ("storage", "bucket"),
        "email": ("auth", "email"),
        "password": ("auth", "password"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        _set_nested(result, path, value)

    # One-shot commands never need the change feed
    if (args.command, getattr(args, "action", None)) not in REALTIME_COMMANDS:
        _set_nested(result, ("realtime", "enabled"), False)

    return result


def log_config(config: Config) -> None:
    """Debug-log the resolved settings; the password is never logged."""
    logger.debug(f"Backend: {config.backend.url}")
    logger.debug(f"Account: {config.auth.email}")
    logger.debug(f"Bucket: {config.storage.bucket}")
    logger.debug(f"Realtime: {'enabled' if config.realtime.enabled else 'disabled'}")


# =============================================================================
# Output
# =============================================================================


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def _format_track(track: Track, index: Optional[int] = None) -> str:
    prefix = f"{index + 1:>3}. " if index is not None else "  "
    return f"{prefix}{track.title} - {track.display_artist}  [{track.id}]"


def _format_playlist(playlist: Playlist) -> str:
    line = f"  {playlist.name}  [{playlist.id}]"
    if playlist.description:
        line += f"\n      {playlist.description}"
    return line


def print_tracks(tracks: Sequence[Track], json_output: bool, numbered: bool = False) -> None:
    if json_output:
        _print_json({"songs": [t.to_dict() for t in tracks], "count": len(tracks)})
        return
    if not tracks:
        print("No songs.")
        return
    for i, track in enumerate(tracks):
        print(_format_track(track, i if numbered else None))


def print_playlists(playlists: Sequence[Playlist], json_output: bool) -> None:
    if json_output:
        _print_json({"playlists": [p.to_dict() for p in playlists], "count": len(playlists)})
        return
    if not playlists:
        print("No playlists.")
        return
    for playlist in playlists:
        print(_format_playlist(playlist))


# =============================================================================
# Commands
# =============================================================================


async def cmd_songs(session: TunebaseSession, args: argparse.Namespace) -> int:
    if args.sort == "title":
        tracks = await session.songs.songs_by_title()
    else:
        tracks = await session.songs.all_songs()
    print_tracks(tracks, args.json_output)
    return EXIT_SUCCESS


async def cmd_search(session: TunebaseSession, args: argparse.Namespace) -> int:
    results = await session.songs.search(args.query)
    if args.json_output:
        _print_json(
            {
                "songs": [t.to_dict() for t in results.songs],
                "playlists": [p.to_dict() for p in results.playlists],
            }
        )
        return EXIT_SUCCESS

    if results.is_empty:
        print(f"No results for {args.query!r}.")
        return EXIT_SUCCESS
    if results.songs:
        print(f"Songs ({len(results.songs)}):")
        for track in results.songs:
            print(_format_track(track))
    if results.playlists:
        print(f"Playlists ({len(results.playlists)}):")
        for playlist in results.playlists:
            print(_format_playlist(playlist))
    return EXIT_SUCCESS


async def cmd_artist(session: TunebaseSession, args: argparse.Namespace) -> int:
    tracks = await session.songs.songs_by_artist(args.name)
    print_tracks(tracks, args.json_output)
    return EXIT_SUCCESS


async def cmd_playlists(session: TunebaseSession, args: argparse.Namespace) -> int:
    playlists = await session.playlists.user_playlists(session.user_id)
    print_playlists(playlists, args.json_output)
    return EXIT_SUCCESS


async def cmd_playlist_show(session: TunebaseSession, args: argparse.Namespace) -> int:
    playlist = await session.playlists.get_playlist(args.playlist_id)
    entries = await session.playlists.fetch_entries(args.playlist_id)
    if args.json_output:
        data = playlist.to_dict()
        data["songs"] = [t.to_dict() for t in entries]
        _print_json(data)
        return EXIT_SUCCESS
    print(playlist.name)
    if playlist.description:
        print(playlist.description)
    print_tracks(entries, json_output=False, numbered=True)
    return EXIT_SUCCESS


async def cmd_playlist_create(session: TunebaseSession, args: argparse.Namespace) -> int:
    playlist = await session.playlists.create_playlist(
        session.user_id, args.name, args.description
    )
    if args.cover:
        await session.playlists.set_cover(playlist.id, args.cover)
    if args.json_output:
        _print_json(playlist.to_dict())
    else:
        print(f"Created playlist {playlist.name} [{playlist.id}]")
    return EXIT_SUCCESS


async def cmd_playlist_delete(session: TunebaseSession, args: argparse.Namespace) -> int:
    playlist = await session.playlists.get_playlist(args.playlist_id)
    if not playlist.is_owned_by(session.user_id):
        raise PermissionDeniedError("Only the owner can delete a playlist")
    await session.playlists.delete_playlist(playlist)
    print(f"Deleted playlist {playlist.name}")
    return EXIT_SUCCESS


async def cmd_playlist_cover(session: TunebaseSession, args: argparse.Namespace) -> int:
    playlist = await session.playlists.get_playlist(args.playlist_id)
    url = await session.playlists.set_cover(
        playlist.id, args.path, current_cover_url=playlist.cover_art_url
    )
    print(url)
    return EXIT_SUCCESS


async def cmd_playlist_add(session: TunebaseSession, args: argparse.Namespace) -> int:
    position = await session.playlists.add_song(args.playlist_id, args.song_id)
    print(f"Added at position {position}")
    return EXIT_SUCCESS


async def cmd_playlist_set(session: TunebaseSession, args: argparse.Namespace) -> int:
    added, removed = await session.playlists.set_songs(args.playlist_id, args.song_ids)
    print(f"{added} added, {removed} removed")
    return EXIT_SUCCESS


async def cmd_playlist_reorder(session: TunebaseSession, args: argparse.Namespace) -> int:
    editor = session.open_editor(args.playlist_id, ConsoleNotifier())
    if not await editor.load():
        return EXIT_NETWORK_ERROR
    old_index = editor.index_of(args.song_id)
    if old_index < 0:
        raise ValueError(f"Song {args.song_id} is not in this playlist")
    if not await editor.reorder(args.song_id, old_index, args.new_index):
        return EXIT_NETWORK_ERROR
    print_tracks(editor.entries, args.json_output, numbered=True)
    return EXIT_SUCCESS


async def cmd_playlist_remove(session: TunebaseSession, args: argparse.Namespace) -> int:
    editor = session.open_editor(args.playlist_id, ConsoleNotifier())
    if not await editor.load():
        return EXIT_NETWORK_ERROR
    if not await editor.remove(args.song_id):
        return EXIT_NETWORK_ERROR
    return EXIT_SUCCESS


async def cmd_playlist_watch(session: TunebaseSession, args: argparse.Namespace) -> int:
    editor = session.open_editor(args.playlist_id, ConsoleNotifier())
    editor.on_change(lambda entries: print_tracks(entries, args.json_output, numbered=True))
    if not await editor.load():
        return EXIT_NETWORK_ERROR

    subscription = await session.watch_playlist(args.playlist_id)

    loop = asyncio.get_running_loop()

    def handle_signal() -> None:
        logger.info("Shutdown signal received")
        asyncio.ensure_future(subscription.close())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    try:
        async with subscription:
            await editor.follow(subscription)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
    return EXIT_SUCCESS


async def cmd_admin_upload(session: TunebaseSession, args: argparse.Namespace) -> int:
    missing = [str(f) for f in args.files if not f.is_file()]
    if missing:
        raise ValueError(f"Not a file: {', '.join(missing)}")
    report = await session.upload_songs(args.files)
    if args.json_output:
        _print_json({"added": report.added, "skipped": report.skipped})
    else:
        print(f"{report.added_count} songs added, {report.skipped} duplicates skipped")
    return EXIT_SUCCESS


async def cmd_admin_edit(session: TunebaseSession, args: argparse.Namespace) -> int:
    track = await session.update_song(args.song_id, args.title, args.artist, args.cover)
    if args.json_output:
        _print_json(track.to_dict())
    else:
        print(f"Updated {_format_track(track).strip()}")
    return EXIT_SUCCESS


async def cmd_admin_delete(session: TunebaseSession, args: argparse.Namespace) -> int:
    await session.delete_song(args.song_id)
    print(f"Deleted song {args.song_id}")
    return EXIT_SUCCESS


CommandHandler = Callable[[TunebaseSession, argparse.Namespace], Awaitable[int]]

COMMANDS: dict[tuple[str, Optional[str]], CommandHandler] = {
    ("songs", None): cmd_songs,
    ("search", None): cmd_search,
    ("artist", None): cmd_artist,
    ("playlists", None): cmd_playlists,
    ("playlist", "show"): cmd_playlist_show,
    ("playlist", "create"): cmd_playlist_create,
    ("playlist", "delete"): cmd_playlist_delete,
    ("playlist", "cover"): cmd_playlist_cover,
    ("playlist", "add"): cmd_playlist_add,
    ("playlist", "set"): cmd_playlist_set,
    ("playlist", "reorder"): cmd_playlist_reorder,
    ("playlist", "remove"): cmd_playlist_remove,
    ("playlist", "watch"): cmd_playlist_watch,
    ("admin", "upload"): cmd_admin_upload,
    ("admin", "edit"): cmd_admin_edit,
    ("admin", "delete"): cmd_admin_delete,
}


async def run_command(config: Config, args: argparse.Namespace) -> int:
    """Run one command inside a fresh session."""
    handler = COMMANDS[(args.command, getattr(args, "action", None))]
    async with TunebaseSession(config) as session:
        return await handler(session, args)


def run(args: argparse.Namespace) -> int:
    """
    Run one command.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    # Quiet until the configured level is known
    setup_logging("warning")

    try:
        cli_config = args_to_dict(args)
        config = load_config(args.config, cli_config)
        setup_logging(config.logging.level)
        log_config(config)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    try:
        return asyncio.run(run_command(config, args))

    except AuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        return EXIT_AUTH_ERROR

    except PermissionDeniedError as e:
        logger.error(f"Permission denied: {e}")
        return EXIT_AUTH_ERROR

    except BackendError as e:
        logger.error(f"Backend error: {e}")
        return EXIT_NETWORK_ERROR

    except (ValueError, MutationInProgressError) as e:
        logger.error(f"Invalid request: {e}")
        return EXIT_CONFIG_ERROR

    except (ConnectionError, OSError) as e:
        logger.error(f"Network error: {e}")
        return EXIT_NETWORK_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 2=auth error, 3=network error
    """
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
