"""
Tunebase Application.

Session object that wires together all components and manages lifecycle.
"""

import logging
from pathlib import Path
from typing import Optional

from tunebase.backend import (
    AuthService,
    BackendClient,
    PermissionDeniedError,
    StorageBucket,
)
from tunebase.config import Config
from tunebase.library import (
    Notifier,
    PlaylistEditor,
    PlaylistRepository,
    Profile,
    SongLibrary,
    Track,
    UploadReport,
)
from tunebase.playback import AudioOutput, PlaybackQueue, QueuePlayer
from tunebase.realtime import ChangeFilter, ChangeSubscription, RealtimeManager

logger = logging.getLogger(__name__)


class TunebaseSession:
    """
    One signed-in user's session.

    Owns every component; nothing is global:
    - Backend access (BackendClient, AuthService, StorageBucket)
    - Library (SongLibrary, PlaylistRepository)
    - Playback (PlaybackQueue, optional QueuePlayer)
    - Change feed (RealtimeManager)

    Usage:
        async with TunebaseSession(config) as session:
            songs = await session.songs.all_songs()
    """

    def __init__(self, config: Config):
        """
        Initialize session.

        Args:
            config: Validated configuration
        """
        self._config = config
        self._is_running = False

        self.client = BackendClient(
            url=config.backend.url,
            anon_key=config.backend.anon_key,
            timeout=config.backend.timeout,
        )
        self.auth = AuthService(self.client)
        self.storage = StorageBucket(self.client, config.storage.bucket)
        self.songs = SongLibrary(self.client, self.storage)
        self.playlists = PlaylistRepository(self.client, self.storage)
        self.queue = PlaybackQueue()

        self.realtime: Optional[RealtimeManager] = None
        if config.realtime.enabled:
            self.realtime = RealtimeManager(
                url=config.realtime_url,
                anon_key=config.backend.anon_key,
                heartbeat_interval=config.realtime.heartbeat_interval,
            )

        self.player: Optional[QueuePlayer] = None
        self.profile: Optional[Profile] = None

    async def __aenter__(self) -> "TunebaseSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """
        Sign in and start background components.

        Startup order:
        1. Sign in
        2. Load profile (role)
        3. Realtime connection

        Raises:
            AuthenticationError: If sign-in fails
            BackendError: If the profile cannot be loaded
        """
        logger.info("Starting Tunebase session...")

        try:
            # 1. Sign in
            session = await self.auth.sign_in(
                self._config.auth.email, self._config.auth.password
            )

            # 2. Load profile
            self.profile = await self.auth.fetch_profile()
            logger.info(f"Role: {self.profile.role}")

            # 3. Realtime
            if self.realtime:
                await self.realtime.set_access_token(session.access_token)
                await self.realtime.start()
        except BaseException:
            await self.client.close()
            raise

        self._is_running = True
        logger.info("Tunebase session ready")

    async def stop(self) -> None:
        """
        Stop all components.

        Shutdown order (reverse of startup):
        1. Stop player and clear queue
        2. Disconnect realtime
        3. Sign out
        4. Close HTTP session
        """
        if not self._is_running:
            return

        logger.info("Stopping Tunebase session...")
        self._is_running = False

        # 1. Player and queue
        if self.player:
            try:
                await self.player.stop()
            except Exception as e:
                logger.warning(f"Error stopping player: {e}")
            self.player = None
        self.queue.clear()

        # 2. Realtime
        if self.realtime:
            try:
                await self.realtime.stop()
            except Exception as e:
                logger.warning(f"Error stopping realtime: {e}")

        # 3. Sign out
        await self.auth.sign_out()
        self.profile = None

        # 4. HTTP session
        await self.client.close()
        logger.info("Tunebase session stopped")

    @property
    def is_running(self) -> bool:
        """Check if the session is started."""
        return self._is_running

    @property
    def user_id(self) -> str:
        """Signed-in user id."""
        if not self.auth.session:
            raise PermissionDeniedError("Not signed in")
        return self.auth.session.user_id

    async def refresh_token(self) -> None:
        """Refresh the access token if close to expiry and hand it to realtime."""
        before = self.auth.session
        await self.auth.ensure_fresh()
        after = self.auth.session
        if self.realtime and after is not None and after is not before:
            await self.realtime.set_access_token(after.access_token)

    # =========================================================================
    # Components
    # =========================================================================

    def open_editor(
        self, playlist_id: str, notifier: Optional[Notifier] = None
    ) -> PlaylistEditor:
        """Create an editor for one playlist (call load() before use)."""
        return PlaylistEditor(playlist_id, self.playlists, notifier)

    async def watch(self, change_filter: ChangeFilter, name: str) -> ChangeSubscription:
        """
        Subscribe to row changes.

        Raises:
            RuntimeError: If realtime is disabled
        """
        if self.realtime is None:
            raise RuntimeError("Realtime is disabled in configuration")
        return await self.realtime.subscribe(name, [change_filter])

    async def watch_playlist(self, playlist_id: str) -> ChangeSubscription:
        """Subscribe to entry changes of one playlist."""
        return await self.watch(
            ChangeFilter(table="playlist_songs", filter=f"playlist_id=eq.{playlist_id}"),
            name=f"playlist-{playlist_id}",
        )

    async def attach_output(self, output: AudioOutput) -> QueuePlayer:
        """Drive an audio output from the queue."""
        if self.player:
            await self.player.stop()
        self.player = QueuePlayer(self.queue, output)
        await self.player.start()
        return self.player

    # =========================================================================
    # Administration
    # =========================================================================

    def require_admin(self) -> Profile:
        """
        Raises:
            PermissionDeniedError: If the signed-in user is not an admin
        """
        if self.profile is None or not self.profile.is_admin:
            raise PermissionDeniedError("Admin role required")
        return self.profile

    async def upload_songs(self, files: list[Path]) -> UploadReport:
        self.require_admin()
        return await self.songs.upload_songs(files, self.user_id)

    async def update_song(
        self,
        song_id: str,
        title: str,
        artist: Optional[str] = None,
        cover_file: Optional[Path] = None,
    ) -> Track:
        self.require_admin()
        song = await self.songs.get_song(song_id)
        return await self.songs.update_song(song, title, artist, cover_file)

    async def delete_song(self, song_id: str) -> None:
        self.require_admin()
        song = await self.songs.get_song(song_id)
        await self.songs.delete_song(song)
