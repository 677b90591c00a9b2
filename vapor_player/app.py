"""
VaporPlayer Application.

Main orchestrator that wires together all components and manages lifecycle.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Iterable, Optional

from vapor_player.backends import AudioOutput, OutputFactory
from vapor_player.config import Config
from vapor_player.library import LibraryIndex, LibraryScanner, TrackCatalog, make_added_tracks
from vapor_player.playback import (
    MetadataEnricher,
    PlaybackSequencer,
    PlaybackSession,
    SessionCommandHandler,
    StateReporter,
)
from vapor_player.web import LibraryServer

logger = logging.getLogger(__name__)


class VaporPlayer:
    """
    Main VaporPlayer application.

    Orchestrates all components:
    - Library (LibraryScanner, LibraryIndex, TrackCatalog)
    - Playback (PlaybackSession, PlaybackSequencer, MetadataEnricher)
    - Audio output (BrowserAudioOutput or NullAudioOutput)
    - HTTP/WebSocket server (LibraryServer)

    Usage:
        config = load_config(...)
        app = VaporPlayer(config)
        await app.run()
    """

    def __init__(self, config: Config, initial_paths: Optional[Iterable[Path]] = None):
        """
        Initialize VaporPlayer.

        Args:
            config: Validated configuration
            initial_paths: Local files or folders added at startup
        """
        self._config = config
        self._initial_paths = list(initial_paths or [])
        self._is_running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self._output: Optional[AudioOutput] = None
        self._catalog: Optional[TrackCatalog] = None
        self._library = LibraryIndex()
        self._scanner: Optional[LibraryScanner] = None
        self._enricher: Optional[MetadataEnricher] = None
        self._session: Optional[PlaybackSession] = None
        self._state_reporter: Optional[StateReporter] = None
        self._command_handler: Optional[SessionCommandHandler] = None
        self._server: Optional[LibraryServer] = None

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    @property
    def library(self) -> LibraryIndex:
        return self._library

    @property
    def server(self) -> Optional[LibraryServer]:
        return self._server

    async def start(self) -> None:
        """
        Start VaporPlayer and all components.

        Startup order:
        1. Audio output
        2. Catalog, metadata and session
        3. Library scan
        4. Startup files
        5. HTTP server
        6. State reporter

        Raises:
            OutputNotFoundError: If the output type is unavailable
            LibraryScanError: If the music directory cannot be indexed
            OSError: If the server cannot bind
        """
        logger.info("Starting VaporPlayer...")

        # 1. Create audio output
        self._output = await OutputFactory.create_from_config(self._config)
        logger.info(f"Audio output: {self._output.name}")

        # 2. Catalog, metadata and session
        self._catalog = TrackCatalog()
        self._enricher = MetadataEnricher()
        sequencer = PlaybackSequencer(strategy=self._config.player.shuffle_strategy)
        self._session = PlaybackSession(
            catalog=self._catalog,
            output=self._output,
            enricher=self._enricher,
            sequencer=sequencer,
            volume=self._config.player.volume,
        )
        self._state_reporter = StateReporter(
            self._session, interval=self._config.player.state_interval
        )
        self._session.set_state_reporter(self._state_reporter)
        self._command_handler = SessionCommandHandler(self._session)

        # 3. Index the music directory
        library = self._config.library
        self._scanner = LibraryScanner(Path(library.music_dir), library.extensions)
        if library.scan_on_start:
            logger.info(f"Scanning {library.music_dir}...")
            tracks = await asyncio.to_thread(self._scanner.scan)
            await self._session.sync_library(*self._library.replace(tracks))

        # 4. Files given on the command line
        if self._initial_paths:
            added = make_added_tracks(self._initial_paths, library.extensions)
            await self._session.add_tracks(added)

        await self._session.start()

        # 5. HTTP server
        server_config = self._config.server
        self._server = LibraryServer(
            session=self._session,
            command_handler=self._command_handler,
            reporter=self._state_reporter,
            enricher=self._enricher,
            library=self._library,
            scanner=self._scanner,
            extensions=library.extensions,
            add_roots=library.add_roots,
            host=server_config.bind_address,
            port=server_config.port,
            cors_origins=server_config.cors_origins,
            static_dir=server_config.static_dir,
        )
        await self._server.start()

        # 6. State pushes
        await self._state_reporter.start()

        self._is_running = True
        logger.info(f"VaporPlayer ready with {len(self._catalog)} tracks")

    async def stop(self) -> None:
        """
        Stop VaporPlayer and all components.

        Shutdown order (reverse of startup):
        1. Stop state reporter
        2. Stop HTTP server
        3. Close session
        4. Disconnect output
        """
        if not self._is_running:
            return

        logger.info("Stopping VaporPlayer...")
        self._is_running = False

        # 1. Stop state reporter
        if self._state_reporter:
            try:
                await self._state_reporter.stop()
            except Exception as e:
                logger.warning(f"Error stopping state reporter: {e}")

        # 2. Stop HTTP server
        if self._server:
            try:
                await self._server.stop()
            except Exception as e:
                logger.warning(f"Error stopping server: {e}")

        # 3. Close session
        if self._session:
            try:
                await self._session.close()
            except Exception as e:
                logger.warning(f"Error closing session: {e}")

        # 4. Disconnect output
        if self._output:
            try:
                await self._output.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting output: {e}")

        logger.info("VaporPlayer stopped")

    async def run(self) -> None:
        """
        Run VaporPlayer until interrupted.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.
        """
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self.start()

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        finally:
            await self.stop()

    def request_shutdown(self) -> None:
        """Ask a running instance to stop."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._is_running
