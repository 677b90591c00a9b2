"""
Library and player HTTP server.

Serves the track catalog, audio files and cover art, exposes player
control, and carries the WebSocket used by browser clients for state
pushes, intents and <audio> element events.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import aiohttp_cors
from aiohttp import WSMsgType, web

from vapor_player.backends import BrowserAudioOutput
from vapor_player.config import DEFAULT_EXTENSIONS
from vapor_player.library import (
    LibraryIndex,
    LibraryScanError,
    LibraryScanner,
    Track,
    TrackOrigin,
    make_added_tracks,
)
from vapor_player.playback import (
    CommandError,
    InvalidTrackIndexError,
    MetadataEnricher,
    PlaybackSession,
    SessionCommandHandler,
    StateReporter,
    TrackNotFoundError,
    UnknownActionError,
)

logger = logging.getLogger(__name__)

WS_HEARTBEAT_SECONDS = 30.0

# Messages a browser output sends about its <audio> element
OUTPUT_EVENTS = {"timeupdate", "loadedmetadata", "durationchange", "ended", "error"}

# CORS
CORS_ALLOW_HEADERS = ("Content-Type", "Range")
CORS_EXPOSE_HEADERS = ("Content-Range", "Content-Length", "Accept-Ranges")
CORS_MAX_AGE = 600

WS_PATH = "/api/ws"


class LibraryServer:
    """
    HTTP server for VaporPlayer.

    Usage:
        server = LibraryServer(session, handler, reporter, enricher, library, port=5174)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        session: PlaybackSession,
        command_handler: SessionCommandHandler,
        reporter: StateReporter,
        enricher: MetadataEnricher,
        library: Optional[LibraryIndex] = None,
        scanner: Optional[LibraryScanner] = None,
        extensions: Optional[Iterable[str]] = None,
        add_roots: Optional[Iterable[str]] = None,
        host: str = "0.0.0.0",
        port: int = 5174,
        cors_origins: Optional[list[str]] = None,
        static_dir: str = "",
    ):
        """
        Initialize server.

        Args:
            session: Playback session driven by the API
            command_handler: Maps player actions onto the session
            reporter: Pushes state to WebSocket subscribers
            enricher: Metadata source for covers and tag lookups
            library: Scan result served by /library
            scanner: Library scanner used by rescan (None disables rescan)
            extensions: Accepted extensions for added files
            add_roots: Folders added files must live under; empty allows any path
            host: Host to bind to
            port: Port to listen on
            cors_origins: Allowed CORS origins
            static_dir: Directory with a built front end, served at /
        """
        self._session = session
        self._handler = command_handler
        self._reporter = reporter
        self._enricher = enricher
        self._library = library if library is not None else LibraryIndex()
        self._scanner = scanner
        self._extensions = list(extensions or DEFAULT_EXTENSIONS)
        self._add_roots = [Path(r).expanduser().resolve() for r in add_roots or []]
        self._host = host
        self._port = port
        self._cors_origins = cors_origins or ["*"]
        self._static_dir = static_dir

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._sockets: set[web.WebSocketResponse] = set()

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._site is not None

    @property
    def catalog(self):
        return self._session.catalog

    @property
    def library(self) -> LibraryIndex:
        return self._library

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        router = app.router

        router.add_get("/library", self._handle_library)
        router.add_get("/api/library", self._handle_library)
        router.add_get("/api/library/tree", self._handle_library_tree)
        router.add_post("/api/library/rescan", self._handle_rescan)
        router.add_get("/stream/{track_id}", self._handle_stream)
        router.add_get("/api/stream/{track_id}", self._handle_stream)
        router.add_get("/api/cover/{track_id}", self._handle_cover)
        router.add_get("/api/tracks", self._handle_list_tracks)
        router.add_post("/api/tracks", self._handle_add_tracks)
        router.add_delete("/api/tracks", self._handle_clear_tracks)
        router.add_delete("/api/tracks/{track_id}", self._handle_remove_track)
        router.add_get("/api/tracks/{track_id}/metadata", self._handle_track_metadata)
        router.add_get("/api/player", self._handle_player_state)
        router.add_post("/api/player/{action}", self._handle_player_action)

        self._setup_cors(app)

        router.add_get(WS_PATH, self._handle_ws)
        self._add_static_routes(app)
        app.on_shutdown.append(self._close_sockets)

        if not self._add_roots:
            logger.warning(
                "POST /api/tracks accepts any path readable by this process; "
                "set library.add_roots to limit it"
            )
        return app

    def _setup_cors(self, app: web.Application) -> None:
        """Allow cross-origin use of the HTTP API routes registered so far."""
        options = aiohttp_cors.ResourceOptions(
            allow_credentials=False,
            expose_headers=CORS_EXPOSE_HEADERS,
            allow_headers=CORS_ALLOW_HEADERS,
            max_age=CORS_MAX_AGE,
        )
        cors = aiohttp_cors.setup(
            app, defaults={origin: options for origin in self._cors_origins}
        )
        for route in list(app.router.routes()):
            cors.add(route)

    def _add_static_routes(self, app: web.Application) -> None:
        if not self._static_dir:
            return
        static_path = Path(self._static_dir).expanduser()
        if not static_path.is_dir():
            logger.warning(f"Static directory not found, front end disabled: {static_path}")
            return

        index = static_path / "index.html"

        async def handle_index(request: web.Request) -> web.StreamResponse:
            if not index.is_file():
                return web.Response(status=404, text="Not found")
            return web.FileResponse(index)

        app.router.add_get("/", handle_index)
        app.router.add_static("/", static_path)
        logger.info(f"Serving front end from {static_path}")

    async def start(self) -> None:
        """
        Start the HTTP server.

        Raises:
            OSError: If the address cannot be bound
        """
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info(f"Server running on http://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Server stopped")

    async def _close_sockets(self, app: web.Application) -> None:
        for ws in list(self._sockets):
            await ws.close(code=1001, message=b"Server shutdown")

    # =========================================================================
    # Library
    # =========================================================================

    async def _handle_library(self, request: web.Request) -> web.Response:
        """List library tracks as {id, name, relativePath}."""
        return web.json_response([t.to_library_dict() for t in self._library])

    async def _handle_library_tree(self, request: web.Request) -> web.Response:
        return web.json_response(self._library.library_tree())

    async def _handle_rescan(self, request: web.Request) -> web.Response:
        """Re-index the music directory, keeping ids of files still present."""
        if self._scanner is None:
            return _error(409, "Library scanning is disabled")

        known = self._library.path_ids()
        try:
            tracks = await asyncio.to_thread(self._scanner.scan, known)
        except LibraryScanError as e:
            logger.error(f"Rescan failed: {e}")
            return _error(500, str(e))

        new_tracks, gone = self._library.replace(tracks)
        await self._session.sync_library(new_tracks, gone)
        return web.json_response(
            {"added": len(new_tracks), "removed": len(gone), "total": len(self._library)}
        )

    def _find_track(self, track_id: str) -> Optional[Track]:
        """Look a track up in the library, then among the session's added files."""
        return self._library.get(track_id) or self.catalog.get(track_id)

    async def _handle_stream(self, request: web.Request) -> web.StreamResponse:
        """Serve a track's file; Range requests are handled by FileResponse."""
        track_id = request.match_info["track_id"]
        track = self._find_track(track_id)
        if track is None or not track.path.is_file():
            logger.warning(f"Unknown track requested: {track_id}")
            return web.Response(status=404, text="Not found")

        logger.debug(f"Streaming {track.name} (range={request.headers.get('Range')})")
        return web.FileResponse(track.path)

    async def _handle_cover(self, request: web.Request) -> web.Response:
        track_id = request.match_info["track_id"]
        track = self._find_track(track_id)
        if track is None:
            return web.Response(status=404, text="Not found")

        cover = self._enricher.get_cover(track_id)
        if cover is None and self._enricher.get_cached(track_id) is None:
            await self._enrich(track)
            cover = self._enricher.get_cover(track_id)
        if cover is None:
            return web.Response(status=404, text="Not found")

        return web.Response(
            body=cover.data,
            content_type=cover.mime,
            headers={"Cache-Control": "max-age=3600"},
        )

    # =========================================================================
    # Tracks
    # =========================================================================

    async def _handle_list_tracks(self, request: web.Request) -> web.Response:
        return web.json_response([t.to_dict() for t in self.catalog])

    async def _handle_add_tracks(self, request: web.Request) -> web.Response:
        """Add local files or folders: {"paths": [...]}."""
        body = await _read_json(request)
        paths = body.get("paths") if isinstance(body, dict) else None
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            return _error(400, "paths must be a list of strings")

        requested = [Path(p).expanduser().resolve() for p in paths]
        outside = [str(p) for p in requested if not self._may_add(p)]
        if outside:
            logger.warning(f"Rejected paths outside add roots: {outside}")
            return _error(403, f"Paths outside the allowed folders: {', '.join(outside)}")

        candidates = await asyncio.to_thread(make_added_tracks, requested, self._extensions)
        added = await self._session.add_tracks(candidates)
        return web.json_response([t.to_dict() for t in added], status=201)

    def _may_add(self, path: Path) -> bool:
        if not self._add_roots:
            return True
        return any(path.is_relative_to(root) for root in self._add_roots)

    async def _handle_remove_track(self, request: web.Request) -> web.Response:
        track_id = request.match_info["track_id"]
        if not await self._session.remove_track(track_id):
            return _error(404, f"Track {track_id} not found")
        return web.json_response(self._session.snapshot())

    async def _handle_clear_tracks(self, request: web.Request) -> web.Response:
        await self._session.clear_all()
        return web.json_response(self._session.snapshot())

    async def _handle_track_metadata(self, request: web.Request) -> web.Response:
        track_id = request.match_info["track_id"]
        track = self._find_track(track_id)
        if track is None:
            return _error(404, f"Track {track_id} not found")

        await self._enrich(track)
        return web.json_response(track.to_dict())

    async def _enrich(self, track: Track) -> None:
        meta = await self._enricher.enrich(track)
        quality = None
        if track.origin == TrackOrigin.ADDED:
            quality = self._enricher.quality_for(track)
        if track.id in self.catalog:
            self._session.apply_metadata(track.id, meta, quality)
        else:
            # Library track that is not on the playlist
            track.meta = meta

    # =========================================================================
    # Player
    # =========================================================================

    async def _handle_player_state(self, request: web.Request) -> web.Response:
        return web.json_response(self._session.snapshot())

    async def _handle_player_action(self, request: web.Request) -> web.Response:
        action = request.match_info["action"]
        params = await _read_json(request) if request.can_read_body else {}
        if params is None:
            return _error(400, "Body must be JSON")

        try:
            snapshot = await self._handler.handle(action, params)
        except UnknownActionError as e:
            return _error(404, str(e))
        except (CommandError, InvalidTrackIndexError) as e:
            logger.warning(f"Rejected {action}: {e}")
            return _error(400, str(e))
        except TrackNotFoundError as e:
            return _error(404, str(e))
        return web.json_response(snapshot)

    # =========================================================================
    # WebSocket
    # =========================================================================

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        """
        Client connection.

        Every client receives state pushes and may send intents. A client
        connecting with ?output=1 also offers its <audio> element as the
        audio output.
        """
        ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT_SECONDS)
        await ws.prepare(request)
        self._sockets.add(ws)

        output = self._session.output
        wants_output = request.query.get("output", "").lower() in ("1", "true", "yes")
        is_output = isinstance(output, BrowserAudioOutput) and wants_output

        self._reporter.subscribe(ws.send_json)
        logger.info(f"Client connected from {request.remote} (output={wants_output})")

        try:
            active = await output.attach(ws) if is_output else False
            await ws.send_json(
                {
                    "type": "hello",
                    "output": active,
                    "standby": is_output and not active,
                    "state": self._session.snapshot(),
                }
            )

            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._dispatch_ws_message(ws, msg.data, is_output)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"WebSocket error: {ws.exception()}")
        finally:
            self._reporter.unsubscribe(ws.send_json)
            if is_output:
                await output.detach(ws)
            self._sockets.discard(ws)
            logger.info(f"Client disconnected from {request.remote}")

        return ws

    async def _dispatch_ws_message(
        self, ws: web.WebSocketResponse, raw: str, is_output: bool
    ) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed WebSocket message")
            await ws.send_json({"type": "error", "message": "Malformed JSON"})
            return
        if not isinstance(data, dict):
            await ws.send_json({"type": "error", "message": "Message must be an object"})
            return

        msg_type = data.get("type")
        if msg_type == "intent":
            reply = await self._handler.handle_message(data)
            if reply:
                await ws.send_json(reply)
        elif msg_type in OUTPUT_EVENTS:
            if is_output:
                self._session.output.handle_event(ws, data)
            else:
                logger.debug(f"Ignoring {msg_type} from non-output client")
        elif msg_type == "state":
            await ws.send_json({"type": "state", "state": self._session.snapshot()})
        else:
            logger.debug(f"Unhandled WebSocket message type: {msg_type}")


async def _read_json(request: web.Request) -> Any:
    """Parse a JSON body; None when the body is not valid JSON."""
    try:
        return await request.json()
    except ValueError:
        return None


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)
