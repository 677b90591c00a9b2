"""
VaporPlayer playback session.

Owns the playback state and the single audio output, and turns user
intents and output events into state transitions.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Optional

from vapor_player.backends import AudioOutput, AudioOutputError, OutputTrack
from vapor_player.library.catalog import Track, TrackCatalog, TrackOrigin

from .metadata import DEFAULT_ACCENT_COLOR, MetadataEnricher, TrackMetadata
from .sequencer import PlaybackSequencer, RepeatMode

if TYPE_CHECKING:
    from .state_reporter import StateReporter

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """
    Session states.

    EMPTY -> PAUSED (tracks added) -> PLAYING (select/play)
    PLAYING -> PAUSED (pause, end of queue, failed start, current removed)
    any -> EMPTY (clear)
    """

    EMPTY = "empty"
    PAUSED = "paused"
    PLAYING = "playing"


class SessionError(Exception):
    """Base class for rejected session operations."""

    pass


class InvalidTrackIndexError(SessionError):
    """Raised when selecting a position outside the catalog."""

    pass


class TrackNotFoundError(SessionError):
    """Raised when a track id is not in the catalog."""

    pass


def format_time(seconds: float) -> str:
    """Format seconds as m:ss or h:mm:ss; non-finite values show as 0:00."""
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return "0:00"
    total = int(seconds)
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


@dataclass
class NowPlaying:
    """What the presentation layer shows for the current track."""

    track_id: str
    title: str
    artist: str
    album: str = ""
    cover_url: Optional[str] = None
    accent_color: str = DEFAULT_ACCENT_COLOR
    quality: Optional[str] = None

    @classmethod
    def from_track(cls, track: Track) -> "NowPlaying":
        meta = track.meta
        return cls(
            track_id=track.id,
            title=track.title,
            artist=track.artist,
            album=meta.album if meta else "",
            cover_url=f"/api/cover/{track.id}" if meta and meta.has_cover else None,
            accent_color=meta.accent_color if meta else DEFAULT_ACCENT_COLOR,
            quality=track.quality,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.track_id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "coverUrl": self.cover_url,
            "accentColor": self.accent_color,
            "quality": self.quality,
        }


class PlaybackSession:
    """
    Playback state machine.

    Coordinates:
    - TrackCatalog: what can be played
    - PlaybackSequencer: which index comes next
    - AudioOutput: the one active output
    - MetadataEnricher: tags for the displayed track

    All methods run on the event loop. Output callbacks schedule work on the
    loop instead of mutating state mid-command.
    """

    def __init__(
        self,
        catalog: TrackCatalog,
        output: AudioOutput,
        enricher: Optional[MetadataEnricher] = None,
        sequencer: Optional[PlaybackSequencer] = None,
        volume: float = 0.9,
    ):
        """Initialize session."""
        self.catalog = catalog
        self.output = output
        self.enricher = enricher
        self.sequencer = sequencer or PlaybackSequencer()

        # Selection
        self._index: int = 0
        self._playing: bool = False

        # Modes
        self._shuffle: bool = False
        self._repeat_mode: RepeatMode = RepeatMode.OFF

        # Volume (muting keeps the volume for restoration)
        self._volume: float = _clamp(volume, 0.0, 1.0)
        self._muted: bool = False

        # Position tracking, seconds
        self._position: float = 0.0
        self._duration: float = 0.0

        # Displayed metadata
        self._now_playing: Optional[NowPlaying] = None

        self._state_reporter: Optional["StateReporter"] = None
        self._enrich_tasks: dict[str, asyncio.Task] = {}

        # Wire up output callbacks
        self.output.on_time_update(self.on_time_update)
        self.output.on_duration_known(self.on_duration_known)
        self.output.on_track_ended(self.on_track_ended)
        self.output.on_playback_error(self.on_playback_error)

        logger.debug("PlaybackSession initialized")

    def set_state_reporter(self, reporter: "StateReporter") -> None:
        """Set the reporter that pushes snapshots to clients."""
        self._state_reporter = reporter

    async def start(self) -> None:
        """Apply the initial gain and load the first track, if any."""
        await self.output.set_gain(self.gain)
        if self.current_track is not None:
            await self._load_current(autoplay=False)

    async def close(self) -> None:
        """Cancel pending metadata work."""
        for task in list(self._enrich_tasks.values()):
            task.cancel()
        self._enrich_tasks.clear()

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def current_track(self) -> Optional[Track]:
        return self.catalog.at(self._index)

    @property
    def current_index(self) -> Optional[int]:
        """Selected position, or None when nothing can be selected."""
        if self.catalog.is_empty:
            return None
        return self._index

    @property
    def state(self) -> SessionState:
        if self.current_track is None:
            return SessionState.EMPTY
        return SessionState.PLAYING if self._playing else SessionState.PAUSED

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def shuffle(self) -> bool:
        return self._shuffle

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat_mode

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def gain(self) -> float:
        """Actual output gain."""
        return 0.0 if self._muted else self._volume

    @property
    def position(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def duration_known(self) -> bool:
        return math.isfinite(self._duration) and self._duration > 0

    @property
    def now_playing(self) -> Optional[NowPlaying]:
        return self._now_playing

    def snapshot(self) -> dict[str, Any]:
        """Current state as a JSON-ready dictionary."""
        duration = self._duration if self.duration_known else 0.0
        return {
            "state": self.state.value,
            "currentIndex": self.current_index,
            "count": len(self.catalog),
            "track": self._now_playing.to_dict() if self._now_playing else None,
            "playing": self._playing,
            "shuffle": self._shuffle,
            "repeatMode": self._repeat_mode.value,
            "repeatLabel": self._repeat_mode.label,
            "volume": self._volume,
            "muted": self._muted,
            "gain": self.gain,
            "position": self._position,
            "duration": duration,
            "positionText": format_time(self._position),
            "durationText": format_time(duration),
        }

    # =========================================================================
    # Track Selection
    # =========================================================================

    async def select_track(self, index: int) -> None:
        """
        Select a catalog position and start playing it.

        Raises:
            InvalidTrackIndexError: If index is outside the catalog
        """
        count = len(self.catalog)
        if not 0 <= index < count:
            raise InvalidTrackIndexError(f"Track index {index} out of range (0..{count - 1})")

        track = self.catalog.at(index)
        assert track is not None
        loaded = self.output.loaded_track

        self._index = index
        self._playing = True

        if loaded is not None and loaded.track_id == track.id:
            # Same source: resume rather than reload
            await self._start_output()
        else:
            await self._load_current(autoplay=True)

        await self._send_state_update()

    async def select_track_id(self, track_id: str) -> None:
        """
        Select a track by id and start playing it.

        Raises:
            TrackNotFoundError: If the id is not in the catalog
        """
        index = self.catalog.index_of(track_id)
        if index is None:
            raise TrackNotFoundError(f"Track {track_id} not found")
        await self.select_track(index)

    async def skip_next(self) -> bool:
        """
        Move to the next track, keeping the play/pause state.

        Returns:
            False if the index did not change
        """
        if self.current_track is None:
            return False
        target = self.sequencer.next(
            self._index, len(self.catalog), self._shuffle, self._repeat_mode
        )
        return await self._skip_to(target)

    async def skip_previous(self) -> bool:
        """
        Move to the previous track, keeping the play/pause state.

        Returns:
            False if the index did not change
        """
        if self.current_track is None:
            return False
        target = self.sequencer.previous(
            self._index, len(self.catalog), self._shuffle, self._repeat_mode
        )
        return await self._skip_to(target)

    async def _skip_to(self, target: int) -> bool:
        if target == self._index:
            logger.debug(f"Skip ignored, index stays at {target}")
            return False
        logger.debug(f"Skip: {self._index} -> {target}")
        self._index = target
        await self._load_current(autoplay=self._playing)
        await self._send_state_update()
        return True

    # =========================================================================
    # Transport
    # =========================================================================

    async def toggle_play(self) -> None:
        """Flip between playing and paused; no-op without a current track."""
        if self.current_track is None:
            logger.debug("Toggle ignored: no current track")
            return
        if self._playing:
            await self.pause()
        else:
            await self.play()

    async def play(self) -> bool:
        """
        Start or resume playback of the current track.

        Returns:
            True if the output accepted the command
        """
        track = self.current_track
        if track is None:
            logger.debug("Play ignored: no current track")
            return False

        self._playing = True
        loaded = self.output.loaded_track
        if loaded is None or loaded.track_id != track.id:
            await self._load_current(autoplay=True)
        else:
            await self._start_output()

        await self._send_state_update()
        return self._playing

    async def pause(self) -> None:
        """Pause playback."""
        if self.current_track is None:
            return
        self._playing = False
        await self.output.pause()
        await self._send_state_update()
        logger.info("Playback paused")

    async def seek(self, position: float) -> Optional[float]:
        """
        Jump to a position in the current track.

        The position is clamped to [0, duration], or to [0, inf) while the
        duration is unknown. Play/pause state is unchanged.

        Returns:
            The position actually applied, or None without a current track
        """
        if self.current_track is None:
            logger.debug("Seek ignored: no current track")
            return None

        upper = self._duration if self.duration_known else math.inf
        clamped = _clamp(float(position), 0.0, upper)
        if clamped != position:
            logger.debug(f"Seek position clamped: {position} -> {clamped}")

        self._position = clamped
        await self.output.seek(clamped)
        await self._send_state_update()
        return clamped

    async def seek_by(self, delta: float) -> Optional[float]:
        """Seek relative to the current position."""
        return await self.seek(self._position + delta)

    # =========================================================================
    # Volume
    # =========================================================================

    async def set_volume(self, volume: float) -> float:
        """
        Set volume level.

        Args:
            volume: Level in [0, 1], clamped

        Returns:
            Volume after clamping
        """
        self._volume = _clamp(float(volume), 0.0, 1.0)
        await self.output.set_gain(self.gain)
        await self._send_state_update()
        logger.debug(f"Volume set to {self._volume:.2f}")
        return self._volume

    async def adjust_volume(self, delta: float) -> float:
        """Adjust volume by a relative amount."""
        return await self.set_volume(self._volume + delta)

    async def toggle_mute(self) -> bool:
        """Toggle mute; the volume value is kept."""
        self._muted = not self._muted
        await self.output.set_gain(self.gain)
        await self._send_state_update()
        logger.debug(f"Muted: {self._muted}")
        return self._muted

    # =========================================================================
    # Modes
    # =========================================================================

    async def set_shuffle(self, enabled: bool) -> None:
        self._shuffle = enabled
        self.sequencer.invalidate()
        await self._send_state_update()
        logger.info(f"Shuffle mode: {enabled}")

    async def toggle_shuffle(self) -> bool:
        await self.set_shuffle(not self._shuffle)
        return self._shuffle

    async def set_repeat_mode(self, mode: RepeatMode) -> None:
        self._repeat_mode = mode
        await self._send_state_update()
        logger.info(f"Repeat mode: {mode.value}")

    async def cycle_repeat(self) -> RepeatMode:
        await self.set_repeat_mode(self._repeat_mode.cycle())
        return self._repeat_mode

    # =========================================================================
    # Catalog Changes
    # =========================================================================

    async def add_tracks(self, tracks: Iterable[Track]) -> list[Track]:
        """
        Append tracks to the catalog.

        When nothing was selectable before, the first track becomes current
        (paused). Added files get their metadata read right away; library
        tracks are read when they are first shown.
        """
        was_empty = self.current_track is None
        added = self.catalog.add(tracks)
        if not added:
            return added

        self.sequencer.invalidate()

        for track in added:
            if track.origin == TrackOrigin.ADDED:
                self._schedule_enrichment(track)

        if was_empty:
            self._index = 0
            self._playing = False
            await self._load_current(autoplay=False)

        await self._send_state_update()
        logger.info(f"Added {len(added)} tracks ({len(self.catalog)} total)")
        return added

    async def remove_track(self, track_id: str) -> bool:
        """
        Remove a track by id.

        Removing the current track stops playback and selects the track that
        moved into its place (or the new last one). Removing an earlier track
        shifts the index so the same track stays current.

        Returns:
            False if the id is unknown
        """
        removed_index = self.catalog.remove(track_id)
        if removed_index is None:
            logger.warning(f"Cannot remove unknown track {track_id}")
            return False

        self._cancel_enrichment(track_id)
        if self.enricher:
            self.enricher.forget(track_id)
        self.sequencer.invalidate()

        if removed_index == self._index:
            self._index = max(0, min(removed_index, len(self.catalog) - 1))
            self._playing = False
            await self.output.stop()
            if self.current_track is not None:
                await self._load_current(autoplay=False)
            else:
                self._reset_position()
                self._now_playing = None
            logger.info(f"Removed current track {track_id}, playback stopped")
        elif removed_index < self._index:
            self._index -= 1
            logger.debug(f"Removed track {track_id} before current, index now {self._index}")

        await self._send_state_update()
        return True

    async def sync_library(
        self, added: Iterable[Track], removed_ids: Iterable[str]
    ) -> tuple[list[Track], list[str]]:
        """
        Apply a library rescan to the catalog.

        Tracks that vanished from the music directory are removed, newly
        found ones appended. Library tracks taken off the playlist earlier
        stay off; added files are left alone.

        Args:
            added: Tracks the index did not know before
            removed_ids: Ids the index no longer has

        Returns:
            (appended tracks, removed track ids)
        """
        removed = [track_id for track_id in removed_ids if track_id in self.catalog]
        for track_id in removed:
            await self.remove_track(track_id)

        appended = await self.add_tracks(added)
        logger.info(f"Library synced: {len(appended)} added, {len(removed)} removed")
        return appended, removed

    async def clear_all(self) -> None:
        """Empty the catalog and reset playback."""
        for track_id in list(self._enrich_tasks):
            self._cancel_enrichment(track_id)
        self.catalog.clear()
        if self.enricher:
            self.enricher.clear()
        self.sequencer.invalidate()

        self._index = 0
        self._playing = False
        self._reset_position()
        self._now_playing = None
        await self.output.stop()

        await self._send_state_update()
        logger.info("Catalog cleared")

    # =========================================================================
    # Metadata
    # =========================================================================

    def apply_metadata(
        self,
        track_id: str,
        meta: TrackMetadata,
        quality: Optional[str] = None,
    ) -> bool:
        """
        Store metadata for a track and refresh the display if it is current.

        Returns:
            True if the displayed track was updated
        """
        if not self.catalog.update_metadata(track_id, meta, quality):
            logger.debug(f"Metadata for removed track {track_id} dropped")
            return False

        current = self.current_track
        if current is None or current.id != track_id:
            logger.debug(f"Metadata for {track_id} stored, not current")
            return False

        self._now_playing = NowPlaying.from_track(current)
        self._schedule_state_update()
        return True

    def _schedule_enrichment(self, track: Track) -> None:
        if self.enricher is None or track.meta is not None:
            return
        if track.id in self._enrich_tasks:
            return

        task = asyncio.create_task(self._enrich(track))
        self._enrich_tasks[track.id] = task
        task.add_done_callback(lambda _t, tid=track.id: self._enrich_tasks.pop(tid, None))

    async def _enrich(self, track: Track) -> None:
        assert self.enricher is not None
        meta = await self.enricher.enrich(track)
        quality = None
        if track.origin == TrackOrigin.ADDED:
            quality = self.enricher.quality_for(track)
        self.apply_metadata(track.id, meta, quality)

    def _cancel_enrichment(self, track_id: str) -> None:
        task = self._enrich_tasks.pop(track_id, None)
        if task and not task.done():
            task.cancel()

    # =========================================================================
    # Output Events
    # =========================================================================

    def on_time_update(self, position: float) -> None:
        """Output reported playback position."""
        self._position = max(0.0, position)

    def on_duration_known(self, duration: float) -> None:
        """Output reported (or revised) the track duration."""
        self._duration = duration
        logger.debug(f"Duration known: {format_time(duration)}")
        self._schedule_state_update()

    def on_track_ended(self) -> None:
        """Output reported natural track end."""
        logger.debug("Track ended callback")
        asyncio.create_task(self.handle_track_ended())

    async def handle_track_ended(self) -> None:
        """Advance after a natural track end, or stop at the end of the queue."""
        if self.current_track is None:
            return

        target = self.sequencer.next(
            self._index, len(self.catalog), self._shuffle, self._repeat_mode
        )

        if target == self._index and self._repeat_mode == RepeatMode.OFF:
            self._playing = False
            logger.info("End of queue reached")
        elif target == self._index:
            # Repeat one, or a single track under repeat all: replay
            self._playing = True
            self._position = 0.0
            await self.output.seek(0.0)
            await self._start_output()
        else:
            self._index = target
            self._playing = True
            await self._load_current(autoplay=True)

        await self._send_state_update()

    def on_playback_error(self, message: str) -> None:
        """Output could not play the source. Non-fatal: the session pauses."""
        track = self.current_track
        self._fail_start(track.id if track else None, message)
        self._schedule_state_update()

    # =========================================================================
    # Internal Playback Management
    # =========================================================================

    async def _load_current(self, autoplay: bool) -> None:
        """Point the output at the current track."""
        track = self.current_track
        if track is None:
            await self.output.stop()
            return

        self._reset_position()
        self._now_playing = NowPlaying.from_track(track)

        output_track = OutputTrack(
            track_id=track.id,
            src=track.stream_url,
            title=track.title,
            artist=track.artist,
            duration_s=track.meta.duration_s if track.meta else 0.0,
        )

        try:
            await self.output.load(output_track, autoplay=autoplay)
        except AudioOutputError as e:
            self._fail_start(track.id, str(e))
        else:
            if autoplay and self.enricher:
                self.enricher.log_now_playing(track)

        self._schedule_enrichment(track)

    async def _start_output(self) -> None:
        try:
            await self.output.play()
        except AudioOutputError as e:
            track = self.current_track
            self._fail_start(track.id if track else None, str(e))

    def _fail_start(self, track_id: Optional[str], message: str) -> None:
        self._playing = False
        logger.warning(f"Playback failed for track {track_id}: {message}")
        if self._state_reporter:
            self._state_reporter.report_event(
                "error", {"trackId": track_id, "message": message}
            )

    def _reset_position(self) -> None:
        self._position = 0.0
        self._duration = 0.0

    def _schedule_state_update(self) -> None:
        if self._state_reporter is None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        asyncio.create_task(self._send_state_update())

    async def _send_state_update(self) -> None:
        """Push a snapshot via the StateReporter."""
        if not self._state_reporter:
            return
        try:
            await self._state_reporter.report_now()
        except Exception as e:
            logger.error(f"Failed to send state update: {e}")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
