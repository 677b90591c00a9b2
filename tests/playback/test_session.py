"""Tests for the playback session state machine."""

import asyncio
import math
import random
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from vapor_player.backends import AudioOutputError, NullAudioOutput, OutputState
from vapor_player.library import Track, TrackCatalog, TrackOrigin
from vapor_player.playback import (
    InvalidTrackIndexError,
    MetadataEnricher,
    PlaybackSequencer,
    PlaybackSession,
    RepeatMode,
    SessionState,
    TrackMetadata,
    TrackNotFoundError,
    format_time,
)


async def _loaded(session: PlaybackSession, tracks: list[Track]) -> PlaybackSession:
    await session.add_tracks(tracks)
    return session


class TestFormatTime:
    """Tests for format_time."""

    @pytest.mark.parametrize(
        "seconds, expected",
        [
            (0, "0:00"),
            (5.9, "0:05"),
            (65, "1:05"),
            (3599, "59:59"),
            (3661, "1:01:01"),
            (math.nan, "0:00"),
            (math.inf, "0:00"),
            (-3, "0:00"),
        ],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        """Test m:ss and h:mm:ss formatting."""
        assert format_time(seconds) == expected


class TestInitialState:
    """Tests for an empty session."""

    def test_empty(self, session: PlaybackSession) -> None:
        """Test defaults before anything is added."""
        assert session.state == SessionState.EMPTY
        assert session.current_index is None
        assert session.playing is False
        assert session.volume == 0.9
        assert session.repeat_mode == RepeatMode.OFF
        assert session.shuffle is False

    async def test_toggle_without_tracks(self, session: PlaybackSession) -> None:
        """Test toggle is a no-op with nothing to play."""
        await session.toggle_play()
        assert session.playing is False
        assert session.state == SessionState.EMPTY

    async def test_seek_without_tracks(self, session: PlaybackSession) -> None:
        """Test seek is ignored with nothing loaded."""
        assert await session.seek(10) is None

    def test_snapshot_empty(self, session: PlaybackSession) -> None:
        """Test snapshot shape with no tracks."""
        snap = session.snapshot()
        assert snap["state"] == "empty"
        assert snap["currentIndex"] is None
        assert snap["track"] is None
        assert snap["count"] == 0
        assert snap["positionText"] == "0:00"


class TestAddTracks:
    """Tests for add_tracks."""

    async def test_first_add_loads_paused(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test the first track becomes current without playing."""
        await session.add_tracks(track_factory(3))

        assert session.state == SessionState.PAUSED
        assert session.current_index == 0
        assert session.playing is False
        assert output.loaded_track.track_id == "t0"
        assert output.state == OutputState.PAUSED

    async def test_later_add_keeps_selection(
        self, session: PlaybackSession, track_factory
    ) -> None:
        """Test appending does not move the current index."""
        tracks = track_factory(4)
        await session.add_tracks(tracks[:2])
        await session.select_track(1)
        await session.add_tracks(tracks[2:])

        assert session.current_index == 1
        assert session.playing is True
        assert len(session.catalog) == 4


class TestSelectAndToggle:
    """Tests for select_track and toggle_play."""

    async def test_select_plays(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test selecting starts playback of that track."""
        await _loaded(session, track_factory(3))
        await session.select_track(2)

        assert session.current_index == 2
        assert session.playing is True
        assert session.state == SessionState.PLAYING
        assert output.loaded_track.track_id == "t2"
        assert output.state == OutputState.PLAYING

    async def test_select_out_of_range(self, session: PlaybackSession, track_factory) -> None:
        """Test invalid positions are rejected and state is unchanged."""
        await _loaded(session, track_factory(2))
        with pytest.raises(InvalidTrackIndexError):
            await session.select_track(2)
        with pytest.raises(InvalidTrackIndexError):
            await session.select_track(-1)
        assert session.current_index == 0
        assert session.playing is False

    async def test_select_by_id(self, session: PlaybackSession, track_factory) -> None:
        """Test selecting by id."""
        await _loaded(session, track_factory(3))
        await session.select_track_id("t1")
        assert session.current_index == 1
        with pytest.raises(TrackNotFoundError):
            await session.select_track_id("nope")

    async def test_select_current_resumes(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test selecting the loaded track resumes instead of reloading."""
        await _loaded(session, track_factory(2))
        output.load = AsyncMock(wraps=output.load)

        await session.select_track(0)
        output.load.assert_not_called()
        assert session.playing is True

    async def test_toggle(self, session: PlaybackSession, track_factory) -> None:
        """Test toggle flips playing."""
        await _loaded(session, track_factory(2))
        await session.toggle_play()
        assert session.playing is True
        await session.toggle_play()
        assert session.playing is False

    async def test_play_failure_leaves_paused(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test a refused start is non-fatal and reported."""
        await _loaded(session, track_factory(2))
        reporter = MagicMock()
        reporter.report_now = AsyncMock()
        session.set_state_reporter(reporter)
        output.play = AsyncMock(side_effect=AudioOutputError("autoplay blocked"))

        await session.play()

        assert session.playing is False
        assert session.state == SessionState.PAUSED
        reporter.report_event.assert_called_once()
        event_type, payload = reporter.report_event.call_args.args
        assert event_type == "error"
        assert payload["trackId"] == "t0"
        assert "autoplay blocked" in payload["message"]

    async def test_select_failure_leaves_paused(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test a failed load with autoplay keeps the selection but pauses."""
        await _loaded(session, track_factory(2))
        output.load = AsyncMock(side_effect=AudioOutputError("no output"))

        await session.select_track(1)
        assert session.current_index == 1
        assert session.playing is False


class TestTrackEnded:
    """Tests for natural end-of-track handling."""

    async def test_advance(self, session: PlaybackSession, output: NullAudioOutput, track_factory) -> None:
        """Test the next track starts."""
        await _loaded(session, track_factory(3))
        await session.select_track(0)

        await session.handle_track_ended()
        assert session.current_index == 1
        assert session.playing is True
        assert output.loaded_track.track_id == "t1"

    async def test_end_of_queue_stops(self, session: PlaybackSession, track_factory) -> None:
        """Test the last track with repeat off stops in place."""
        await _loaded(session, track_factory(3))
        await session.select_track(2)

        await session.handle_track_ended()
        assert session.current_index == 2
        assert session.playing is False

    async def test_repeat_all_wraps(self, session: PlaybackSession, track_factory) -> None:
        """Test repeat all wraps to the first track."""
        await _loaded(session, track_factory(3))
        await session.set_repeat_mode(RepeatMode.ALL)
        await session.select_track(2)

        await session.handle_track_ended()
        assert session.current_index == 0
        assert session.playing is True

    async def test_repeat_one_restarts(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test repeat one replays the same track from the start."""
        await _loaded(session, track_factory(3))
        await session.set_repeat_mode(RepeatMode.ONE)
        await session.select_track(1)
        await session.seek(42)

        await session.handle_track_ended()
        assert session.current_index == 1
        assert session.playing is True
        assert session.position == 0.0
        assert output.position_s == 0.0

    async def test_single_track_repeat_all(self, session: PlaybackSession, track_factory) -> None:
        """Test one track under repeat all keeps playing."""
        await _loaded(session, track_factory(1))
        await session.set_repeat_mode(RepeatMode.ALL)
        await session.select_track(0)

        await session.handle_track_ended()
        assert session.current_index == 0
        assert session.playing is True

    async def test_output_callback_schedules_advance(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test the output's ended event drives the session."""
        await _loaded(session, track_factory(2))
        await session.select_track(0)

        output._notify_track_ended()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert session.current_index == 1

    async def test_shuffle_end_never_repeats(self, output: NullAudioOutput, track_factory) -> None:
        """Test shuffle advance always lands on a different track."""
        session = PlaybackSession(
            TrackCatalog(), output, sequencer=PlaybackSequencer(rng=random.Random(8))
        )
        await _loaded(session, track_factory(5))
        await session.set_shuffle(True)
        await session.select_track(0)

        for _ in range(20):
            before = session.current_index
            await session.handle_track_ended()
            assert session.current_index != before
            assert session.playing is True


class TestSkip:
    """Tests for skip_next and skip_previous."""

    async def test_skip_keeps_paused(self, session: PlaybackSession, track_factory) -> None:
        """Test skipping while paused stays paused."""
        await _loaded(session, track_factory(3))
        assert await session.skip_next() is True
        assert session.current_index == 1
        assert session.playing is False

    async def test_skip_keeps_playing(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test skipping while playing starts the new track."""
        await _loaded(session, track_factory(3))
        await session.select_track(1)
        await session.skip_previous()
        assert session.current_index == 0
        assert session.playing is True
        assert output.state == OutputState.PLAYING

    async def test_skip_at_edge_is_noop(self, session: PlaybackSession, track_factory) -> None:
        """Test skipping past the ends with repeat off changes nothing."""
        await _loaded(session, track_factory(2))
        assert await session.skip_previous() is False
        await session.skip_next()
        assert await session.skip_next() is False
        assert session.current_index == 1


class TestSeek:
    """Tests for seek and seek_by."""

    async def test_clamped_to_duration(self, session: PlaybackSession, track_factory) -> None:
        """Test seek stays within [0, duration]."""
        await _loaded(session, track_factory(1))
        session.on_duration_known(100.0)

        assert await session.seek(150) == 100.0
        assert await session.seek(-5) == 0.0
        assert await session.seek(30) == 30.0

    async def test_unknown_duration(self, session: PlaybackSession, track_factory) -> None:
        """Test only the lower bound applies before the duration is known."""
        await _loaded(session, track_factory(1))
        assert await session.seek(500) == 500.0

    async def test_seek_keeps_playing_flag(self, session: PlaybackSession, track_factory) -> None:
        """Test seek does not change play/pause."""
        await _loaded(session, track_factory(1))
        await session.seek(10)
        assert session.playing is False
        await session.play()
        await session.seek(20)
        assert session.playing is True

    async def test_seek_by(self, session: PlaybackSession, track_factory) -> None:
        """Test relative seeking with clamping."""
        await _loaded(session, track_factory(1))
        session.on_duration_known(12.0)
        session.on_time_update(8.0)

        assert await session.seek_by(5) == 12.0
        assert await session.seek_by(-20) == 0.0


class TestVolume:
    """Tests for volume and mute."""

    async def test_clamped(self, session: PlaybackSession, output: NullAudioOutput) -> None:
        """Test volume stays within [0, 1]."""
        assert await session.set_volume(1.5) == 1.0
        assert await session.set_volume(-0.2) == 0.0
        assert await session.set_volume(0.3) == 0.3
        assert output.gain == 0.3

    async def test_adjust(self, session: PlaybackSession) -> None:
        """Test relative steps."""
        await session.set_volume(0.98)
        assert await session.adjust_volume(0.05) == 1.0
        assert await session.adjust_volume(-0.05) == pytest.approx(0.95)

    async def test_mute_keeps_volume(self, session: PlaybackSession, output: NullAudioOutput) -> None:
        """Test muting silences output and restores the level."""
        await session.set_volume(0.7)
        await session.toggle_mute()
        assert session.gain == 0.0
        assert output.gain == 0.0
        assert session.volume == 0.7

        await session.toggle_mute()
        assert output.gain == 0.7


class TestModes:
    """Tests for shuffle and repeat toggles."""

    async def test_cycle_repeat(self, session: PlaybackSession) -> None:
        """Test off -> one -> all -> off."""
        assert await session.cycle_repeat() == RepeatMode.ONE
        assert await session.cycle_repeat() == RepeatMode.ALL
        assert await session.cycle_repeat() == RepeatMode.OFF

    async def test_toggle_shuffle_invalidates(self, output: NullAudioOutput) -> None:
        """Test toggling shuffle drops any precomputed order."""
        sequencer = MagicMock(spec=PlaybackSequencer)
        session = PlaybackSession(TrackCatalog(), output, sequencer=sequencer)

        assert await session.toggle_shuffle() is True
        sequencer.invalidate.assert_called()


class TestRemoveTrack:
    """Tests for remove_track."""

    async def test_remove_before_current(self, session: PlaybackSession, track_factory) -> None:
        """Test the same track stays current."""
        await _loaded(session, track_factory(4))
        await session.select_track(2)

        assert await session.remove_track("t0") is True
        assert session.current_index == 1
        assert session.current_track.id == "t2"
        assert session.playing is True

    async def test_remove_after_current(self, session: PlaybackSession, track_factory) -> None:
        """Test later removals do not move the index."""
        await _loaded(session, track_factory(4))
        await session.select_track(1)
        await session.remove_track("t3")
        assert session.current_index == 1
        assert session.playing is True

    async def test_remove_current(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test removing the current track stops and selects its successor."""
        await _loaded(session, track_factory(4))
        await session.select_track(1)

        await session.remove_track("t1")
        assert session.current_index == 1
        assert session.current_track.id == "t2"
        assert session.playing is False
        assert output.loaded_track.track_id == "t2"

    async def test_remove_current_last(self, session: PlaybackSession, track_factory) -> None:
        """Test removing the current last track selects the new last one."""
        await _loaded(session, track_factory(4))
        await session.select_track(3)

        await session.remove_track("t3")
        assert session.current_index == 2
        assert session.playing is False

    async def test_remove_only_track(
        self, session: PlaybackSession, output: NullAudioOutput, track_factory
    ) -> None:
        """Test removing the last remaining track empties the session."""
        await _loaded(session, track_factory(1))
        await session.select_track(0)

        await session.remove_track("t0")
        assert session.state == SessionState.EMPTY
        assert session.current_index is None
        assert session.playing is False
        assert session.now_playing is None
        assert output.state == OutputState.STOPPED

    async def test_remove_unknown(self, session: PlaybackSession) -> None:
        """Test unknown ids are reported, not raised."""
        assert await session.remove_track("missing") is False


class TestClearAll:
    """Tests for clear_all."""

    async def test_clear(self, session: PlaybackSession, output: NullAudioOutput, track_factory) -> None:
        """Test everything resets except preferences."""
        await _loaded(session, track_factory(3))
        await session.select_track(2)
        await session.set_volume(0.4)
        session.on_duration_known(90.0)
        session.on_time_update(12.0)

        await session.clear_all()

        assert session.state == SessionState.EMPTY
        assert session.current_index is None
        assert session.playing is False
        assert session.position == 0.0
        assert session.duration == 0.0
        assert session.volume == 0.4
        assert output.state == OutputState.STOPPED

    async def test_add_after_clear(self, session: PlaybackSession, track_factory) -> None:
        """Test adding after a clear starts from the first new track."""
        await _loaded(session, track_factory(3))
        await session.select_track(2)
        await session.clear_all()

        await session.add_tracks(track_factory(2))
        assert session.current_index == 0
        assert session.state == SessionState.PAUSED


class TestSyncLibrary:
    """Tests for sync_library."""

    async def test_sync(self, session: PlaybackSession, track_factory) -> None:
        """Test vanished library tracks go, new ones arrive and added files stay."""
        library = track_factory(3)
        added = track_factory(1, TrackOrigin.ADDED)
        added[0].id = "added"
        await session.add_tracks(library + added)

        new = Track(id="new", name="n.mp3", path=Path("/music/n.mp3"), relative_path="n.mp3")
        new_tracks, removed = await session.sync_library([new], ["t1"])

        assert removed == ["t1"]
        assert [t.id for t in new_tracks] == ["new"]
        assert [t.id for t in session.catalog] == ["t0", "t2", "added", "new"]

    async def test_sync_skips_tracks_off_the_playlist(
        self, session: PlaybackSession, track_factory
    ) -> None:
        """Test a vanished id already removed from the playlist is not reported."""
        await session.add_tracks(track_factory(2))
        await session.remove_track("t0")

        new_tracks, removed = await session.sync_library([], ["t0"])

        assert new_tracks == []
        assert removed == []
        assert [t.id for t in session.catalog] == ["t1"]


class TestMetadata:
    """Tests for metadata application."""

    async def test_current_track_display_updates(
        self, session: PlaybackSession, track_factory
    ) -> None:
        """Test metadata for the current track refreshes now-playing."""
        await _loaded(session, track_factory(2))
        meta = TrackMetadata(title="Real Title", artist="Real Artist", has_cover=True)

        assert session.apply_metadata("t0", meta) is True
        assert session.now_playing.title == "Real Title"
        assert session.now_playing.cover_url == "/api/cover/t0"

    async def test_stale_metadata_discarded(
        self, session: PlaybackSession, track_factory
    ) -> None:
        """Test a late result for another track does not touch the display."""
        await _loaded(session, track_factory(2))
        await session.select_track(1)

        assert session.apply_metadata("t0", TrackMetadata(title="Old")) is False
        assert session.now_playing.track_id == "t1"
        assert session.now_playing.title == "track1.mp3"
        # Still stored on the catalog entry
        assert session.catalog.get("t0").title == "Old"

    async def test_enrichment_on_select(
        self, output: NullAudioOutput, tmp_path: Path, write_wav
    ) -> None:
        """Test selecting a track schedules tag reading for it."""
        path = write_wav(tmp_path / "song.wav")
        track = Track(id="w", name="song.wav", path=path, relative_path="song.wav")
        session = PlaybackSession(TrackCatalog(), output, enricher=MetadataEnricher())

        await session.add_tracks([track])
        for _ in range(50):
            if track.meta is not None:
                break
            await asyncio.sleep(0.01)

        assert track.meta is not None
        assert track.meta.title == "song.wav"
        assert track.quality is None  # library tracks carry no quality label

    async def test_added_files_get_quality(
        self, output: NullAudioOutput, tmp_path: Path, write_wav
    ) -> None:
        """Test added files are enriched eagerly with a quality label."""
        path = write_wav(tmp_path / "song.wav")
        track = Track(
            id="a", name="song.wav", path=path, relative_path="song.wav", origin=TrackOrigin.ADDED
        )
        session = PlaybackSession(TrackCatalog(), output, enricher=MetadataEnricher())

        await session.add_tracks([track])
        for _ in range(50):
            if track.quality is not None:
                break
            await asyncio.sleep(0.01)

        assert track.quality == "WAV • 16/44kHz"

    async def test_playback_error(self, session: PlaybackSession, track_factory) -> None:
        """Test an output error pauses the session."""
        await _loaded(session, track_factory(1))
        await session.play()

        session.on_playback_error("decode failed")
        assert session.playing is False
        assert session.state == SessionState.PAUSED


class TestSnapshot:
    """Tests for snapshot."""

    async def test_snapshot(self, session: PlaybackSession, track_factory) -> None:
        """Test snapshot reflects the session."""
        await _loaded(session, track_factory(2))
        await session.select_track(1)
        session.on_duration_known(125.0)
        session.on_time_update(61.0)

        snap = session.snapshot()
        assert snap["state"] == "playing"
        assert snap["currentIndex"] == 1
        assert snap["count"] == 2
        assert snap["track"]["id"] == "t1"
        assert snap["track"]["artist"] == "Unknown Artist"
        assert snap["repeatMode"] == "off"
        assert snap["duration"] == 125.0
        assert snap["positionText"] == "1:01"
        assert snap["durationText"] == "2:05"
