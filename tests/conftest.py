"""Shared fixtures."""

import wave
from pathlib import Path
from typing import Callable

import pytest

from vapor_player.backends import NullAudioOutput
from vapor_player.library import Track, TrackCatalog, TrackOrigin
from vapor_player.playback import PlaybackSequencer, PlaybackSession

WavWriter = Callable[..., Path]


def _write_wav(
    path: Path,
    seconds: float = 0.1,
    sample_rate: int = 44100,
    sample_width: int = 2,
    channels: int = 1,
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    frames = int(seconds * sample_rate)
    with wave.open(str(path), "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(sample_width)
        w.setframerate(sample_rate)
        w.writeframes(b"\x00" * frames * sample_width * channels)
    return path


@pytest.fixture
def write_wav() -> WavWriter:
    """Factory writing a silent PCM WAV file."""
    return _write_wav


@pytest.fixture
def music_dir(tmp_path: Path, write_wav: WavWriter) -> Path:
    """Small Artist/Album/file library with one non-audio file."""
    root = tmp_path / "music"
    write_wav(root / "Artist A" / "Album 1" / "01 - One.wav")
    write_wav(root / "Artist A" / "Album 1" / "02 - Two.wav")
    write_wav(root / "Artist B" / "Album 2" / "01 - Three.wav")
    write_wav(root / "Loose.wav")
    (root / "Artist A" / "Album 1" / "cover.txt").write_text("not audio")
    return root


def make_tracks(count: int, origin: TrackOrigin = TrackOrigin.LIBRARY) -> list[Track]:
    return [
        Track(
            id=f"t{i}",
            name=f"track{i}.mp3",
            path=Path(f"/music/Artist/Album/track{i}.mp3"),
            relative_path=f"Artist/Album/track{i}.mp3",
            origin=origin,
        )
        for i in range(count)
    ]


@pytest.fixture
def track_factory() -> Callable[..., list[Track]]:
    """Factory for in-memory tracks t0..tN-1."""
    return make_tracks


@pytest.fixture
def output() -> NullAudioOutput:
    return NullAudioOutput()


@pytest.fixture
def session(output: NullAudioOutput) -> PlaybackSession:
    """Session over an empty catalog, no enrichment."""
    return PlaybackSession(
        catalog=TrackCatalog(),
        output=output,
        enricher=None,
        sequencer=PlaybackSequencer(),
    )
