"""
Audio output types and enumerations.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class OutputState(IntEnum):
    """Audio output state."""

    STOPPED = 1  # Nothing loaded, or unloaded
    PLAYING = 2  # Active playback
    PAUSED = 3  # Loaded, position maintained
    LOADING = 4  # Source set, waiting for media
    ERROR = 5  # Last command or source failed


@dataclass
class OutputTrack:
    """
    What an output needs to play a track.

    The src is the URL the browser fetches (the stream endpoint); path-based
    outputs can use the path instead.
    """

    track_id: str
    src: str
    title: str = ""
    artist: str = ""
    duration_s: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "trackId": self.track_id,
            "src": self.src,
            "title": self.title,
            "artist": self.artist,
            "duration": self.duration_s,
        }
