"""
Headless audio output.

Accepts every command and keeps state but produces no sound and emits no
events. Used when the server only serves the library, and in tests.
"""

import logging

from .base import AudioOutput
from .types import OutputState, OutputTrack

logger = logging.getLogger(__name__)


class NullAudioOutput(AudioOutput):
    """Audio output that plays nothing."""

    def __init__(self, name: str = "Null Output"):
        super().__init__(name)
        self.position_s: float = 0.0

    async def load(self, track: OutputTrack, autoplay: bool = False) -> None:
        self._track = track
        self.position_s = 0.0
        self._state = OutputState.PLAYING if autoplay else OutputState.PAUSED
        logger.debug(f"Loaded {track.track_id} (autoplay={autoplay})")

    async def play(self) -> None:
        if self._track is not None:
            self._state = OutputState.PLAYING

    async def pause(self) -> None:
        if self._track is not None:
            self._state = OutputState.PAUSED

    async def stop(self) -> None:
        self._track = None
        self.position_s = 0.0
        self._state = OutputState.STOPPED

    async def seek(self, position_s: float) -> None:
        self.position_s = position_s

    async def set_gain(self, gain: float) -> None:
        self._gain = gain
