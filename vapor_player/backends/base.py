"""
Abstract audio output interface.

Defines the contract that all audio outputs must implement.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .types import OutputState, OutputTrack

logger = logging.getLogger(__name__)

# Event callback types
TimeUpdateCallback = Callable[[float], None]  # position_s
DurationKnownCallback = Callable[[float], None]  # duration_s
TrackEndedCallback = Callable[[], None]
PlaybackErrorCallback = Callable[[str], None]  # error_message


class AudioOutputError(Exception):
    """Raised when an output cannot carry out a command."""

    pass


class AudioOutput(ABC):
    """
    Abstract base class for audio outputs.

    A playback session owns exactly one output. Switching tracks reloads the
    same output rather than creating a second one.
    """

    def __init__(self, name: str = "AudioOutput"):
        """Initialize output."""
        self.name = name
        self._gain: float = 1.0  # 0.0-1.0
        self._state: OutputState = OutputState.STOPPED
        self._track: Optional[OutputTrack] = None
        self._is_connected: bool = False

        # Event callbacks
        self._on_time_update: Optional[TimeUpdateCallback] = None
        self._on_duration_known: Optional[DurationKnownCallback] = None
        self._on_track_ended: Optional[TrackEndedCallback] = None
        self._on_playback_error: Optional[PlaybackErrorCallback] = None

    # =========================================================================
    # Playback Control - Required
    # =========================================================================

    @abstractmethod
    async def load(self, track: OutputTrack, autoplay: bool = False) -> None:
        """Set the source, replacing whatever was loaded."""
        pass

    @abstractmethod
    async def play(self) -> None:
        """Start or resume playback. Raises AudioOutputError if refused."""
        pass

    @abstractmethod
    async def pause(self) -> None:
        """Pause current playback."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop playback and unload the source."""
        pass

    @abstractmethod
    async def seek(self, position_s: float) -> None:
        """Jump to position in current track."""
        pass

    @abstractmethod
    async def set_gain(self, gain: float) -> None:
        """Set output gain (0.0-1.0)."""
        pass

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """Prepare the output. Returns True if successful."""
        self._is_connected = True
        return True

    async def disconnect(self) -> None:
        """Release output resources."""
        self._is_connected = False

    def is_connected(self) -> bool:
        """Check if output is connected."""
        return self._is_connected

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> OutputState:
        return self._state

    @property
    def gain(self) -> float:
        return self._gain

    @property
    def loaded_track(self) -> Optional[OutputTrack]:
        return self._track

    # =========================================================================
    # Event Callbacks
    # =========================================================================

    def on_time_update(self, callback: Optional[TimeUpdateCallback]) -> None:
        """Register callback for position updates."""
        self._on_time_update = callback

    def on_duration_known(self, callback: Optional[DurationKnownCallback]) -> None:
        """Register callback for duration becoming known."""
        self._on_duration_known = callback

    def on_track_ended(self, callback: Optional[TrackEndedCallback]) -> None:
        """Register callback for natural track end (not stop command)."""
        self._on_track_ended = callback

    def on_playback_error(self, callback: Optional[PlaybackErrorCallback]) -> None:
        """Register callback for playback errors."""
        self._on_playback_error = callback

    # =========================================================================
    # Event Notification Helpers
    # =========================================================================

    def _notify_time_update(self, position_s: float) -> None:
        """Notify listeners of position update."""
        if self._on_time_update:
            try:
                self._on_time_update(position_s)
            except Exception as e:
                logger.error(f"Time update callback error: {e}")

    def _notify_duration_known(self, duration_s: float) -> None:
        """Notify listeners that the duration is known."""
        if self._on_duration_known:
            try:
                self._on_duration_known(duration_s)
            except Exception as e:
                logger.error(f"Duration callback error: {e}")

    def _notify_track_ended(self) -> None:
        """Notify listeners that track ended naturally."""
        self._state = OutputState.PAUSED
        if self._on_track_ended:
            try:
                self._on_track_ended()
            except Exception as e:
                logger.error(f"Track ended callback error: {e}")

    def _notify_playback_error(self, message: str) -> None:
        """Notify listeners of playback error."""
        self._state = OutputState.ERROR
        if self._on_playback_error:
            try:
                self._on_playback_error(message)
            except Exception as e:
                logger.error(f"Playback error callback error: {e}")
