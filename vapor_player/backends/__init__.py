"""
Audio outputs module.

Provides abstract interface and factory for audio outputs.
"""

from .base import (
    AudioOutput,
    AudioOutputError,
    DurationKnownCallback,
    PlaybackErrorCallback,
    TimeUpdateCallback,
    TrackEndedCallback,
)
from .browser import BrowserAudioOutput, OutputClient
from .factory import OUTPUT_TYPES, OutputFactory, OutputNotFoundError
from .null import NullAudioOutput
from .types import OutputState, OutputTrack

__all__ = [
    # Types
    "OutputState",
    "OutputTrack",
    # Base class
    "AudioOutput",
    "AudioOutputError",
    # Callback types
    "DurationKnownCallback",
    "PlaybackErrorCallback",
    "TimeUpdateCallback",
    "TrackEndedCallback",
    # Factory
    "OutputFactory",
    "OutputNotFoundError",
    "OUTPUT_TYPES",
    # Outputs
    "BrowserAudioOutput",
    "OutputClient",
    "NullAudioOutput",
]
