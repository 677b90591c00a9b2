"""
Playback module.

Provides the playback session, sequencing, metadata and command handling.
"""

from .command_handler import (
    KEY_BINDINGS,
    CommandError,
    SessionCommandHandler,
    UnknownActionError,
)
from .metadata import (
    DEFAULT_ACCENT_COLOR,
    UNKNOWN_QUALITY,
    CoverArt,
    MetadataCache,
    MetadataEnricher,
    TrackMetadata,
    describe_quality,
    dominant_color,
    read_file_metadata,
)
from .sequencer import (
    PlaybackSequencer,
    RepeatMode,
    ShuffleOrder,
    next_index,
    prev_index,
)
from .session import (
    InvalidTrackIndexError,
    NowPlaying,
    PlaybackSession,
    SessionError,
    SessionState,
    TrackNotFoundError,
    format_time,
)
from .state_reporter import StateReporter

__all__ = [
    # Session
    "PlaybackSession",
    "SessionState",
    "NowPlaying",
    "SessionError",
    "InvalidTrackIndexError",
    "TrackNotFoundError",
    "format_time",
    # Sequencing
    "PlaybackSequencer",
    "RepeatMode",
    "ShuffleOrder",
    "next_index",
    "prev_index",
    # Metadata
    "DEFAULT_ACCENT_COLOR",
    "UNKNOWN_QUALITY",
    "CoverArt",
    "MetadataCache",
    "MetadataEnricher",
    "TrackMetadata",
    "describe_quality",
    "dominant_color",
    "read_file_metadata",
    # Commands
    "KEY_BINDINGS",
    "CommandError",
    "SessionCommandHandler",
    "UnknownActionError",
    # Reporting
    "StateReporter",
]
