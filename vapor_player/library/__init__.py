"""Music library indexing and the track catalog."""

from .catalog import (
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    Track,
    TrackCatalog,
    TrackOrigin,
    is_audio_file,
    make_added_tracks,
)
from .index import LibraryIndex
from .scanner import LibraryScanError, LibraryScanner

__all__ = [
    "UNKNOWN_ALBUM",
    "UNKNOWN_ARTIST",
    "Track",
    "TrackCatalog",
    "TrackOrigin",
    "is_audio_file",
    "make_added_tracks",
    "LibraryIndex",
    "LibraryScanError",
    "LibraryScanner",
]
