"""
Track catalog for VaporPlayer.

Holds the ordered list of playable tracks. Positions shift when tracks are
removed; ids never change for the lifetime of an entry.
"""

import logging
import mimetypes
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Optional

if TYPE_CHECKING:
    from vapor_player.playback.metadata import TrackMetadata

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


class TrackOrigin(Enum):
    """Where a catalog entry came from."""

    LIBRARY = "library"  # Indexed from the music directory
    ADDED = "added"  # Added explicitly as local files


@dataclass
class Track:
    """
    A playable catalog entry.

    Attributes:
        id: Opaque stable identifier, unique within the catalog
        name: Original filename (title fallback)
        path: Absolute path to the audio file
        relative_path: POSIX path relative to the library or added root
        origin: Library scan or added files
        meta: Tag metadata, filled in asynchronously
        quality: Display label for added files ("FLAC • 16/44kHz")
    """

    id: str
    name: str
    path: Path
    relative_path: str
    origin: TrackOrigin = TrackOrigin.LIBRARY
    meta: Optional["TrackMetadata"] = None
    quality: Optional[str] = None

    @property
    def title(self) -> str:
        if self.meta and self.meta.title:
            return self.meta.title
        return self.name

    @property
    def artist(self) -> str:
        if self.meta and self.meta.artist:
            return self.meta.artist
        return UNKNOWN_ARTIST

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    @property
    def stream_url(self) -> str:
        return f"/api/stream/{self.id}"

    def to_library_dict(self) -> dict[str, Any]:
        """Library listing entry, as served by GET /library."""
        return {
            "id": self.id,
            "name": self.name,
            "relativePath": self.relative_path,
        }

    def to_dict(self) -> dict[str, Any]:
        """Full view including metadata."""
        meta = self.meta
        return {
            "id": self.id,
            "name": self.name,
            "relativePath": self.relative_path,
            "origin": self.origin.value,
            "src": self.stream_url,
            "title": self.title,
            "artist": self.artist,
            "album": meta.album if meta else "",
            "duration": meta.duration_s if meta else 0.0,
            "coverUrl": f"/api/cover/{self.id}" if meta and meta.has_cover else None,
            "quality": self.quality,
        }


def is_audio_file(path: Path, extensions: Iterable[str]) -> bool:
    """Check whether a file looks playable, by extension or guessed MIME type."""
    if path.suffix.lower() in extensions:
        return True
    mime, _ = mimetypes.guess_type(path.name)
    return bool(mime and mime.startswith("audio/"))


def make_added_tracks(paths: Iterable[Path], extensions: Iterable[str]) -> list[Track]:
    """
    Build catalog entries for explicitly added files.

    Directories are expanded recursively (sorted); anything that is not audio
    is skipped. Relative paths are taken from inside an added folder, so a
    folder laid out as Artist/Album/file groups like the library does.

    Args:
        paths: Files or directories to add
        extensions: Accepted audio extensions

    Returns:
        New tracks in the order they were found
    """
    extensions = set(extensions)
    tracks: list[Track] = []

    for raw in paths:
        root = Path(raw).expanduser().resolve()
        if root.is_dir():
            files = sorted(p for p in root.rglob("*") if p.is_file())
            base = root
        elif root.is_file():
            files = [root]
            base = root.parent
        else:
            logger.warning(f"Skipping missing path: {raw}")
            continue

        for file_path in files:
            if not is_audio_file(file_path, extensions):
                logger.debug(f"Skipping non-audio file: {file_path}")
                continue
            tracks.append(
                Track(
                    id=str(uuid.uuid4()),
                    name=file_path.name,
                    path=file_path,
                    relative_path=file_path.relative_to(base).as_posix(),
                    origin=TrackOrigin.ADDED,
                )
            )

    return tracks


def _artist_album(relative_path: str) -> tuple[str, str]:
    """Derive (artist, album) from an Artist/Album/file layout."""
    folders = relative_path.split("/")[:-1]
    artist = folders[0] if len(folders) >= 1 else UNKNOWN_ARTIST
    album = folders[1] if len(folders) >= 2 else UNKNOWN_ALBUM
    return artist, album


class TrackCatalog:
    """
    Ordered collection of tracks with an id index.

    Not thread-safe; all mutation happens on the event loop.
    """

    def __init__(self, tracks: Optional[Iterable[Track]] = None) -> None:
        self._tracks: list[Track] = []
        self._by_id: dict[str, Track] = {}
        if tracks:
            self.add(tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(list(self._tracks))

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._by_id

    @property
    def is_empty(self) -> bool:
        return not self._tracks

    def add(self, tracks: Iterable[Track]) -> list[Track]:
        """
        Append tracks to the end of the catalog.

        Tracks whose id is already present are ignored.

        Returns:
            The tracks that were actually appended
        """
        added = []
        for track in tracks:
            if track.id in self._by_id:
                logger.warning(f"Duplicate track id ignored: {track.id}")
                continue
            self._tracks.append(track)
            self._by_id[track.id] = track
            added.append(track)
        if added:
            logger.debug(f"Catalog: added {len(added)} tracks, total {len(self._tracks)}")
        return added

    def remove(self, track_id: str) -> Optional[int]:
        """
        Remove a track by id.

        Returns:
            The position the track occupied, or None if the id is unknown
        """
        track = self._by_id.pop(track_id, None)
        if track is None:
            return None
        index = self._tracks.index(track)
        del self._tracks[index]
        logger.debug(f"Catalog: removed {track_id} from position {index}")
        return index

    def clear(self) -> None:
        self._tracks.clear()
        self._by_id.clear()

    def get(self, track_id: str) -> Optional[Track]:
        return self._by_id.get(track_id)

    def at(self, index: int) -> Optional[Track]:
        if 0 <= index < len(self._tracks):
            return self._tracks[index]
        return None

    def index_of(self, track_id: str) -> Optional[int]:
        track = self._by_id.get(track_id)
        if track is None:
            return None
        return self._tracks.index(track)

    def update_metadata(
        self,
        track_id: str,
        meta: "TrackMetadata",
        quality: Optional[str] = None,
    ) -> bool:
        """
        Attach metadata to a track, keyed by id.

        Returns:
            False if the track is no longer in the catalog
        """
        track = self._by_id.get(track_id)
        if track is None:
            return False
        track.meta = meta
        if quality is not None:
            track.quality = quality
        return True
