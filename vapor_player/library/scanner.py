"""
Music directory indexer.

Walks the configured music directory and builds the in-memory library.
"""

import logging
import uuid
from pathlib import Path
from typing import Iterable, Optional

from vapor_player.config import DEFAULT_EXTENSIONS

from .catalog import Track, TrackOrigin

logger = logging.getLogger(__name__)


class LibraryScanError(Exception):
    """Raised when the music directory cannot be indexed."""

    pass


class LibraryScanner:
    """
    Recursive directory indexer.

    Usage:
        scanner = LibraryScanner(Path("/music"))
        tracks = scanner.scan()
    """

    def __init__(self, music_dir: Path, extensions: Optional[Iterable[str]] = None):
        """
        Initialize scanner.

        Args:
            music_dir: Root of the music library
            extensions: Accepted file extensions (with leading dot)
        """
        self.music_dir = Path(music_dir).expanduser()
        self.extensions = {e.lower() for e in (extensions or DEFAULT_EXTENSIONS)}

    def scan(self, known_ids: Optional[dict[Path, str]] = None) -> list[Track]:
        """
        Index the music directory.

        Args:
            known_ids: Absolute path -> id for files already in the catalog;
                matching files keep their id.

        Returns:
            Tracks in directory walk order

        Raises:
            LibraryScanError: If the directory is missing or unreadable
        """
        root = self.music_dir.resolve()
        if not root.exists():
            raise LibraryScanError(f"Music directory not found: {root}")
        if not root.is_dir():
            raise LibraryScanError(f"Music path is not a directory: {root}")

        known_ids = known_ids or {}
        tracks: list[Track] = []
        self._walk(root, root, known_ids, tracks)

        logger.info(f"Indexed {len(tracks)} tracks")
        return tracks

    def _walk(
        self,
        base: Path,
        directory: Path,
        known_ids: dict[Path, str],
        tracks: list[Track],
    ) -> None:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise LibraryScanError(f"Cannot read {directory}: {e}")

        for entry in entries:
            if entry.is_dir():
                self._walk(base, entry, known_ids, tracks)
            elif entry.is_file() and entry.suffix.lower() in self.extensions:
                tracks.append(
                    Track(
                        id=known_ids.get(entry) or str(uuid.uuid4()),
                        name=entry.name,
                        path=entry,
                        relative_path=entry.relative_to(base).as_posix(),
                        origin=TrackOrigin.LIBRARY,
                    )
                )
