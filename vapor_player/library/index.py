"""
Library index for VaporPlayer.

Holds the tracks found by the last scan of the music directory. This is
what GET /library serves; the session playlist is a separate TrackCatalog
that starts from the same tracks but is edited independently.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .catalog import Track, _artist_album

logger = logging.getLogger(__name__)


class LibraryIndex:
    """Scan result, in scan order, with an id lookup."""

    def __init__(self, tracks: Optional[Iterable[Track]] = None) -> None:
        self._tracks: list[Track] = []
        self._by_id: dict[str, Track] = {}
        if tracks:
            self.replace(tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(list(self._tracks))

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._by_id

    def get(self, track_id: str) -> Optional[Track]:
        return self._by_id.get(track_id)

    def path_ids(self) -> dict[Path, str]:
        """Map path -> id, passed to the scanner so ids survive a rescan."""
        return {t.path: t.id for t in self._tracks}

    def replace(self, tracks: Iterable[Track]) -> tuple[list[Track], list[str]]:
        """
        Swap in the result of a fresh scan.

        Tracks whose id is already indexed keep their existing entry, so
        metadata read earlier is not lost.

        Returns:
            (newly indexed tracks, ids that disappeared)
        """
        fresh: list[Track] = []
        seen: set[str] = set()
        added: list[Track] = []

        for track in tracks:
            if track.id in seen:
                logger.warning(f"Duplicate track id ignored: {track.id}")
                continue
            seen.add(track.id)
            existing = self._by_id.get(track.id)
            if existing is None:
                added.append(track)
                fresh.append(track)
            else:
                fresh.append(existing)

        removed = [t.id for t in self._tracks if t.id not in seen]
        self._tracks = fresh
        self._by_id = {t.id: t for t in fresh}

        logger.debug(
            f"Library index: {len(fresh)} tracks ({len(added)} new, {len(removed)} gone)"
        )
        return added, removed

    def library_tree(self) -> dict[str, dict[str, list[dict[str, str]]]]:
        """Group tracks as artist -> album -> [{id, title}]."""
        tree: dict[str, dict[str, list[dict[str, str]]]] = {}
        for track in self._tracks:
            artist, album = _artist_album(track.relative_path)
            tree.setdefault(artist, {}).setdefault(album, []).append(
                {"id": track.id, "title": track.title}
            )
        return tree
