"""
Track metadata extraction and caching.

Tags, embedded cover art and an accent colour are read from the audio file
itself. Extraction is best effort: any failure yields the filename as title,
"Unknown Artist" and no artwork.
"""

import asyncio
import base64
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from mutagen import File as MutagenFile
from mutagen import MutagenError
from mutagen.flac import Picture
from mutagen.mp4 import MP4Cover
from PIL import Image, UnidentifiedImageError

if TYPE_CHECKING:
    from vapor_player.library.catalog import Track

logger = logging.getLogger(__name__)

DEFAULT_ACCENT_COLOR = "#0a0f29"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_QUALITY = "Unknown"

DEFAULT_BITS_PER_SAMPLE = 16
DEFAULT_SAMPLE_RATE = 44100

# Extension -> format label
FORMAT_LABELS: dict[str, str] = {
    ".flac": "FLAC",
    ".wav": "WAV",
    ".mp3": "MP3",
    ".aac": "AAC",
}

# Tag names tried in order: ID3, MP4, Vorbis (upper and lower case)
TITLE_TAGS = ["TIT2", "\xa9nam", "TITLE", "title"]
ARTIST_TAGS = ["TPE1", "\xa9ART", "ARTIST", "artist"]
ALBUM_TAGS = ["TALB", "\xa9alb", "ALBUM", "album"]


def describe_quality(ext: str, bits: Optional[int], sample_rate: Optional[int]) -> str:
    """
    Build the quality badge for a file.

    Args:
        ext: File extension including the dot
        bits: Decoded bits per sample (16 assumed when unknown)
        sample_rate: Sample rate in Hz (44100 assumed when unknown)

    Returns:
        "FLAC • 16/44kHz", or "Hi-Res • 24/96kHz" for >= 24 bit or > 48 kHz
    """
    bits = bits or DEFAULT_BITS_PER_SAMPLE
    sample_rate = sample_rate or DEFAULT_SAMPLE_RATE

    if sample_rate >= 1000:
        # Round half up
        rate_label = f"{int(sample_rate / 1000 + 0.5)}kHz"
    else:
        rate_label = f"{sample_rate}Hz"

    if bits >= 24 or sample_rate > 48000:
        return f"Hi-Res • {bits}/{rate_label}"

    fmt = FORMAT_LABELS.get(ext.lower()) or ext.lstrip(".").upper() or UNKNOWN_QUALITY
    return f"{fmt} • {bits}/{rate_label}"


def dominant_color(image_data: bytes) -> str:
    """
    Pick the dominant colour of a cover image.

    The image is shrunk and quantized to a small palette; the most common
    palette entry wins.

    Returns:
        "rgb(r, g, b)", or the default accent colour if the image is unusable
    """
    try:
        with Image.open(io.BytesIO(image_data)) as img:
            img = img.convert("RGB")
            img.thumbnail((64, 64))
            quantized = img.quantize(colors=5)
            palette = quantized.getpalette() or []
            colors = quantized.getcolors() or []
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.debug(f"Colour extraction failed: {e}")
        return DEFAULT_ACCENT_COLOR

    if not colors:
        return DEFAULT_ACCENT_COLOR

    _, palette_index = max(colors)
    r, g, b = palette[palette_index * 3 : palette_index * 3 + 3]
    return f"rgb({r}, {g}, {b})"


@dataclass
class CoverArt:
    """Embedded cover image."""

    data: bytes
    mime: str = "image/jpeg"


@dataclass
class TrackMetadata:
    """Track metadata."""

    title: str = ""
    artist: str = ""
    album: str = ""
    duration_s: float = 0.0
    has_cover: bool = False
    cover_mime: str = ""
    accent_color: str = DEFAULT_ACCENT_COLOR

    # Decoded stream properties (0 when unknown)
    bits_per_sample: int = 0
    sample_rate: int = 0

    @classmethod
    def fallback(cls, name: str) -> "TrackMetadata":
        """Metadata for a file whose tags could not be read."""
        return cls(title=name, artist=UNKNOWN_ARTIST)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "duration": self.duration_s,
            "hasCover": self.has_cover,
            "accentColor": self.accent_color,
        }


@dataclass
class ExtractedFile:
    """Everything read from one file in a single pass."""

    metadata: TrackMetadata
    cover: Optional[CoverArt] = None
    parsed: bool = True


@dataclass
class MetadataCache:
    """In-memory cache for track metadata, covers and quality labels, keyed by track id."""

    _cache: dict[str, TrackMetadata] = field(default_factory=dict)
    _covers: dict[str, CoverArt] = field(default_factory=dict)
    _qualities: dict[str, str] = field(default_factory=dict)
    _max_size: int = 500

    def get(self, track_id: str) -> Optional[TrackMetadata]:
        """Get cached metadata for track."""
        return self._cache.get(track_id)

    def set(
        self,
        track_id: str,
        metadata: TrackMetadata,
        cover: Optional[CoverArt] = None,
        quality: Optional[str] = None,
    ) -> None:
        """Cache metadata (and cover, quality label) for track."""
        # Simple LRU: remove oldest if at capacity
        if len(self._cache) >= self._max_size and track_id not in self._cache:
            oldest = next(iter(self._cache))
            self.forget(oldest)
        self._cache[track_id] = metadata
        if cover is not None:
            self._covers[track_id] = cover
        if quality is not None:
            self._qualities[track_id] = quality

    def get_cover(self, track_id: str) -> Optional[CoverArt]:
        return self._covers.get(track_id)

    def get_quality(self, track_id: str) -> Optional[str]:
        return self._qualities.get(track_id)

    def forget(self, track_id: str) -> None:
        self._cache.pop(track_id, None)
        self._covers.pop(track_id, None)
        self._qualities.pop(track_id, None)

    def clear(self) -> None:
        """Clear all cached metadata."""
        self._cache.clear()
        self._covers.clear()
        self._qualities.clear()

    def __len__(self) -> int:
        return len(self._cache)


def _get_tag_value(audio: Any, tag_names: list[str]) -> Optional[str]:
    """Get tag value, trying multiple possible tag names."""
    for tag_name in tag_names:
        try:
            value = audio.get(tag_name)
        except (KeyError, ValueError):
            # Vorbis comments raise ValueError for some keys
            continue
        if value:
            if isinstance(value, list):
                return str(value[0])
            return str(value)
    return None


def _extract_cover(audio: Any) -> Optional[CoverArt]:
    """Find an embedded picture: ID3 APIC, MP4 covr, FLAC or Ogg picture blocks."""
    tags = getattr(audio, "tags", None)

    # ID3
    if tags is not None and hasattr(tags, "getall"):
        frames = tags.getall("APIC")
        if frames:
            return CoverArt(data=frames[0].data, mime=frames[0].mime or "image/jpeg")

    # MP4
    if tags is not None and "covr" in tags:
        covers = tags["covr"]
        if covers:
            cover = covers[0]
            mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
            return CoverArt(data=bytes(cover), mime=mime)

    # FLAC
    pictures = getattr(audio, "pictures", None)
    if pictures:
        return CoverArt(data=pictures[0].data, mime=pictures[0].mime or "image/jpeg")

    # Ogg Vorbis / Opus
    if tags is not None:
        blocks = _get_tag_value(audio, ["metadata_block_picture"])
        if blocks:
            try:
                picture = Picture(base64.b64decode(blocks))
                return CoverArt(data=picture.data, mime=picture.mime or "image/jpeg")
            except (ValueError, MutagenError) as e:
                logger.debug(f"Invalid picture block: {e}")

    return None


def read_file_metadata(path: Path, name: str) -> ExtractedFile:
    """
    Read tags, cover and stream properties from an audio file.

    Blocking; run it off the event loop. Never raises.
    """
    try:
        audio = MutagenFile(path)
    except (MutagenError, OSError) as e:
        logger.debug(f"Cannot parse {path}: {e}")
        audio = None

    if audio is None:
        return ExtractedFile(metadata=TrackMetadata.fallback(name), parsed=False)

    try:
        metadata = TrackMetadata(
            title=_get_tag_value(audio, TITLE_TAGS) or name,
            artist=_get_tag_value(audio, ARTIST_TAGS) or UNKNOWN_ARTIST,
            album=_get_tag_value(audio, ALBUM_TAGS) or "",
        )

        info = getattr(audio, "info", None)
        if info is not None:
            metadata.duration_s = float(getattr(info, "length", 0.0) or 0.0)
            metadata.bits_per_sample = int(getattr(info, "bits_per_sample", 0) or 0)
            metadata.sample_rate = int(getattr(info, "sample_rate", 0) or 0)

        cover = _extract_cover(audio)
    except Exception as e:
        logger.warning(f"Failed to read tags from {path}: {e}")
        return ExtractedFile(metadata=TrackMetadata.fallback(name), parsed=False)

    if cover is not None:
        metadata.has_cover = True
        metadata.cover_mime = cover.mime
        metadata.accent_color = dominant_color(cover.data)

    return ExtractedFile(metadata=metadata, cover=cover)


class MetadataEnricher:
    """
    Service for extracting and caching track metadata.

    Reads files in a worker thread; results are returned to the caller on
    the event loop, never applied from the worker.
    """

    def __init__(self, cache: Optional[MetadataCache] = None):
        self._cache = cache if cache is not None else MetadataCache()

    async def enrich(self, track: "Track") -> TrackMetadata:
        """
        Get metadata for a track, using the cache when available.

        Never raises; unreadable files produce fallback metadata.
        """
        cached = self._cache.get(track.id)
        if cached:
            return cached

        try:
            extracted = await asyncio.to_thread(read_file_metadata, track.path, track.name)
        except Exception as e:
            logger.error(f"Metadata extraction failed for {track.name}: {e}")
            extracted = ExtractedFile(metadata=TrackMetadata.fallback(track.name), parsed=False)

        if extracted.parsed:
            bits = extracted.metadata.bits_per_sample
            rate = extracted.metadata.sample_rate
            quality = describe_quality(track.extension, bits, rate)
        else:
            quality = UNKNOWN_QUALITY
        self._cache.set(track.id, extracted.metadata, extracted.cover, quality)

        logger.debug(
            f"Metadata for {track.id}: {extracted.metadata.artist} - {extracted.metadata.title}"
        )
        return extracted.metadata

    def quality_for(self, track: "Track") -> Optional[str]:
        """Quality label for an enriched track, or None if not yet enriched."""
        return self._cache.get_quality(track.id)

    def get_cover(self, track_id: str) -> Optional[CoverArt]:
        return self._cache.get_cover(track_id)

    def get_cached(self, track_id: str) -> Optional[TrackMetadata]:
        return self._cache.get(track_id)

    def forget(self, track_id: str) -> None:
        self._cache.forget(track_id)

    def clear(self) -> None:
        self._cache.clear()

    def log_now_playing(self, track: "Track") -> None:
        """Log currently playing track at INFO level."""
        meta = track.meta or TrackMetadata.fallback(track.name)
        suffix = f" ({track.quality})" if track.quality else ""
        album = f" [{meta.album}]" if meta.album else ""
        logger.info(f"Now playing: {meta.artist} - {meta.title}{album}{suffix}")
