"""Tests for the music directory scanner."""

from pathlib import Path

import pytest

from vapor_player.library import LibraryScanError, LibraryScanner, TrackOrigin


class TestLibraryScanner:
    """Tests for LibraryScanner."""

    def test_scan_finds_audio_recursively(self, music_dir: Path) -> None:
        """Test audio files at every depth are indexed in sorted order."""
        tracks = LibraryScanner(music_dir).scan()

        assert [t.relative_path for t in tracks] == [
            "Artist A/Album 1/01 - One.wav",
            "Artist A/Album 1/02 - Two.wav",
            "Artist B/Album 2/01 - Three.wav",
            "Loose.wav",
        ]

    def test_track_fields(self, music_dir: Path) -> None:
        """Test each track carries id, filename, absolute path and origin."""
        track = LibraryScanner(music_dir).scan()[0]

        assert track.name == "01 - One.wav"
        assert track.path.is_absolute()
        assert track.path.is_file()
        assert track.origin == TrackOrigin.LIBRARY
        assert track.id
        assert track.meta is None

    def test_ids_are_unique(self, music_dir: Path) -> None:
        """Test every entry gets its own id."""
        tracks = LibraryScanner(music_dir).scan()
        assert len({t.id for t in tracks}) == len(tracks)

    def test_extension_filter_is_case_insensitive(
        self, tmp_path: Path, write_wav
    ) -> None:
        """Test upper-case extensions match and other files are skipped."""
        write_wav(tmp_path / "LOUD.WAV")
        (tmp_path / "notes.txt").write_text("x")
        (tmp_path / "image.jpg").write_bytes(b"\xff\xd8")

        tracks = LibraryScanner(tmp_path).scan()
        assert [t.name for t in tracks] == ["LOUD.WAV"]

    def test_custom_extensions(self, music_dir: Path) -> None:
        """Test only configured extensions are kept."""
        assert LibraryScanner(music_dir, [".flac"]).scan() == []

    def test_known_ids_are_kept(self, music_dir: Path) -> None:
        """Test a rescan reuses ids for files still present."""
        scanner = LibraryScanner(music_dir)
        first = scanner.scan()
        known = {t.path: t.id for t in first}

        second = scanner.scan(known)
        assert [t.id for t in second] == [t.id for t in first]

    def test_new_files_get_new_ids(self, music_dir: Path, write_wav) -> None:
        """Test files added between scans get fresh ids."""
        scanner = LibraryScanner(music_dir)
        first = scanner.scan()
        write_wav(music_dir / "Artist C" / "New" / "song.wav")

        second = scanner.scan({t.path: t.id for t in first})
        old_ids = {t.id for t in first}
        new = [t for t in second if t.id not in old_ids]
        assert [t.relative_path for t in new] == ["Artist C/New/song.wav"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        """Test an empty directory is a valid, empty library."""
        assert LibraryScanner(tmp_path).scan() == []

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test a missing directory raises LibraryScanError."""
        with pytest.raises(LibraryScanError, match="not found"):
            LibraryScanner(tmp_path / "missing").scan()

    def test_file_instead_of_directory(self, tmp_path: Path) -> None:
        """Test a file path raises LibraryScanError."""
        path = tmp_path / "file.wav"
        path.write_bytes(b"")
        with pytest.raises(LibraryScanError, match="not a directory"):
            LibraryScanner(path).scan()
