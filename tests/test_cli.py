"""Tests for the command-line interface."""

import json
from pathlib import Path

import pytest

from vapor_player.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_SCAN_ERROR,
    EXIT_SUCCESS,
    args_to_dict,
    main,
    parse_args,
    run_scan,
)
from vapor_player.config import ENV_MAPPINGS, Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_MAPPINGS:
        monkeypatch.delenv(name, raising=False)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults(self) -> None:
        """Test nothing is overridden without flags."""
        args = parse_args([])
        assert args.scan is False
        assert args.paths == []
        assert args_to_dict(args) == {}

    def test_mapping(self) -> None:
        """Test flags land on their config paths."""
        args = parse_args(
            [
                "--music-dir", "/srv/music",
                "--port", "8080",
                "--bind", "127.0.0.1",
                "--volume", "0.5",
                "--output", "null",
                "--shuffle-strategy", "permutation",
                "--log-level", "debug",
                "extra/album",
            ]
        )
        assert args_to_dict(args) == {
            "library": {"music_dir": "/srv/music"},
            "server": {"port": 8080, "bind_address": "127.0.0.1"},
            "player": {"volume": 0.5, "shuffle_strategy": "permutation"},
            "output": {"type": "null"},
            "logging": {"level": "debug"},
        }
        assert args.paths == [Path("extra/album")]

    def test_invalid_choice(self) -> None:
        """Test unknown output types are rejected by argparse."""
        with pytest.raises(SystemExit):
            parse_args(["--output", "speaker"])


class TestRunScan:
    """Tests for --scan."""

    def test_json(self, music_dir: Path, capsys: pytest.CaptureFixture) -> None:
        """Test the JSON listing."""
        config = Config()
        config.library.music_dir = str(music_dir)

        assert run_scan(config, json_output=True) == EXIT_SUCCESS
        data = json.loads(capsys.readouterr().out)
        assert data["count"] == 4
        assert data["tracks"][0]["relativePath"] == "Artist A/Album 1/01 - One.wav"

    def test_text(self, music_dir: Path, capsys: pytest.CaptureFixture) -> None:
        """Test the tree listing."""
        config = Config()
        config.library.music_dir = str(music_dir)

        assert run_scan(config, json_output=False) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Found 4 track(s)" in out
        assert "Album 1 (2)" in out
        assert "Unknown Artist" in out

    def test_empty(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Test an empty directory is reported, not an error."""
        config = Config()
        config.library.music_dir = str(tmp_path)

        assert run_scan(config, json_output=False) == EXIT_SUCCESS
        assert "No audio files found" in capsys.readouterr().out

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test a missing directory gives the scan exit code."""
        config = Config()
        config.library.music_dir = str(tmp_path / "missing")
        assert run_scan(config, json_output=True) == EXIT_SCAN_ERROR


class TestMain:
    """Tests for main()."""

    def test_scan_json(self, music_dir: Path, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        """Test the full scan path through main."""
        code = main(
            ["--config", str(tmp_path / "none.yaml"), "--scan", "--json", "--music-dir", str(music_dir)]
        )
        assert code == EXIT_SUCCESS
        assert json.loads(capsys.readouterr().out)["count"] == 4

    def test_invalid_config(self, tmp_path: Path) -> None:
        """Test validation failures exit with the config code."""
        code = main(["--config", str(tmp_path / "none.yaml"), "--scan", "--volume", "2"])
        assert code == EXIT_CONFIG_ERROR

    def test_bad_yaml(self, tmp_path: Path) -> None:
        """Test unparseable YAML exits with the config code."""
        path = tmp_path / "config.yaml"
        path.write_text("library: [unclosed")
        assert main(["--config", str(path), "--scan"]) == EXIT_CONFIG_ERROR
