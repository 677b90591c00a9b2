"""
VaporPlayer CLI entry point.

Provides command-line interface for running VaporPlayer.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from vapor_player import __version__
from vapor_player.app import VaporPlayer
from vapor_player.backends import OutputNotFoundError
from vapor_player.config import Config, ConfigError, load_config
from vapor_player.library import LibraryIndex, LibraryScanError, LibraryScanner

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_SCAN_ERROR = 2
EXIT_NETWORK_ERROR = 3


def setup_logging(level: str = "info") -> None:
    """Configure logging to stdout."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="vapor-player",
        description="Local music library player with a browser front end",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vapor-player --music-dir ~/Music
  vapor-player --scan --json --music-dir ~/Music
  vapor-player --config config.yaml ~/Downloads/album

Environment Variables:
  MUSIC_DIR, PORT
  VAPORPLAYER_MUSIC_DIR, VAPORPLAYER_EXTENSIONS, VAPORPLAYER_VOLUME
  VAPORPLAYER_SHUFFLE_STRATEGY, VAPORPLAYER_OUTPUT, VAPORPLAYER_PORT
  VAPORPLAYER_BIND, VAPORPLAYER_STATIC_DIR, VAPORPLAYER_LOG_LEVEL
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Scan mode
    parser.add_argument(
        "--scan",
        action="store_true",
        help="Index the music directory, print it and exit",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON (used with --scan)",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # Library
    library_group = parser.add_argument_group("Library")
    library_group.add_argument(
        "--music-dir",
        metavar="DIR",
        help="Music directory to index (default: /music)",
    )
    library_group.add_argument(
        "paths",
        nargs="*",
        type=Path,
        metavar="PATH",
        help="Local files or folders to add at startup",
    )

    # Playback
    player_group = parser.add_argument_group("Playback")
    player_group.add_argument(
        "--output",
        choices=["browser", "null"],
        metavar="TYPE",
        help="Audio output: browser, null",
    )
    player_group.add_argument(
        "--volume",
        type=float,
        metavar="FLOAT",
        help="Initial volume 0.0-1.0 (default: 0.9)",
    )
    player_group.add_argument(
        "--shuffle-strategy",
        choices=["random", "permutation"],
        metavar="NAME",
        help="Shuffle strategy: random, permutation",
    )

    # Server
    server_group = parser.add_argument_group("Server")
    server_group.add_argument(
        "--port",
        type=int,
        metavar="INT",
        help="HTTP server port (default: 5174)",
    )
    server_group.add_argument(
        "--bind",
        metavar="TEXT",
        help="Bind address (default: 0.0.0.0)",
    )
    server_group.add_argument(
        "--static-dir",
        metavar="DIR",
        help="Built front end to serve at /",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    return parser.parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested config dict."""
    result: dict = {}

    # Map CLI args to config paths
    mappings = {
        "music_dir": ("library", "music_dir"),
        "output": ("output", "type"),
        "volume": ("player", "volume"),
        "shuffle_strategy": ("player", "shuffle_strategy"),
        "port": ("server", "port"),
        "bind": ("server", "bind_address"),
        "static_dir": ("server", "static_dir"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        _set_nested(result, path, value)

    return result


def log_config(config: Config) -> None:
    """Log configuration summary."""
    logger.info(f"Music directory: {config.library.music_dir}")
    logger.info(f"HTTP server: {config.server.bind_address}:{config.server.port}")
    logger.info(f"Audio output: {config.output.type}")
    if config.player.shuffle_strategy != "random":
        logger.info(f"Shuffle strategy: {config.player.shuffle_strategy}")


def run_scan(config: Config, json_output: bool) -> int:
    """
    Index the music directory and print the result.

    Args:
        config: Loaded configuration
        json_output: Output as JSON if True

    Returns:
        Exit code
    """
    scanner = LibraryScanner(Path(config.library.music_dir), config.library.extensions)
    try:
        tracks = scanner.scan()
    except LibraryScanError as e:
        logger.error(f"Library scan failed: {e}")
        return EXIT_SCAN_ERROR

    if json_output:
        output = {
            "musicDir": str(scanner.music_dir),
            "tracks": [t.to_library_dict() for t in tracks],
            "count": len(tracks),
        }
        print(json.dumps(output, indent=2))
        return EXIT_SUCCESS

    if not tracks:
        print(f"\nNo audio files found in {scanner.music_dir}.")
        print(f"\nAccepted extensions: {' '.join(sorted(scanner.extensions))}")
        return EXIT_SUCCESS

    print(f"\nFound {len(tracks)} track(s) in {scanner.music_dir}:\n")
    tree = LibraryIndex(tracks).library_tree()
    for artist, albums in tree.items():
        print(f"  {artist}")
        for album, entries in albums.items():
            print(f"    {album} ({len(entries)})")
            for entry in entries:
                print(f"      {entry['title']}")
        print()

    return EXIT_SUCCESS


def run_serve(args: argparse.Namespace, config: Config) -> int:
    """
    Run the player service.

    Args:
        args: Parsed arguments
        config: Loaded configuration

    Returns:
        Exit code
    """
    try:
        app = VaporPlayer(config, initial_paths=args.paths)
        asyncio.run(app.run())
        return EXIT_SUCCESS

    except LibraryScanError as e:
        logger.error(f"Library scan failed: {e}")
        return EXIT_SCAN_ERROR

    except OutputNotFoundError as e:
        logger.error(f"Output error: {e}")
        return EXIT_CONFIG_ERROR

    except (ConnectionError, OSError) as e:
        logger.error(f"Network error: {e}")
        return EXIT_NETWORK_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return EXIT_NETWORK_ERROR


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 2=scan error, 3=network error
    """
    args = parse_args(argv)

    # Setup basic logging first (will be reconfigured after config load)
    setup_logging("info")

    try:
        cli_config = args_to_dict(args)
        config = load_config(args.config, cli_config)

        # Reconfigure logging with loaded level
        setup_logging(config.logging.level)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    if args.scan:
        if args.json_output:
            # Keep stdout parseable
            setup_logging("error")
        return run_scan(config, args.json_output)

    logger.info(f"VaporPlayer v{__version__}")
    log_config(config)
    return run_serve(args, config)


if __name__ == "__main__":
    sys.exit(main())
