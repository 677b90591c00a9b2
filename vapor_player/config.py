"""
VaporPlayer Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_EXTENSIONS = [".mp3", ".flac", ".wav", ".aac", ".ogg"]

# Valid option values
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}
VALID_OUTPUT_TYPES = {"browser", "null"}
VALID_SHUFFLE_STRATEGIES = {"random", "permutation"}

# Environment variable mappings
ENV_MAPPINGS = {
    # Short names used by the container image
    "MUSIC_DIR": ("library", "music_dir"),
    "PORT": ("server", "port"),
    # Library
    "VAPORPLAYER_MUSIC_DIR": ("library", "music_dir"),
    "VAPORPLAYER_EXTENSIONS": ("library", "extensions"),
    "VAPORPLAYER_ADD_ROOTS": ("library", "add_roots"),
    # Player
    "VAPORPLAYER_VOLUME": ("player", "volume"),
    "VAPORPLAYER_SHUFFLE_STRATEGY": ("player", "shuffle_strategy"),
    # Output
    "VAPORPLAYER_OUTPUT": ("output", "type"),
    # Server
    "VAPORPLAYER_PORT": ("server", "port"),
    "VAPORPLAYER_BIND": ("server", "bind_address"),
    "VAPORPLAYER_STATIC_DIR": ("server", "static_dir"),
    # Logging
    "VAPORPLAYER_LOG_LEVEL": ("logging", "level"),
}

INT_ENV_VARS = {"PORT", "VAPORPLAYER_PORT"}
FLOAT_ENV_VARS = {"VAPORPLAYER_VOLUME"}
LIST_ENV_VARS = {"VAPORPLAYER_EXTENSIONS", "VAPORPLAYER_ADD_ROOTS"}


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class LibraryConfig:
    """Music library configuration."""

    music_dir: str = "/music"
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    scan_on_start: bool = True
    # Folders local files may be added from; empty allows any path
    add_roots: list[str] = field(default_factory=list)


@dataclass
class PlayerConfig:
    """Playback session configuration."""

    volume: float = 0.9
    shuffle_strategy: str = "random"  # random | permutation
    state_interval: float = 1.0  # Seconds between snapshots while playing


@dataclass
class OutputConfig:
    """Audio output configuration."""

    type: str = "browser"


@dataclass
class ServerConfig:
    """HTTP server configuration."""

    port: int = 5174
    bind_address: str = "0.0.0.0"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    static_dir: str = ""  # Built front end, served at / when set


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class Config:
    """Complete VaporPlayer configuration."""

    library: LibraryConfig = field(default_factory=LibraryConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_port(port: int) -> bool:
    """Validate port number."""
    return 1 <= port <= 65535


def normalize_extensions(extensions: list[str]) -> list[str]:
    """Lower-case extensions and make sure each starts with a dot."""
    result = []
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        result.append(ext)
    return result


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    # Library
    if not config.library.music_dir:
        errors.append("Music directory is required")
    if not config.library.extensions:
        errors.append("At least one audio file extension is required")

    # Player
    if not 0.0 <= config.player.volume <= 1.0:
        errors.append(f"Invalid volume: {config.player.volume}. Must be between 0 and 1")
    if config.player.shuffle_strategy not in VALID_SHUFFLE_STRATEGIES:
        errors.append(
            f"Invalid shuffle_strategy: {config.player.shuffle_strategy}. "
            f"Valid values: {sorted(VALID_SHUFFLE_STRATEGIES)}"
        )
    if config.player.state_interval <= 0:
        errors.append(f"Invalid state_interval: {config.player.state_interval}")

    # Output
    if config.output.type not in VALID_OUTPUT_TYPES:
        errors.append(
            f"Invalid output type: {config.output.type}. "
            f"Valid values: {sorted(VALID_OUTPUT_TYPES)}"
        )

    # Server
    if not validate_port(config.server.port):
        errors.append(f"Invalid HTTP port: {config.server.port}")
    if config.server.static_dir and not Path(config.server.static_dir).is_dir():
        errors.append(f"Static directory not found: {config.server.static_dir}")

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue

        if env_var in INT_ENV_VARS:
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        elif env_var in FLOAT_ENV_VARS:
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Invalid number for {env_var}: {value}")
                continue
        elif env_var in LIST_ENV_VARS:
            value = [v for v in value.split(",") if v.strip()]

        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def dict_to_config(d: dict) -> Config:
    """Convert a dictionary to Config dataclass."""
    config = Config()

    # Library
    if "library" in d:
        lib = d["library"]
        config.library.music_dir = str(lib.get("music_dir", config.library.music_dir))
        extensions = lib.get("extensions", config.library.extensions)
        if isinstance(extensions, str):
            extensions = extensions.split(",")
        config.library.extensions = normalize_extensions(extensions)
        config.library.scan_on_start = lib.get("scan_on_start", config.library.scan_on_start)
        add_roots = lib.get("add_roots", config.library.add_roots) or []
        if isinstance(add_roots, str):
            add_roots = add_roots.split(",")
        config.library.add_roots = [str(r).strip() for r in add_roots if str(r).strip()]

    # Player
    if "player" in d:
        p = d["player"]
        config.player.volume = float(p.get("volume", config.player.volume))
        config.player.shuffle_strategy = p.get(
            "shuffle_strategy", config.player.shuffle_strategy
        )
        config.player.state_interval = float(
            p.get("state_interval", config.player.state_interval)
        )

    # Output
    if "output" in d:
        config.output.type = d["output"].get("type", config.output.type)

    # Server
    if "server" in d:
        s = d["server"]
        config.server.port = s.get("port", config.server.port)
        config.server.bind_address = s.get("bind_address", config.server.bind_address)
        config.server.cors_origins = s.get("cors_origins", config.server.cors_origins)
        config.server.static_dir = s.get("static_dir", config.server.static_dir) or ""

    # Logging
    if "logging" in d:
        config.logging.level = d["logging"].get("level", config.logging.level)

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Path to YAML config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    configs = []

    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    # Defaults come from the dataclasses
    config = dict_to_config(merged)

    validate_config(config)

    return config
