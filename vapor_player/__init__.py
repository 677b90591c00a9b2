"""
VaporPlayer - Local music library player service.

Indexes a music directory, streams it over HTTP and drives playback in a
connected browser.
"""

__version__ = "0.1.0"

from .app import VaporPlayer
from .config import Config, ConfigError, load_config

__all__ = [
    "__version__",
    "VaporPlayer",
    "Config",
    "load_config",
    "ConfigError",
]
