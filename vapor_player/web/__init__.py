"""
Web module.

Provides the HTTP and WebSocket server.
"""

from .server import LibraryServer

__all__ = ["LibraryServer"]
