"""
Audio output factory.

Maps configured output type names to output classes.
"""

import logging

from vapor_player.config import Config

from .base import AudioOutput
from .browser import BrowserAudioOutput
from .null import NullAudioOutput

logger = logging.getLogger(__name__)

OUTPUT_TYPES: dict[str, type[AudioOutput]] = {
    "browser": BrowserAudioOutput,
    "null": NullAudioOutput,
}


class OutputNotFoundError(Exception):
    """Raised when requested output type is not available."""

    pass


class OutputFactory:
    """
    Factory for creating audio output instances.

    Usage:
        output = await OutputFactory.create_from_config(config)
    """

    @classmethod
    async def create_from_config(cls, config: Config) -> AudioOutput:
        """Create and connect the output named by output.type."""
        return await cls.create(config.output.type)

    @classmethod
    async def create(cls, output_type: str) -> AudioOutput:
        """
        Create and connect an output by type name.

        Raises:
            OutputNotFoundError: If the type is unknown or fails to connect
        """
        output_class = OUTPUT_TYPES.get(output_type)
        if output_class is None:
            raise OutputNotFoundError(
                f"Output type '{output_type}' not available. "
                f"Available types: {sorted(OUTPUT_TYPES)}"
            )

        output = output_class()
        if not await output.connect():
            raise OutputNotFoundError(f"Failed to connect output '{output_type}'")
        logger.debug(f"Created output: {output.name}")
        return output
