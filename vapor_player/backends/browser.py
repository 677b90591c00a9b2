"""
Browser audio output.

The <audio> element of a connected browser acts as the speaker. Commands go
out as JSON over the WebSocket; the element's events come back the same
way. Only one client drives playback at a time: the first to offer itself.
Later clients wait on standby and take over when the active one leaves.
"""

import logging
import math
from typing import Any, Optional, Protocol

from .base import AudioOutput, AudioOutputError
from .types import OutputState, OutputTrack

logger = logging.getLogger(__name__)


class OutputClient(Protocol):
    """What the output needs from a WebSocket connection."""

    @property
    def closed(self) -> bool: ...

    async def send_json(self, data: Any) -> None: ...


class BrowserAudioOutput(AudioOutput):
    """
    Remote <audio> element driven over WebSocket.

    Messages sent to the active client:
        {"type": "load", "trackId", "src", "title", "artist", "duration", "autoplay"}
        {"type": "play"} / {"type": "pause"} / {"type": "stop"}
        {"type": "seek", "position": seconds}
        {"type": "gain", "value": 0.0-1.0}

    Events accepted from the active client (all carry "trackId"):
        timeupdate {position}, loadedmetadata {duration}, ended,
        error {message}
    """

    def __init__(self, name: str = "Browser Output"):
        super().__init__(name)
        self._clients: list[OutputClient] = []
        self._position_s: float = 0.0

    # =========================================================================
    # Client Management
    # =========================================================================

    @property
    def active_client(self) -> Optional[OutputClient]:
        return self._clients[0] if self._clients else None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def attach(self, client: OutputClient) -> bool:
        """
        Offer a client as output.

        Returns:
            True if the client became the active output
        """
        if client in self._clients:
            return client is self.active_client

        self._clients.append(client)
        if client is self.active_client:
            logger.info("Browser output attached")
            await self._replay_state()
            return True

        logger.info(f"Browser output on standby ({len(self._clients)} attached)")
        return False

    async def detach(self, client: OutputClient) -> None:
        """Remove a client; promote the next standby client if needed."""
        if client not in self._clients:
            return

        was_active = client is self.active_client
        self._clients.remove(client)

        if not was_active:
            return

        if self.active_client is None:
            logger.info("Browser output detached, no output available")
            return

        logger.info("Browser output detached, standby client promoted")
        try:
            await self._replay_state()
        except AudioOutputError as e:
            logger.warning(f"Promoted output rejected state: {e}")

    async def _replay_state(self) -> None:
        """Bring a newly active client up to the current source, position and gain."""
        await self._send({"type": "gain", "value": self._gain})
        if self._track is None:
            return
        autoplay = self._state == OutputState.PLAYING
        await self._send({"type": "load", **self._track.to_dict(), "autoplay": autoplay})
        if self._position_s > 0:
            await self._send({"type": "seek", "position": self._position_s})

    async def _send(self, message: dict[str, Any]) -> None:
        client = self.active_client
        if client is None:
            raise AudioOutputError("No browser output attached")
        if client.closed:
            raise AudioOutputError("Browser output connection closed")
        try:
            await client.send_json(message)
        except (ConnectionError, RuntimeError) as e:
            raise AudioOutputError(f"Failed to reach browser output: {e}")

    async def _send_if_attached(self, message: dict[str, Any]) -> None:
        if self.active_client is None:
            return
        try:
            await self._send(message)
        except AudioOutputError as e:
            logger.warning(f"Dropped {message['type']} command: {e}")

    # =========================================================================
    # Playback Control
    # =========================================================================

    async def load(self, track: OutputTrack, autoplay: bool = False) -> None:
        self._track = track
        self._position_s = 0.0
        self._state = OutputState.LOADING if autoplay else OutputState.PAUSED

        message = {"type": "load", **track.to_dict(), "autoplay": autoplay}
        if autoplay:
            await self._send(message)
            self._state = OutputState.PLAYING
        else:
            await self._send_if_attached(message)

    async def play(self) -> None:
        if self._track is None:
            raise AudioOutputError("Nothing loaded")
        await self._send({"type": "play"})
        self._state = OutputState.PLAYING

    async def pause(self) -> None:
        if self._track is not None:
            self._state = OutputState.PAUSED
        await self._send_if_attached({"type": "pause"})

    async def stop(self) -> None:
        self._track = None
        self._position_s = 0.0
        self._state = OutputState.STOPPED
        await self._send_if_attached({"type": "stop"})

    async def seek(self, position_s: float) -> None:
        self._position_s = position_s
        await self._send_if_attached({"type": "seek", "position": position_s})

    async def set_gain(self, gain: float) -> None:
        self._gain = gain
        await self._send_if_attached({"type": "gain", "value": gain})

    async def disconnect(self) -> None:
        self._clients.clear()
        await super().disconnect()

    # =========================================================================
    # Events From The Browser
    # =========================================================================

    def handle_event(self, client: OutputClient, event: dict[str, Any]) -> bool:
        """
        Process an <audio> element event.

        Returns:
            True if the event was applied, False if it was dropped
        """
        if client is not self.active_client:
            logger.debug("Ignoring event from standby output")
            return False

        event_type = event.get("type")
        track_id = event.get("trackId")
        if self._track is None or track_id != self._track.track_id:
            logger.debug(f"Dropping stale {event_type} event for track {track_id}")
            return False

        if event_type == "timeupdate":
            position = _as_seconds(event.get("position"))
            if position is None:
                return False
            self._position_s = position
            self._notify_time_update(position)
        elif event_type in ("loadedmetadata", "durationchange"):
            duration = _as_seconds(event.get("duration"))
            if duration is None:
                return False
            self._notify_duration_known(duration)
        elif event_type == "ended":
            self._notify_track_ended()
        elif event_type == "error":
            self._notify_playback_error(str(event.get("message") or "Playback failed"))
        else:
            logger.debug(f"Unhandled output event: {event_type}")
            return False
        return True


def _as_seconds(value: Any) -> Optional[float]:
    """Parse a time value from the browser; NaN and Infinity become 0."""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds):
        return 0.0
    return max(0.0, seconds)
