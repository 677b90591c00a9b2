"""
State reporter for connected clients.

Handles periodic and event-driven state pushes to WebSocket subscribers.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

if TYPE_CHECKING:
    from .session import PlaybackSession

logger = logging.getLogger(__name__)

# Default heartbeat while playing
STATE_UPDATE_INTERVAL_SECONDS = 1.0

# Type alias for subscriber send callback
SendCallback = Callable[[dict[str, Any]], Awaitable[None]]


class StateReporter:
    """
    Manages state reporting to subscribers.

    Sends:
    - Periodic updates while playing (heartbeat, carries the position)
    - Immediate updates on state changes
    - One-off events such as playback errors

    A subscriber whose send fails is dropped.
    """

    def __init__(
        self,
        session: "PlaybackSession",
        interval: float = STATE_UPDATE_INTERVAL_SECONDS,
    ):
        """
        Initialize state reporter.

        Args:
            session: Session instance for state access
            interval: Heartbeat period in seconds
        """
        self._session = session
        self._interval = interval
        self._subscribers: list[SendCallback] = []

        self._is_running = False
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, send: SendCallback) -> None:
        """Add a subscriber."""
        if send not in self._subscribers:
            self._subscribers.append(send)
            logger.debug(f"Subscriber added ({len(self._subscribers)} total)")

    def unsubscribe(self, send: SendCallback) -> None:
        """Remove a subscriber."""
        if send in self._subscribers:
            self._subscribers.remove(send)
            logger.debug(f"Subscriber removed ({len(self._subscribers)} total)")

    async def start(self) -> None:
        """Start the state reporter heartbeat."""
        if self._is_running:
            return

        self._is_running = True
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("StateReporter started")

    async def stop(self) -> None:
        """Stop the state reporter."""
        self._is_running = False

        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        logger.info("StateReporter stopped")

    async def report_now(self) -> None:
        """
        Send immediate state update.

        Called by the session on every state change.
        """
        await self._broadcast({"type": "state", "state": self._session.snapshot()})

    def report_event(self, event_type: str, payload: dict[str, Any]) -> None:
        """Schedule a one-off event message to all subscribers."""
        if not self._subscribers:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, {event_type} event not sent")
            return
        asyncio.create_task(self._broadcast({"type": event_type, **payload}))

    async def _heartbeat_loop(self) -> None:
        """Periodic state update loop."""
        while self._is_running:
            try:
                await asyncio.sleep(self._interval)

                # Only send heartbeat while playing
                if self._session.playing:
                    await self.report_now()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Heartbeat error: {e}", exc_info=True)
                await asyncio.sleep(1.0)  # Brief pause before retry

    async def _broadcast(self, message: dict[str, Any]) -> None:
        """Send a message to every subscriber."""
        for send in list(self._subscribers):
            try:
                await send(message)
            except (ConnectionError, RuntimeError) as e:
                logger.warning(f"Dropping subscriber after failed send: {e}")
                self.unsubscribe(send)
        logger.debug(f"Sent {message['type']} to {len(self._subscribers)} subscribers")
