"""
Player command handler for HTTP and WebSocket intents.

Translates named actions with JSON parameters into session operations.
"""

import logging
import math
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from .sequencer import RepeatMode
from .session import SessionError, TrackNotFoundError

if TYPE_CHECKING:
    from .session import PlaybackSession

logger = logging.getLogger(__name__)

# Relative steps used by the transport keys
SEEK_STEP_SECONDS = 5.0
VOLUME_STEP = 0.05

# Keyboard shortcuts: key -> (action, params)
KEY_BINDINGS: dict[str, tuple[str, dict[str, Any]]] = {
    " ": ("toggle", {}),
    "space": ("toggle", {}),
    "n": ("next", {}),
    "p": ("previous", {}),
    "arrowright": ("seek_by", {"delta": SEEK_STEP_SECONDS}),
    "arrowleft": ("seek_by", {"delta": -SEEK_STEP_SECONDS}),
    "+": ("volume_by", {"delta": VOLUME_STEP}),
    "-": ("volume_by", {"delta": -VOLUME_STEP}),
    "s": ("shuffle", {}),
    "r": ("repeat", {}),
}


class CommandError(Exception):
    """Raised when an intent has missing or invalid parameters."""

    pass


class UnknownActionError(CommandError):
    """Raised for an action name the handler does not know."""

    pass


ActionHandler = Callable[[dict[str, Any]], Awaitable[None]]


class SessionCommandHandler:
    """
    Handles player intents.

    Used by POST /api/player/{action} and by WebSocket messages of the form
    {"type": "intent", "action": ..., "params": {...}}.
    """

    def __init__(self, session: "PlaybackSession"):
        """Initialize handler."""
        self.session = session
        self._handlers: dict[str, ActionHandler] = {
            "select": self._handle_select,
            "toggle": self._handle_toggle,
            "play": self._handle_play,
            "pause": self._handle_pause,
            "next": self._handle_next,
            "previous": self._handle_previous,
            "seek": self._handle_seek,
            "seek_by": self._handle_seek_by,
            "volume": self._handle_volume,
            "volume_by": self._handle_volume_by,
            "mute": self._handle_mute,
            "shuffle": self._handle_shuffle,
            "repeat": self._handle_repeat,
            "remove": self._handle_remove,
            "clear": self._handle_clear,
            "key": self._handle_key,
        }

    def get_actions(self) -> list[str]:
        """Get list of action names this handler processes."""
        return list(self._handlers)

    async def handle(self, action: str, params: Optional[dict[str, Any]] = None) -> dict:
        """
        Apply an intent and return the resulting session snapshot.

        Raises:
            UnknownActionError: If the action is not known
            CommandError: If parameters are invalid
            SessionError: If the session rejects the operation
        """
        handler = self._handlers.get(action)
        if handler is None:
            raise UnknownActionError(f"Unknown action: {action}")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise CommandError("params must be an object")

        logger.debug(f"Intent {action}: {params}")
        await handler(params)
        return self.session.snapshot()

    async def handle_message(self, message: dict[str, Any]) -> Optional[dict]:
        """
        Handle an intent received over WebSocket.

        Rejected intents are logged and reported back instead of raised.

        Returns:
            Error reply for the sender, or None on success
        """
        action = message.get("action")
        if not isinstance(action, str):
            logger.warning(f"Intent without action: {message}")
            return {"type": "error", "message": "Missing action"}
        try:
            await self.handle(action, message.get("params"))
        except (CommandError, SessionError) as e:
            logger.warning(f"Rejected intent {action}: {e}")
            return {"type": "error", "action": action, "message": str(e)}
        return None

    # =========================================================================
    # Actions
    # =========================================================================

    async def _handle_select(self, params: dict[str, Any]) -> None:
        if "id" in params:
            track_id = params["id"]
            if not isinstance(track_id, str):
                raise CommandError("id must be a string")
            await self.session.select_track_id(track_id)
        elif "index" in params:
            await self.session.select_track(_require_int(params, "index"))
        else:
            raise CommandError("select requires index or id")

    async def _handle_toggle(self, params: dict[str, Any]) -> None:
        await self.session.toggle_play()

    async def _handle_play(self, params: dict[str, Any]) -> None:
        await self.session.play()

    async def _handle_pause(self, params: dict[str, Any]) -> None:
        await self.session.pause()

    async def _handle_next(self, params: dict[str, Any]) -> None:
        await self.session.skip_next()

    async def _handle_previous(self, params: dict[str, Any]) -> None:
        await self.session.skip_previous()

    async def _handle_seek(self, params: dict[str, Any]) -> None:
        await self.session.seek(_require_number(params, "position"))

    async def _handle_seek_by(self, params: dict[str, Any]) -> None:
        await self.session.seek_by(_require_number(params, "delta"))

    async def _handle_volume(self, params: dict[str, Any]) -> None:
        await self.session.set_volume(_require_number(params, "value"))

    async def _handle_volume_by(self, params: dict[str, Any]) -> None:
        await self.session.adjust_volume(_require_number(params, "delta"))

    async def _handle_mute(self, params: dict[str, Any]) -> None:
        await self.session.toggle_mute()

    async def _handle_shuffle(self, params: dict[str, Any]) -> None:
        """Set shuffle when "enabled" is given, otherwise toggle."""
        if "enabled" not in params:
            await self.session.toggle_shuffle()
            return
        enabled = params["enabled"]
        if not isinstance(enabled, bool):
            raise CommandError("enabled must be a boolean")
        await self.session.set_shuffle(enabled)

    async def _handle_repeat(self, params: dict[str, Any]) -> None:
        """Set repeat mode when "mode" is given, otherwise cycle off -> one -> all."""
        if "mode" not in params:
            await self.session.cycle_repeat()
            return
        try:
            mode = RepeatMode(params["mode"])
        except ValueError:
            valid = ", ".join(m.value for m in RepeatMode)
            raise CommandError(f"mode must be one of: {valid}")
        await self.session.set_repeat_mode(mode)

    async def _handle_remove(self, params: dict[str, Any]) -> None:
        track_id = params.get("id")
        if not isinstance(track_id, str):
            raise CommandError("remove requires id")
        if not await self.session.remove_track(track_id):
            raise TrackNotFoundError(f"Track {track_id} not found")

    async def _handle_clear(self, params: dict[str, Any]) -> None:
        await self.session.clear_all()

    async def _handle_key(self, params: dict[str, Any]) -> None:
        key = params.get("key")
        if not isinstance(key, str) or not key:
            raise CommandError("key must be a non-empty string")
        binding = KEY_BINDINGS.get(key if key == " " else key.lower())
        if binding is None:
            logger.debug(f"Unbound key: {key!r}")
            return
        action, bound_params = binding
        await self._handlers[action](dict(bound_params))


def _require_number(params: dict[str, Any], key: str) -> float:
    value = params.get(key)
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise CommandError(f"{key} must be a number")
    if not math.isfinite(value):
        raise CommandError(f"{key} must be finite")
    return float(value)


def _require_int(params: dict[str, Any], key: str) -> int:
    value = params.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise CommandError(f"{key} must be an integer")
    return value
