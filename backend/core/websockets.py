import asyncio
import logging
from typing import Any

import socketio

logger = logging.getLogger("gridpulse.websockets")


class WebSocketManager:
    """
    Socket.IO push channel for replay sessions.

    Clients send ``subscribe`` with a session id to join that session's room.
    Playback threads publish through ``publish``, which routes each event to
    the room named by its ``session_id``.
    """

    _instance: "WebSocketManager | None" = None
    sio: socketio.AsyncServer
    loop: asyncio.AbstractEventLoop | None = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.sio = socketio.AsyncServer(
                async_mode="asgi",
                cors_allowed_origins="*",
                logger=False,
                engineio_logger=False,
            )
            cls._instance.loop = None
            cls._instance._register_handlers()
        return cls._instance

    def _register_handlers(self) -> None:
        sio = self.sio

        @sio.event
        async def subscribe(sid: str, data: Any) -> dict[str, Any]:
            session_id = data.get("session_id") if isinstance(data, dict) else None
            if not session_id:
                return {"ok": False, "error": "session_id required"}
            await sio.enter_room(sid, session_id)
            logger.debug("Client %s subscribed to %s", sid, session_id)
            return {"ok": True, "session_id": session_id}

        @sio.event
        async def unsubscribe(sid: str, data: Any) -> dict[str, Any]:
            session_id = data.get("session_id") if isinstance(data, dict) else None
            if session_id:
                await sio.leave_room(sid, session_id)
            return {"ok": True}

    def set_loop(self, loop: asyncio.AbstractEventLoop):
        """Capture the running event loop on startup."""
        self.loop = loop
        logger.info("Push channel bound to event loop")

    def publish(self, event: str, data: dict[str, Any]) -> None:
        """
        Send a playback event from a driver thread to the session's room.

        Events are dropped with a warning until the server loop is running.
        """
        if self.loop is None or self.loop.is_closed():
            logger.warning("Dropping %s for %s: no event loop", event, data.get("session_id"))
            return

        try:
            asyncio.run_coroutine_threadsafe(
                self.sio.emit(event, data, to=data.get("session_id")),
                self.loop,  # pyright: ignore [reportUnknownMemberType, reportUnknownArgumentType]
            )
        except RuntimeError as e:
            logger.error("Failed to schedule %s: %s", event, e)


# Global instance
ws_manager = WebSocketManager()
