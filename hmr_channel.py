"""Named-event messaging between the dev server and browser clients.

Frames follow the dev server's custom-event shape in both directions:

    {"type": "custom", "event": "<name>", "data": <payload>}

Every inbound event is handled as an independent asyncio task so a slow remote
call for one client never holds up other connections.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Set

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

logger = logging.getLogger("ssam-replicate")

Handler = Callable[[Any, "ClientConnection"], Awaitable[None]]


class ClientConnection:
    """One browser connection; the unit of message addressing"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def connected(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, event: str, data: Any = None):
        if not self.connected:
            logger.debug("Dropping '%s' for a closed connection", event)
            return
        try:
            await self.websocket.send_json({"type": "custom", "event": event, "data": data})
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("Dropping '%s' for a closed connection: %s", event, e)


class MessageChannel:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, handler: Handler):
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Handler):
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, event: str, data: Any, client: ClientConnection) -> List[asyncio.Task]:
        handlers = self._handlers.get(event)
        if not handlers:
            logger.debug("No handler registered for '%s'", event)
            return []
        tasks = []
        for handler in list(handlers):
            task = asyncio.create_task(handler(data, client))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)
            tasks.append(task)
        return tasks

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Handler failed: %s", exc, exc_info=exc)

    async def endpoint(self, websocket: WebSocket):
        """Websocket endpoint serving one client until it disconnects"""
        await websocket.accept()
        client = ClientConnection(websocket)
        await websocket.send_json({"type": "connected"})
        logger.debug("Client connected: %s", websocket.client)
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except (ValueError, TypeError, KeyError) as e:
                    # not a JSON text frame
                    logger.warning("Ignoring malformed frame: %s", e)
                    continue
                if not isinstance(message, dict) or message.get("type") != "custom":
                    continue
                event = message.get("event")
                if not isinstance(event, str):
                    logger.warning("Ignoring custom frame without event name")
                    continue
                self.dispatch(event, message.get("data"), client)
        except WebSocketDisconnect:
            logger.debug("Client disconnected: %s", websocket.client)
