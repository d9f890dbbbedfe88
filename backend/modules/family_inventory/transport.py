"""
Transport handles for live connections.

A transport knows how to push one already-encoded message to one peer and
raises ConnectionSendError when the peer is gone. Only Connection objects in
the registry call into a transport.
"""
from __future__ import annotations
import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from core.errors import ConnectionSendError
from .events import EncodedMessage

logger = logging.getLogger(__name__)


class Transport:
    key: str

    async def send(self, message: EncodedMessage) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class SocketIOTransport(Transport):
    """One socket.io session (sid) on a python-socketio AsyncServer."""

    def __init__(self, sio, sid: str, namespace: str = "/"):
        self.sio = sio
        self.sid = sid
        self.namespace = namespace
        self.key = sid

    async def send(self, message: EncodedMessage) -> None:
        # emit() to an unknown sid is a silent no-op, so check first
        if not self.sio.manager.is_connected(self.sid, self.namespace):
            raise ConnectionSendError(f"socket.io session {self.sid} is not connected")
        try:
            await self.sio.emit(message.event, message.payload, to=self.sid, namespace=self.namespace)
        except Exception as e:
            raise ConnectionSendError(str(e)) from e

    async def close(self) -> None:
        await self.sio.disconnect(self.sid, namespace=self.namespace)

    def __repr__(self):
        return f"SocketIOTransport({self.sid})"


class WebSocketTransport(Transport):
    """A plain FastAPI WebSocket speaking JSON text frames."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.key = f"ws-{uuid.uuid4().hex}"

    async def send(self, message: EncodedMessage) -> None:
        if (self.websocket.client_state != WebSocketState.CONNECTED
                or self.websocket.application_state != WebSocketState.CONNECTED):
            raise ConnectionSendError(f"websocket {self.key} is closed")
        try:
            await self.websocket.send_text(message.text)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ConnectionSendError(str(e)) from e

    async def close(self) -> None:
        if self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close()
            except RuntimeError as e:
                logger.debug(f"Websocket {self.key} already closed: {e}")

    def __repr__(self):
        return f"WebSocketTransport({self.key})"
