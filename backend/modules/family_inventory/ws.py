"""Plain WebSocket endpoint for clients that don't speak socket.io."""
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from . import events
from .dispatch import SyncDispatcher
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws")
async def family_inventory_ws(websocket: WebSocket):
    await websocket.accept()
    transport = WebSocketTransport(websocket)
    dispatcher = SyncDispatcher(websocket.app.state.hub)
    logger.info(f"New WebSocket connection established: {transport.key}")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await dispatcher.reply(transport, events.error("bad_message", "Failed to process message"))
                continue
            if not isinstance(message, dict):
                await dispatcher.reply(transport, events.error("bad_message", "Messages must be JSON objects"))
                continue
            await dispatcher.handle(transport, message.get("type"), message)
    except WebSocketDisconnect:
        logger.info(f"WebSocket connection closed: {transport.key}")
    except Exception as e:
        logger.error(f"WebSocket error on {transport.key}: {e}", exc_info=True)
    finally:
        await dispatcher.disconnect(transport)
