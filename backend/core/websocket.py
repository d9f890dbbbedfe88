"""Socket.IO server for real-time family inventory sync.
Handles joins, presence, and live inventory changes for connected family members.
"""
import logging
from typing import Optional

import socketio

from core.config import Settings, settings as default_settings
from modules.family_inventory.dispatch import SyncDispatcher
from modules.family_inventory.hub import FamilySyncHub
from modules.family_inventory.transport import SocketIOTransport

logger = logging.getLogger(__name__)


def _cors_origins(raw: str):
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return "*"
    return [o.strip() for o in raw.split(",") if o.strip()]


def create_socket_server(hub: FamilySyncHub, cfg: Optional[Settings] = None) -> socketio.AsyncServer:
    """Build a Socket.IO server whose handlers all go through the given hub."""
    cfg = cfg or default_settings

    sio = socketio.AsyncServer(
        async_mode='asgi',
        cors_allowed_origins=_cors_origins(cfg.SIO_CORS_ALLOWED_ORIGINS),
        logger=False,
        engineio_logger=False,
        ping_timeout=cfg.SIO_PING_TIMEOUT,
        ping_interval=cfg.SIO_PING_INTERVAL,
        max_http_buffer_size=1000000,  # 1MB buffer for large inventories
        allow_upgrades=True,  # Allow upgrade from polling to WebSocket
        # Don't set socketio_path here - let the mount point handle it
    )
    dispatcher = SyncDispatcher(hub)

    def transport_for(sid: str) -> SocketIOTransport:
        return SocketIOTransport(sio, sid)

    @sio.event
    async def connect(sid, environ):
        """Handle client connection"""
        logger.info(f"Client connected: {sid}")
        await sio.emit('connection_established', {'sid': sid}, to=sid)

    @sio.event
    async def disconnect(sid, *args):
        """Handle client disconnection"""
        logger.info(f"Client disconnected: {sid}")
        await dispatcher.disconnect(transport_for(sid))

    @sio.event
    async def join_family(sid, data):
        """Member joins a family's live inventory"""
        await dispatcher.handle(transport_for(sid), 'JOIN', data)

    @sio.event
    async def mutate(sid, data):
        """Add, update or delete an item: {op, payload}"""
        await dispatcher.handle(transport_for(sid), 'MUTATE', data)

    @sio.event
    async def resolve_duplicate(sid, data):
        """Merge / keep-both / skip after a duplicate_found reply"""
        await dispatcher.handle(transport_for(sid), 'RESOLVE_DUPLICATE', data)

    @sio.event
    async def request_presence(sid, data=None):
        """Request current presence information"""
        await dispatcher.handle(transport_for(sid), 'REQUEST_PRESENCE', data)

    @sio.event
    async def heartbeat(sid, data=None):
        """Client keep-alive; answered with pong"""
        await dispatcher.handle(transport_for(sid), 'PING', data)

    return sio


def wrap_with_socketio(sio: socketio.AsyncServer, fastapi_app, cfg: Optional[Settings] = None):
    """Wrap the FastAPI app with Socket.IO; everything else passes through."""
    cfg = cfg or default_settings
    return socketio.ASGIApp(
        socketio_server=sio,
        other_asgi_app=fastapi_app,
        socketio_path=cfg.SOCKETIO_PATH,
    )


__all__ = ['create_socket_server', 'wrap_with_socketio']
