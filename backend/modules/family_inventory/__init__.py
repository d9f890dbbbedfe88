# Family inventory module
"""
Family inventory for family-inventory-sync

This module handles:
- A shared item list per family, persisted in PostgreSQL (or memory for dev)
- Live sync: every connected member sees adds, edits and deletes as they happen
- Presence: who is currently connected to a family

Pieces:
- hub: FamilySyncHub, wires registry, broadcaster, snapshots, membership and mutations
- api: REST endpoints (page loads, fallback when no live connection)
- ws: plain WebSocket endpoint; core.websocket hosts the socket.io one
"""

from .api import router as rest_router
from .ws import router as ws_router
from .hub import FamilySyncHub

__all__ = ["rest_router", "ws_router", "FamilySyncHub"]
