"""
Connection registry for family inventory sync.

Tracks which live connections belong to which family, and the member identity
behind each connection. This is the only mutable state shared between joins,
leaves and broadcasts.
"""
from __future__ import annotations
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Union

from core.errors import ConnectionSendError
from .events import EncodedMessage, MessageType, utcnow
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_MEMBER_NAME = "Family Member"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"   # registered, snapshot not sent yet
    JOINED = "joined"           # snapshot sent, flushing buffered events
    ACTIVE = "active"
    LEFT = "left"


class Connection:
    """A live session bound to one family and one member."""

    def __init__(self, transport: Transport, family_id: str, member_id: str, member_name: str, color: str):
        self._transport = transport
        self.family_id = family_id
        self.member_id = member_id
        self.member_name = member_name
        self.color = color
        self.joined_at: datetime = utcnow()
        self.state = ConnectionState.CONNECTING
        self._pending: List[EncodedMessage] = []
        # ids already delivered in FULL_INVENTORY; a later ADD for one of them is stale
        self._snapshot_ids: Set[int] = set()

    @property
    def key(self) -> str:
        return self._transport.key

    async def send_now(self, message: EncodedMessage) -> None:
        """Send directly, bypassing the pre-snapshot buffer."""
        if self.state is ConnectionState.LEFT:
            raise ConnectionSendError(f"connection {self.key} already left")
        await self._transport.send(message)

    async def deliver(self, message: EncodedMessage) -> None:
        """Send a broadcast message, holding it back until the snapshot went out."""
        if self.state in (ConnectionState.CONNECTING, ConnectionState.JOINED):
            self._pending.append(message)
            return
        if self._in_snapshot(message):
            return
        await self.send_now(message)

    def mark_joined(self, item_ids: Iterable[int] = ()) -> None:
        if self.state is ConnectionState.CONNECTING:
            self._snapshot_ids = set(item_ids)
            self.state = ConnectionState.JOINED

    async def flush_pending(self) -> None:
        while self._pending:
            message = self._pending.pop(0)
            if self._in_snapshot(message):
                continue
            await self.send_now(message)
        if self.state is ConnectionState.JOINED:
            self.state = ConnectionState.ACTIVE

    def _in_snapshot(self, message: EncodedMessage) -> bool:
        # write landed before the snapshot read, publish after registration
        if message.type is not MessageType.INVENTORY_UPDATE or message.payload.get("kind") != "ADD":
            return False
        item = message.payload.get("item") or {}
        return item.get("id") in self._snapshot_ids

    async def close(self) -> None:
        await self._transport.close()

    def __repr__(self):
        return f"Connection({self.member_name!r}@{self.family_id}, {self.state.value})"


class ConnectionRegistry:
    """Maps family id -> live connections, and connection key -> connection"""

    def __init__(self):
        # family_id -> {connection key: Connection}
        self.families: Dict[str, Dict[str, Connection]] = {}
        # connection key -> Connection
        self.sessions: Dict[str, Connection] = {}
        self.member_colors = [
            '#FF6B6B', '#4ECDC4', '#45B7D1', '#FFA07A',
            '#98D8C8', '#F7DC6F', '#BB8FCE', '#85C1E2'
        ]
        self.color_index = 0

    def get_member_color(self) -> str:
        """Get next available color for a member"""
        color = self.member_colors[self.color_index]
        self.color_index = (self.color_index + 1) % len(self.member_colors)
        return color

    def register(self, transport: Transport, family_id: str, member_id: str,
                 member_name: Optional[str] = None) -> Connection:
        connection = Connection(
            transport,
            family_id=family_id,
            member_id=member_id,
            member_name=member_name or DEFAULT_MEMBER_NAME,
            color=self.get_member_color(),
        )
        self.families.setdefault(family_id, {})[connection.key] = connection
        self.sessions[connection.key] = connection
        logger.info(f"Member {connection.member_name} ({member_id}) registered in family {family_id}")
        return connection

    def unregister(self, target: Union[Connection, str]) -> Optional[Connection]:
        """Remove a connection. Returns it, or None when it was not registered."""
        key = target.key if isinstance(target, Connection) else target
        connection = self.sessions.pop(key, None)
        if connection is None:
            return None

        members = self.families.get(connection.family_id)
        if members is not None:
            members.pop(key, None)
            # Clean up empty families
            if not members:
                del self.families[connection.family_id]

        connection.state = ConnectionState.LEFT
        logger.info(f"Member {connection.member_name} ({connection.member_id}) left family {connection.family_id}")
        return connection

    def get(self, key: str) -> Optional[Connection]:
        return self.sessions.get(key)

    def connections(self, family_id: str) -> List[Connection]:
        """Copy of the family's current connections, safe to iterate across awaits."""
        return list(self.families.get(family_id, {}).values())

    def has_family(self, family_id: str) -> bool:
        return family_id in self.families

    def clear(self) -> List[Connection]:
        connections = list(self.sessions.values())
        for connection in connections:
            connection.state = ConnectionState.LEFT
        self.families.clear()
        self.sessions.clear()
        return connections
