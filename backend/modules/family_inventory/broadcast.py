from __future__ import annotations
import logging
from typing import Awaitable, Callable, List, Optional

from core.errors import ConnectionSendError
from .events import OutboundMessage
from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class BroadcastHub:
    """Fan-out of one message to every live connection of a family.

    Dead connections are found lazily: a failed send hands the connection to
    on_send_failure (the hub's leave) once the loop is done.
    """

    def __init__(self, registry: ConnectionRegistry,
                 on_send_failure: Optional[Callable[[Connection], Awaitable[None]]] = None):
        self.registry = registry
        self.on_send_failure = on_send_failure

    async def publish(self, family_id: str, message: OutboundMessage,
                      exclude_member_id: Optional[str] = None,
                      exclude_connection: Optional[Connection] = None) -> int:
        """Send to the family, skipping the excluded member/connection. Returns the number of successful sends."""
        targets = self.registry.connections(family_id)
        if not targets:
            return 0

        encoded = message.encode()
        sent = 0
        dead: List[Connection] = []
        for connection in targets:
            if exclude_member_id and connection.member_id == exclude_member_id:
                continue
            if exclude_connection is not None and connection is exclude_connection:
                continue
            try:
                await connection.deliver(encoded)
                sent += 1
            except ConnectionSendError as e:
                logger.warning(f"Error sending {message.type.value} to {connection.member_name} in family {family_id}: {e}")
                dead.append(connection)

        for connection in dead:
            await self._prune(connection)
        return sent

    async def send_to(self, connection: Connection, message: OutboundMessage) -> bool:
        """Direct reply to one connection. A failed send prunes it like a failed broadcast."""
        try:
            await connection.send_now(message.encode())
            return True
        except ConnectionSendError as e:
            logger.warning(f"Error replying {message.type.value} to {connection.member_name}: {e}")
            await self._prune(connection)
            return False

    async def _prune(self, connection: Connection) -> None:
        if self.on_send_failure is not None:
            await self.on_send_failure(connection)
        else:
            self.registry.unregister(connection)
