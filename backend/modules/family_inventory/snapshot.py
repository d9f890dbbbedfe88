from __future__ import annotations
import logging

from starlette.concurrency import run_in_threadpool

from .events import full_inventory
from .registry import Connection
from .repo import InventoryRepo

logger = logging.getLogger(__name__)


class SnapshotProvider:
    """Sends a joining connection the family's full item list, once.

    There is no event log: a (re)joining member always rebuilds from this
    snapshot. Fine for the tens-to-hundreds of items a family keeps.
    """

    def __init__(self, repo: InventoryRepo):
        self.repo = repo

    async def send_snapshot(self, connection: Connection, family_id: str) -> int:
        """Send FULL_INVENTORY, then release any events buffered meanwhile. Returns the item count."""
        items = await run_in_threadpool(self.repo.list_items, family_id)
        await connection.send_now(full_inventory(family_id, items).encode())
        connection.mark_joined(item.id for item in items)
        await connection.flush_pending()
        logger.info(f"Sent {len(items)} item(s) to {connection.member_name} in family {family_id}")
        return len(items)
