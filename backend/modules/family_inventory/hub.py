"""
FamilySyncHub: the real-time core, wired together.

One hub is built per app (see app.create_app) and injected into the REST
router, the socket.io handlers and the /ws endpoint. It owns the connection
registry and composes the broadcaster, snapshot provider, membership view and
mutation handler around it.
"""
from __future__ import annotations
import logging
import secrets
import string
from typing import Optional, Union

from starlette.concurrency import run_in_threadpool

from core.config import Settings
from core.errors import ConnectionSendError, ValidationError
from .broadcast import BroadcastHub
from .events import OutboundMessage, member_joined, member_left
from .membership import MembershipDirectory
from .registry import Connection, ConnectionRegistry
from .repo import InventoryRepo
from .service import FamilyLocks, MutationHandler
from .snapshot import SnapshotProvider
from .transport import Transport

logger = logging.getLogger(__name__)

FAMILY_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 10


class FamilySyncHub:
    def __init__(self, repo: InventoryRepo, *, serialize_mutations: bool = True, code_length: int = 8):
        self.repo = repo
        self.code_length = code_length
        self.registry = ConnectionRegistry()
        self.locks = FamilyLocks(enabled=serialize_mutations)
        self.broadcaster = BroadcastHub(self.registry, on_send_failure=self.leave)
        self.snapshots = SnapshotProvider(repo)
        self.membership = MembershipDirectory(self.registry)
        self.mutations = MutationHandler(repo, self.broadcaster, self.locks)

    @classmethod
    def from_settings(cls, repo: InventoryRepo, cfg: Settings) -> "FamilySyncHub":
        return cls(repo, serialize_mutations=cfg.SERIALIZE_FAMILY_MUTATIONS, code_length=cfg.FAMILY_CODE_LENGTH)

    # ---- Families ----
    async def create_family(self, member_name: str) -> str:
        """Issue a fresh family code not used by any stored item or live connection."""
        for _ in range(MAX_CODE_ATTEMPTS):
            code = "".join(secrets.choice(FAMILY_CODE_ALPHABET) for _ in range(self.code_length))
            if self.registry.has_family(code):
                continue
            if await run_in_threadpool(self.repo.family_exists, code):
                continue
            logger.info(f"Created family {code} for {member_name}")
            return code
        raise RuntimeError("Could not allocate an unused family code")

    def is_valid_code(self, family_id: str) -> bool:
        return (len(family_id) == self.code_length
                and all(ch in FAMILY_CODE_ALPHABET for ch in family_id))

    # ---- Lifecycle ----
    async def join(self, transport: Transport, family_id: str, member_id: str,
                   member_name: Optional[str] = None) -> Connection:
        """Register, send the snapshot, then announce the member to the rest of the family.

        Raises StoreError when the snapshot cannot be read (the connection is
        dropped again without any notice) and ConnectionSendError when the
        joining peer is already gone.
        """
        if not family_id or not member_id:
            raise ValidationError("family_id and member_id are required")

        previous = self.registry.get(transport.key)
        if previous is not None:
            # one family per connection: re-joining replaces the old registration
            await self.leave(previous)

        async with self.locks.guard(family_id):
            connection = self.registry.register(transport, family_id, member_id, member_name)
            try:
                await self.snapshots.send_snapshot(connection, family_id)
            except ConnectionSendError:
                logger.warning(f"{connection.member_name} went away before the snapshot was sent")
                self.registry.unregister(connection)
                raise
            except Exception:
                self.registry.unregister(connection)
                raise

            await self.broadcaster.publish(
                family_id,
                member_joined(connection.member_id, connection.member_name, connection.color),
                exclude_connection=connection,
            )
        logger.info(f"Family member {connection.member_name} joined family {family_id} "
                    f"({self.membership.count(family_id)} online)")
        return connection

    async def leave(self, target: Union[Connection, str]) -> Optional[Connection]:
        """Drop a connection and tell the rest of its family. Safe to call twice.

        Never takes the family lock: it runs from inside publish() when a send fails.
        """
        connection = self.registry.unregister(target)
        if connection is None:
            return None
        await self.broadcaster.publish(
            connection.family_id,
            member_left(connection.member_id, connection.member_name),
            exclude_connection=connection,
        )
        return connection

    async def reply(self, connection: Connection, message: OutboundMessage) -> bool:
        return await self.broadcaster.send_to(connection, message)

    def connection_for(self, transport: Transport) -> Optional[Connection]:
        return self.registry.get(transport.key)

    async def close(self) -> None:
        """Tear down at server stop: forget every connection and release the store."""
        connections = self.registry.clear()
        for connection in connections:
            try:
                await connection.close()
            except Exception as e:
                logger.debug(f"Error closing {connection}: {e}")
        await run_in_threadpool(self.repo.close)
        logger.info(f"Family sync hub closed ({len(connections)} connection(s) dropped)")
