"""
Client -> server protocol, shared by the socket.io handlers and the /ws endpoint.

    JOIN / JOIN_FAMILY   {family_id, member_id, member_name}
    MUTATE               {op: ADD|UPDATE|DELETE, payload}
    RESOLVE_DUPLICATE    {existing_id, candidate, resolution}
    REQUEST_PRESENCE     {}
    PING                 {}
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import pydantic

from common.deps import normalize_family_code
from core.errors import AppError, ConnectionSendError, ValidationError
from . import events
from .events import MessageType, OutboundMessage
from .hub import FamilySyncHub
from .registry import Connection
from .schemas import DuplicateResolution, JoinIn, MutateIn, ResolveIn
from .service import parse_item_id, validation_details
from .transport import Transport

logger = logging.getLogger(__name__)

ITEM_ID_KEYS = ("item_id", "itemId", "id")


class NotJoinedError(AppError):
    status_code = 409
    code = "not_joined"


def _parse(model, data: Any):
    try:
        return model.model_validate(data or {})
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {model.__name__} message", details=validation_details(e)) from e


def _pop_item_id(payload: Dict[str, Any]) -> Any:
    for key in ITEM_ID_KEYS:
        if key in payload:
            return payload.pop(key)
    raise ValidationError("item_id is required")


class SyncDispatcher:
    def __init__(self, hub: FamilySyncHub):
        self.hub = hub

    async def handle(self, transport: Transport, msg_type: Optional[str], data: Optional[Dict[str, Any]]) -> None:
        kind = (msg_type or "").strip().upper()
        data = data if isinstance(data, dict) else {}
        try:
            if kind in ("JOIN", "JOIN_FAMILY"):
                await self.join(transport, data)
            elif kind == "MUTATE":
                await self.mutate(transport, data)
            elif kind == "RESOLVE_DUPLICATE":
                await self.resolve(transport, data)
            elif kind in ("REQUEST_PRESENCE", "PRESENCE"):
                await self.presence(transport)
            elif kind == "PING":
                await self.reply(transport, OutboundMessage(MessageType.PONG))
            else:
                logger.info(f"Unknown message type: {msg_type}")
                await self.reply(transport, events.error("unknown_message", f"Unknown message type: {msg_type}"))
        except AppError as e:
            await self.reply(transport, events.error(e.code, e.message, e.details))
        except ConnectionSendError as e:
            logger.warning(f"Peer {transport.key} went away while handling {kind}: {e}")
            await self.hub.leave(transport.key)

    async def disconnect(self, transport: Transport) -> None:
        await self.hub.leave(transport.key)

    # ---- Handlers ----
    async def join(self, transport: Transport, data: Dict[str, Any]) -> Connection:
        body = _parse(JoinIn, data)
        family_id = normalize_family_code(body.family_id)
        if not self.hub.is_valid_code(family_id):
            raise ValidationError("Invalid family code", details={"family_id": body.family_id})

        connection = await self.hub.join(transport, family_id, body.member_id, body.member_name)
        await self.hub.reply(connection, OutboundMessage(MessageType.FAMILY_JOINED, {
            "family_id": family_id,
            "member_id": connection.member_id,
            "color": connection.color,
            "members": self.hub.membership.list_members(family_id),
            "message": "Successfully joined family inventory sync",
        }))
        return connection

    async def mutate(self, transport: Transport, data: Dict[str, Any]) -> None:
        connection = self._joined(transport)
        body = _parse(MutateIn, data)
        payload = dict(body.payload)
        mutations = self.hub.mutations

        if body.op == "ADD":
            result = await mutations.add_item(connection.family_id, payload, connection.member_id)
            if result.status == "duplicate":
                await self.hub.reply(connection, OutboundMessage(MessageType.DUPLICATE_FOUND, {
                    "existing": result.duplicate.existing,
                    "candidate": result.duplicate.candidate,
                    "resolutions": [r.value for r in DuplicateResolution],
                }))
                return
            await self._result(connection, "ADD", "added", item=result.item)

        elif body.op == "UPDATE":
            item_id = parse_item_id(_pop_item_id(payload))
            item = await mutations.update_item(connection.family_id, item_id, payload, connection.member_id)
            await self._result(connection, "UPDATE", "updated", item=item)

        else:
            item_id = parse_item_id(_pop_item_id(payload))
            await mutations.delete_item(connection.family_id, item_id, connection.member_id)
            await self._result(connection, "DELETE", "deleted", item_id=item_id)

    async def resolve(self, transport: Transport, data: Dict[str, Any]) -> None:
        connection = self._joined(transport)
        body = _parse(ResolveIn, data)
        item = await self.hub.mutations.resolve_duplicate(
            connection.family_id, body.existing_id, body.candidate, body.resolution, connection.member_id,
        )
        status = {
            DuplicateResolution.MERGE: "merged",
            DuplicateResolution.KEEP_BOTH: "added",
            DuplicateResolution.SKIP: "skipped",
        }[body.resolution]
        await self._result(connection, "RESOLVE_DUPLICATE", status, item=item, resolution=body.resolution.value)

    async def presence(self, transport: Transport) -> None:
        connection = self._joined(transport)
        family_id = connection.family_id
        await self.hub.reply(connection, OutboundMessage(MessageType.PRESENCE, {
            "family_id": family_id,
            "members": self.hub.membership.list_members(family_id),
            "count": self.hub.membership.count(family_id),
        }))

    # ---- Replies ----
    async def reply(self, transport: Transport, message: OutboundMessage) -> None:
        connection = self.hub.connection_for(transport)
        if connection is not None:
            await self.hub.reply(connection, message)
            return
        try:
            await transport.send(message.encode())
        except ConnectionSendError as e:
            logger.debug(f"Could not reply to unjoined peer {transport.key}: {e}")

    async def _result(self, connection: Connection, op: str, status: str, **data) -> None:
        await self.hub.reply(connection, OutboundMessage(MessageType.MUTATION_RESULT, {"op": op, "status": status, **data}))

    def _joined(self, transport: Transport) -> Connection:
        connection = self.hub.connection_for(transport)
        if connection is None:
            raise NotJoinedError("Join a family before sending inventory changes")
        return connection
