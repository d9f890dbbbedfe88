"""Messages exchanged with connected family members."""
from __future__ import annotations
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from .schemas import Item


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, Enum):
    FULL_INVENTORY = "FULL_INVENTORY"
    INVENTORY_UPDATE = "INVENTORY_UPDATE"
    MEMBER_JOINED = "MEMBER_JOINED"
    MEMBER_LEFT = "MEMBER_LEFT"
    # replies to the acting connection only
    FAMILY_JOINED = "FAMILY_JOINED"
    MUTATION_RESULT = "MUTATION_RESULT"
    DUPLICATE_FOUND = "DUPLICATE_FOUND"
    PRESENCE = "PRESENCE"
    ERROR = "ERROR"
    PONG = "PONG"


class MutationKind(str, Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class MutationEvent(BaseModel):
    kind: MutationKind
    family_id: str
    updated_by: str
    item: Optional[Item] = None
    item_id: Optional[int] = None
    timestamp: datetime = Field(default_factory=utcnow)

    def to_message(self) -> "OutboundMessage":
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "family_id": self.family_id,
            "updated_by": self.updated_by,
            "timestamp": self.timestamp,
        }
        if self.kind is MutationKind.DELETE:
            data["item_id"] = self.item_id
        else:
            data["item"] = self.item
        return OutboundMessage(MessageType.INVENTORY_UPDATE, data)


@dataclass(frozen=True)
class EncodedMessage:
    """A message serialized once, in the shapes each transport needs."""
    type: MessageType
    payload: Dict[str, Any]
    text: str

    @property
    def event(self) -> str:
        # socket.io event name
        return self.type.value.lower()


@dataclass
class OutboundMessage:
    type: MessageType
    data: Dict[str, Any] = field(default_factory=dict)

    def encode(self) -> EncodedMessage:
        payload = jsonable_encoder(self.data)
        text = json.dumps({"type": self.type.value, "data": payload})
        return EncodedMessage(type=self.type, payload=payload, text=text)


# ---- Builders ----
def full_inventory(family_id: str, items) -> OutboundMessage:
    return OutboundMessage(MessageType.FULL_INVENTORY, {
        "family_id": family_id,
        "items": list(items),
        "timestamp": utcnow(),
    })


def member_joined(member_id: str, member_name: str, color: str) -> OutboundMessage:
    return OutboundMessage(MessageType.MEMBER_JOINED, {
        "member_id": member_id,
        "member_name": member_name,
        "color": color,
        "timestamp": utcnow(),
    })


def member_left(member_id: str, member_name: str) -> OutboundMessage:
    return OutboundMessage(MessageType.MEMBER_LEFT, {
        "member_id": member_id,
        "member_name": member_name,
        "timestamp": utcnow(),
    })


def error(code: str, message: str, details: Any = None) -> OutboundMessage:
    return OutboundMessage(MessageType.ERROR, {"code": code, "message": message, "details": details})
