from __future__ import annotations

import os
from typing import Any, Dict, List

import pytest

# Never reach for a developer's PostgreSQL from unit tests.
os.environ["STORE_BACKEND"] = "memory"
os.environ.pop("FAMILY_DB_HOST", None)

from core.config import Settings
from core.errors import ConnectionSendError
from modules.family_inventory.events import EncodedMessage
from modules.family_inventory.hub import FamilySyncHub
from modules.family_inventory.repo import InMemoryInventoryRepo
from modules.family_inventory.schemas import ItemCreateIn
from modules.family_inventory.transport import Transport

FAMILY = "ABC12345"
OTHER_FAMILY = "ZZZ99999"


class FakeTransport(Transport):
    """Records what the server sends; flip `fail` to simulate a dropped peer."""

    def __init__(self, key: str):
        self.key = key
        self.sent: List[EncodedMessage] = []
        self.fail = False
        self.closed = False

    async def send(self, message: EncodedMessage) -> None:
        if self.fail:
            raise ConnectionSendError(f"{self.key} is gone")
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True

    @property
    def types(self) -> List[str]:
        return [m.type.value for m in self.sent]

    def payloads(self, msg_type: str) -> List[Dict[str, Any]]:
        return [m.payload for m in self.sent if m.type.value == msg_type]

    def clear(self) -> None:
        self.sent.clear()


def item(name: str, potency: str = "30C", quantity: int = 1, **extra: Any) -> ItemCreateIn:
    return ItemCreateIn(name=name, potency=potency, company="Boiron", location="Kitchen",
                        quantity=quantity, **extra)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(STORE_BACKEND="memory", FAMILY_DB_HOST=None)


@pytest.fixture
def repo() -> InMemoryInventoryRepo:
    return InMemoryInventoryRepo()


@pytest.fixture
def hub(repo: InMemoryInventoryRepo) -> FamilySyncHub:
    return FamilySyncHub(repo)
