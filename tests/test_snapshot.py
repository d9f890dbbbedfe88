from __future__ import annotations

import asyncio
import threading

import pytest

from core.errors import ConnectionSendError, StoreError
from modules.family_inventory.events import MutationEvent, MutationKind
from modules.family_inventory.hub import FamilySyncHub
from modules.family_inventory.registry import ConnectionState
from modules.family_inventory.repo import InMemoryInventoryRepo

from conftest import FAMILY, FakeTransport, item


def test_join_sends_full_inventory_first(hub: FamilySyncHub, repo: InMemoryInventoryRepo) -> None:
    repo.insert_item(FAMILY, item("Belladonna", "200C"))
    repo.insert_item(FAMILY, item("Arnica"))
    repo.insert_item("ZZZ99999", item("Calendula"))

    alice = FakeTransport("alice")
    connection = asyncio.run(hub.join(alice, FAMILY, "alice", "Alice"))

    assert alice.types == ["FULL_INVENTORY"]
    snapshot = alice.payloads("FULL_INVENTORY")[0]
    assert snapshot["family_id"] == FAMILY
    assert [i["name"] for i in snapshot["items"]] == ["Arnica", "Belladonna"]
    assert connection.state is ConnectionState.ACTIVE


class GatedRepo(InMemoryInventoryRepo):
    """list_items blocks until released, so a broadcast can land mid-join."""

    def __init__(self):
        super().__init__()
        self.reading = threading.Event()
        self.release = threading.Event()
        self.gate = False

    def list_items(self, family_id):
        items = super().list_items(family_id)
        if self.gate:
            self.gate = False
            self.reading.set()
            self.release.wait(timeout=5)
        return items


def test_events_published_during_join_arrive_after_the_snapshot() -> None:
    repo = GatedRepo()
    # unserialized so the add is not held back by the joiner's family lock
    hub = FamilySyncHub(repo, serialize_mutations=False)

    async def scenario():
        alice = FakeTransport("alice")
        await hub.join(alice, FAMILY, "alice", "Alice")

        bob = FakeTransport("bob")
        repo.gate = True
        join = asyncio.create_task(hub.join(bob, FAMILY, "bob", "Bob"))
        await asyncio.to_thread(repo.reading.wait, 5)

        # Bob is registered but has no snapshot yet
        await hub.mutations.add_item(FAMILY, item("Arnica"), "alice")
        assert bob.sent == []

        repo.release.set()
        await join
        return bob

    bob = asyncio.run(scenario())
    assert bob.types == ["FULL_INVENTORY", "INVENTORY_UPDATE"]
    assert bob.types.count("FULL_INVENTORY") == 1


class BrokenReadsRepo(InMemoryInventoryRepo):
    def list_items(self, family_id):
        raise StoreError("Could not list items")


def test_snapshot_failure_drops_the_connection() -> None:
    hub = FamilySyncHub(BrokenReadsRepo())
    alice = FakeTransport("alice")
    with pytest.raises(StoreError):
        asyncio.run(hub.join(alice, FAMILY, "alice", "Alice"))
    assert hub.membership.count(FAMILY) == 0
    assert alice.sent == []


def test_peer_gone_before_snapshot_is_not_registered(hub: FamilySyncHub) -> None:
    alice = FakeTransport("alice")
    alice.fail = True
    with pytest.raises(ConnectionSendError):
        asyncio.run(hub.join(alice, FAMILY, "alice", "Alice"))
    assert hub.connection_for(alice) is None


def test_buffered_add_already_in_snapshot_is_dropped(hub: FamilySyncHub, repo: InMemoryInventoryRepo) -> None:
    stored = repo.insert_item(FAMILY, item("Arnica"))
    bob = FakeTransport("bob")
    connection = hub.registry.register(bob, FAMILY, "bob", "Bob")

    async def scenario():
        stale = MutationEvent(kind=MutationKind.ADD, family_id=FAMILY, updated_by="alice", item=stored)
        fresh = MutationEvent(kind=MutationKind.UPDATE, family_id=FAMILY, updated_by="alice", item=stored)
        await connection.deliver(stale.to_message().encode())
        await connection.deliver(fresh.to_message().encode())
        await hub.snapshots.send_snapshot(connection, FAMILY)

    asyncio.run(scenario())
    assert [i["name"] for i in bob.payloads("FULL_INVENTORY")[0]["items"]] == ["Arnica"]
    assert bob.types == ["FULL_INVENTORY", "INVENTORY_UPDATE"]
    assert bob.payloads("INVENTORY_UPDATE")[0]["kind"] == "UPDATE"


class GatedInsertRepo(InMemoryInventoryRepo):
    """insert_item stores the row, then blocks before the caller can publish."""

    def __init__(self):
        super().__init__()
        self.inserted = threading.Event()
        self.release = threading.Event()

    def insert_item(self, family_id, candidate):
        stored = super().insert_item(family_id, candidate)
        self.inserted.set()
        self.release.wait(timeout=5)
        return stored


def test_add_written_before_snapshot_is_not_delivered_twice() -> None:
    repo = GatedInsertRepo()
    hub = FamilySyncHub(repo, serialize_mutations=False)

    async def scenario():
        alice, bob = FakeTransport("alice"), FakeTransport("bob")
        await hub.join(alice, FAMILY, "alice", "Alice")

        add = asyncio.create_task(hub.mutations.add_item(FAMILY, item("Arnica"), "alice"))
        await asyncio.to_thread(repo.inserted.wait, 5)
        await hub.join(bob, FAMILY, "bob", "Bob")

        repo.release.set()
        await add
        return bob

    bob = asyncio.run(scenario())
    assert [i["name"] for i in bob.payloads("FULL_INVENTORY")[0]["items"]] == ["Arnica"]
    assert bob.types == ["FULL_INVENTORY"]
