from __future__ import annotations

import asyncio
import time

from modules.family_inventory.hub import FamilySyncHub
from modules.family_inventory.repo import InMemoryInventoryRepo

from conftest import FAMILY, FakeTransport, item


def test_alice_and_bob_share_one_inventory(hub: FamilySyncHub, repo: InMemoryInventoryRepo) -> None:
    repo.insert_item(FAMILY, item("Arnica", quantity=2))

    async def scenario():
        alice, bob = FakeTransport("alice"), FakeTransport("bob")
        await hub.join(alice, FAMILY, "alice", "Alice")
        alice.clear()

        await hub.join(bob, FAMILY, "bob", "Bob")
        assert bob.types == ["FULL_INVENTORY"]
        assert [i["name"] for i in bob.payloads("FULL_INVENTORY")[0]["items"]] == ["Arnica"]
        assert alice.types == ["MEMBER_JOINED"]
        assert alice.payloads("MEMBER_JOINED")[0]["member_name"] == "Bob"

        await hub.mutations.add_item(FAMILY, item("Belladonna", "200C", quantity=1), "alice")
        update = bob.payloads("INVENTORY_UPDATE")[0]
        assert update["kind"] == "ADD"
        assert update["item"]["name"] == "Belladonna"

        await hub.leave(bob.key)
        assert alice.payloads("MEMBER_LEFT")[0]["member_name"] == "Bob"
        assert hub.membership.count(FAMILY) == 1

    asyncio.run(scenario())


def test_rejoin_replaces_the_previous_registration(hub: FamilySyncHub) -> None:
    async def scenario():
        alice = FakeTransport("alice")
        await hub.join(alice, FAMILY, "alice", "Alice")
        await hub.join(alice, "ZZZ99999", "alice", "Alice")
        assert hub.membership.count(FAMILY) == 0
        assert hub.membership.count("ZZZ99999") == 1
        assert alice.types.count("FULL_INVENTORY") == 2

    asyncio.run(scenario())


def test_create_family_issues_unused_codes(hub: FamilySyncHub, repo: InMemoryInventoryRepo) -> None:
    code = asyncio.run(hub.create_family("Alice"))
    assert hub.is_valid_code(code)
    assert len(code) == 8
    assert not repo.family_exists(code)


def test_code_validation() -> None:
    hub = FamilySyncHub(InMemoryInventoryRepo(), code_length=8)
    assert hub.is_valid_code(FAMILY)
    assert not hub.is_valid_code("abc12345")
    assert not hub.is_valid_code("ABC1234")
    assert not hub.is_valid_code("ABC-2345")


def test_close_forgets_connections(hub: FamilySyncHub) -> None:
    async def scenario():
        alice = FakeTransport("alice")
        await hub.join(alice, FAMILY, "alice", "Alice")
        await hub.close()
        assert alice.closed
        assert hub.membership.count(FAMILY) == 0

    asyncio.run(scenario())


class SlowReadsRepo(InMemoryInventoryRepo):
    """Widens the gap between duplicate check and insert."""

    def list_items(self, family_id):
        items = super().list_items(family_id)
        time.sleep(0.1)
        return items


def _two_concurrent_adds(serialize: bool):
    repo = SlowReadsRepo()
    hub = FamilySyncHub(repo, serialize_mutations=serialize)

    async def scenario():
        return await asyncio.gather(
            hub.mutations.add_item(FAMILY, item("Arnica"), "alice"),
            hub.mutations.add_item(FAMILY, item("Arnica Montana"), "bob"),
        )

    results = asyncio.run(scenario())
    return [r.status for r in results], repo.list_items(FAMILY)


def test_serialized_adds_see_each_other() -> None:
    statuses, stored = _two_concurrent_adds(serialize=True)
    assert statuses == ["added", "duplicate"]
    assert len(stored) == 1


def test_unserialized_adds_can_both_pass_duplicate_detection() -> None:
    statuses, stored = _two_concurrent_adds(serialize=False)
    assert statuses == ["added", "added"]
    assert len(stored) == 2
