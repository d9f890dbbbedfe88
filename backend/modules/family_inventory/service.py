from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union
import asyncio
import logging
import weakref

import pydantic
from starlette.concurrency import run_in_threadpool

from core.errors import NotFoundError, ValidationError
from .broadcast import BroadcastHub
from .duplicates import find_duplicate
from .events import MutationEvent, MutationKind
from .repo import InventoryRepo
from .schemas import (
    AddResult, DuplicateDescriptor, DuplicateResolution, Item, ItemCreateIn, ItemUpdateIn,
)

logger = logging.getLogger(__name__)


def validation_details(exc: pydantic.ValidationError) -> List[Dict[str, Any]]:
    return [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def parse_candidate(candidate: Union[ItemCreateIn, Dict[str, Any], None]) -> ItemCreateIn:
    if isinstance(candidate, ItemCreateIn):
        return candidate
    if not isinstance(candidate, dict):
        raise ValidationError("Item payload must be an object")
    try:
        return ItemCreateIn.model_validate(candidate)
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid item", details=validation_details(e)) from e


def parse_changes(partial: Union[ItemUpdateIn, Dict[str, Any], None]) -> Dict[str, Any]:
    if isinstance(partial, ItemUpdateIn):
        update = partial
    elif isinstance(partial, dict):
        try:
            update = ItemUpdateIn.model_validate(partial)
        except pydantic.ValidationError as e:
            raise ValidationError("Invalid item update", details=validation_details(e)) from e
    else:
        raise ValidationError("Update payload must be an object")
    changes = update.changes()
    if not changes:
        raise ValidationError("No fields to update")
    return changes


def parse_item_id(item_id: Any) -> int:
    """Whole ids only: ints or digit strings. Floats and bools are rejected, not truncated."""
    if isinstance(item_id, str) and item_id.strip().isascii() and item_id.strip().isdigit():
        value = int(item_id.strip())
    elif isinstance(item_id, int) and not isinstance(item_id, bool):
        value = item_id
    else:
        raise ValidationError("item_id must be an integer", details={"item_id": item_id})
    if value <= 0:
        raise ValidationError("item_id must be positive", details={"item_id": item_id})
    return value


def _require(value: Optional[str], field: str) -> str:
    value = (value or "").strip() if isinstance(value, str) else value
    if not value:
        raise ValidationError(f"{field} is required")
    return value


class FamilyLocks:
    """One asyncio.Lock per family, created on demand and dropped once nobody holds or waits on it."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def guard(self, family_id: str):
        if not self.enabled:
            yield
            return
        lock = self._locks.get(family_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[family_id] = lock
        async with lock:
            yield


class MutationHandler:
    """Validates and applies add/update/delete, then hands the event to the broadcaster.

    Shape of every call: validate -> write to the store -> publish only after
    the write is confirmed. A StoreError from the repo propagates untouched
    and nothing is published.
    """

    def __init__(self, repo: InventoryRepo, broadcaster: BroadcastHub, locks: Optional[FamilyLocks] = None):
        self.repo = repo
        self.broadcaster = broadcaster
        self.locks = locks or FamilyLocks()

    # ---- Add ----
    async def add_item(self, family_id: str, candidate, member_id: str) -> AddResult:
        family_id = _require(family_id, "family_id")
        member_id = _require(member_id, "updated_by")
        candidate = parse_candidate(candidate)

        async with self.locks.guard(family_id):
            existing_items = await run_in_threadpool(self.repo.list_items, family_id)
            existing = find_duplicate(existing_items, candidate)
            if existing is not None:
                logger.info(f"Duplicate of item {existing.id} ({existing.name} {existing.potency}) "
                            f"offered in family {family_id} by {member_id}")
                return AddResult(
                    status="duplicate",
                    duplicate=DuplicateDescriptor(existing=existing, candidate=candidate),
                )
            item = await self._insert(family_id, candidate, member_id)
        return AddResult(status="added", item=item)

    async def resolve_duplicate(self, family_id: str, existing_id, candidate,
                                resolution: Union[DuplicateResolution, str], member_id: str) -> Optional[Item]:
        """Apply the member's choice for a duplicate. Returns the stored item, or None for skip."""
        family_id = _require(family_id, "family_id")
        member_id = _require(member_id, "updated_by")
        existing_id = parse_item_id(existing_id)
        candidate = parse_candidate(candidate)
        try:
            resolution = DuplicateResolution(resolution)
        except ValueError:
            raise ValidationError("resolution must be one of: merge, keep-both, skip",
                                  details={"resolution": resolution})

        if resolution is DuplicateResolution.SKIP:
            logger.info(f"Duplicate skipped in family {family_id} by {member_id}")
            return None

        if resolution is DuplicateResolution.KEEP_BOTH:
            async with self.locks.guard(family_id):
                return await self._insert(family_id, candidate, member_id)

        async with self.locks.guard(family_id):
            merged = await run_in_threadpool(self.repo.increment_quantity, family_id, existing_id, candidate.quantity)
            if merged is None:
                raise NotFoundError(f"Item {existing_id} not found in family {family_id}")
            await self._publish(MutationEvent(kind=MutationKind.UPDATE, family_id=family_id,
                                              updated_by=member_id, item=merged))
        logger.info(f"Merged {candidate.quantity} into item {existing_id} in family {family_id}")
        return merged

    # ---- Update ----
    async def update_item(self, family_id: str, item_id, partial, member_id: str) -> Item:
        family_id = _require(family_id, "family_id")
        member_id = _require(member_id, "updated_by")
        item_id = parse_item_id(item_id)
        changes = parse_changes(partial)

        async with self.locks.guard(family_id):
            updated = await run_in_threadpool(self.repo.update_item, family_id, item_id, changes)
            if updated is None:
                raise NotFoundError(f"Item {item_id} not found in family {family_id}")
            await self._publish(MutationEvent(kind=MutationKind.UPDATE, family_id=family_id,
                                              updated_by=member_id, item=updated))
        return updated

    # ---- Delete ----
    async def delete_item(self, family_id: str, item_id, member_id: str) -> None:
        family_id = _require(family_id, "family_id")
        member_id = _require(member_id, "updated_by")
        item_id = parse_item_id(item_id)

        async with self.locks.guard(family_id):
            deleted = await run_in_threadpool(self.repo.delete_item, family_id, item_id)
            if not deleted:
                raise NotFoundError(f"Item {item_id} not found in family {family_id}")
            await self._publish(MutationEvent(kind=MutationKind.DELETE, family_id=family_id,
                                              updated_by=member_id, item_id=item_id))

    # ---- Internals ----
    async def _insert(self, family_id: str, candidate: ItemCreateIn, member_id: str) -> Item:
        item = await run_in_threadpool(self.repo.insert_item, family_id, candidate)
        await self._publish(MutationEvent(kind=MutationKind.ADD, family_id=family_id,
                                          updated_by=member_id, item=item))
        return item

    async def _publish(self, event: MutationEvent) -> None:
        sent = await self.broadcaster.publish(event.family_id, event.to_message(), exclude_member_id=event.updated_by)
        logger.info(f"{event.kind.value} in family {event.family_id} by {event.updated_by} -> {sent} member(s)")
