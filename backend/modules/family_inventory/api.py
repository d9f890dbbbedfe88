"""
Family inventory REST endpoints.

Used for page loads and as a fallback when a client has no live connection.
Every change still goes through the hub's MutationHandler, so members who are
connected receive the same broadcasts as for socket-originated changes.
"""
from __future__ import annotations
from typing import List
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from common.deps import get_hub, normalize_family_code, valid_family_id
from .hub import FamilySyncHub
from .schemas import (
    AddItemIn, FamilyCreatedOut, FamilyCreateIn, FamilyJoinIn, Item, ItemCreateIn, MembersOut,
    ResolveDuplicateIn, UpdateItemIn,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
def family_inventory_health():
    """Health check for family inventory module"""
    return {"status": "Family inventory module ready"}


# ---- Families ----
@router.post("", response_model=FamilyCreatedOut)
async def create_family(body: FamilyCreateIn, hub: FamilySyncHub = Depends(get_hub)):
    """Create a new family and return its code"""
    member_name = body.member_name.strip()
    if not member_name:
        raise HTTPException(status_code=400, detail="Member name is required")
    family_id = await hub.create_family(member_name)
    return FamilyCreatedOut(family_id=family_id, message="Family created successfully")


@router.post("/join")
async def join_family(body: FamilyJoinIn, hub: FamilySyncHub = Depends(get_hub)):
    """Check a family code before opening a live connection. Any well-formed code can be joined."""
    family_id = normalize_family_code(body.family_id)
    if not body.member_name.strip():
        raise HTTPException(status_code=400, detail="Member name is required")
    if not hub.is_valid_code(family_id):
        raise HTTPException(status_code=404, detail="Family not found")
    logger.info(f"{body.member_name} joined family {family_id}")
    return {"message": "Successfully joined family", "family_id": family_id}


# ---- Items ----
@router.get("/{family_id}/items", response_model=List[Item])
async def list_items(family_id: str = Depends(valid_family_id), hub: FamilySyncHub = Depends(get_hub)):
    """Get the family's items, ordered by name"""
    return await run_in_threadpool(hub.repo.list_items, family_id)


@router.post("/{family_id}/items", status_code=201, response_model=Item,
             responses={409: {"description": "Possible duplicate; resolve via /items/resolve"}})
async def add_item(body: AddItemIn, family_id: str = Depends(valid_family_id), hub: FamilySyncHub = Depends(get_hub)):
    """Add an item; returns 409 with both items when it looks like one the family already has"""
    candidate = ItemCreateIn.model_validate(body.model_dump(exclude={"updated_by"}))
    result = await hub.mutations.add_item(family_id, candidate, body.updated_by)
    if result.status == "duplicate":
        return JSONResponse(status_code=409, content={
            "detail": "Duplicate item found",
            "duplicate": result.duplicate.model_dump(mode="json"),
        })
    return result.item


@router.post("/{family_id}/items/resolve")
async def resolve_duplicate(body: ResolveDuplicateIn, family_id: str = Depends(valid_family_id),
                            hub: FamilySyncHub = Depends(get_hub)):
    """Apply merge / keep-both / skip for a previously reported duplicate"""
    item = await hub.mutations.resolve_duplicate(
        family_id, body.existing_id, body.candidate, body.resolution, body.updated_by,
    )
    if item is None:
        return {"status": "skipped"}
    return {"status": "merged" if body.resolution.value == "merge" else "added", "item": item}


@router.put("/{family_id}/items/{item_id}", response_model=Item)
async def update_item(item_id: int, body: UpdateItemIn, family_id: str = Depends(valid_family_id),
                      hub: FamilySyncHub = Depends(get_hub)):
    """Update an item; 404 when the id is not in this family"""
    return await hub.mutations.update_item(family_id, item_id, body, body.updated_by)


@router.delete("/{family_id}/items/{item_id}")
async def delete_item(item_id: int, updated_by: str = Query(...), family_id: str = Depends(valid_family_id),
                      hub: FamilySyncHub = Depends(get_hub)):
    """Delete an item; 404 when the id is not in this family"""
    await hub.mutations.delete_item(family_id, item_id, updated_by)
    return {"message": "Item deleted successfully", "item_id": item_id}


# ---- Members ----
@router.get("/{family_id}/members", response_model=MembersOut)
async def list_members(family_id: str = Depends(valid_family_id), hub: FamilySyncHub = Depends(get_hub)):
    """Get members currently connected to the family"""
    return MembersOut(
        family_id=family_id,
        members=hub.membership.list_members(family_id),
        count=hub.membership.count(family_id),
    )
