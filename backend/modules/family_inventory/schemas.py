from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

REQUIRED_TEXT_FIELDS = ("name", "potency", "company", "location")


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


# ---- Items ----
class ItemCreateIn(BaseModel):
    """Candidate item as submitted by a member (no id, no family)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    potency: str
    company: str
    location: str
    sub_location: Optional[str] = Field(default=None, validation_alias=AliasChoices("sub_location", "subLocation"))
    bottle_size: Optional[str] = Field(default=None, validation_alias=AliasChoices("bottle_size", "bottleSize"))
    quantity: int = Field(default=0, ge=0)

    @field_validator(*REQUIRED_TEXT_FIELDS)
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("sub_location", "bottle_size")
    @classmethod
    def _strip_extras(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)


class ItemUpdateIn(BaseModel):
    """Partial update. family_id, id and created_at are not updatable and are dropped."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    potency: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    sub_location: Optional[str] = Field(default=None, validation_alias=AliasChoices("sub_location", "subLocation"))
    bottle_size: Optional[str] = Field(default=None, validation_alias=AliasChoices("bottle_size", "bottleSize"))
    quantity: Optional[int] = Field(default=None, ge=0)

    @field_validator(*REQUIRED_TEXT_FIELDS)
    @classmethod
    def _strip_required(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("sub_location", "bottle_size")
    @classmethod
    def _strip_extras(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually sent (explicit nulls clear the optional columns)."""
        fields = self.model_dump(exclude_unset=True, include=set(ItemUpdateIn.model_fields))
        # required columns cannot be nulled
        return {k: v for k, v in fields.items() if v is not None or k in ("sub_location", "bottle_size")}


class Item(BaseModel):
    id: int
    family_id: str
    name: str
    potency: str
    company: str
    location: str
    sub_location: Optional[str] = None
    bottle_size: Optional[str] = None
    quantity: int
    created_at: datetime


# ---- Duplicates ----
class DuplicateResolution(str, Enum):
    MERGE = "merge"
    KEEP_BOTH = "keep-both"
    SKIP = "skip"


class DuplicateDescriptor(BaseModel):
    existing: Item
    candidate: ItemCreateIn


class AddResult(BaseModel):
    status: Literal["added", "duplicate"]
    item: Optional[Item] = None
    duplicate: Optional[DuplicateDescriptor] = None


# ---- REST inputs ----
class FamilyCreateIn(BaseModel):
    member_name: str = Field(validation_alias=AliasChoices("member_name", "memberName"))


class FamilyJoinIn(BaseModel):
    family_id: str = Field(validation_alias=AliasChoices("family_id", "familyId"))
    member_name: str = Field(validation_alias=AliasChoices("member_name", "memberName"))


class AddItemIn(ItemCreateIn):
    updated_by: str = Field(validation_alias=AliasChoices("updated_by", "updatedBy"))


class UpdateItemIn(ItemUpdateIn):
    updated_by: str = Field(validation_alias=AliasChoices("updated_by", "updatedBy"))


class ResolveDuplicateIn(BaseModel):
    existing_id: int = Field(validation_alias=AliasChoices("existing_id", "existingId"))
    candidate: ItemCreateIn
    resolution: DuplicateResolution
    updated_by: str = Field(validation_alias=AliasChoices("updated_by", "updatedBy"))


# ---- Real-time inputs ----
class JoinIn(BaseModel):
    family_id: str = Field(validation_alias=AliasChoices("family_id", "familyId", "group_id", "groupId"))
    member_id: str = Field(validation_alias=AliasChoices("member_id", "memberId"))
    member_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("member_name", "memberName"))

    @field_validator("family_id", "member_id")
    @classmethod
    def _required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class MutateIn(BaseModel):
    op: Literal["ADD", "UPDATE", "DELETE"]
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("op", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class ResolveIn(BaseModel):
    existing_id: Any = Field(validation_alias=AliasChoices("existing_id", "existingId"))
    candidate: Dict[str, Any]
    resolution: DuplicateResolution


# ---- Outputs ----
class MemberOut(BaseModel):
    member_id: str
    member_name: str
    color: str
    joined_at: datetime


class MembersOut(BaseModel):
    family_id: str
    members: List[MemberOut]
    count: int


class FamilyCreatedOut(BaseModel):
    family_id: str
    message: str
