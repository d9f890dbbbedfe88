from __future__ import annotations
from typing import List

from .registry import ConnectionRegistry
from .schemas import MemberOut


class MembershipDirectory:
    """Who is currently connected to a family. Presence only, not permission."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def list_members(self, family_id: str) -> List[MemberOut]:
        return [
            MemberOut(
                member_id=c.member_id,
                member_name=c.member_name,
                color=c.color,
                joined_at=c.joined_at,
            )
            for c in self.registry.connections(family_id)
        ]

    def count(self, family_id: str) -> int:
        return len(self.registry.connections(family_id))
