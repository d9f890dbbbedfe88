"""
Duplicate detection for newly added items.

Two items are considered the same remedy when either name contains the other
(case-insensitive) and the potencies match. This over-merges names that are
substrings of unrelated names ("Arnica" vs "Arnica Montana" is intended, but
so is "Nux" vs "Nux Vomica" and "Nux Moschata") and misses spelling variants.
"""
from __future__ import annotations
from typing import Iterable, Optional

from .schemas import Item, ItemCreateIn


def _norm(value: str) -> str:
    return (value or "").strip().casefold()


def names_overlap(a: str, b: str) -> bool:
    a, b = _norm(a), _norm(b)
    if not a or not b:
        return False
    return a in b or b in a


def potencies_match(a: str, b: str) -> bool:
    return _norm(a) == _norm(b)


def is_duplicate(existing: Item, candidate: ItemCreateIn) -> bool:
    return potencies_match(existing.potency, candidate.potency) and names_overlap(existing.name, candidate.name)


def find_duplicate(items: Iterable[Item], candidate: ItemCreateIn) -> Optional[Item]:
    """First existing item matching the candidate, in the order given (the store orders by name)."""
    for item in items:
        if is_duplicate(item, candidate):
            return item
    return None
