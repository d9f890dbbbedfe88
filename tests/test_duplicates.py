from __future__ import annotations

from datetime import datetime, timezone

from modules.family_inventory.duplicates import find_duplicate, is_duplicate, names_overlap, potencies_match
from modules.family_inventory.schemas import Item

from conftest import FAMILY, item


def stored(item_id: int, name: str, potency: str = "30C", quantity: int = 2) -> Item:
    return Item(id=item_id, family_id=FAMILY, name=name, potency=potency, company="Boiron",
                location="Kitchen", quantity=quantity, created_at=datetime.now(timezone.utc))


def test_names_overlap_either_direction_ignoring_case() -> None:
    assert names_overlap("Arnica", "Arnica Montana")
    assert names_overlap("arnica montana", "ARNICA")
    assert not names_overlap("Arnica", "Belladonna")


def test_blank_names_never_overlap() -> None:
    assert not names_overlap("", "Arnica")
    assert not names_overlap("  ", "  ")


def test_potency_compared_trimmed_and_case_insensitive() -> None:
    assert potencies_match("30C", " 30c ")
    assert not potencies_match("30C", "200C")


def test_arnica_montana_is_a_duplicate_of_arnica() -> None:
    existing = stored(1, "Arnica")
    assert is_duplicate(existing, item("Arnica Montana"))


def test_same_name_different_potency_is_not_a_duplicate() -> None:
    assert not is_duplicate(stored(1, "Arnica", "200C"), item("Arnica", "30C"))


def test_find_duplicate_returns_first_match_in_given_order() -> None:
    items = [stored(1, "Nux Moschata"), stored(2, "Nux Vomica")]
    assert find_duplicate(items, item("Nux")).id == 1
    assert find_duplicate(items, item("Belladonna")) is None
