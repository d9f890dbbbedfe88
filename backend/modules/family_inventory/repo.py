from __future__ import annotations
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import itertools
import logging
import threading

import psycopg2

from common.deps import family_conn
from core.config import Settings
from core.db import close_family_pool
from core.errors import StoreError
from .schemas import Item, ItemCreateIn

logger = logging.getLogger(__name__)

ITEM_COLUMNS = ['id', 'family_id', 'name', 'potency', 'company', 'location',
                'sub_location', 'bottle_size', 'quantity', 'created_at']
UPDATABLE_COLUMNS = {'name', 'potency', 'company', 'location', 'sub_location', 'bottle_size', 'quantity'}

_RETURNING = "RETURNING " + ", ".join(ITEM_COLUMNS)


def _row_to_item(row) -> Item:
    return Item(**dict(zip(ITEM_COLUMNS, row)))


class InventoryRepo:
    """Durable store contract. Every call is blocking; callers run it in the threadpool."""

    def list_items(self, family_id: str) -> List[Item]:
        raise NotImplementedError

    def get_item(self, family_id: str, item_id: int) -> Optional[Item]:
        raise NotImplementedError

    def insert_item(self, family_id: str, candidate: ItemCreateIn) -> Item:
        raise NotImplementedError

    def update_item(self, family_id: str, item_id: int, changes: Dict[str, Any]) -> Optional[Item]:
        raise NotImplementedError

    def increment_quantity(self, family_id: str, item_id: int, delta: int) -> Optional[Item]:
        raise NotImplementedError

    def delete_item(self, family_id: str, item_id: int) -> bool:
        raise NotImplementedError

    def family_exists(self, family_id: str) -> bool:
        raise NotImplementedError

    def close(self):
        pass


class FamilyInventoryRepo(InventoryRepo):
    """PostgreSQL store: one family_items table tagged with family_id."""

    def __init__(self, cfg: Optional[Settings] = None):
        self.cfg = cfg

    def _run(self, what: str, sql: str, params=(), fetch: str = "one"):
        try:
            with family_conn(self.cfg) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    if fetch == "all":
                        return cur.fetchall()
                    if fetch == "rowcount":
                        return cur.rowcount
                    return cur.fetchone()
        except psycopg2.Error as e:
            logger.error(f"Database error in {what}: {e}")
            raise StoreError(f"Could not {what.replace('_', ' ')}") from e
        except ValueError as e:
            # pool not configured
            logger.error(f"Database unavailable in {what}: {e}")
            raise StoreError("Inventory database is not configured") from e

    def list_items(self, family_id: str) -> List[Item]:
        rows = self._run("list_items", f"""
            SELECT {', '.join(ITEM_COLUMNS)}
            FROM family_items
            WHERE family_id = %s
            ORDER BY name, id
        """, (family_id,), fetch="all")
        return [_row_to_item(r) for r in rows]

    def get_item(self, family_id: str, item_id: int) -> Optional[Item]:
        row = self._run("get_item", f"""
            SELECT {', '.join(ITEM_COLUMNS)}
            FROM family_items
            WHERE id = %s AND family_id = %s
        """, (item_id, family_id))
        return _row_to_item(row) if row else None

    def insert_item(self, family_id: str, candidate: ItemCreateIn) -> Item:
        row = self._run("insert_item", f"""
            INSERT INTO family_items (family_id, name, potency, company, location,
                                      sub_location, bottle_size, quantity)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            {_RETURNING}
        """, (
            family_id,
            candidate.name,
            candidate.potency,
            candidate.company,
            candidate.location,
            candidate.sub_location,
            candidate.bottle_size,
            candidate.quantity,
        ))
        return _row_to_item(row)

    def update_item(self, family_id: str, item_id: int, changes: Dict[str, Any]) -> Optional[Item]:
        """
        Patch-like update – only sets provided fields, scoped to the family.
        """
        pairs = []
        vals = []
        for k, v in changes.items():
            if k in UPDATABLE_COLUMNS:
                pairs.append(f"{k} = %s")
                vals.append(v)
        if not pairs:
            return self.get_item(family_id, item_id)

        vals.extend([item_id, family_id])
        row = self._run("update_item", f"""
            UPDATE family_items
               SET {', '.join(pairs)}
             WHERE id = %s AND family_id = %s
            {_RETURNING}
        """, vals)
        return _row_to_item(row) if row else None

    def increment_quantity(self, family_id: str, item_id: int, delta: int) -> Optional[Item]:
        row = self._run("increment_quantity", f"""
            UPDATE family_items
               SET quantity = quantity + %s
             WHERE id = %s AND family_id = %s
            {_RETURNING}
        """, (delta, item_id, family_id))
        return _row_to_item(row) if row else None

    def delete_item(self, family_id: str, item_id: int) -> bool:
        deleted = self._run("delete_item", """
            DELETE FROM family_items WHERE id = %s AND family_id = %s
        """, (item_id, family_id), fetch="rowcount")
        return deleted > 0

    def family_exists(self, family_id: str) -> bool:
        row = self._run("family_exists", """
            SELECT EXISTS (SELECT 1 FROM family_items WHERE family_id = %s)
        """, (family_id,))
        return bool(row and row[0])

    def close(self):
        close_family_pool()


class InMemoryInventoryRepo(InventoryRepo):
    """Process-local store for development and tests. Same contract as the PostgreSQL repo."""

    def __init__(self):
        self._items: Dict[int, Item] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def list_items(self, family_id: str) -> List[Item]:
        with self._lock:
            items = [i for i in self._items.values() if i.family_id == family_id]
        return sorted(items, key=lambda i: (i.name, i.id))

    def get_item(self, family_id: str, item_id: int) -> Optional[Item]:
        with self._lock:
            item = self._items.get(item_id)
        if item is None or item.family_id != family_id:
            return None
        return item

    def insert_item(self, family_id: str, candidate: ItemCreateIn) -> Item:
        with self._lock:
            item = Item(
                id=next(self._ids),
                family_id=family_id,
                created_at=datetime.now(timezone.utc),
                **candidate.model_dump(),
            )
            self._items[item.id] = item
        return item

    def update_item(self, family_id: str, item_id: int, changes: Dict[str, Any]) -> Optional[Item]:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.family_id != family_id:
                return None
            fields = {k: v for k, v in changes.items() if k in UPDATABLE_COLUMNS}
            updated = item.model_copy(update=fields)
            self._items[item_id] = updated
        return updated

    def increment_quantity(self, family_id: str, item_id: int, delta: int) -> Optional[Item]:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.family_id != family_id:
                return None
            updated = item.model_copy(update={"quantity": item.quantity + delta})
            self._items[item_id] = updated
        return updated

    def delete_item(self, family_id: str, item_id: int) -> bool:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.family_id != family_id:
                return False
            del self._items[item_id]
        return True

    def family_exists(self, family_id: str) -> bool:
        with self._lock:
            return any(i.family_id == family_id for i in self._items.values())


def build_repo(cfg: Settings) -> InventoryRepo:
    backend = cfg.resolved_store_backend()
    if backend == "postgres":
        return FamilyInventoryRepo(cfg)
    if backend == "memory":
        logger.warning("⚠️  Using in-memory inventory store; data is lost on restart")
        return InMemoryInventoryRepo()
    raise ValueError(f"Unknown STORE_BACKEND: {cfg.STORE_BACKEND}")
