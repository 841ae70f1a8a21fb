"""
Database repository classes
"""
import json
import logging
import re
import time
from decimal import InvalidOperation
from typing import Any, Dict, List, Optional, Callable

from models.cart import CartLine
from .connection import DatabaseConnection

logger = logging.getLogger("theater_kiosk.storage")

# characters that close a key segment
KEY_SEGMENT_END = r"(?=$|[_/?&])"


def cart_key(theater_id: str) -> str:
    return f"kioskCart_{theater_id}"


def stock_signal_key(theater_id: str) -> str:
    return f"stock_updated_{theater_id}"


def cache_key(resource: str, theater_id: str, page: Optional[int] = None,
              limit: Optional[int] = None, search: Optional[str] = None) -> str:
    """``{resource}_{theaterId}[_p{page}_l{limit}[_s{search}]]``"""
    key = f"{resource}_{theater_id}"
    if page is not None:
        key += f"_p{page}_l{limit}"
        if search:
            key += f"_s{search}"
    return key


class StorageRepository:
    # Raw key/value access (the kiosk's local storage)

    def __init__(self, db_connection: DatabaseConnection):
        # DatabaseConnection instance injection
        self.db = db_connection

    def get(self, key: str) -> Optional[str]:
        with self.db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM Storage WHERE storage_key = ?", (key,))
            row = cursor.fetchone()
            return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self.db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
            INSERT INTO Storage (storage_key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(storage_key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            """, (key, value))
            conn.commit()

    def remove(self, key: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM Storage WHERE storage_key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    def keys(self, containing: str = "") -> List[str]:
        with self.db.get_connection() as conn:
            cursor = conn.cursor()
            if containing:
                # instr() avoids LIKE wildcards ('_' is common in keys)
                cursor.execute("SELECT storage_key FROM Storage WHERE instr(storage_key, ?) > 0", (containing,))
            else:
                cursor.execute("SELECT storage_key FROM Storage")
            return [row[0] for row in cursor.fetchall()]

    def remove_scoped(self, pattern: str) -> int:
        """Delete keys holding ``pattern`` as a whole segment.

        The match must end the key or be followed by one of ``_ / ? &``, so
        ``theater_products_T1`` never reaches ``theater_products_T10``.
        """
        bounded = re.compile(re.escape(pattern) + KEY_SEGMENT_END)
        matched = [key for key in self.keys(containing=pattern) if bounded.search(key)]
        if not matched:
            return 0
        with self.db.get_connection() as conn:
            cursor = conn.cursor()
            cursor.executemany("DELETE FROM Storage WHERE storage_key = ?", [(key,) for key in matched])
            conn.commit()
        return len(matched)

    def bump_stock_signal(self, theater_id: str) -> int:
        # monotonically increasing millisecond timestamp under stock_updated_{theaterId}
        key = stock_signal_key(theater_id)
        previous = self.stock_signal(theater_id)
        value = max(int(time.time() * 1000), previous + 1)
        self.set(key, str(value))
        return value

    def stock_signal(self, theater_id: str) -> int:
        raw = self.get(stock_signal_key(theater_id))
        try:
            return int(raw) if raw else 0
        except ValueError:
            return 0


class CartRepository:
    # Per-theater cart persistence under kioskCart_{theaterId}

    def __init__(self, storage: StorageRepository):
        self.storage = storage

    def load(self, theater_id: str) -> List[CartLine]:
        # parse failures erase the key and yield an empty cart
        key = cart_key(theater_id)
        raw = self.storage.get(key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError("persisted cart is not a list")
            lines = [CartLine.from_dict(item) for item in data]
            if len({line.item_id for line in lines}) != len(lines):
                raise ValueError("persisted cart has duplicate lines")
            return lines
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            logger.warning("Discarding unreadable cart %s: %s", key, e)
            self.storage.remove(key)
            return []

    def save(self, theater_id: str, lines: List[CartLine]) -> None:
        key = cart_key(theater_id)
        if not lines:
            self.storage.remove(key)
            return
        self.storage.set(key, json.dumps([line.to_dict() for line in lines]))

    def erase(self, theater_id: str) -> None:
        self.storage.remove(cart_key(theater_id))


class CacheRepository:
    # {data, expiry} blobs with a TTL

    def __init__(self, storage: StorageRepository, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        raw = self.storage.get(key)
        if raw is None:
            return None
        try:
            blob = json.loads(raw)
            expiry = float(blob["expiry"])
        except (ValueError, KeyError, TypeError):
            self.storage.remove(key)
            return None
        if expiry <= self.clock():
            self.storage.remove(key)
            return None
        return blob["data"]

    def set(self, key: str, data: Any, ttl: float) -> None:
        blob: Dict[str, Any] = {"data": data, "expiry": self.clock() + ttl}
        self.storage.set(key, json.dumps(blob))

    def invalidate(self, key: str) -> bool:
        return self.storage.remove(key)

    def clear_pattern(self, pattern: str) -> int:
        removed = self.storage.remove_scoped(pattern)
        if removed:
            logger.debug("Cleared %d cache entries matching %s", removed, pattern)
        return removed
