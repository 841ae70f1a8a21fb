"""
Cart service - the per-theater cart store
"""
import logging
from threading import RLock
from typing import Callable, List, Optional

from models.cart import CartLine, CartSnapshot
from database.repository import CartRepository

logger = logging.getLogger("theater_kiosk.cart")

Listener = Callable[[CartSnapshot], None]


class CartService:
    # Ordered cart lines for one theater, persisted on every mutation

    def __init__(self, theater_id: str, cart_repository: CartRepository):
        # hydrate from kioskCart_{theaterId}; unreadable carts start empty
        self.theater_id = theater_id
        self.cart_repo = cart_repository
        self.lock = RLock()
        self._lines: List[CartLine] = cart_repository.load(theater_id)
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        # views observe the cart; they never own it
        with self.lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self.lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> CartSnapshot:
        with self.lock:
            return CartSnapshot(self.theater_id, tuple(self._lines))

    def add_item(self, item) -> CartLine:
        # +1 on an existing line, otherwise append a new line with count 1.
        # The caller has already asked the stock service.
        with self.lock:
            index = self._index(item.item_id)
            if index is None:
                line = CartLine.from_item(item)
                self._lines.append(line)
            else:
                line = self._lines[index].with_count(self._lines[index].count + 1)
                self._lines[index] = line
            self._commit()
            return line

    def set_count(self, item_id: str, count: int) -> Optional[CartLine]:
        # count <= 0 removes the line
        with self.lock:
            index = self._index(item_id)
            if index is None:
                return None
            if count <= 0:
                del self._lines[index]
                self._commit()
                return None
            line = self._lines[index].with_count(int(count))
            self._lines[index] = line
            self._commit()
            return line

    def remove_item(self, item_id: str) -> bool:
        with self.lock:
            index = self._index(item_id)
            if index is None:
                return False
            del self._lines[index]
            self._commit()
            return True

    def clear(self) -> int:
        with self.lock:
            removed = len(self._lines)
            self._lines = []
            self._commit()
            return removed

    def _index(self, item_id: str) -> Optional[int]:
        for index, line in enumerate(self._lines):
            if line.item_id == item_id:
                return index
        return None

    def _commit(self):
        # persist first, then notify so listeners read what was stored
        self.cart_repo.save(self.theater_id, self._lines)
        snapshot = CartSnapshot(self.theater_id, tuple(self._lines))
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Cart listener failed")
