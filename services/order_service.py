"""
Order service - order lookup and cancellation
"""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from api.client import TheaterApiClient
from api.shapes import extract_entity
from core.errors import ApiError, OrderImmutableError, OrderNotFoundError, ValidationError
from core.events import ORDER_UPDATED, STOCK_UPDATED, EventBus, KioskEvent, now_ms
from database.repository import CacheRepository, StorageRepository
from models.order import Order, OrderStatus

logger = logging.getLogger("theater_kiosk.orders")

NOT_FOUND_MESSAGE = "Order not found. Please check the order ID or order number and try again."
LINE_ALREADY_CANCELLED = "This product was already cancelled."


def order_cache_key(theater_id: str, key: str) -> str:
    return f"order_{theater_id}_{key}"


def invalidation_patterns(theater_id: str, product_ids: Iterable[str]) -> List[str]:
    """Every cache pattern touched by a change to this theater's orders"""
    patterns = [
        f"/orders/theater/{theater_id}",
        f"order_{theater_id}",
        f"theaterOrderHistory_{theater_id}",
        f"orders_nested_{theater_id}",
    ]
    for product_id in dict.fromkeys(pid for pid in product_ids if pid):
        patterns.append(f"cafe_stock_{theater_id}_{product_id}")
        patterns.append(f"stock_{theater_id}_{product_id}")
    patterns.append(f"products_{theater_id}")
    patterns.append(f"theater_products_{theater_id}")
    return patterns


class OrderService:
    # Search + cancel sub-flow; the server owns orders and their totals

    def __init__(self, api_client: TheaterApiClient, cache: CacheRepository, storage: StorageRepository,
                 event_bus: EventBus, lookup_timeout: float = 15.0, cache_ttl: float = 60.0):
        self.api = api_client
        self.cache = cache
        self.storage = storage
        self.event_bus = event_bus
        self.lookup_timeout = lookup_timeout
        self.cache_ttl = cache_ttl

    def find_order(self, theater_id: str, key: str, force_refresh: bool = False) -> Order:
        """Exact, case-preserving lookup by order id or order number."""
        key = (key or "").strip()
        if not key:
            raise ValidationError("Please enter an order ID or order number")

        cache_key = order_cache_key(theater_id, key)
        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return Order.from_api(cached)

        try:
            payload = self.api.get(f"/orders/theater/{theater_id}/{quote(key, safe='')}",
                                   timeout=self.lookup_timeout, force_refresh=force_refresh)
        except ApiError as e:
            if e.status_code == 404:
                raise OrderNotFoundError(NOT_FOUND_MESSAGE) from e
            raise

        raw = extract_entity(payload, "order")
        if not raw or not (raw.get("_id") or raw.get("id")):
            raise OrderNotFoundError(NOT_FOUND_MESSAGE)
        self.cache.set(cache_key, raw, self.cache_ttl)
        return Order.from_api(raw)

    def cancel_order(self, theater_id: str, order: Order) -> Dict[str, Any]:
        # whole-order cancel; the server restores inventory
        self._require_modifiable(order, "This order")

        payload = self.api.put(f"/orders/theater/{theater_id}/{order.order_id}/status",
                               json={"status": OrderStatus.CANCELLED.value})
        raw = extract_entity(payload, "order")
        if raw and (raw.get("_id") or raw.get("id")):
            updated = Order.from_api(raw)
            if updated.status is not OrderStatus.CANCELLED:
                updated = replace(updated, status=OrderStatus.CANCELLED, status_label="")
        else:
            updated = replace(order, status=OrderStatus.CANCELLED, status_label="",
                              updated_at=datetime.now(timezone.utc).isoformat())

        self._after_change(theater_id, order, source="orderCancellation", event_type="orderCancelled")
        logger.info("Order %s cancelled for theater %s", order.order_number or order.order_id, theater_id)
        return {
            "success": True,
            "message": "Order cancelled successfully. Stock has been restored to cafe inventory.",
            "order": updated,
        }

    def cancel_line(self, theater_id: str, order: Order, line_id: str) -> Dict[str, Any]:
        # single-line cancel; totals are recomputed by the server, so always refetch
        self._require_modifiable(order, "Products of this order")
        line = order.item(line_id)

        message = f'Product "{line.name if line else line_id}" cancelled successfully. Order total has been updated.'
        try:
            self.api.delete(f"/orders/theater/{theater_id}/{order.order_id}/products/{line_id}")
        except ApiError as e:
            if e.status_code != 404:
                raise
            logger.info("Line %s of order %s was already cancelled", line_id, order.order_id)
            message = LINE_ALREADY_CANCELLED

        self._after_change(theater_id, order, source="productCancellation", event_type="productCancelled")
        refreshed = self.find_order(theater_id, order.order_number or order.order_id, force_refresh=True)
        return {"success": True, "message": message, "order": refreshed}

    def _require_modifiable(self, order: Order, subject: str):
        if order.status is OrderStatus.CANCELLED:
            raise OrderImmutableError(f"{subject} is already cancelled")
        if not order.is_modifiable:
            raise OrderImmutableError(f"{subject} has been completed and cannot be cancelled")

    def _after_change(self, theater_id: str, order: Order, source: str, event_type: str):
        # caches and the durable bump key first, then the in-process broadcast
        removed = 0
        for pattern in invalidation_patterns(theater_id, (item.product_id for item in order.items)):
            removed += self.cache.clear_pattern(pattern)
        logger.debug("Cleared %d cache entries after %s", removed, event_type)
        self.storage.bump_stock_signal(theater_id)

        self.event_bus.emit(ORDER_UPDATED, KioskEvent(
            theater_id=theater_id, source=source, timestamp=now_ms(),
            type=event_type, order_id=order.order_id,
        ))
        self.event_bus.emit(STOCK_UPDATED, KioskEvent(
            theater_id=theater_id, source=source, timestamp=now_ms(),
        ))
