"""
Main TheaterKiosk class - orchestrates all services
"""
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from threading import RLock
from typing import Any, Callable, Dict, Optional

import httpx

from api.client import TheaterApiClient
from config import Settings
from database.connection import DatabaseConnection
from database.repository import CacheRepository, CartRepository, StorageRepository
from models.product import ALL_TAB_ID, CatalogSnapshot, ItemKind
from models.stock import StockDecision, Unavailable
from services.cart_service import CartService
from services.catalog_service import CatalogService
from services.checkout_service import CheckoutFlow
from services.order_service import OrderService
from services.pricing_service import PricingPolicy, PricingService
from services.stock_service import StockService
from .errors import KioskError, MissingTheaterError, StockInsufficientError, ValidationError
from .events import STOCK_UPDATED, EventBus, KioskEvent

logger = logging.getLogger("theater_kiosk.kiosk")


def as_result(method: Callable[..., Dict[str, Any]]):
    # service errors become {"success": False, "code": ..., "error": ...}
    @functools.wraps(method)
    def wrapper(*args, **kwargs) -> Dict[str, Any]:
        try:
            return method(*args, **kwargs)
        except KioskError as e:
            logger.info("%s failed: %s (%s)", method.__name__, e.message, e.code)
            return e.to_dict()

    return wrapper


class TheaterKiosk:
    # Central coordinator for every theater's cart, catalog, checkout and orders

    def __init__(self, settings: Optional[Settings] = None,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 payment_wait: Optional[Callable[[float], bool]] = None):
        self.settings = settings or Settings.from_env()

        # storage layer (durable key/value)
        self.db_connection = DatabaseConnection(self.settings.db_path)
        self.storage = StorageRepository(self.db_connection)
        self.cart_repo = CartRepository(self.storage)
        self.cache = CacheRepository(self.storage)

        self.api = TheaterApiClient(
            self.settings.api_base_url, self.settings.api_token,
            timeout=self.settings.catalog_timeout, max_retries=self.settings.max_retries,
            transport=transport, sleep=sleep,
        )
        self.event_bus = EventBus()

        # service layer
        self.executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="kiosk")
        self.stock_service = StockService()
        self.pricing_service = PricingService(PricingPolicy(
            tax_rate=self.settings.tax_rate, currency_symbol=self.settings.currency_symbol))
        self.catalog_service = CatalogService(
            self.api, self.cache, self.storage,
            cache_ttl=self.settings.catalog_cache_ttl, timeout=self.settings.catalog_timeout,
            image_proxy_enabled=self.settings.image_proxy_enabled, executor=self.executor,
        )
        self.order_service = OrderService(
            self.api, self.cache, self.storage, self.event_bus,
            lookup_timeout=self.settings.order_lookup_timeout, cache_ttl=self.settings.order_cache_ttl,
        )

        self.payment_wait = payment_wait
        self._carts: Dict[str, CartService] = {}
        self._flows: Dict[str, CheckoutFlow] = {}
        self._lock = RLock()
        self.event_bus.subscribe(STOCK_UPDATED, self._on_stock_updated)

    def close(self):
        self.catalog_service.shutdown()
        self.api.close()

    # === per-theater state ===
    def cart(self, theater_id: str) -> CartService:
        theater_id = self._require_theater(theater_id)
        with self._lock:
            if theater_id not in self._carts:
                self._carts[theater_id] = CartService(theater_id, self.cart_repo)
            return self._carts[theater_id]

    def checkout(self, theater_id: str) -> CheckoutFlow:
        theater_id = self._require_theater(theater_id)
        with self._lock:
            if theater_id not in self._flows:
                self._flows[theater_id] = CheckoutFlow(
                    theater_id, self.cart(theater_id), self.pricing_service, self.api,
                    self.cache, self.storage, self.event_bus,
                    payment_delay=self.settings.payment_simulation_seconds, wait=self.payment_wait,
                )
            return self._flows[theater_id]

    def catalog(self, theater_id: str, force_refresh: bool = False) -> CatalogSnapshot:
        # current snapshot, reloaded when stale or missing
        theater_id = self._require_theater(theater_id)
        if force_refresh:
            return self.catalog_service.load_catalog(theater_id, force_refresh=True)
        snapshot = self.catalog_service.current(theater_id)
        if snapshot is None:
            return self.catalog_service.load_catalog(theater_id)
        return self.catalog_service.refresh_if_stale(theater_id) or snapshot

    def leave_theater(self, theater_id: str):
        # screen for this theater went away
        self.catalog_service.close_theater(theater_id)

    # === menu ===
    @as_result
    def get_menu(self, theater_id: str, tab_id: str = ALL_TAB_ID, category_id: Optional[str] = None,
                 force_refresh: bool = False) -> Dict[str, Any]:
        catalog = self.catalog(theater_id, force_refresh)
        cart = self.cart(theater_id).snapshot()

        items = []
        for item in catalog.menu(tab_id, category_id):
            entry = item.to_dict()
            entry["id"] = item.item_id
            entry["kind"] = item.kind.value
            entry["in_cart"] = cart.count_of(item.item_id)
            entry["out_of_stock"] = self.stock_service.is_out_of_stock(item, cart, catalog)
            if item.kind is ItemKind.PRODUCT:
                entry["remaining"] = self.stock_service.remaining_pieces(item, cart, catalog)
            items.append(entry)

        return {
            "success": True,
            "theater_id": catalog.theater_id,
            "tabs": [tab.to_dict() for tab in catalog.tabs()],
            "categories": [category.to_dict() for category in catalog.categories],
            "banners": [banner.to_dict() for banner in catalog.banners],
            "items": items,
            "warnings": list(catalog.warnings),
            "errors": dict(catalog.errors),
        }

    # === cart ===
    @as_result
    def add_to_cart(self, theater_id: str, item_id: str) -> Dict[str, Any]:
        catalog = self.catalog(theater_id)
        item = catalog.item(item_id)
        if item is None:
            raise ValidationError(f"Item {item_id} is not on the menu")

        cart_service = self.cart(theater_id)
        # the stock check and the add it gates are one step
        with cart_service.lock:
            cart = cart_service.snapshot()
            decision = self.stock_service.can_add(item, cart.count_of(item_id) + 1, cart, catalog)
            if not decision:
                raise StockInsufficientError(decision)
            line = cart_service.add_item(item)

        logger.info("Added %s to cart of theater %s (count %d)", item.name, theater_id, line.count)
        result = self.get_cart_details(theater_id)
        result["line"] = line.to_dict()
        return result

    @as_result
    def update_cart_item(self, theater_id: str, item_id: str, count: int) -> Dict[str, Any]:
        # decrements always pass; increments go through the stock gate
        cart_service = self.cart(theater_id)
        # catalog loads happen before the cart lock is taken
        catalog = None
        if count > cart_service.snapshot().count_of(item_id):
            catalog = self.catalog(theater_id)
        with cart_service.lock:
            cart = cart_service.snapshot()
            current = cart.line_for(item_id)
            if current is None:
                raise ValidationError(f"Item {item_id} is not in the cart")
            if count > current.count:
                if catalog is None:
                    catalog = self.catalog_service.current(theater_id) or CatalogSnapshot(theater_id)
                item = catalog.item(item_id)
                if item is None:
                    decision = StockDecision(False, Unavailable(item_id))
                else:
                    decision = self.stock_service.can_add(item, count, cart, catalog)
                if not decision:
                    raise StockInsufficientError(decision)
            cart_service.set_count(item_id, count)
        return self.get_cart_details(theater_id)

    @as_result
    def remove_from_cart(self, theater_id: str, item_id: str) -> Dict[str, Any]:
        if not self.cart(theater_id).remove_item(item_id):
            raise ValidationError(f"Item {item_id} is not in the cart")
        return self.get_cart_details(theater_id)

    @as_result
    def clear_cart(self, theater_id: str) -> Dict[str, Any]:
        removed = self.cart(theater_id).clear()
        return {"success": True, "removed": removed, "message": "Cart cleared"}

    @as_result
    def get_cart_details(self, theater_id: str) -> Dict[str, Any]:
        cart = self.cart(theater_id).snapshot()
        totals = self.pricing_service.totals(cart)
        return {
            "success": True,
            "theater_id": cart.theater_id,
            "cart_items": cart.to_list(),
            "total_quantity": cart.total_quantity,
            "summary": totals.to_dict(),
            "display_total": self.pricing_service.format_amount(totals.total),
        }

    # === checkout ===
    @as_result
    def proceed_to_payment(self, theater_id: str) -> Dict[str, Any]:
        flow = self.checkout(theater_id)
        totals = flow.proceed_to_payment()
        return {"success": True, "state": flow.state.value, "summary": totals.to_dict()}

    @as_result
    def pay(self, theater_id: str, customer_name: str = "", payment_method: str = "card",
            notes: str = "") -> Dict[str, Any]:
        flow = self.checkout(theater_id)
        order = flow.pay(customer_name, payment_method, notes)
        return {
            "success": True,
            "state": flow.state.value,
            "order": order.to_dict(),
            "message": f"Order {order.order_number or order.order_id} placed",
        }

    @as_result
    def cancel_checkout(self, theater_id: str) -> Dict[str, Any]:
        state = self.checkout(theater_id).cancel()
        return {"success": True, "state": state.value}

    @as_result
    def close_checkout(self, theater_id: str) -> Dict[str, Any]:
        state = self.checkout(theater_id).close()
        return {"success": True, "state": state.value}

    # === orders ===
    @as_result
    def find_order(self, theater_id: str, key: str, force_refresh: bool = False) -> Dict[str, Any]:
        theater_id = self._require_theater(theater_id)
        order = self.order_service.find_order(theater_id, key, force_refresh)
        return {"success": True, "order": order.to_dict(), "message": "Order found successfully"}

    @as_result
    def cancel_order(self, theater_id: str, key: str) -> Dict[str, Any]:
        theater_id = self._require_theater(theater_id)
        order = self.order_service.find_order(theater_id, key, force_refresh=True)
        result = self.order_service.cancel_order(theater_id, order)
        return {"success": True, "message": result["message"], "order": result["order"].to_dict()}

    @as_result
    def cancel_order_line(self, theater_id: str, key: str, line_id: str) -> Dict[str, Any]:
        theater_id = self._require_theater(theater_id)
        order = self.order_service.find_order(theater_id, key, force_refresh=True)
        result = self.order_service.cancel_line(theater_id, order, line_id)
        return {"success": True, "message": result["message"], "order": result["order"].to_dict()}

    def _require_theater(self, theater_id: Optional[str]) -> str:
        theater_id = (theater_id or "").strip()
        if not theater_id:
            raise MissingTheaterError("Theater ID is required")
        return theater_id

    def _on_stock_updated(self, event: KioskEvent):
        # same-context stock change: the next catalog read reloads
        self.catalog_service.mark_stale(event.theater_id)
