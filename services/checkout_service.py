"""
Checkout service - the kiosk payment flow for one theater's cart
"""
import logging
from enum import Enum
from threading import Event, RLock
from typing import Any, Callable, Dict, Optional

from api.client import TheaterApiClient
from api.shapes import extract_entity
from config import PAYMENT_SIMULATION_FLOOR
from core.errors import CheckoutStateError, KioskError, RequestAborted, ServerError, ValidationError
from core.events import ORDER_UPDATED, STOCK_UPDATED, EventBus, KioskEvent, now_ms
from database.repository import CacheRepository, StorageRepository
from models.cart import CartSnapshot, CartTotals
from models.order import Order
from .cart_service import CartService
from .pricing_service import PricingService

logger = logging.getLogger("theater_kiosk.checkout")

DEFAULT_CUSTOMER_NAME = "Kiosk Customer"


class CheckoutState(Enum):
    EDITING = "editing"
    REVIEWING = "reviewing"
    PROCESSING = "processing"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"


def _number(value) -> float:
    return float(value)


class CheckoutFlow:
    # Editing -> Reviewing -> Processing -> Submitting -> Confirmed -> Editing

    def __init__(self, theater_id: str, cart_service: CartService, pricing_service: PricingService,
                 api_client: TheaterApiClient, cache: CacheRepository, storage: StorageRepository,
                 event_bus: EventBus, payment_delay: float = PAYMENT_SIMULATION_FLOOR,
                 wait: Optional[Callable[[float], bool]] = None):
        self.theater_id = theater_id
        self.cart = cart_service
        self.pricing = pricing_service
        self.api = api_client
        self.cache = cache
        self.storage = storage
        self.event_bus = event_bus
        self.payment_delay = max(float(payment_delay), PAYMENT_SIMULATION_FLOOR)
        self._closed = Event()
        # wait(seconds) -> True when the timer was interrupted by close()
        self.wait = wait or self._closed.wait
        self._lock = RLock()
        self.state = CheckoutState.EDITING
        self.last_order: Optional[Order] = None
        self.last_error: Optional[KioskError] = None

    @property
    def can_cancel(self) -> bool:
        return self.state not in (CheckoutState.PROCESSING, CheckoutState.SUBMITTING)

    def review(self) -> Dict[str, Any]:
        cart = self.cart.snapshot()
        totals = self.pricing.totals(cart)
        return {
            "state": self.state.value,
            "cart": cart.to_list(),
            "totals": totals.to_dict(),
            "last_error": self.last_error.to_dict() if self.last_error else None,
        }

    def proceed_to_payment(self) -> CartTotals:
        with self._lock:
            if self.state not in (CheckoutState.EDITING, CheckoutState.REVIEWING):
                raise CheckoutStateError(f"Cannot review the order while {self.state.value}")
            cart = self.cart.snapshot()
            if cart.is_empty:
                raise ValidationError("Your cart is empty")
            self.state = CheckoutState.REVIEWING
            self.last_error = None
            return self.pricing.totals(cart)

    def pay(self, customer_name: str = "", payment_method: str = "card", notes: str = "") -> Order:
        """Run the payment handshake and submit the order.

        Blocks for the payment delay. On success the cart is cleared and the
        flow is back in EDITING with ``last_order`` set; on a server or network
        failure it returns to REVIEWING with the cart untouched.
        """
        with self._lock:
            if self.state is not CheckoutState.REVIEWING:
                raise CheckoutStateError("Review the order before paying")
            self.state = CheckoutState.PROCESSING
            self._closed.clear()

        logger.info("Processing payment for theater %s (%.1fs)", self.theater_id, self.payment_delay)
        interrupted = self.wait(self.payment_delay)

        with self._lock:
            if interrupted or self.state is not CheckoutState.PROCESSING:
                self.state = CheckoutState.EDITING
                raise RequestAborted("Payment was cancelled")
            self.state = CheckoutState.SUBMITTING

        cart = self.cart.snapshot()
        totals = self.pricing.totals(cart)
        payload = self._order_payload(cart, totals, customer_name, payment_method, notes)
        try:
            if cart.is_empty:
                raise ValidationError("Your cart is empty")
            response = self.api.post("/orders/theater", json=payload, force_refresh=True, retry=False)
            raw = extract_entity(response, "order")
            if not raw or not (raw.get("_id") or raw.get("id")):
                message = response.get("message") if isinstance(response, dict) else None
                raise ServerError(200, message or "Failed to create order")
        except KioskError as e:
            logger.warning("Order submission for theater %s failed: %s", self.theater_id, e.message)
            with self._lock:
                self.state = CheckoutState.REVIEWING
                self.last_error = e
            raise

        order = Order.from_api(raw)
        with self._lock:
            self.state = CheckoutState.CONFIRMED
            self.last_order = order
            self.last_error = None
        self._after_order(order)
        with self._lock:
            self.state = CheckoutState.EDITING
        logger.info("Order %s placed for theater %s", order.order_number or order.order_id, self.theater_id)
        return order

    def cancel(self) -> CheckoutState:
        # back to the previous state; refused while paying
        with self._lock:
            if not self.can_cancel:
                raise CheckoutStateError("Payment is in progress and cannot be cancelled")
            if self.state is CheckoutState.REVIEWING:
                self.state = CheckoutState.EDITING
            return self.state

    def close(self) -> CheckoutState:
        # close button: aborts the payment timer; the cart is kept
        with self._lock:
            if self.state is CheckoutState.SUBMITTING:
                raise CheckoutStateError("The order is being submitted")
            if self.state is CheckoutState.PROCESSING:
                logger.info("Payment for theater %s closed during processing", self.theater_id)
                self._closed.set()
            self.state = CheckoutState.EDITING
            return self.state

    def _order_payload(self, cart: CartSnapshot, totals: CartTotals, customer_name: str,
                       payment_method: str, notes: str) -> Dict[str, Any]:
        items = []
        for line, line_totals in zip(cart, totals.lines):
            items.append({
                "productId": line.item_id,
                "quantity": line.count,
                "unitPrice": _number(line.unit_price),
                "taxRate": _number(line_totals.tax_rate),
                "gstType": line_totals.gst_type.value,
                "sizeLabel": line.size_label,
                "isCombo": line.is_combo,
            })
        return {
            "theaterId": self.theater_id,
            "customerName": (customer_name or "").strip() or DEFAULT_CUSTOMER_NAME,
            "items": items,
            "orderNotes": (notes or "").strip(),
            "paymentMethod": payment_method,
            "source": "kiosk",
            "orderType": "pos",
            "subtotal": _number(totals.subtotal),
            "tax": _number(totals.tax),
            "total": _number(totals.total),
        }

    def _after_order(self, order: Order):
        # clear the cart, drop stale caches, then tell the other views
        self.cart.clear()
        for pattern in (f"theater_products_{self.theater_id}", f"products_{self.theater_id}",
                        f"/orders/theater/{self.theater_id}", f"orders_kiosk_{self.theater_id}",
                        f"theaterOrderHistory_{self.theater_id}"):
            self.cache.clear_pattern(pattern)
        self.storage.bump_stock_signal(self.theater_id)
        self.event_bus.emit(ORDER_UPDATED, KioskEvent(
            theater_id=self.theater_id, source="kioskCheckout", timestamp=now_ms(),
            type="orderCreated", order_id=order.order_id,
        ))
        self.event_bus.emit(STOCK_UPDATED, KioskEvent(
            theater_id=self.theater_id, source="kioskCheckout", timestamp=now_ms(),
        ))
