"""
Order related data models
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Dict, Any
from enum import Enum

from .product import ref_id, to_decimal


class OrderStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def lookup(cls, value: Any) -> Optional["OrderStatus"]:
        text = str(value or cls.PENDING.value).strip().lower().replace("_", "-")
        if text in ("in progress", "inprogress", "preparing", "confirmed"):
            return cls.IN_PROGRESS
        if text in ("canceled",):
            return cls.CANCELLED
        try:
            return cls(text)
        except ValueError:
            return None

    @classmethod
    def parse(cls, value: Any) -> "OrderStatus":
        # statuses the kiosk does not know (served, ready, refunded) still count as open
        return cls.lookup(value) or cls.PENDING

    @property
    def is_modifiable(self) -> bool:
        return self in (OrderStatus.PENDING, OrderStatus.IN_PROGRESS)


@dataclass
class OrderItem:
    """Order item data model"""
    line_id: str
    product_id: Optional[str]
    name: str
    quantity: int
    unit_price: Decimal
    total: Decimal = Decimal("0")

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "OrderItem":
        quantity = int(to_decimal(raw.get("quantity"), "1"))
        unit_price = to_decimal(raw.get("unitPrice", raw.get("price", raw.get("sellingPrice"))))
        return cls(
            line_id=str(raw.get("_id") or raw.get("id") or ""),
            product_id=ref_id(raw.get("productId") or raw.get("product")),
            name=str(raw.get("name") or raw.get("productName") or ""),
            quantity=quantity,
            unit_price=unit_price,
            total=to_decimal(raw.get("totalPrice", raw.get("total")), str(unit_price * quantity)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "line_id": self.line_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "total": str(self.total),
        }


@dataclass
class CustomerInfo:
    """Customer information"""
    name: str = ""
    phone: str = ""


@dataclass
class Order:
    """Order data model - owned by the server"""
    order_id: str
    order_number: str
    status: OrderStatus
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    items: List[OrderItem]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    customer: CustomerInfo = field(default_factory=CustomerInfo)
    staff_name: Optional[str] = None
    # server status text kept when it is not one of OrderStatus
    status_label: str = ""

    @property
    def is_modifiable(self) -> bool:
        return self.status.is_modifiable

    @property
    def display_status(self) -> str:
        return self.status_label or self.status.value

    def item(self, line_id: str) -> Optional[OrderItem]:
        for item in self.items:
            if item.line_id == line_id:
                return item
        return None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Order":
        pricing = raw.get("pricing") or {}
        customer = raw.get("customerInfo") or {}
        staff = raw.get("staffInfo") or raw.get("createdBy") or {}
        raw_items = raw.get("items") or raw.get("products") or []
        raw_status = str(raw.get("status") or "").strip()
        return cls(
            order_id=str(raw.get("_id") or raw.get("id") or ""),
            order_number=str(raw.get("orderNumber") or ""),
            status=OrderStatus.parse(raw_status),
            subtotal=to_decimal(pricing.get("subtotal", raw.get("subtotal"))),
            tax=to_decimal(pricing.get("tax", pricing.get("taxAmount", raw.get("tax")))),
            total=to_decimal(pricing.get("total", raw.get("total", raw.get("totalAmount")))),
            items=[OrderItem.from_api(item) for item in raw_items if isinstance(item, dict)],
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
            customer=CustomerInfo(
                name=str(customer.get("name") or raw.get("customerName") or ""),
                phone=str(customer.get("phone") or raw.get("customerPhone") or ""),
            ),
            staff_name=staff.get("name") or staff.get("username") if isinstance(staff, dict) else None,
            status_label=raw_status if OrderStatus.lookup(raw_status) is None else "",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "status": self.display_status,
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "total": str(self.total),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "customer_name": self.customer.name,
            "customer_phone": self.customer.phone,
            "staff_name": self.staff_name,
            "items": [item.to_dict() for item in self.items],
        }
