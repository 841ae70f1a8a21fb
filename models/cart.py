"""
Cart related data models
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import List, Optional, Dict, Any, Tuple

from .product import ComboEntry, GstType, ItemKind


def _stored_amount(value: Any, field_name: str) -> Decimal:
    # raises decimal.InvalidOperation for text, ValueError for NaN/Infinity/negatives
    amount = Decimal(str(value))
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"cart line has invalid {field_name} {value!r}")
    return amount


@dataclass(frozen=True)
class CartLine:
    """Cart line data model - one row per product or combo id"""
    item_id: str
    kind: ItemKind
    name: str
    unit_price: Decimal
    count: int = 1
    size_label: Optional[str] = None
    tax_rate: Optional[Decimal] = None
    gst_type: Optional[GstType] = None
    entries: Tuple[ComboEntry, ...] = ()

    @property
    def is_combo(self) -> bool:
        return self.kind is ItemKind.COMBO

    @classmethod
    def from_item(cls, item, count: int = 1) -> "CartLine":
        # price, size and tax are captured now so catalog edits never mutate the cart
        return cls(
            item_id=item.item_id,
            kind=item.kind,
            name=item.name,
            unit_price=item.selling_price,
            count=count,
            size_label=item.size_label,
            tax_rate=item.tax_rate,
            gst_type=item.gst_type,
            entries=tuple(getattr(item, "entries", ())),
        )

    def with_count(self, count: int) -> "CartLine":
        return replace(self, count=count)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "item_id": self.item_id,
            "kind": self.kind.value,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "count": self.count,
            "size_label": self.size_label,
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "gst_type": self.gst_type.value if self.gst_type else None,
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        # persisted lines are parsed strictly; any bad value rejects the whole cart
        count = int(data["count"])
        if count < 1:
            raise ValueError(f"cart line {data.get('item_id')} has count {count}")
        tax_rate = data.get("tax_rate")
        return cls(
            item_id=str(data["item_id"]),
            kind=ItemKind(data.get("kind", ItemKind.PRODUCT.value)),
            name=str(data.get("name", "")),
            unit_price=_stored_amount(data["unit_price"], "unit_price"),
            count=count,
            size_label=data.get("size_label"),
            tax_rate=_stored_amount(tax_rate, "tax_rate") if tax_rate not in (None, "") else None,
            gst_type=GstType.parse(data.get("gst_type")),
            entries=tuple(ComboEntry.from_dict(entry) for entry in data.get("entries") or []),
        )


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable view of a theater's cart"""
    theater_id: str
    lines: Tuple[CartLine, ...] = ()

    def __iter__(self):
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total_quantity(self) -> int:
        return sum(line.count for line in self.lines)

    def line_for(self, item_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None

    def count_of(self, item_id: str) -> int:
        line = self.line_for(item_id)
        return line.count if line else 0

    def to_list(self) -> List[Dict[str, Any]]:
        return [line.to_dict() for line in self.lines]


@dataclass(frozen=True)
class LineTotals:
    """Priced cart line"""
    item_id: str
    name: str
    count: int
    unit_price: Decimal
    line_subtotal: Decimal
    tax_rate: Decimal
    gst_type: GstType
    tax: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "count": self.count,
            "unit_price": str(self.unit_price),
            "line_subtotal": str(self.line_subtotal),
            "tax_rate": str(self.tax_rate),
            "gst_type": self.gst_type.value,
            "tax": str(self.tax),
        }


@dataclass(frozen=True)
class CartTotals:
    """Cart summary data model"""
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    cgst: Decimal
    sgst: Decimal
    currency_symbol: str = ""
    lines: Tuple[LineTotals, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "cgst": str(self.cgst),
            "sgst": str(self.sgst),
            "total": str(self.total),
            "currency_symbol": self.currency_symbol,
            "lines": [line.to_dict() for line in self.lines],
        }
