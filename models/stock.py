"""
Stock decision data models
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict, Any, Union


@dataclass(frozen=True)
class Inactive:
    item_id: str
    code: str = "Inactive"

    def describe(self) -> str:
        return f"{self.item_id} is inactive"


@dataclass(frozen=True)
class Unavailable:
    item_id: str
    code: str = "Unavailable"

    def describe(self) -> str:
        return f"{self.item_id} is unavailable"


@dataclass(frozen=True)
class InsufficientStock:
    product_id: str
    required: Decimal
    available: Decimal
    unit: str
    code: str = "InsufficientStock"

    def describe(self) -> str:
        return (f"Insufficient stock for {self.product_id}. "
                f"Available: {self.available} {self.unit}, Required: {self.required} {self.unit}")


@dataclass(frozen=True)
class MissingComponent:
    product_id: str
    code: str = "MissingComponent"

    def describe(self) -> str:
        return f"Combo component {self.product_id} not found"


@dataclass(frozen=True)
class SizeMismatch:
    product_id: str
    size: str
    code: str = "SizeMismatch"

    def describe(self) -> str:
        return f"Combo component {self.product_id} has no size {self.size}"


StockReason = Union[Inactive, Unavailable, InsufficientStock, MissingComponent, SizeMismatch]


@dataclass(frozen=True)
class StockDecision:
    """Answer of the stock engine to 'can this count be in the cart?'"""
    ok: bool
    reason: Optional[StockReason] = None

    def __bool__(self) -> bool:
        return self.ok

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True}
        data: Dict[str, Any] = {"ok": False, "reason": self.reason.code, "message": self.reason.describe()}
        for key, value in self.reason.__dict__.items():
            if key != "code":
                data[key] = str(value) if isinstance(value, Decimal) else value
        return data


ALLOWED = StockDecision(True)
