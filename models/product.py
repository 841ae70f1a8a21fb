"""
Catalog related data models
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

from .units import derive_base_unit, derive_units_per_piece, display_unit


class ItemKind(Enum):
    PRODUCT = "product"
    COMBO = "combo"


class GstType(Enum):
    INCLUSIVE = "Inclusive"
    EXCLUSIVE = "Exclusive"

    @classmethod
    def parse(cls, value: Any) -> Optional["GstType"]:
        # accepts Inclusive / INCLUDE / Exclusive / EXCLUDE in any case
        if value is None or value == "":
            return None
        if isinstance(value, GstType):
            return value
        text = str(value).strip().upper()
        if "INCLU" in text:
            return cls.INCLUSIVE
        if "EXCLU" in text:
            return cls.EXCLUSIVE
        return None


ALL_TAB_ID = "all"
COMBO_TAB_ID = "combo"


def to_decimal(value: Any, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(default)


def optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def ref_id(value: Any) -> Optional[str]:
    # references arrive either as a plain id or as a populated {_id: ...} document
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        inner = value.get("_id") or value.get("id")
        return str(inner) if inner else None
    return str(value)


def apply_discount(price: Decimal, discount_percentage: Decimal) -> Decimal:
    if discount_percentage and discount_percentage > 0:
        return price * (Decimal("100") - discount_percentage) / Decimal("100")
    return price


def _first_image(raw: Dict[str, Any]) -> Optional[str]:
    images = raw.get("images") or []
    for image in images:
        if isinstance(image, dict):
            url = image.get("url") or image.get("imageUrl") or image.get("path")
        else:
            url = image
        if url:
            return str(url)
    return raw.get("imageUrl") or raw.get("image") or None


@dataclass(frozen=True)
class Product:
    """Product data model"""
    product_id: str
    name: str
    base_price: Decimal
    size_label: Optional[str] = None
    sale_price: Optional[Decimal] = None
    discount_percentage: Decimal = Decimal("0")
    tax_rate: Optional[Decimal] = None
    gst_type: Optional[GstType] = None
    image_url: Optional[str] = None
    category_id: Optional[str] = None
    kiosk_type_id: Optional[str] = None
    is_veg: bool = False
    is_active: bool = True
    is_available: bool = True
    current_stock: Decimal = Decimal("0")
    base_unit: str = "Nos"
    units_per_piece: Decimal = Decimal("1")

    @property
    def item_id(self) -> str:
        return self.product_id

    @property
    def entry_id(self) -> str:
        return self.product_id

    @property
    def kind(self) -> ItemKind:
        return ItemKind.PRODUCT

    @property
    def selling_price(self) -> Decimal:
        """Sale price when set, else base price, less the percentage discount"""
        price = self.sale_price if self.sale_price and self.sale_price > 0 else self.base_price
        return apply_discount(price, self.discount_percentage)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Product":
        pricing = raw.get("pricing") or {}
        inventory = raw.get("inventory") or {}
        base_unit = derive_base_unit(raw)

        stock = inventory.get("currentStock") if isinstance(inventory, dict) else None
        if stock is None:
            stock = raw.get("balanceStock", raw.get("closingBalance", raw.get("currentStock")))

        size_label = raw.get("quantity") if raw.get("quantity") not in (None, "") else raw.get("sizeLabel")

        return cls(
            product_id=str(raw.get("_id") or raw.get("id")),
            name=str(raw.get("name") or raw.get("productName") or ""),
            base_price=to_decimal(pricing.get("basePrice", raw.get("basePrice", raw.get("price")))),
            size_label=str(size_label).strip() if size_label not in (None, "") else None,
            sale_price=optional_decimal(pricing.get("salePrice", raw.get("salePrice"))),
            discount_percentage=to_decimal(pricing.get("discountPercentage", raw.get("discountPercentage"))),
            tax_rate=optional_decimal(pricing.get("taxRate", raw.get("taxRate"))),
            gst_type=GstType.parse(pricing.get("gstType", raw.get("gstType"))),
            image_url=_first_image(raw),
            category_id=ref_id(raw.get("categoryId") or raw.get("category")),
            kiosk_type_id=ref_id(raw.get("kioskType") or raw.get("kioskTypeId")),
            is_veg=bool(raw.get("isVeg", raw.get("vegetarian", False))),
            is_active=bool(raw.get("isActive", True)),
            is_available=bool(raw.get("isAvailable", True)),
            current_stock=to_decimal(stock),
            base_unit=base_unit,
            units_per_piece=derive_units_per_piece(raw, base_unit),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "product_id": self.product_id,
            "name": self.name,
            "size_label": self.size_label,
            "base_price": str(self.base_price),
            "selling_price": str(self.selling_price),
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "gst_type": self.gst_type.value if self.gst_type else None,
            "image_url": self.image_url,
            "category_id": self.category_id,
            "kiosk_type_id": self.kiosk_type_id,
            "is_veg": self.is_veg,
            "current_stock": str(self.current_stock),
            "unit": display_unit(self.base_unit),
        }


@dataclass(frozen=True)
class Category:
    """Category data model"""
    category_id: str
    name: str
    image_url: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Category":
        return cls(
            category_id=str(raw.get("_id") or raw.get("id")),
            name=str(raw.get("categoryName") or raw.get("name") or ""),
            image_url=raw.get("imageUrl") or raw.get("image"),
            is_active=bool(raw.get("isActive", True)),
        )

    @property
    def entry_id(self) -> str:
        return self.category_id

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.category_id, "name": self.name, "image_url": self.image_url}


@dataclass(frozen=True)
class KioskType:
    """Kiosk type data model - a top-level menu partition"""
    kiosk_type_id: str
    name: str
    image_url: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "KioskType":
        return cls(
            kiosk_type_id=str(raw.get("_id") or raw.get("id")),
            name=str(raw.get("name") or ""),
            image_url=raw.get("imageUrl") or raw.get("image"),
            is_active=bool(raw.get("isActive", True)),
        )

    @property
    def entry_id(self) -> str:
        return self.kiosk_type_id


@dataclass(frozen=True)
class Banner:
    """Banner data model"""
    banner_id: str
    image_url: Optional[str]
    is_active: bool = True
    sort_order: int = 0

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Banner":
        try:
            sort_order = int(raw.get("sortOrder") or 0)
        except (TypeError, ValueError):
            sort_order = 0
        return cls(
            banner_id=str(raw.get("_id") or raw.get("id")),
            image_url=raw.get("imageUrl") or raw.get("image"),
            is_active=bool(raw.get("isActive", True)),
            sort_order=sort_order,
        )

    @property
    def entry_id(self) -> str:
        return self.banner_id

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.banner_id, "image_url": self.image_url, "sort_order": self.sort_order}


@dataclass(frozen=True)
class ComboEntry:
    """One component of a combo offer"""
    product_id: str
    count: int = 1
    size_label: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ComboEntry":
        product_quantity = raw.get("productQuantity")
        size_label = None
        count_value = raw.get("quantity")
        if product_quantity not in (None, ""):
            text = str(product_quantity).strip()
            try:
                numeric = Decimal(text)
            except InvalidOperation:
                size_label = text
            else:
                # a bare number is a count, not a size
                if count_value in (None, ""):
                    count_value = numeric
        try:
            count = int(Decimal(str(count_value))) if count_value not in (None, "") else 1
        except InvalidOperation:
            count = 1
        return cls(
            product_id=ref_id(raw.get("productId")) or ref_id(raw.get("_id")) or "",
            count=max(count, 1),
            size_label=size_label or raw.get("sizeLabel") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"product_id": self.product_id, "count": self.count, "size_label": self.size_label}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComboEntry":
        return cls(
            product_id=str(data["product_id"]),
            count=int(data.get("count", 1)),
            size_label=data.get("size_label"),
        )


@dataclass(frozen=True)
class ComboOffer:
    """Combo offer data model - has no stock of its own"""
    combo_id: str
    name: str
    offer_price: Decimal
    entries: Tuple[ComboEntry, ...] = ()
    description: str = ""
    discount_percentage: Decimal = Decimal("0")
    tax_rate: Optional[Decimal] = None
    gst_type: Optional[GstType] = None
    image_url: Optional[str] = None
    is_active: bool = True

    @property
    def item_id(self) -> str:
        return self.combo_id

    @property
    def kind(self) -> ItemKind:
        return ItemKind.COMBO

    @property
    def size_label(self) -> Optional[str]:
        return None

    @property
    def is_available(self) -> bool:
        return bool(self.entries)

    @property
    def selling_price(self) -> Decimal:
        return apply_discount(self.offer_price, self.discount_percentage)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "ComboOffer":
        entries = tuple(
            ComboEntry.from_api(entry)
            for entry in (raw.get("products") or [])
            if isinstance(entry, dict)
        )
        return cls(
            combo_id=str(raw.get("_id") or raw.get("id")),
            name=str(raw.get("name") or ""),
            offer_price=to_decimal(raw.get("offerPrice", raw.get("price"))),
            entries=entries,
            description=str(raw.get("description") or ""),
            discount_percentage=to_decimal(raw.get("discountPercentage")),
            tax_rate=optional_decimal(raw.get("gstTaxRate", raw.get("taxRate"))),
            gst_type=GstType.parse(raw.get("gstType")),
            image_url=raw.get("imageUrl") or raw.get("image"),
            is_active=bool(raw.get("isActive", True)),
        )

    @property
    def entry_id(self) -> str:
        return self.combo_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "combo_id": self.combo_id,
            "name": self.name,
            "description": self.description,
            "offer_price": str(self.offer_price),
            "selling_price": str(self.selling_price),
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "gst_type": self.gst_type.value if self.gst_type else None,
            "image_url": self.image_url,
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass(frozen=True)
class MenuTab:
    """Sidebar filter tab"""
    tab_id: str
    name: str
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.tab_id, "name": self.name, "image_url": self.image_url}


def sizes_match(left: Optional[str], right: Optional[str]) -> bool:
    # "150 ML" == "150ml"
    if left is None or right is None:
        return False
    return "".join(str(left).split()).lower() == "".join(str(right).split()).lower()


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable bundle of one theater's catalog at one instant"""
    theater_id: str
    products: Tuple[Product, ...] = ()
    categories: Tuple[Category, ...] = ()
    kiosk_types: Tuple[KioskType, ...] = ()
    banners: Tuple[Banner, ...] = ()
    combos: Tuple[ComboOffer, ...] = ()
    warnings: Tuple[str, ...] = ()
    errors: Dict[str, str] = field(default_factory=dict)
    loaded_at: datetime = field(default_factory=datetime.now)

    @property
    def is_empty(self) -> bool:
        return not self.products

    def product(self, product_id: str, size_label: Optional[str] = None) -> Optional[Product]:
        matches = [p for p in self.products if p.product_id == product_id]
        if size_label is None:
            return matches[0] if matches else None
        for product in matches:
            if sizes_match(product.size_label, size_label):
                return product
        return None

    def combo(self, combo_id: str) -> Optional[ComboOffer]:
        for combo in self.combos:
            if combo.combo_id == combo_id:
                return combo
        return None

    def item(self, item_id: str):
        return self.product(item_id) or self.combo(item_id)

    def tabs(self) -> List[MenuTab]:
        tabs = [MenuTab(ALL_TAB_ID, "All")]
        tabs.extend(MenuTab(kt.kiosk_type_id, kt.name, kt.image_url) for kt in self.kiosk_types)
        if self.combos:
            tabs.append(MenuTab(COMBO_TAB_ID, "Combo"))
        return tabs

    def menu(self, tab_id: str = ALL_TAB_ID, category_id: Optional[str] = None) -> List[Any]:
        # products (and combos on the All / Combo tabs) shown under a sidebar tab
        if tab_id == COMBO_TAB_ID:
            return list(self.combos)
        if tab_id in (None, "", ALL_TAB_ID):
            items: List[Any] = list(self.products)
        else:
            items = [p for p in self.products if p.kiosk_type_id == tab_id]
        if category_id:
            items = [p for p in items if p.category_id == category_id]
        elif tab_id in (None, "", ALL_TAB_ID):
            items.extend(self.combos)
        return items
