"""
Stock service - availability of products and combo offers against the cart
"""
import logging
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Dict, Optional, Union

from models.cart import CartSnapshot
from models.product import CatalogSnapshot, ComboOffer, Product, ItemKind
from models.stock import (
    ALLOWED, Inactive, InsufficientStock, MissingComponent, SizeMismatch,
    StockDecision, Unavailable,
)
from models.units import display_unit

logger = logging.getLogger("theater_kiosk.stock")

STOCK_PRECISION = Decimal("0.001")

CatalogItem = Union[Product, ComboOffer]


def _round(value: Decimal) -> Decimal:
    return value.quantize(STOCK_PRECISION, rounding=ROUND_HALF_UP)


class StockService:
    # The only stock predicates in the system; pure functions of (item, cart, catalog)

    def units_per_piece(self, product_id: str, catalog: CatalogSnapshot,
                        size_label: Optional[str] = None) -> Decimal:
        product = None
        if size_label:
            product = catalog.product(product_id, size_label)
        if product is None:
            product = catalog.product(product_id)
        return product.units_per_piece if product else Decimal("1")

    def consumption(self, product_id: str, cart: CartSnapshot, catalog: CatalogSnapshot,
                    exclude_item_id: Optional[str] = None) -> Decimal:
        """Base units of ``product_id`` already pledged by the cart.

        Counts product lines for that id plus every combo line containing it;
        the line whose id equals ``exclude_item_id`` is skipped.
        """
        total = Decimal("0")
        for line in cart:
            if exclude_item_id is not None and line.item_id == exclude_item_id:
                continue
            if line.is_combo:
                entries = line.entries
                if not entries:
                    combo = catalog.combo(line.item_id)
                    entries = combo.entries if combo else ()
                for entry in entries:
                    if entry.product_id == product_id:
                        per_piece = self.units_per_piece(product_id, catalog, entry.size_label)
                        total += Decimal(line.count * entry.count) * per_piece
            elif line.item_id == product_id:
                total += Decimal(line.count) * self.units_per_piece(product_id, catalog, line.size_label)
        return _round(total)

    def available(self, product: Product, cart: CartSnapshot, catalog: CatalogSnapshot,
                  exclude_item_id: Optional[str] = None) -> Decimal:
        # remaining base units, never below zero
        remaining = product.current_stock - self.consumption(product.product_id, cart, catalog, exclude_item_id)
        return max(Decimal("0"), _round(remaining))

    def remaining_pieces(self, product: Product, cart: CartSnapshot, catalog: CatalogSnapshot) -> int:
        # whole pieces still sellable, for display next to a product
        if product.units_per_piece <= 0:
            return 0
        remaining = self.available(product, cart, catalog)
        return int((remaining / product.units_per_piece).to_integral_value(ROUND_FLOOR))

    def can_add(self, item: CatalogItem, desired_count: int, cart: CartSnapshot,
                catalog: CatalogSnapshot) -> StockDecision:
        """Whether the cart may hold ``desired_count`` of ``item`` in total."""
        if item.kind is ItemKind.COMBO:
            return self._can_add_combo(item, desired_count, cart, catalog)
        return self._can_add_product(item, desired_count, cart, catalog)

    def is_out_of_stock(self, item: CatalogItem, cart: CartSnapshot, catalog: CatalogSnapshot) -> bool:
        # true when not even one more piece fits
        return not self.can_add(item, cart.count_of(item.item_id) + 1, cart, catalog).ok

    def max_addable(self, item: CatalogItem, cart: CartSnapshot, catalog: CatalogSnapshot) -> int:
        # how many more of this item fit on top of the cart
        current = cart.count_of(item.item_id)
        if item.kind is ItemKind.COMBO:
            needs = self._combo_needs(item, 1, catalog)
            if isinstance(needs, StockDecision):
                return 0
            limit = None
            for product, need in needs.values():
                pledged = self.consumption(product.product_id, cart, catalog, exclude_item_id=item.item_id)
                fits = int(((product.current_stock - pledged) / need).to_integral_value(ROUND_FLOOR)) if need > 0 else 0
                limit = fits if limit is None else min(limit, fits)
            return max(0, (limit or 0) - current)

        product = catalog.product(item.product_id) or item
        if not (product.is_active and product.is_available) or product.units_per_piece <= 0:
            return 0
        remaining = self.available(product, cart, catalog)
        return int((remaining / product.units_per_piece).to_integral_value(ROUND_FLOOR))

    def _can_add_product(self, item: Product, desired_count: int, cart: CartSnapshot,
                         catalog: CatalogSnapshot) -> StockDecision:
        product = catalog.product(item.product_id) or item
        if not product.is_active:
            return StockDecision(False, Inactive(product.product_id))
        if not product.is_available:
            return StockDecision(False, Unavailable(product.product_id))
        if desired_count <= 0:
            return ALLOWED

        reserved = self.consumption(product.product_id, cart, catalog, exclude_item_id=product.product_id)
        required = _round(Decimal(desired_count) * product.units_per_piece)
        if product.current_stock < reserved + required:
            return StockDecision(False, InsufficientStock(
                product_id=product.product_id,
                required=required,
                available=max(Decimal("0"), _round(product.current_stock - reserved)),
                unit=display_unit(product.base_unit),
            ))
        return ALLOWED

    def _combo_needs(self, combo: ComboOffer, desired_count: int, catalog: CatalogSnapshot):
        # product_id -> (product, base units needed); or a refusing StockDecision
        if not combo.is_active:
            return StockDecision(False, Inactive(combo.combo_id))
        if not combo.entries:
            return StockDecision(False, Unavailable(combo.combo_id))

        needs: Dict[str, tuple] = OrderedDict()
        for entry in combo.entries:
            product = catalog.product(entry.product_id)
            if product is None:
                logger.warning("Combo %s references missing product %s", combo.combo_id, entry.product_id)
                return StockDecision(False, MissingComponent(entry.product_id))
            if entry.size_label:
                product = catalog.product(entry.product_id, entry.size_label)
                if product is None:
                    return StockDecision(False, SizeMismatch(entry.product_id, entry.size_label))
            if not product.is_active:
                return StockDecision(False, Inactive(product.product_id))
            if not product.is_available:
                return StockDecision(False, Unavailable(product.product_id))

            need = Decimal(desired_count * entry.count) * product.units_per_piece
            if product.product_id in needs:
                need += needs[product.product_id][1]
            needs[product.product_id] = (product, _round(need))
        return needs

    def _can_add_combo(self, combo: ComboOffer, desired_count: int, cart: CartSnapshot,
                       catalog: CatalogSnapshot) -> StockDecision:
        needs = self._combo_needs(combo, max(desired_count, 0), catalog)
        if isinstance(needs, StockDecision):
            return needs
        if desired_count <= 0:
            return ALLOWED

        for product, need in needs.values():
            # the combo's own line is never counted against itself
            pledged = self.consumption(product.product_id, cart, catalog, exclude_item_id=combo.combo_id)
            available = product.current_stock - pledged
            if need > available:
                return StockDecision(False, InsufficientStock(
                    product_id=product.product_id,
                    required=need,
                    available=max(Decimal("0"), _round(available)),
                    unit=display_unit(product.base_unit),
                ))
        return ALLOWED
