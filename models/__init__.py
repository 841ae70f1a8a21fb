"""
Models package for Theater Kiosk
Contains data models and type definitions
"""

from .product import (
    Product, Category, KioskType, Banner, ComboEntry, ComboOffer,
    CatalogSnapshot, MenuTab, GstType, ItemKind
)
from .cart import CartLine, CartSnapshot, CartTotals, LineTotals
from .order import Order, OrderItem, OrderStatus, CustomerInfo
from .stock import StockDecision

__all__ = [
    'Product', 'Category', 'KioskType', 'Banner', 'ComboEntry', 'ComboOffer',
    'CatalogSnapshot', 'MenuTab', 'GstType', 'ItemKind',
    'CartLine', 'CartSnapshot', 'CartTotals', 'LineTotals',
    'Order', 'OrderItem', 'OrderStatus', 'CustomerInfo',
    'StockDecision'
]
