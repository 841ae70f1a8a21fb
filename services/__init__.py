"""
Services package for Theater Kiosk
Contains the order pipeline business logic
"""

from .catalog_service import CatalogService, merge_entries
from .stock_service import StockService
from .cart_service import CartService
from .pricing_service import PricingService, PricingPolicy, round_money
from .order_service import OrderService
from .checkout_service import CheckoutFlow, CheckoutState

__all__ = [
    'CatalogService', 'merge_entries', 'StockService', 'CartService',
    'PricingService', 'PricingPolicy', 'round_money',
    'OrderService', 'CheckoutFlow', 'CheckoutState'
]
