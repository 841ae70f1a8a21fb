"""
Core package for Theater Kiosk
Contains orchestration, events, errors and logging
"""

from .errors import KioskError
from .events import EventBus, KioskEvent, ORDER_UPDATED, STOCK_UPDATED

__all__ = [
    'KioskError',
    'EventBus', 'KioskEvent', 'ORDER_UPDATED', 'STOCK_UPDATED'
]
