"""
UI package for Theater Kiosk
Contains user interface implementations
"""

from .kiosk_ui import KioskConsoleUI

__all__ = [
    'KioskConsoleUI'
]
