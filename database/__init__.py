"""
Database package for Theater Kiosk
Contains durable storage connection and repository classes
"""

from .connection import DatabaseConnection
from .repository import StorageRepository, CartRepository, CacheRepository

__all__ = [
    'DatabaseConnection',
    'StorageRepository', 'CartRepository', 'CacheRepository'
]
