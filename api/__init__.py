"""
API package for Theater Kiosk
Contains the REST client and response normalisation
"""

from .client import TheaterApiClient, AbortHandle
from .shapes import extract_list, extract_entity, resolve_image_url

__all__ = [
    'TheaterApiClient', 'AbortHandle',
    'extract_list', 'extract_entity', 'resolve_image_url'
]
