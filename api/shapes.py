"""
Response shape normalisation - nothing past the loader branches on payload shape
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlsplit

logger = logging.getLogger("theater_kiosk.api")

GCS_PUBLIC_HOST = "storage.googleapis.com"


def extract_list(payload: Any, name: str) -> Optional[List[Dict[str, Any]]]:
    """List under ``{data: {name: [...]}}``, ``{data: [...]}`` or ``{name: [...]}``.

    The first shape that matches wins. Returns ``None`` when none matches so the
    caller can log a diagnostic; it never fabricates items.
    """
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get(name), list):
        return data[name]
    if isinstance(data, list):
        return data
    if isinstance(payload.get(name), list):
        return payload[name]
    return None


def extract_entity(payload: Any, name: str) -> Optional[Dict[str, Any]]:
    # single object under {data: {name: {...}}}, {data: {...}}, {name: {...}} or the root
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict):
        if isinstance(data.get(name), dict):
            return data[name]
        return data
    if isinstance(payload.get(name), dict):
        return payload[name]
    if "_id" in payload or "orderNumber" in payload:
        return payload
    return None


def _origin(base_url: str) -> str:
    parts = urlsplit(base_url)
    return f"{parts.scheme}://{parts.netloc}"


def resolve_image_url(url: Optional[str], api_base_url: str, proxy_enabled: bool = False) -> Optional[str]:
    """Absolute URL for an image reference.

    ``gs://bucket/key`` becomes the public storage URL, ``/path`` resolves
    against the API origin, and cloud-storage URLs are routed through the
    ``/proxy-image`` endpoint when proxying is enabled.
    """
    if not url:
        return None
    url = str(url).strip()
    if url.startswith("data:"):
        return url
    if url.startswith("gs://"):
        url = f"https://{GCS_PUBLIC_HOST}/{url[len('gs://'):]}"
    elif url.startswith("//"):
        url = "https:" + url
    elif url.startswith("/"):
        url = _origin(api_base_url) + url
    elif not url.startswith(("http://", "https://")):
        url = f"{api_base_url.rstrip('/')}/{url}"

    if proxy_enabled and urlsplit(url).netloc == GCS_PUBLIC_HOST:
        return f"{api_base_url.rstrip('/')}/proxy-image?url={quote(url, safe='')}"
    return url
