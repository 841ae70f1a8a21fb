"""
REST client for the theater POS API
"""
import logging
import time
import uuid
from threading import Event, Lock
from typing import Any, Callable, Dict, List, Optional

import httpx

from core.errors import ApiError, NetworkError, RequestAborted, ServerError

logger = logging.getLogger("theater_kiosk.api")

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


class AbortHandle:
    """Abort signal for one outgoing fetch, tied to an owning screen"""

    def __init__(self, key: str, owner: Optional[str] = None):
        self.key = key
        self.owner = owner
        self._event = Event()

    def abort(self):
        self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def raise_if_aborted(self):
        if self.aborted:
            raise RequestAborted(f"Request {self.key} was aborted")


def cache_buster() -> str:
    return f"{int(time.time() * 1000)}{uuid.uuid4().hex[:6]}"


class TheaterApiClient:
    # HTTP access with retries, timeouts, force-refresh hints and abort handles

    def __init__(self, base_url: str, token: str = "", timeout: float = 30.0,
                 max_retries: int = 2, backoff: float = 0.5,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff = backoff
        self.sleep = sleep
        self.http = httpx.Client(base_url=self.base_url, headers=headers,
                                 timeout=timeout, transport=transport)
        self._handles: Dict[str, AbortHandle] = {}
        self._lock = Lock()

    def close(self):
        self.abort_all()
        self.http.close()

    # === abort handles ===
    def begin(self, key: str, owner: Optional[str] = None) -> AbortHandle:
        # a newer fetch for the same resource aborts the older one
        handle = AbortHandle(key, owner)
        with self._lock:
            previous = self._handles.get(key)
            self._handles[key] = handle
        if previous is not None and not previous.aborted:
            logger.info("Superseding in-flight request %s", key)
            previous.abort()
        return handle

    def finish(self, handle: AbortHandle):
        with self._lock:
            if self._handles.get(handle.key) is handle:
                del self._handles[handle.key]

    def abort_owner(self, owner: str) -> int:
        # screen went away: abort everything it started
        with self._lock:
            handles = [h for h in self._handles.values() if h.owner == owner]
            for handle in handles:
                del self._handles[handle.key]
        for handle in handles:
            handle.abort()
        return len(handles)

    def abort_all(self):
        with self._lock:
            handles: List[AbortHandle] = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.abort()

    # === requests ===
    def request(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None,
                json: Any = None, timeout: Optional[float] = None, force_refresh: bool = False,
                handle: Optional[AbortHandle] = None, retry: bool = True) -> Any:
        """Send a request and return the decoded JSON body.

        Transport failures are retried up to ``max_retries`` times with
        exponential backoff, then raised as ``NetworkError``. 5xx responses
        raise ``ServerError``; 4xx responses raise ``ApiError`` carrying the
        server's message verbatim.
        """
        params = dict(params or {})
        headers = {}
        if force_refresh:
            headers.update(NO_CACHE_HEADERS)
            params["_t"] = cache_buster()

        attempts = self.max_retries + 1 if retry else 1
        for attempt in range(attempts):
            if handle is not None:
                handle.raise_if_aborted()
            try:
                response = self.http.request(
                    method, path, params=params or None, json=json, headers=headers,
                    timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )
            except httpx.TransportError as e:
                if handle is not None and handle.aborted:
                    raise RequestAborted(f"Request {handle.key} was aborted") from e
                if attempt + 1 < attempts:
                    delay = self.backoff * (2 ** attempt)
                    logger.warning("%s %s failed (%s); retrying in %.1fs", method, path, e, delay)
                    self.sleep(delay)
                    continue
                raise NetworkError(f"Network error: {e}") from e

            # aborted fetches never reach the caller's state
            if handle is not None:
                handle.raise_if_aborted()
            return self._decode(method, path, response)

        raise NetworkError(f"{method} {path} failed")

    def _decode(self, method: str, path: str, response: httpx.Response) -> Any:
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = None

        if response.status_code >= 500:
            logger.error("%s %s -> %s", method, path, response.status_code)
            raise ServerError(response.status_code)
        if response.status_code >= 400:
            message = None
            if isinstance(body, dict):
                message = body.get("error") or body.get("message")
            raise ApiError(response.status_code, str(message or response.text or f"HTTP {response.status_code}"),
                           body if isinstance(body, dict) else None)
        if body is None:
            raise ServerError(response.status_code, "Invalid server response. Please try again.")
        return body

    def get(self, path: str, **kwargs) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> Any:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs) -> Any:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)
