"""
In-process event bus for cross-view refresh notifications
"""
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional, Any

logger = logging.getLogger("theater_kiosk.events")

ORDER_UPDATED = "orderUpdated"
STOCK_UPDATED = "stockUpdated"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class KioskEvent:
    """Payload of orderUpdated / stockUpdated"""
    theater_id: str
    source: str
    timestamp: int
    type: Optional[str] = None
    order_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theaterId": self.theater_id,
            "timestamp": self.timestamp,
            "source": self.source,
            "type": self.type,
            "orderId": self.order_id,
        }


Handler = Callable[[KioskEvent], None]


class EventBus:
    # Fire-and-forget publish/subscribe; no acknowledgement

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = Lock()

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        # returns a callable that removes the subscription
        with self._lock:
            self._handlers[name].append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._handlers[name]:
                    self._handlers[name].remove(handler)

        return unsubscribe

    def emit(self, name: str, event: KioskEvent) -> int:
        # deliver to a copy of the handler list so handlers may unsubscribe themselves
        with self._lock:
            handlers = list(self._handlers.get(name, ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Handler for %s failed", name)
        logger.debug("Emitted %s to %d handler(s): %s", name, len(handlers), event)
        return len(handlers)
