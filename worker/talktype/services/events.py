from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List

from ..models.events import AudioLevelUpdate, Event


Subscriber = Callable[[Event], None]


class EventBus:
    """Fire-and-forget fan-out of core notifications.

    Publishing never blocks on a consumer and works with no subscribers at
    all. A subscriber that raises is logged and dropped from that delivery
    only; the publisher never sees the error.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger("app")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                self.logger.exception("event subscriber failed for %s", type(event).__name__)


class EventLog:
    """Bounded, id-numbered history of events for polling clients.

    Level updates arrive once per audio callback and are not kept here.
    """

    def __init__(self, maxlen: int = 500) -> None:
        self._items: Deque[Dict[str, Any]] = deque(maxlen=maxlen)
        self._next_id = 1
        self._lock = threading.Lock()

    def __call__(self, event: Event) -> None:
        if isinstance(event, AudioLevelUpdate):
            return
        with self._lock:
            self._items.append({
                "id": self._next_id,
                "type": type(event).__name__,
                "payload": event.dict(),
            })
            self._next_id += 1

    def since(self, since_id: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(it) for it in self._items if it["id"] > since_id]
