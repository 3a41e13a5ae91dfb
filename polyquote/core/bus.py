"""
PolyQuote — Event Bus
======================
Explicitly constructed publish/subscribe channel, injected into every
component at construction time.

Dispatch is run-to-completion: an event published while another event is
being dispatched is queued and delivered only after every subscriber of the
current event has returned. Subscribers are called in subscription order.
A subscriber that raises is logged and skipped; the remaining subscribers
still receive the event.
"""

import logging
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .events import EventType

Handler = Callable[[Any], None]


class EventBus:

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("polyquote.bus")
        self._handlers: Dict[EventType, List[Handler]] = defaultdict(list)
        self._queue: Deque[Tuple[EventType, Any]] = deque()
        self._dispatching = False

        # Stats
        self._published: Dict[EventType, int] = defaultdict(int)
        self._handler_errors = 0

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: EventType, payload: Any = None) -> None:
        self._published[event_type] += 1
        self._queue.append((event_type, payload))
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._queue:
                etype, data = self._queue.popleft()
                for handler in list(self._handlers.get(etype, ())):
                    try:
                        handler(data)
                    except Exception as e:
                        self._handler_errors += 1
                        self.logger.error(
                            f"Handler {getattr(handler, '__qualname__', handler)} "
                            f"failed on {etype.value}: {e}",
                            exc_info=True,
                        )
        finally:
            self._dispatching = False

    def get_stats(self) -> Dict:
        return {
            "subscribers": {et.value: len(hs) for et, hs in self._handlers.items() if hs},
            "published": {et.value: n for et, n in self._published.items()},
            "handler_errors": self._handler_errors,
            "queued": len(self._queue),
        }
