"""Per-session event channels.

Each live session owns one SessionEventBus; nothing here is process-wide.
Handlers run synchronously in subscription order on the publishing path, so
they must be quick (enqueue, don't await).
"""

import logging
from collections import defaultdict
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")
Handler = Callable[[Any], None]


class SessionEventBus:
    def __init__(self, name: str = "session"):
        self._name = name
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._catch_all: list[Handler] = []
        self._closed = False

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register a handler for one event type. Returns an unsubscribe callable."""
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        self._catch_all.append(handler)

        def unsubscribe() -> None:
            if handler in self._catch_all:
                self._catch_all.remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        if self._closed:
            logger.debug(f"[{self._name}] dropped {type(event).__name__} after close")
            return
        for handler in list(self._handlers.get(type(event), [])) + list(self._catch_all):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"[{self._name}] handler {getattr(handler, '__name__', handler)!r} "
                    f"failed on {type(event).__name__}: {e}",
                    exc_info=True,
                )

    def close(self) -> None:
        self._handlers.clear()
        self._catch_all.clear()
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed
