"""In-process event bus — implements EventBusPort.

Synchronous pub/sub: handlers run inside ``publish`` in subscription order.
A failing handler is logged and does not stop delivery to the others.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

logger = logging.getLogger(__name__)

WILDCARD = "*"

Handler = Callable[[str, Any], None]


@dataclass
class Event:
    """A published event."""

    topic: str
    payload: Any
    timestamp: datetime = field(default_factory=datetime.now)


class InMemoryEventBus:
    """Topic-based publish/subscribe with a bounded history."""

    def __init__(self, max_history: int = 100) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._history: deque[Event] = deque(maxlen=max_history)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Call ``handler(topic, payload)`` for ``topic`` ("*" for all).

        Returns an unsubscribe callable.
        """
        self._handlers.setdefault(topic, []).append(handler)
        logger.debug("Subscriber added for %s", topic)

        def unsubscribe() -> None:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)
                logger.debug("Subscriber removed from %s", topic)

        return unsubscribe

    def once(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Like subscribe, but the handler runs for the first event only."""

        def wrapper(t: str, payload: Any) -> None:
            unsubscribe()
            handler(t, payload)

        unsubscribe = self.subscribe(topic, wrapper)
        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> None:
        self._history.append(Event(topic=topic, payload=payload))
        logger.debug("Publishing event: %s", topic)

        targets = list(self._handlers.get(topic, []))
        if topic != WILDCARD:
            targets.extend(self._handlers.get(WILDCARD, []))

        for handler in targets:
            try:
                handler(topic, payload)
            except Exception:
                logger.exception("Event handler for %s failed", topic)

    def history(self, topic: str | None = None) -> list[Event]:
        if topic is None:
            return list(self._history)
        return [e for e in self._history if e.topic == topic]

    def clear(self) -> None:
        self._handlers.clear()
        self._history.clear()
        logger.info("All event bus subscribers cleared")
