"""Event bus port — publish lifecycle events to UI and statistics consumers."""

from __future__ import annotations

from typing import Any, Protocol


class EventBusPort(Protocol):
    """Publish side of the application event bus."""

    def publish(self, topic: str, payload: Any = None) -> None: ...
