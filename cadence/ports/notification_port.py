"""Notification port — abstract interface for the native notification facility.

The dispatcher depends on this protocol, never on a specific provider.
Permission states are "granted", "denied" or "default".
"""

from __future__ import annotations

from typing import Any, Callable, Protocol


class NativeNotifierPort(Protocol):
    """Host platform notification facility."""

    async def request_permission(self) -> str: ...

    async def show(
        self,
        title: str,
        body: str,
        on_click: Callable[[], None] | None = None,
    ) -> Any: ...
