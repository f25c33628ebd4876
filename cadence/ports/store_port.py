"""Persistent store port — load/save of entity lists by key.

Schema versioning and migration are the store's concern, not the engine's.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol


class PersistentStorePort(Protocol):
    """Key/value store for lists of serialized entities."""

    def register_schema(
        self,
        key: str,
        version: int,
        validate: Callable[[Any], bool] | None = None,
        migrate: Callable[[Any, int], Any] | None = None,
        default: Any = None,
    ) -> None: ...

    def load(self, key: str) -> Any: ...

    def save(self, key: str, entities: Any) -> None: ...
