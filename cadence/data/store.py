"""
Cadence — State Store.

Persistent key/value store for entity lists (patterns, reminders) backed by
SQLite. Each key has a registered schema version; older payloads are migrated
on load and written back. Payloads are stored as JSON.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing, contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from cadence.core.errors import PersistenceError

logger = logging.getLogger(__name__)


def _is_list(data: Any) -> bool:
    return isinstance(data, list)


@dataclass
class Schema:
    """Version, validator and migration for one stored key."""

    version: int
    validate: Callable[[Any], bool] = _is_list
    migrate: Callable[[Any, int], Any] | None = None
    default: Any = None


class StateStore:
    """SQLite-backed implementation of PersistentStorePort."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from cadence.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._schemas: dict[str, Schema] = {}
        # An in-memory database only lives as long as its connection
        self._memory_conn: sqlite3.Connection | None = None
        if db_path == ":memory:":
            self._memory_conn = self._open()
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction, closing file connections afterwards."""
        if self._memory_conn is not None:
            with self._memory_conn:
                yield self._memory_conn
            return
        with closing(self._open()) as conn:
            with conn:
                yield conn

    def _init_db(self) -> None:
        """Create the state table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS state (
                    key         TEXT    PRIMARY KEY,
                    version     INTEGER NOT NULL,
                    payload     TEXT    NOT NULL,
                    updated_at  TEXT    NOT NULL
                )
            """)
        logger.debug("State table initialized at %s", self._db_path)

    def register_schema(
        self,
        key: str,
        version: int,
        validate: Callable[[Any], bool] | None = None,
        migrate: Callable[[Any, int], Any] | None = None,
        default: Any = None,
    ) -> None:
        """Register the schema for ``key``. ``migrate(data, old_version)`` → new data."""
        if not isinstance(version, int) or version < 1:
            raise ValueError(f"Schema version for {key!r} must be a positive integer")
        self._schemas[key] = Schema(
            version=version,
            validate=validate or _is_list,
            migrate=migrate,
            default=[] if default is None else default,
        )

    def _default(self, key: str) -> Any:
        schema = self._schemas.get(key)
        if schema is None:
            return []
        default = schema.default
        return list(default) if isinstance(default, list) else default

    def load(self, key: str) -> Any:
        """Return the stored entity list for ``key``, or the schema default.

        Raises PersistenceError on corrupt JSON or data failing validation.
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT version, payload FROM state WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return self._default(key)

        try:
            data = json.loads(row["payload"])
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Stored payload for {key!r} is not valid JSON: {exc}") from exc

        schema = self._schemas.get(key)
        if schema is None:
            return data

        stored_version = row["version"]
        if stored_version < schema.version:
            if schema.migrate is not None:
                data = schema.migrate(data, stored_version)
            logger.info("Migrated %r from schema v%d to v%d", key, stored_version, schema.version)
            if not schema.validate(data):
                raise PersistenceError(f"Migrated data for {key!r} failed validation")
            self._write(key, schema.version, data)
            return data

        if not schema.validate(data):
            raise PersistenceError(f"Stored data for {key!r} failed validation")
        return data

    def save(self, key: str, entities: Any) -> None:
        """Validate and upsert the entity list for ``key``."""
        schema = self._schemas.get(key)
        if schema is not None and not schema.validate(entities):
            raise PersistenceError(f"Refusing to save {key!r}: data failed validation")
        version = schema.version if schema is not None else 1
        self._write(key, version, entities)

    def _write(self, key: str, version: int, data: Any) -> None:
        try:
            payload = json.dumps(data)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Cannot serialize {key!r}: {exc}") from exc

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO state (key, version, payload, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    version = excluded.version,
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (key, version, payload, datetime.now().isoformat()),
            )
        logger.debug("Saved %r (v%d)", key, version)

    def delete(self, key: str) -> bool:
        """Remove ``key`` entirely."""
        with self._connect() as conn:
            deleted = conn.execute("DELETE FROM state WHERE key = ?", (key,)).rowcount
        return deleted > 0
