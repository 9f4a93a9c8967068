"""Local SQLite storage for plugin data, plugin metadata, message logs and subscriptions."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_log = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS plugin_data (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    plugin_id TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (plugin_id, key)
);
CREATE INDEX IF NOT EXISTS idx_plugin_data_plugin ON plugin_data (plugin_id);

CREATE TABLE IF NOT EXISTS plugin_metadata (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    plugin_id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    version TEXT NOT NULL,
    description TEXT,
    author TEXT,
    enabled BOOLEAN NOT NULL DEFAULT TRUE,
    loaded_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    last_active TIMESTAMP,
    config TEXT
);

CREATE TABLE IF NOT EXISTS message_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id TEXT NOT NULL,
    from_plugin TEXT NOT NULL,
    to_plugin TEXT NOT NULL,
    payload BLOB,
    message_type TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    delivered_at TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_message_log_message ON message_log (message_id);

CREATE TABLE IF NOT EXISTS plugin_subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    plugin_id TEXT NOT NULL,
    topic TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (plugin_id, topic)
);

CREATE TABLE IF NOT EXISTS dashboard_layouts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    grid_columns INTEGER NOT NULL DEFAULT 4,
    grid_rows INTEGER NOT NULL DEFAULT 3,
    is_default BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS layout_widgets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    layout_id INTEGER NOT NULL REFERENCES dashboard_layouts (id) ON DELETE CASCADE,
    widget_type TEXT NOT NULL,
    plugin_id TEXT,
    position_col INTEGER NOT NULL,
    position_row INTEGER NOT NULL,
    size_col_span INTEGER NOT NULL DEFAULT 1,
    size_row_span INTEGER NOT NULL DEFAULT 1,
    config TEXT,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


def _database_path(database_url: str) -> str:
    rest = database_url.removeprefix("sqlite:")
    rest = rest.split("?", 1)[0]
    rest = rest.removeprefix("//")
    if rest in ("", MEMORY_DATABASE):
        return MEMORY_DATABASE
    return rest


def _timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.fromisoformat(str(value))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _json_or_none(text: str | None) -> Any:
    return None if text is None else json.loads(text)


@dataclass
class PluginData:
    """One stored key/value pair of a plugin."""

    id: int
    plugin_id: str
    key: str
    value: Any
    created_at: datetime
    updated_at: datetime


@dataclass
class PluginMetadata:
    """Registration record of a plugin."""

    plugin_id: str
    name: str
    version: str
    description: str | None = None
    author: str | None = None
    enabled: bool = True
    config: Any = None
    id: int = 0
    loaded_at: datetime | None = None
    last_active: datetime | None = None

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> PluginMetadata:
        return cls(
            id=row["id"],
            plugin_id=row["plugin_id"],
            name=row["name"],
            version=row["version"],
            description=row["description"],
            author=row["author"],
            enabled=bool(row["enabled"]),
            loaded_at=_timestamp(row["loaded_at"]),
            last_active=_timestamp(row["last_active"]),
            config=_json_or_none(row["config"]),
        )


@dataclass
class MessageLogEntry:
    """One logged message."""

    id: int
    message_id: str
    from_plugin: str
    to_plugin: str
    payload: bytes | None
    message_type: str | None
    status: str
    created_at: datetime
    delivered_at: datetime | None

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> MessageLogEntry:
        payload = row["payload"]
        return cls(
            id=row["id"],
            message_id=row["message_id"],
            from_plugin=row["from_plugin"],
            to_plugin=row["to_plugin"],
            payload=None if payload is None else bytes(payload),
            message_type=row["message_type"],
            status=row["status"],
            created_at=_timestamp(row["created_at"]),
            delivered_at=_timestamp(row["delivered_at"]),
        )


class Storage:
    """SQLite-backed store; usable as a context manager that closes on exit."""

    def __init__(self, database_url: str) -> None:
        _log.info("initialising storage")
        path = _database_path(database_url)
        if path != MEMORY_DATABASE:
            parent = Path(path).parent
            if str(parent) not in ("", ".") and not parent.exists():
                _log.debug("creating database directory: %s", parent)
                parent.mkdir(parents=True, exist_ok=True)

        _log.info("connecting to database: %s", database_url)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(path, check_same_thread=False, timeout=5.0)
        self._conn.row_factory = sqlite3.Row
        try:
            for pragma in (
                "PRAGMA journal_mode = WAL",
                "PRAGMA synchronous = NORMAL",
                "PRAGMA busy_timeout = 5000",
                "PRAGMA temp_store = MEMORY",
                "PRAGMA foreign_keys = ON",
            ):
                self._conn.execute(pragma)
            _log.info("running database migrations")
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error:
            self._conn.close()
            raise
        _log.info("storage initialised")

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def connection(self) -> sqlite3.Connection:
        """Return the underlying connection for advanced operations."""
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock, self._conn:
            yield self._conn

    def _query(self, sql: str, params: Any = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # Plugin data

    def store_data(self, plugin_id: str, key: str, value: Any) -> None:
        """Store a JSON value under a key, replacing any earlier value."""
        encoded = json.dumps(value)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO plugin_data (plugin_id, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT(plugin_id, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (plugin_id, key, encoded),
            )

    def get_data(self, plugin_id: str, key: str) -> Any:
        """Return the stored JSON value, or None if the key is absent."""
        rows = self._query(
            "SELECT value FROM plugin_data WHERE plugin_id = ? AND key = ?",
            (plugin_id, key),
        )
        return json.loads(rows[0]["value"]) if rows else None

    def delete_data(self, plugin_id: str, key: str) -> bool:
        """Delete a key; return True if it existed."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM plugin_data WHERE plugin_id = ? AND key = ?",
                (plugin_id, key),
            )
        return cursor.rowcount > 0

    def list_keys(self, plugin_id: str) -> list[str]:
        rows = self._query(
            "SELECT key FROM plugin_data WHERE plugin_id = ? ORDER BY key", (plugin_id,)
        )
        return [row["key"] for row in rows]

    def clear_plugin_data(self, plugin_id: str) -> int:
        """Delete every key of a plugin; return how many were removed."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM plugin_data WHERE plugin_id = ?", (plugin_id,))
        return cursor.rowcount

    # Plugin metadata

    def register_plugin(self, metadata: PluginMetadata) -> None:
        """Insert a plugin record or refresh an existing one (keeping its enabled flag)."""
        config = None if metadata.config is None else json.dumps(metadata.config)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO plugin_metadata (
                    plugin_id, name, version, description, author, enabled, config
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(plugin_id) DO UPDATE SET
                    name = excluded.name,
                    version = excluded.version,
                    description = excluded.description,
                    author = excluded.author,
                    config = excluded.config,
                    last_active = CURRENT_TIMESTAMP
                """,
                (
                    metadata.plugin_id,
                    metadata.name,
                    metadata.version,
                    metadata.description,
                    metadata.author,
                    bool(metadata.enabled),
                    config,
                ),
            )

    def update_plugin_activity(self, plugin_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE plugin_metadata SET last_active = CURRENT_TIMESTAMP WHERE plugin_id = ?",
                (plugin_id,),
            )

    def get_plugin_metadata(self, plugin_id: str) -> PluginMetadata | None:
        rows = self._query("SELECT * FROM plugin_metadata WHERE plugin_id = ?", (plugin_id,))
        return PluginMetadata._from_row(rows[0]) if rows else None

    def list_plugins(self) -> list[PluginMetadata]:
        rows = self._query("SELECT * FROM plugin_metadata ORDER BY name")
        return [PluginMetadata._from_row(row) for row in rows]

    def set_plugin_enabled(self, plugin_id: str, enabled: bool) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE plugin_metadata SET enabled = ? WHERE plugin_id = ?",
                (bool(enabled), plugin_id),
            )

    # Message log

    def log_message(
        self,
        message_id: str,
        from_plugin: str,
        to_plugin: str,
        payload: bytes | None = None,
        message_type: str | None = None,
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO message_log (message_id, from_plugin, to_plugin, payload, message_type)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    message_id,
                    from_plugin,
                    to_plugin,
                    None if payload is None else bytes(payload),
                    message_type,
                ),
            )

    def update_message_status(self, message_id: str, status: str) -> None:
        """Set a message's status; 'delivered' also records the delivery time."""
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE message_log
                SET status = :status,
                    delivered_at = CASE WHEN :status = 'delivered'
                                        THEN CURRENT_TIMESTAMP ELSE delivered_at END
                WHERE message_id = :message_id
                """,
                {"status": status, "message_id": message_id},
            )

    def get_message_history(
        self, plugin_id: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[MessageLogEntry]:
        """Return logged messages, newest first, optionally only those a plugin sent or got."""
        if plugin_id is not None:
            rows = self._query(
                """
                SELECT * FROM message_log
                WHERE from_plugin = :plugin OR to_plugin = :plugin
                ORDER BY created_at DESC, id DESC
                LIMIT :limit OFFSET :offset
                """,
                {"plugin": plugin_id, "limit": limit, "offset": offset},
            )
        else:
            rows = self._query(
                """
                SELECT * FROM message_log
                ORDER BY created_at DESC, id DESC
                LIMIT :limit OFFSET :offset
                """,
                {"limit": limit, "offset": offset},
            )
        return [MessageLogEntry._from_row(row) for row in rows]

    # Subscriptions

    def add_subscription(self, plugin_id: str, topic: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO plugin_subscriptions (plugin_id, topic)
                VALUES (?, ?)
                ON CONFLICT(plugin_id, topic) DO NOTHING
                """,
                (plugin_id, topic),
            )

    def remove_subscription(self, plugin_id: str, topic: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM plugin_subscriptions WHERE plugin_id = ? AND topic = ?",
                (plugin_id, topic),
            )
        return cursor.rowcount > 0

    def get_topic_subscribers(self, topic: str) -> list[str]:
        rows = self._query(
            "SELECT plugin_id FROM plugin_subscriptions WHERE topic = ?", (topic,)
        )
        return [row["plugin_id"] for row in rows]

    def get_plugin_subscriptions(self, plugin_id: str) -> list[str]:
        rows = self._query(
            "SELECT topic FROM plugin_subscriptions WHERE plugin_id = ?", (plugin_id,)
        )
        return [row["topic"] for row in rows]