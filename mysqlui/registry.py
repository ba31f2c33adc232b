"""Durable catalog of saved connections and per-database metadata."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
import threading
from typing import Callable, Iterable

from pydantic import TypeAdapter, ValidationError

from .config import (
    PersistenceError,
    UserConfig,
    UserPreferences,
    load_user_config,
    read_json,
    save_user_config,
    write_json_atomic,
)
from .models import Connection, DatabaseEntry, utcnow

LOG = logging.getLogger(__name__)

_CONNECTIONS = TypeAdapter(list[Connection])


def sort_database_entries(entries: Iterable[DatabaseEntry]) -> list[DatabaseEntry]:
    """Favorites first, then most recently accessed, then alphabetical."""

    def _key(entry: DatabaseEntry) -> tuple[bool, bool, float, str]:
        accessed = entry.last_accessed
        return (
            not entry.favorite,
            accessed is None,
            -accessed.timestamp() if accessed is not None else 0.0,
            entry.name,
        )

    return sorted(entries, key=_key)


class ConnectionRegistry:
    """Owns ``connections.json`` and the database entries in ``user_config.json``.

    Every mutation is written before the method returns. A write failure
    raises ``PersistenceError`` and leaves the in-memory state untouched so a
    retry sees the same data.
    """

    def __init__(
        self,
        connections_file: Path,
        user_config_file: Path,
        *,
        connections: Iterable[Connection] = (),
        user_config: UserConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._connections_file = connections_file
        self._user_config_file = user_config_file
        self._connections: dict[str, Connection] = {conn.id: conn for conn in connections}
        self._user_config = user_config or UserConfig()
        self._clock = clock
        self._lock = threading.Lock()

    @classmethod
    def load(
        cls,
        connections_file: Path,
        user_config_file: Path,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> ConnectionRegistry:
        """Read both files; a missing file means an empty registry."""

        raw = read_json(connections_file)
        connections: list[Connection] = []
        if raw is not None:
            if isinstance(raw, dict):
                # Older files stored {"connections": {id: {...}}, "last_used": id}
                raw = list((raw.get("connections") or {}).values())
            if not isinstance(raw, list):
                raise PersistenceError(f"{connections_file} does not contain a JSON array")
            try:
                connections = _CONNECTIONS.validate_python(raw)
            except ValidationError as exc:
                raise PersistenceError(f"Failed to parse {connections_file}: {exc}") from exc
        user_config = load_user_config(user_config_file)
        LOG.debug("Loaded %d connection(s) from %s", len(connections), connections_file)
        return cls(
            connections_file,
            user_config_file,
            connections=connections,
            user_config=user_config,
            clock=clock,
        )

    @property
    def preferences(self) -> UserPreferences:
        return self._user_config.preferences

    @property
    def user_config(self) -> UserConfig:
        return self._user_config

    def list(self) -> tuple[Connection, ...]:
        """Saved connections in insertion order."""

        with self._lock:
            return tuple(self._connections.values())

    def get(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def find(self, host: str, port: int, username: str) -> Connection | None:
        """First saved connection pointing at the same server and account."""

        with self._lock:
            for conn in self._connections.values():
                if conn.host == host and conn.port == port and conn.username == username:
                    return conn
        return None

    def upsert(self, connection: Connection) -> None:
        """Insert or replace a connection by id, keeping its position."""

        with self._lock:
            updated = dict(self._connections)
            updated[connection.id] = connection
            self._write_connections(updated)
            self._connections = updated
        LOG.info("Saved connection %s", connection.label)

    def remove(self, connection_id: str) -> bool:
        """Delete a connection and its database metadata."""

        with self._lock:
            if connection_id not in self._connections:
                return False
            updated = dict(self._connections)
            del updated[connection_id]
            self._write_connections(updated)
            self._connections = updated
            config = self._user_config.with_entries(connection_id, [])
            if config.last_connection_id == connection_id:
                config = config.with_last_database(None, None)
            self._write_user_config(config)
        LOG.info("Removed connection %s", connection_id)
        return True

    def list_databases(self, connection_id: str) -> list[DatabaseEntry]:
        with self._lock:
            return sort_database_entries(self._user_config.entries_for(connection_id))

    def merge_databases(self, connection_id: str, names: Iterable[str]) -> list[DatabaseEntry]:
        """Add live database names not seen before and return the sorted union."""

        with self._lock:
            entries = self._user_config.entries_for(connection_id)
            known = {entry.name for entry in entries}
            added = False
            for name in names:
                if name in known:
                    continue
                entries.append(DatabaseEntry(name=name, connection_id=connection_id))
                known.add(name)
                added = True
            if added:
                self._write_user_config(self._user_config.with_entries(connection_id, entries))
            return sort_database_entries(entries)

    def record_access(self, connection_id: str, name: str) -> DatabaseEntry:
        """Stamp the database as accessed now and remember it as last used."""

        with self._lock:
            now = self._clock()
            entries, entry = self._replace_entry(
                connection_id,
                name,
                lambda current: current.model_copy(update={"last_accessed": now}),
            )
            config = self._user_config.with_entries(connection_id, entries)
            self._write_user_config(config.with_last_database(connection_id, name))
            return entry

    def toggle_favorite(self, connection_id: str, name: str) -> bool:
        """Flip the favorite flag and return the new value."""

        with self._lock:
            entries, entry = self._replace_entry(
                connection_id,
                name,
                lambda current: current.model_copy(update={"favorite": not current.favorite}),
            )
            self._write_user_config(self._user_config.with_entries(connection_id, entries))
            return entry.favorite

    def last_used(self) -> tuple[Connection, str | None] | None:
        """The last connection/database pair a database was selected on."""

        with self._lock:
            connection_id = self._user_config.last_connection_id
            if connection_id is None or connection_id not in self._connections:
                return None
            return self._connections[connection_id], self._user_config.last_selected_database

    def _replace_entry(
        self,
        connection_id: str,
        name: str,
        update: Callable[[DatabaseEntry], DatabaseEntry],
    ) -> tuple[list[DatabaseEntry], DatabaseEntry]:
        entries = self._user_config.entries_for(connection_id)
        for index, current in enumerate(entries):
            if current.name == name:
                entries[index] = update(current)
                return entries, entries[index]
        created = update(DatabaseEntry(name=name, connection_id=connection_id))
        entries.append(created)
        return entries, created

    def _write_connections(self, connections: dict[str, Connection]) -> None:
        write_json_atomic(
            self._connections_file,
            [conn.model_dump(mode="json") for conn in connections.values()],
        )

    def _write_user_config(self, config: UserConfig) -> None:
        save_user_config(config, self._user_config_file)
        self._user_config = config


__all__ = ["ConnectionRegistry", "sort_database_entries"]
