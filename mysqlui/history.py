"""Persistent, size-bounded SQL history."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import threading
from typing import Iterator

from pydantic import TypeAdapter, ValidationError

from .config import PersistenceError, read_json, write_json_atomic
from .models import HistoryEntry

LOG = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 1000

_ENTRIES = TypeAdapter(list[HistoryEntry])


@dataclass(frozen=True, slots=True)
class HistoryFilter:
    """Optional connection/database constraints for history lookups.

    A ``None`` field matches anything, except that with ``exact_database`` a
    ``None`` database only matches entries recorded without one.
    """

    connection_id: str | None = None
    database: str | None = None
    exact_database: bool = False

    def matches(self, entry: HistoryEntry) -> bool:
        if self.connection_id is not None and entry.connection_id != self.connection_id:
            return False
        if (self.database is not None or self.exact_database) and entry.database != self.database:
            return False
        return True


class HistoryView:
    """Newest-first view over a snapshot of the history.

    Iteration is lazy and can be restarted; every pass over the same view
    yields the same entries regardless of later writes to the store.
    """

    def __init__(self, snapshot: tuple[HistoryEntry, ...], history_filter: HistoryFilter) -> None:
        self._snapshot = snapshot
        self._filter = history_filter

    @property
    def filter(self) -> HistoryFilter:
        return self._filter

    def __iter__(self) -> Iterator[HistoryEntry]:
        for entry in reversed(self._snapshot):
            if self._filter.matches(entry):
                yield entry

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def first(self, count: int) -> list[HistoryEntry]:
        """Return at most ``count`` of the newest matching entries."""

        result: list[HistoryEntry] = []
        if count <= 0:
            return result
        for entry in self:
            result.append(entry)
            if len(result) >= count:
                break
        return result


class HistoryStore:
    """Append-only log of executed SQL persisted to ``sql_history.json``.

    The store is the only writer of its file. ``append`` evicts from the head
    once the configured limit is exceeded and writes the whole log before
    returning. When ``persist`` is off the log lives in memory only.
    """

    def __init__(
        self,
        path: Path,
        *,
        limit: int = DEFAULT_HISTORY_LIMIT,
        persist: bool = True,
        entries: list[HistoryEntry] | None = None,
    ) -> None:
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self._path = path
        self._limit = limit
        self._persist = persist
        self._lock = threading.Lock()
        self._entries: list[HistoryEntry] = list(entries or [])
        self._next_id = max((entry.id for entry in self._entries), default=0) + 1
        self.load_error: str | None = None
        if len(self._entries) > self._limit:
            del self._entries[: len(self._entries) - self._limit]

    @classmethod
    def load(cls, path: Path, *, limit: int = DEFAULT_HISTORY_LIMIT, persist: bool = True) -> HistoryStore:
        """Load the store from disk.

        A file that cannot be parsed is moved aside so the next write does not
        clobber it, and the store starts empty with ``load_error`` set.
        """

        try:
            entries = _parse_entries(read_json(path))
        except PersistenceError as exc:
            backup = path.with_name(path.name + ".corrupt")
            LOG.warning("Unreadable history file %s, moving it to %s", path, backup, exc_info=True)
            try:
                path.replace(backup)
            except OSError:
                LOG.exception("Failed to move corrupt history file aside")
            store = cls(path, limit=limit, persist=persist)
            store.load_error = str(exc)
            return store
        return cls(path, limit=limit, persist=persist, entries=entries)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def persist(self) -> bool:
        return self._persist

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self) -> tuple[HistoryEntry, ...]:
        """All committed entries in insertion order."""

        with self._lock:
            return tuple(self._entries)

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        """Commit an entry at the tail and persist the log.

        The committed entry is kept in memory even when the write fails; the
        failure is raised as ``PersistenceError`` for the caller to report.
        """

        with self._lock:
            committed = entry.model_copy(update={"id": self._next_id})
            self._next_id += 1
            self._entries.append(committed)
            overflow = len(self._entries) - self._limit
            if overflow > 0:
                del self._entries[:overflow]
            snapshot = tuple(self._entries)
            self._write(snapshot)
        return committed

    def query(self, history_filter: HistoryFilter | None = None) -> HistoryView:
        """Return matching entries, newest first."""

        with self._lock:
            snapshot = tuple(self._entries)
        return HistoryView(snapshot, history_filter or HistoryFilter())

    def clear(self, history_filter: HistoryFilter | None = None) -> int:
        """Remove matching entries (everything when unfiltered)."""

        with self._lock:
            if history_filter is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                kept = [entry for entry in self._entries if not history_filter.matches(entry)]
                removed = len(self._entries) - len(kept)
                self._entries = kept
            if removed:
                self._write(tuple(self._entries))
        return removed

    def _write(self, snapshot: tuple[HistoryEntry, ...]) -> None:
        if not self._persist:
            return
        write_json_atomic(self._path, [entry.model_dump(mode="json") for entry in snapshot])


def _parse_entries(data: object) -> list[HistoryEntry]:
    if data is None:
        return []
    if isinstance(data, dict):
        # Older files wrapped the array: {"entries": [...], "max_entries": n}
        data = data.get("entries", [])
    if not isinstance(data, list):
        raise PersistenceError("History file does not contain a JSON array")
    try:
        entries = _ENTRIES.validate_python([_upgrade_entry(item) for item in data if isinstance(item, dict)])
    except ValidationError as exc:
        raise PersistenceError(f"Invalid history entry: {exc}") from exc
    if any(entry.id == 0 for entry in entries):
        entries = [entry.model_copy(update={"id": index}) for index, entry in enumerate(entries, start=1)]
    return entries


def _upgrade_entry(item: dict[str, object]) -> dict[str, object]:
    """Map the older boolean layout onto the outcome field."""

    if "outcome" in item:
        return item
    upgraded = dict(item)
    if "execution_time_ms" in upgraded:
        upgraded.setdefault("duration_ms", upgraded.pop("execution_time_ms"))
    success = upgraded.pop("success", True)
    upgraded["outcome"] = "success" if success else "error"
    upgraded.setdefault("connection_id", "")
    return upgraded


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "HistoryFilter",
    "HistoryStore",
    "HistoryView",
]
