"""Tests for the connection registry."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
from typing import Iterator

import pytest

from mysqlui.config import PersistenceError
from mysqlui.models import Connection, DatabaseEntry
from mysqlui.registry import ConnectionRegistry, sort_database_entries

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _registry(tmp_path: Path, clock=None) -> ConnectionRegistry:  # type: ignore[no-untyped-def]
    kwargs = {"clock": clock} if clock is not None else {}
    return ConnectionRegistry.load(tmp_path / "connections.json", tmp_path / "user_config.json", **kwargs)


def _ticking_clock() -> Iterator[datetime]:
    current = T0
    while True:
        yield current
        current += timedelta(minutes=1)


def test_upsert_persists_without_password(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    conn = Connection(name="dev", host="db.local", username="app", password="s3cret")

    registry.upsert(conn)

    raw = json.loads((tmp_path / "connections.json").read_text())
    assert raw[0]["name"] == "dev"
    assert "password" not in raw[0]
    reloaded = _registry(tmp_path)
    assert reloaded.list() == (conn.with_password(""),)
    assert reloaded.get(conn.id) is not None


def test_list_keeps_insertion_order_and_upsert_replaces_in_place(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    first = Connection(name="b")
    second = Connection(name="a")
    registry.upsert(first)
    registry.upsert(second)

    registry.upsert(first.model_copy(update={"name": "renamed"}))

    assert [conn.name for conn in registry.list()] == ["renamed", "a"]


def test_find_matches_server_and_account(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    conn = Connection(name="dev", host="h", port=3307, username="u")
    registry.upsert(conn)

    assert registry.find("h", 3307, "u") == conn
    assert registry.find("h", 3306, "u") is None


def test_remove_drops_database_entries_and_last_used(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    conn = Connection(name="dev")
    registry.upsert(conn)
    registry.merge_databases(conn.id, ["shop"])
    registry.record_access(conn.id, "shop")

    assert registry.remove(conn.id) is True
    assert registry.remove(conn.id) is False

    reloaded = _registry(tmp_path)
    assert reloaded.list() == ()
    assert reloaded.list_databases(conn.id) == []
    assert reloaded.last_used() is None


def test_favorites_first_then_recency_then_name() -> None:
    t1, t2, t3 = T0, T0 + timedelta(hours=1), T0 + timedelta(hours=2)
    a = DatabaseEntry(name="A", connection_id="c", favorite=True, last_accessed=t1)
    b = DatabaseEntry(name="B", connection_id="c", favorite=False, last_accessed=t3)
    c = DatabaseEntry(name="C", connection_id="c", favorite=True, last_accessed=t2)
    d = DatabaseEntry(name="D", connection_id="c")
    e = DatabaseEntry(name="E", connection_id="c")

    ordered = sort_database_entries([e, d, a, b, c])

    assert [entry.name for entry in ordered] == ["C", "A", "B", "D", "E"]


def test_list_databases_orders_registry_entries(tmp_path: Path) -> None:
    clock = _ticking_clock()
    registry = _registry(tmp_path, clock=lambda: next(clock))
    conn = Connection(name="dev")
    registry.upsert(conn)
    registry.merge_databases(conn.id, ["A", "B", "C"])
    registry.record_access(conn.id, "A")
    registry.record_access(conn.id, "C")
    registry.record_access(conn.id, "B")
    registry.toggle_favorite(conn.id, "A")
    registry.toggle_favorite(conn.id, "C")

    assert [entry.name for entry in registry.list_databases(conn.id)] == ["C", "A", "B"]


def test_merge_adds_unseen_names_only(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    registry.toggle_favorite("c1", "known")

    merged = registry.merge_databases("c1", ["zeta", "known", "alpha", "zeta"])

    assert [entry.name for entry in merged] == ["known", "alpha", "zeta"]
    assert merged[0].favorite is True
    assert len(_registry(tmp_path).list_databases("c1")) == 3


def test_record_access_updates_entry_and_last_used(tmp_path: Path) -> None:
    registry = _registry(tmp_path, clock=lambda: T0)
    conn = Connection(name="dev")
    registry.upsert(conn)

    entry = registry.record_access(conn.id, "shop")

    assert entry.last_accessed == T0
    last = _registry(tmp_path).last_used()
    assert last is not None
    assert last[0].id == conn.id
    assert last[1] == "shop"


def test_toggle_favorite_twice_restores_flag(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    registry.merge_databases("c1", ["shop"])

    assert registry.toggle_favorite("c1", "shop") is True
    assert registry.toggle_favorite("c1", "shop") is False
    assert registry.list_databases("c1")[0].favorite is False


def test_failed_write_leaves_memory_untouched(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    registry = _registry(tmp_path)

    def _fail(path: Path, data: object) -> None:
        raise PersistenceError("read-only filesystem")

    monkeypatch.setattr("mysqlui.registry.write_json_atomic", _fail)

    with pytest.raises(PersistenceError):
        registry.upsert(Connection(name="dev"))
    assert registry.list() == ()


def test_load_accepts_legacy_keyed_layout(tmp_path: Path) -> None:
    (tmp_path / "connections.json").write_text(
        json.dumps(
            {
                "connections": {
                    "abc": {"id": "abc", "name": "legacy", "host": "h", "port": 3306, "username": "root"}
                },
                "last_used": "abc",
            }
        )
    )

    registry = _registry(tmp_path)

    (conn,) = registry.list()
    assert conn.id == "abc"
    assert conn.use_ssl is True


def test_load_rejects_garbage(tmp_path: Path) -> None:
    (tmp_path / "connections.json").write_text('"nope"')

    with pytest.raises(PersistenceError):
        _registry(tmp_path)
