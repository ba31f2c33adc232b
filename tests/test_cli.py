"""Tests for the command-line entry point."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

import pytest

from mysqlui import cli
from mysqlui.app import MysqluiApp
from mysqlui.registry import ConnectionRegistry


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def launched(monkeypatch: pytest.MonkeyPatch) -> list[MysqluiApp]:
    apps: list[MysqluiApp] = []

    def _run(self: MysqluiApp) -> None:
        apps.append(self)

    monkeypatch.setattr(MysqluiApp, "run", _run)
    return apps


def _dirs(tmp_path: Path) -> list[str]:
    return ["--config-dir", str(tmp_path / "config"), "--cache-dir", str(tmp_path / "cache")]


def test_resolve_username_rules() -> None:
    assert cli.resolve_username("app", environ={}, euid=1000) == "app"
    assert cli.resolve_username(None, environ={"SUDO_USER": "alice"}, euid=1000) == "root"
    assert cli.resolve_username(None, environ={}, euid=0) == "root"
    with pytest.raises(ValueError):
        cli.resolve_username(None, environ={}, euid=1000)


def test_wants_connection_only_for_connection_flags() -> None:
    parser = cli.build_parser()

    assert cli.wants_connection(parser.parse_args([])) is False
    assert cli.wants_connection(parser.parse_args(["--demo", "--log-level", "debug"])) is False
    assert cli.wants_connection(parser.parse_args(["-H", "db.local"])) is True
    assert cli.wants_connection(parser.parse_args(["--no-ssl"])) is True


def test_command_line_connection_reuses_saved_entry(tmp_path: Path) -> None:
    registry = ConnectionRegistry.load(tmp_path / "connections.json", tmp_path / "user_config.json")
    args = cli.build_parser().parse_args(["-H", "db.local", "-P", "3307", "--no-ssl"])

    first = cli.command_line_connection(args, "app", registry)
    second = cli.command_line_connection(args, "app", registry)

    assert first == second
    assert first.name == "app@db.local"
    assert first.use_ssl is False
    assert len(registry.list()) == 1


def test_main_seeds_demo_connection_and_runs_app(tmp_path: Path, launched: list[MysqluiApp]) -> None:
    code = cli.main([*_dirs(tmp_path), "--demo"])

    assert code == cli.EXIT_OK
    assert len(launched) == 1
    saved = json.loads((tmp_path / "config" / "connections.json").read_text())
    assert [item["name"] for item in saved] == ["demo"]
    assert (tmp_path / "cache" / "mysqlui.log").exists()


def test_main_passes_command_line_connection_to_app(tmp_path: Path, launched: list[MysqluiApp]) -> None:
    code = cli.main([*_dirs(tmp_path), "--demo", "-u", "app", "-p", "pw", "-d", "shop"])

    assert code == cli.EXIT_OK
    saved = json.loads((tmp_path / "config" / "connections.json").read_text())
    assert saved[0]["username"] == "app"
    assert "password" not in saved[0]
    assert launched[0].startup == (saved[0]["id"], "shop")


def test_main_rejects_missing_username(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, launched: list[MysqluiApp], capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("SUDO_USER", raising=False)
    monkeypatch.setattr(cli.os, "geteuid", lambda: 1000, raising=False)

    code = cli.main([*_dirs(tmp_path), "--demo", "-H", "db.local"])

    assert code == cli.EXIT_USAGE
    assert "--username" in capsys.readouterr().err
    assert launched == []


def test_main_fails_when_directories_cannot_be_created(tmp_path: Path, launched: list[MysqluiApp]) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("")

    code = cli.main(["--config-dir", str(blocker / "config"), "--cache-dir", str(tmp_path / "cache"), "--demo"])

    assert code == cli.EXIT_USAGE
    assert launched == []


def test_main_refuses_unreadable_connections(tmp_path: Path, launched: list[MysqluiApp]) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "connections.json").write_text("{broken")

    code = cli.main([*_dirs(tmp_path), "--demo"])

    assert code == cli.EXIT_UNREADABLE_STATE
    assert launched == []
    assert (config_dir / "connections.json").read_text() == "{broken"


def test_main_resets_corrupt_history_with_warning(tmp_path: Path, launched: list[MysqluiApp]) -> None:
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "sql_history.json").write_text("not json")

    code = cli.main([*_dirs(tmp_path), "--demo"])

    assert code == cli.EXIT_OK
    assert launched[0].pending_notifications[0][1] == "warning"
