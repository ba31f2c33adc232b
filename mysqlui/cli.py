"""Command-line entry point: argument parsing, logging and startup wiring."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Sequence

from .app import MysqluiApp
from .config import AppPaths, PersistenceError, default_paths, ensure_directories
from .connections import AiomysqlConnectionBackend, ConnectionBackend, DemoConnectionBackend
from .history import HistoryStore
from .models import Connection
from .navigation import Navigation
from .registry import ConnectionRegistry
from .session import Session

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNREADABLE_STATE = 1
EXIT_USAGE = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mysqlui",
        description="Browse MySQL servers, databases and tables from the terminal.",
    )
    parser.add_argument("-H", "--host", help="Server host (default: localhost)")
    parser.add_argument("-P", "--port", type=int, help="Server port (default: 3306)")
    parser.add_argument("-u", "--username", help="Account name (default: root when run via sudo or as root)")
    parser.add_argument("-p", "--password", help="Account password, kept in memory only")
    parser.add_argument("-d", "--database", help="Database to open after connecting")
    parser.add_argument("--name", help="Name for the command-line connection")
    parser.add_argument("--no-ssl", action="store_true", help="Connect without TLS")
    parser.add_argument("--demo", action="store_true", help="Use the built-in demo server instead of MySQL")
    parser.add_argument("--config-dir", type=Path, help="Override the config directory")
    parser.add_argument("--cache-dir", type=Path, help="Override the cache directory")
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Log level for the log file (default: INFO)",
    )
    return parser


def wants_connection(args: argparse.Namespace) -> bool:
    """Whether any connection flag was given on the command line."""

    return any(
        value is not None
        for value in (args.host, args.port, args.username, args.password, args.database, args.name)
    ) or args.no_ssl


def resolve_username(
    explicit: str | None,
    *,
    environ: Mapping[str, str] | None = None,
    euid: int | None = None,
) -> str:
    """Pick the account name; without ``--username`` only privileged runs default to root."""

    if explicit:
        return explicit
    env = os.environ if environ is None else environ
    if euid is None:
        euid = os.geteuid() if hasattr(os, "geteuid") else -1
    if env.get("SUDO_USER") or euid == 0:
        return "root"
    raise ValueError("--username is required unless mysqlui runs as root or via sudo")


def command_line_connection(args: argparse.Namespace, username: str, registry: ConnectionRegistry) -> Connection:
    """Reuse a saved connection for the same server and account, or save a new one."""

    host = args.host or "localhost"
    port = args.port or 3306
    existing = registry.find(host, port, username)
    if existing is not None:
        LOG.info("Reusing saved connection %s", existing.label)
        return existing
    connection = Connection(
        name=args.name or f"{username}@{host}",
        host=host,
        port=port,
        username=username,
        use_ssl=not args.no_ssl,
    )
    registry.upsert(connection)
    return connection


def configure_logging(paths: AppPaths, level: str) -> None:
    """Send logs to the cache dir; the terminal belongs to the TUI."""

    handler = logging.FileHandler(paths.log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level, logging.INFO))


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    paths = default_paths(args.config_dir, args.cache_dir)
    try:
        ensure_directories(paths)
    except PersistenceError as exc:
        print(f"mysqlui: {exc}", file=sys.stderr)
        return EXIT_USAGE
    configure_logging(paths, args.log_level)
    LOG.info("Starting mysqlui (config: %s, cache: %s)", paths.config_dir, paths.cache_dir)

    try:
        registry = ConnectionRegistry.load(paths.connections_file, paths.user_config_file)
    except PersistenceError as exc:
        LOG.error("Cannot read saved state: %s", exc)
        print(f"mysqlui: {exc}", file=sys.stderr)
        return EXIT_UNREADABLE_STATE

    preferences = registry.preferences
    history = HistoryStore.load(
        paths.history_file,
        limit=preferences.max_history_entries,
        persist=preferences.auto_save_history,
    )
    messages: list[tuple[str, str]] = []
    if history.load_error:
        messages.append((f"History was unreadable and has been reset: {history.load_error}", "warning"))

    startup: tuple[str, str | None] | None = None
    password: str | None = None
    try:
        if wants_connection(args):
            try:
                username = resolve_username(args.username)
            except ValueError as exc:
                print(f"mysqlui: {exc}", file=sys.stderr)
                return EXIT_USAGE
            connection = command_line_connection(args, username, registry)
            startup = (connection.id, args.database)
            password = args.password
        elif args.demo and not registry.list():
            registry.upsert(Connection(name="demo", host="demo", username="demo", use_ssl=False))
    except PersistenceError as exc:
        print(f"mysqlui: {exc}", file=sys.stderr)
        return EXIT_UNREADABLE_STATE

    backend: ConnectionBackend = DemoConnectionBackend() if args.demo else AiomysqlConnectionBackend()
    session = Session(backend, registry=registry)
    navigation = Navigation(session, registry, history, preferences=preferences)
    if startup is not None and password is not None:
        navigation.provide_password(startup[0], password)

    app = MysqluiApp(navigation, session, registry, startup=startup, messages=messages)
    try:
        app.run()
    finally:
        session.disconnect()
        if isinstance(backend, AiomysqlConnectionBackend):
            backend.shutdown()
    LOG.info("mysqlui exited")
    return EXIT_OK


__all__ = [
    "build_parser",
    "command_line_connection",
    "configure_logging",
    "main",
    "resolve_username",
    "wants_connection",
]
