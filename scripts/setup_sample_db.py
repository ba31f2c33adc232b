"""Utility that launches a sample MySQL Docker container for mysqlui."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mysqlui.config import PersistenceError, default_paths, ensure_directories
from mysqlui.models import Connection
from mysqlui.registry import ConnectionRegistry

DEFAULT_CONTAINER = "mysqlui-sample-db"
DEFAULT_PORT = 3307
DEFAULT_PASSWORD = "mysqlui"
DEFAULT_DB = "mysqlui_demo"
DEFAULT_USER = "mysqlui"
DOCKER_IMAGE = "mysql:8"
CONNECTION_NAME = "Docker Sample"


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"MYSQL_ROOT_PASSWORD={password}",
                "-e",
                f"MYSQL_DATABASE={database}",
                "-e",
                f"MYSQL_USER={user}",
                "-e",
                f"MYSQL_PASSWORD={password}",
                "-p",
                f"{port}:3306",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name, password)


def wait_for_start(name: str, password: str, retries: int = 30, delay: float = 2.0) -> None:
    for attempt in range(retries):
        result = subprocess.run(
            ["docker", "exec", name, "mysqladmin", "ping", "-uroot", f"-p{password}", "--silent"],
            text=True,
            capture_output=True,
        )
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def seed_data(name: str, database: str, user: str, password: str) -> None:
    sql = """
    CREATE TABLE IF NOT EXISTS customers (
        id INT AUTO_INCREMENT PRIMARY KEY,
        email VARCHAR(255) NOT NULL UNIQUE,
        name VARCHAR(120) NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    CREATE TABLE IF NOT EXISTS orders (
        id INT AUTO_INCREMENT PRIMARY KEY,
        customer_id INT NOT NULL,
        total DECIMAL(10,2) NOT NULL,
        status VARCHAR(20) NOT NULL DEFAULT 'pending',
        FOREIGN KEY (customer_id) REFERENCES customers(id)
    );
    INSERT IGNORE INTO customers (email, name) VALUES
        ('anna@example.com', 'Anna'),
        ('ben@example.com', 'Ben'),
        ('cara@example.com', 'Cara');
    INSERT INTO orders (customer_id, total, status)
    SELECT id, ROUND(RAND() * 100, 2), 'complete' FROM customers;
    """.strip()

    run(
        ["docker", "exec", "-i", name, "mysql", f"-u{user}", f"-p{password}", database],
        input=sql,
    )


def update_registry(port: int, user: str, database: str) -> None:
    paths = default_paths()
    try:
        ensure_directories(paths)
        registry = ConnectionRegistry.load(paths.connections_file, paths.user_config_file)
    except PersistenceError as exc:
        print(f"Cannot update saved connections: {exc}")
        return
    if any(conn.name == CONNECTION_NAME for conn in registry.list()):
        print(f"Connection '{CONNECTION_NAME}' already present; leaving as-is.")
        return
    registry.upsert(
        Connection(
            name=CONNECTION_NAME,
            host="127.0.0.1",
            port=port,
            username=user,
            default_database=database,
            use_ssl=False,
        )
    )
    print(f"Added '{CONNECTION_NAME}' connection to {paths.connections_file}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose MySQL on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="MySQL password (root and user)")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args.container, args.port, args.password, args.database, args.user)
        seed_data(args.container, args.database, args.user, args.password)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    update_registry(args.port, args.user, args.database)
    print(
        f"Sample database is ready. Connect with the '{CONNECTION_NAME}' connection "
        f"or: mysqlui -H 127.0.0.1 -P {args.port} -u {args.user} -p {args.password} --no-ssl"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
