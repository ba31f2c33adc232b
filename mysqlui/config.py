"""App configuration, file locations and JSON persistence helpers."""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
import tempfile
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from .models import DatabaseEntry

APP_NAME = "mysqlui"
CONNECTIONS_FILENAME = "connections.json"
USER_CONFIG_FILENAME = "user_config.json"
HISTORY_FILENAME = "sql_history.json"
LOG_FILENAME = "mysqlui.log"


class PersistenceError(RuntimeError):
    """Raised when a config, registry or history file cannot be read or written."""


@dataclass(frozen=True, slots=True)
class AppPaths:
    """Resolved on-disk locations for everything the app persists."""

    config_dir: Path
    cache_dir: Path

    @property
    def connections_file(self) -> Path:
        return self.config_dir / CONNECTIONS_FILENAME

    @property
    def user_config_file(self) -> Path:
        return self.config_dir / USER_CONFIG_FILENAME

    @property
    def history_file(self) -> Path:
        return self.cache_dir / HISTORY_FILENAME

    @property
    def log_file(self) -> Path:
        return self.cache_dir / LOG_FILENAME


def default_paths(
    config_dir: Path | None = None,
    cache_dir: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> AppPaths:
    """Resolve config/cache directories from flags, env vars, then XDG defaults."""

    env = os.environ if environ is None else environ
    home = Path.home()
    if config_dir is None:
        override = env.get("MYSQLUI_CONFIG_DIR")
        base = env.get("XDG_CONFIG_HOME") or str(home / ".config")
        config_dir = Path(override) if override else Path(base) / APP_NAME
    if cache_dir is None:
        override = env.get("MYSQLUI_CACHE_DIR")
        base = env.get("XDG_CACHE_HOME") or str(home / ".cache")
        cache_dir = Path(override) if override else Path(base) / APP_NAME
    return AppPaths(config_dir=config_dir.expanduser(), cache_dir=cache_dir.expanduser())


def ensure_directories(paths: AppPaths) -> None:
    """Create the config and cache directories; failure is fatal at startup."""

    for directory in (paths.config_dir, paths.cache_dir):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create directory {directory}: {exc}") from exc


class UserPreferences(BaseModel):
    """User-tunable behaviour stored in user_config.json."""

    auto_save_history: bool = True
    max_history_entries: int = Field(default=1000, ge=1)
    show_execution_time: bool = True
    confirm_dangerous_queries: bool = True
    default_limit: int = Field(default=100, ge=1)


class UserConfig(BaseModel):
    """Shape of user_config.json."""

    preferences: UserPreferences = Field(default_factory=UserPreferences)
    databases: dict[str, list[DatabaseEntry]] = Field(default_factory=dict)
    last_connection_id: str | None = None
    last_selected_database: str | None = None

    def entries_for(self, connection_id: str) -> list[DatabaseEntry]:
        return list(self.databases.get(connection_id, ()))

    def with_entries(self, connection_id: str, entries: list[DatabaseEntry]) -> UserConfig:
        """Return a copy with the database entries of one connection replaced."""

        databases = dict(self.databases)
        if entries:
            databases[connection_id] = list(entries)
        else:
            databases.pop(connection_id, None)
        return self.model_copy(update={"databases": databases})

    def with_last_database(self, connection_id: str | None, database: str | None) -> UserConfig:
        """Return a copy with the last-used connection/database updated."""

        return self.model_copy(
            update={"last_connection_id": connection_id, "last_selected_database": database}
        )

    def with_preferences(self, **updates: object) -> UserConfig:
        """Return a copy with preference changes applied."""

        preferences = self.preferences.model_copy(update=updates)
        return self.model_copy(update={"preferences": preferences})


def load_user_config(path: Path) -> UserConfig:
    """Load user_config.json; a missing file yields defaults."""

    data = read_json(path)
    if data is None:
        return UserConfig()
    if not isinstance(data, dict):
        raise PersistenceError(f"{path} does not contain a JSON object")
    data = dict(data)
    data["databases"] = _normalize_database_entries(data.get("databases"))
    try:
        return UserConfig.model_validate(data)
    except ValidationError as exc:
        raise PersistenceError(f"Failed to parse {path}: {exc}") from exc


def save_user_config(config: UserConfig, path: Path) -> None:
    """Persist user_config.json."""

    write_json_atomic(path, config.model_dump(mode="json"))


def read_json(path: Path) -> Any:
    """Read a JSON document; ``None`` when the file does not exist."""

    try:
        with path.open(encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Failed to parse {path}: {exc}") from exc
    except OSError as exc:
        raise PersistenceError(f"Failed to read {path}: {exc}") from exc


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON through a temp file and rename so readers never see a torn file."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".json")
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as exc:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc


def _normalize_database_entries(raw: object) -> dict[str, list[dict[str, object]]]:
    """Accept both the keyed-by-connection layout and the flat ``"conn:db"`` map."""

    if not isinstance(raw, dict):
        return {}
    grouped: dict[str, list[dict[str, object]]] = {}
    for key, value in raw.items():
        if isinstance(value, list):
            grouped.setdefault(str(key), []).extend(item for item in value if isinstance(item, dict))
        elif isinstance(value, dict):
            connection_id = value.get("connection_id")
            if isinstance(connection_id, str) and value.get("name"):
                grouped.setdefault(connection_id, []).append(value)
    for connection_id, entries in grouped.items():
        for entry in entries:
            entry.setdefault("connection_id", connection_id)
    return grouped


__all__ = [
    "APP_NAME",
    "AppPaths",
    "PersistenceError",
    "UserConfig",
    "UserPreferences",
    "default_paths",
    "ensure_directories",
    "load_user_config",
    "read_json",
    "save_user_config",
    "write_json_atomic",
]
