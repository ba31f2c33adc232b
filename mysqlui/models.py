"""Shared models used across the registry, history and session modules."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
import uuid

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Connection(BaseModel):
    """A saved (or command-line) MySQL connection.

    The password only ever lives in memory: it is excluded from every dump so
    it never reaches ``connections.json``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    host: str = "localhost"
    port: int = 3306
    username: str = "root"
    password: str = Field(default="", exclude=True, repr=False)
    default_database: str | None = None
    use_ssl: bool = True

    @property
    def label(self) -> str:
        return f"{self.name} ({self.username}@{self.host}:{self.port})"

    def with_password(self, password: str) -> Connection:
        """Return a copy carrying the given password."""

        return self.model_copy(update={"password": password})


class DatabaseEntry(BaseModel):
    """Per-connection metadata for a discovered database."""

    model_config = ConfigDict(frozen=True)

    name: str
    connection_id: str
    favorite: bool = False
    last_accessed: datetime | None = None


class HistoryOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class HistoryEntry(BaseModel):
    """One executed (or cancelled) SQL statement and its outcome."""

    model_config = ConfigDict(frozen=True)

    id: int = 0
    sql: str
    connection_id: str
    database: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    duration_ms: int | None = None
    outcome: HistoryOutcome = HistoryOutcome.SUCCESS
    row_count: int | None = None
    error_message: str | None = None

    @classmethod
    def succeeded(
        cls,
        sql: str,
        connection_id: str,
        database: str | None,
        *,
        duration_ms: int,
        row_count: int,
    ) -> HistoryEntry:
        return cls(
            sql=sql,
            connection_id=connection_id,
            database=database,
            duration_ms=duration_ms,
            outcome=HistoryOutcome.SUCCESS,
            row_count=row_count,
        )

    @classmethod
    def failed(
        cls,
        sql: str,
        connection_id: str,
        database: str | None,
        *,
        duration_ms: int,
        message: str,
    ) -> HistoryEntry:
        return cls(
            sql=sql,
            connection_id=connection_id,
            database=database,
            duration_ms=duration_ms,
            outcome=HistoryOutcome.ERROR,
            error_message=message,
        )

    @classmethod
    def cancelled(cls, sql: str, connection_id: str, database: str | None) -> HistoryEntry:
        return cls(
            sql=sql,
            connection_id=connection_id,
            database=database,
            outcome=HistoryOutcome.CANCELLED,
        )


__all__ = [
    "Connection",
    "DatabaseEntry",
    "HistoryEntry",
    "HistoryOutcome",
    "utcnow",
]
