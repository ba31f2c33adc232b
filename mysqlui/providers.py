"""Command palette entries for switching connections and refreshing."""

from __future__ import annotations

from typing import Iterator

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .models import Connection
from .registry import ConnectionRegistry


class _AppProvider(Provider):
    """Shared lookups against the running mysqlui app."""

    def connections(self) -> Iterator[Connection]:
        registry = getattr(self.app, "registry", None)
        if isinstance(registry, ConnectionRegistry):
            yield from registry.list()

    def app_call(self, method: str, *args: object) -> IgnoreReturnCallbackType:
        """Callback invoking ``app.<method>(*args)`` if the app provides it."""

        async def _run() -> None:
            target = getattr(self.app, method, None)
            if callable(target):
                target(*args)

        return _run


class ConnectionSwitchProvider(_AppProvider):
    """One palette entry per saved connection."""

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for connection in self.connections():
            score = max(matcher.match(connection.name), matcher.match(connection.label))
            if score <= 0:
                continue
            yield Hit(
                score=score,
                match_display=f"Connect to: {matcher.highlight(connection.name)}",
                command=self.app_call("open_connection", connection.id),
                help=connection.label,
            )

    async def discover(self) -> Hits:
        for connection in self.connections():
            yield DiscoveryHit(
                display=f"Connect to: {connection.name}",
                command=self.app_call("open_connection", connection.id),
                help=connection.label,
            )


class RefreshProvider(_AppProvider):
    LABEL = "Refresh current view"
    HELP = "Same as pressing r."

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        score = matcher.match(self.LABEL)
        if score > 0:
            yield Hit(
                score=score,
                match_display=matcher.highlight(self.LABEL),
                command=self.app_call("action_refresh"),
                help=self.HELP,
            )

    async def discover(self) -> Hits:
        yield DiscoveryHit(display=self.LABEL, command=self.app_call("action_refresh"), help=self.HELP)


__all__ = ["ConnectionSwitchProvider", "RefreshProvider"]
