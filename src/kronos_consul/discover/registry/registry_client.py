from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from kronos_consul.discover.entities import CatalogNode, HealthCheck, KVEntry, ServiceRegistration
from kronos_consul.exceptions import WatchError
from kronos_consul.utils.constant import WatchMethod

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Any], Awaitable[None] | None]
ErrorCallback = Callable[[WatchError], Awaitable[None] | None]


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Watch(ABC):
    """A long-lived subscription pushing change notifications for one registry read.

    Callbacks are registered with on_change()/on_error() before start(). Once an
    error has been delivered the watch is inactive and stays that way.
    """

    def __init__(self, method: WatchMethod, options: dict[str, Any]) -> None:
        self.method = method
        self.options = dict(options)
        self._change_callbacks: list[ChangeCallback] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def on_change(self, callback: ChangeCallback) -> Watch:
        self._change_callbacks.append(callback)
        return self

    def on_error(self, callback: ErrorCallback) -> Watch:
        self._error_callbacks.append(callback)
        return self

    @abstractmethod
    async def start(self) -> None:
        """Begin delivering changes."""

    @abstractmethod
    async def end(self) -> None:
        """Stop delivering changes and release the subscription."""

    async def _emit_change(self, data: Any) -> None:
        for callback in list(self._change_callbacks):
            try:
                await _maybe_await(callback(data))
            except Exception:
                logger.exception("Watch change callback failed for %s", self.method)

    async def _emit_error(self, error: WatchError) -> None:
        self._active = False
        for callback in list(self._error_callbacks):
            try:
                await _maybe_await(callback(error))
            except Exception:
                logger.exception("Watch error callback failed for %s", self.method)


class RegistryClient(ABC):
    """Capability set of an external service registry."""

    @abstractmethod
    async def register(self, registration: ServiceRegistration) -> None:
        """Registers (or replaces) a service instance with the local agent."""

    @abstractmethod
    async def deregister(self, service_id: str) -> None:
        """Removes the service instance with the given id."""

    @abstractmethod
    async def kv_get(self, key: str, *, recurse: bool = False) -> list[KVEntry]:
        """Reads a key, or every key below it when recurse is set.

        Returns:
            The matching entries in registry order, empty when nothing matched.
        """

    @abstractmethod
    async def kv_set(self, key: str, value: str | bytes) -> bool:
        """Writes a key."""

    @abstractmethod
    async def kv_delete(self, key: str, *, recurse: bool = False) -> bool:
        """Deletes a key, or the whole subtree when recurse is set."""

    @abstractmethod
    async def health_checks(self, service: str) -> list[HealthCheck]:
        """Lists the health checks attached to a service."""

    @abstractmethod
    async def catalog_nodes(self, service: str) -> list[CatalogNode]:
        """Lists the catalog nodes providing a service."""

    @abstractmethod
    async def status_leader(self) -> str:
        """Returns the address of the current raft leader."""

    @abstractmethod
    async def status_peers(self) -> list[str]:
        """Returns the addresses of the raft peers."""

    @abstractmethod
    def watch(self, method: WatchMethod, **options: Any) -> Watch:
        """Creates an (unstarted) watch over one of the watchable reads."""

    async def read(self, method: WatchMethod, **options: Any) -> Any:
        """Performs the plain read a watch of the same method would deliver."""
        if method == WatchMethod.KV_GET:
            return await self.kv_get(options.get("key", ""), recurse=bool(options.get("recurse", False)))
        if method == WatchMethod.HEALTH_CHECKS:
            return await self.health_checks(options["service"])
        if method == WatchMethod.CATALOG_NODES:
            return await self.catalog_nodes(options["service"])
        raise ValueError(f"Unsupported watch method: {method}")

    async def aclose(self) -> None:
        """Releases any transport resources."""
