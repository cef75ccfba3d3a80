"""Bridge turning a registry watch into a pair of linked endpoints.

The control endpoint is pulled by consumers: every request answers with a
fresh direct read of the resource, and ``{"update": True}`` / ``{"update":
False}`` additionally switches the change subscription on or off. The push
endpoint forwards each change the subscription delivers to whatever receiver
is connected to it.

Example:
    bridge = ChangeWatchBridge(nodes_resource(client, "kronos"))
    bridge.push.connect(on_nodes_changed)
    nodes = await bridge.control.receive({"update": True})
    ...
    await bridge.close()
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from kronos_consul.discover.entities import KVEntry
from kronos_consul.discover.registry.registry_client import RegistryClient, Watch
from kronos_consul.exceptions import WatchError
from kronos_consul.utils.constant import WatchMethod

__all__ = [
    "ChangeWatchBridge",
    "ControlEndpoint",
    "PushEndpoint",
    "WatchRequest",
    "WatchResource",
    "checks_resource",
    "kv_resource",
    "nodes_resource",
]

logger = logging.getLogger(__name__)

Receiver = Callable[[Any], Awaitable[None] | None]


@dataclass(frozen=True)
class WatchResource:
    """A watchable registry resource.

    Attributes:
        name: Name used for the endpoints and in log records.
        make_watch: Returns a new, unstarted watch over the resource.
        fetch: Reads the current state without watching.
        transform: Optional conversion applied to pushed change data.
    """

    name: str
    make_watch: Callable[[], Watch]
    fetch: Callable[[], Awaitable[Any]]
    transform: Callable[[Any], Any] | None = None


class WatchRequest(BaseModel):
    """Control message; ``update`` left out means "just read"."""

    update: bool | None = None

    @classmethod
    def coerce(cls, request: WatchRequest | Mapping[str, Any] | None) -> WatchRequest:
        if request is None:
            return cls()
        if isinstance(request, cls):
            return request
        return cls.model_validate(dict(request))


class PushEndpoint:
    """Outbound side: forwards change data to the connected receiver."""

    def __init__(self, bridge: ChangeWatchBridge) -> None:
        self._bridge = bridge
        self._receiver: Receiver | None = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def connected(self) -> bool:
        return self._receiver is not None

    def connect(self, receiver: Receiver) -> None:
        self._receiver = receiver

    def disconnect(self) -> None:
        self._receiver = None

    async def open(self) -> None:
        # opening does not subscribe, only an update request does
        self._open = True
        logger.debug("Endpoint %s opened", self._bridge.name, extra={"endpoint": self._bridge.name, "state": "open"})

    async def close(self) -> None:
        self._open = False
        logger.debug("Endpoint %s closed", self._bridge.name, extra={"endpoint": self._bridge.name, "state": "close"})
        await self._bridge.deactivate()

    async def send(self, data: Any) -> None:
        receiver = self._receiver
        if receiver is None:
            logger.debug("Dropping change for %s, no receiver connected", self._bridge.name)
            return
        try:
            result = receiver(data)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Receiver of %s failed", self._bridge.name)


class ControlEndpoint:
    """Inbound side: switches the subscription and answers with a direct read."""

    def __init__(self, bridge: ChangeWatchBridge) -> None:
        self._bridge = bridge

    async def receive(self, request: WatchRequest | Mapping[str, Any] | None = None) -> Any:
        message = WatchRequest.coerce(request)
        if message.update is True:
            await self._bridge.activate()
        elif message.update is False:
            await self._bridge.deactivate()
        return await self._bridge.fetch()


class ChangeWatchBridge:
    """Owns at most one watch subscription over a resource."""

    def __init__(self, resource: WatchResource) -> None:
        self.resource = resource
        self.control = ControlEndpoint(self)
        self.push = PushEndpoint(self)
        self._subscription: Watch | None = None

    @property
    def name(self) -> str:
        return self.resource.name

    @property
    def subscription(self) -> Watch | None:
        return self._subscription

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def activate(self) -> bool:
        """Start a subscription unless one is active; returns whether one was started.

        A subscription broken by a watch error is dropped and replaced here, it
        is never restarted on its own.
        """
        if self.active:
            return False
        if self._subscription is not None:
            await self.deactivate()
        watch = self.resource.make_watch()
        watch.on_change(self._forward)
        watch.on_error(self._on_error)
        self._subscription = watch
        try:
            await watch.start()
        except Exception:
            logger.exception("Starting watch on %s failed", self.name, extra={"endpoint": self.name})
            self._subscription = None
            return False
        logger.info("Watching %s", self.name, extra={"endpoint": self.name})
        return True

    async def deactivate(self) -> bool:
        """Terminate and discard the subscription; returns whether there was one."""
        watch, self._subscription = self._subscription, None
        if watch is None:
            return False
        await watch.end()
        logger.info("Stopped watching %s", self.name, extra={"endpoint": self.name})
        return True

    async def fetch(self) -> Any:
        """Direct read of the resource; failures are logged and answered with None."""
        try:
            return await self.resource.fetch()
        except Exception:
            logger.exception("Fetching %s failed", self.name, extra={"endpoint": self.name})
            return None

    async def close(self) -> None:
        await self.push.close()

    async def _forward(self, data: Any) -> None:
        if self.resource.transform is not None:
            data = self.resource.transform(data)
        await self.push.send(data)

    def _on_error(self, error: WatchError) -> None:
        logger.error(
            "Watch on %s failed: %s",
            self.name,
            error,
            extra={"endpoint": self.name, "error": error.to_error_dict()},
        )


def _kv_dict(entries: list[KVEntry]) -> dict[str, str | None]:
    return {entry.key: entry.decode(errors="replace") for entry in entries}


def nodes_resource(client: RegistryClient, service: str) -> WatchResource:
    """Catalog nodes providing ``service``."""
    return WatchResource(
        name="nodes",
        make_watch=lambda: client.watch(WatchMethod.CATALOG_NODES, service=service),
        fetch=lambda: client.catalog_nodes(service),
    )


def kv_resource(client: RegistryClient, key: str = "") -> WatchResource:
    """Every key below ``key`` as a ``{key: value}`` dict."""

    async def fetch() -> dict[str, str | None]:
        return _kv_dict(await client.kv_get(key, recurse=True))

    return WatchResource(
        name="kv",
        make_watch=lambda: client.watch(WatchMethod.KV_GET, key=key, recurse=True),
        fetch=fetch,
        transform=_kv_dict,
    )


def checks_resource(client: RegistryClient, service: str) -> WatchResource:
    """Health checks attached to ``service``."""
    return WatchResource(
        name="checks",
        make_watch=lambda: client.watch(WatchMethod.HEALTH_CHECKS, service=service),
        fetch=lambda: client.health_checks(service),
    )
