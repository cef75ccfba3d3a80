import logging
from typing import Any

from kronos_consul.discover.entities import CatalogNode, HealthCheck, KVEntry, ServiceRegistration
from kronos_consul.discover.registry.registry_client import RegistryClient, Watch
from kronos_consul.discover.registry.registry_factory import registry
from kronos_consul.exceptions import RegistryConnectionError, WatchError
from kronos_consul.utils.constant import CheckState, WatchMethod

logger = logging.getLogger(__name__)

_NODE_NAME = "local"
_NODE_ADDRESS = "127.0.0.1"


@registry(name="in-memory")
class InMemoryRegistryClient(RegistryClient):
    """In-process implementation of the RegistryClient.

    Keeps services and keys in dicts and pushes watch changes as soon as a
    mutation happens. Calls can be made to fail with fail_next() and every
    registration call is recorded, which makes it the registry used in tests
    and local runs.
    """

    def __init__(self) -> None:
        self._services: dict[str, ServiceRegistration] = {}
        self._kv: dict[str, bytes] = {}
        self._watches: list["InMemoryWatch"] = []
        self._failures = 0
        self._failure: Exception | None = None
        self.register_calls: list[ServiceRegistration] = []
        self.deregister_calls: list[str] = []

    @property
    def services(self) -> dict[str, ServiceRegistration]:
        return dict(self._services)

    def fail_next(self, count: int = 1, error: Exception | None = None) -> None:
        """Make the next ``count`` calls raise ``error`` (a RegistryConnectionError by default)."""
        self._failures = count
        self._failure = error

    async def fail_watches(self, error: WatchError | None = None) -> None:
        """Deliver an error to every active watch."""
        error = error or WatchError(message="in-memory watch failure")
        for watch in list(self._watches):
            await watch.fail(error)

    async def register(self, registration: ServiceRegistration) -> None:
        self._maybe_fail("register")
        self.register_calls.append(registration.model_copy(deep=True))
        self._services[registration.instance_id] = registration.model_copy(deep=True)
        logger.info(f"Registered service: {registration.name} ({registration.instance_id})")
        await self._notify_service(registration.name)

    async def deregister(self, service_id: str) -> None:
        self._maybe_fail("deregister")
        self.deregister_calls.append(service_id)
        removed = self._services.pop(service_id, None)
        logger.info(f"Deregistered service: {service_id}")
        if removed is not None:
            await self._notify_service(removed.name)

    async def kv_get(self, key: str, *, recurse: bool = False) -> list[KVEntry]:
        self._maybe_fail("kv_get")
        if recurse:
            keys = sorted(k for k in self._kv if k.startswith(key))
        else:
            keys = [key] if key in self._kv else []
        return [KVEntry(key=k, value=self._kv[k]) for k in keys]

    async def kv_set(self, key: str, value: str | bytes) -> bool:
        self._maybe_fail("kv_set")
        self._kv[key] = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        await self._notify_key(key)
        return True

    async def kv_delete(self, key: str, *, recurse: bool = False) -> bool:
        self._maybe_fail("kv_delete")
        if recurse:
            removed = [k for k in self._kv if k.startswith(key)]
        else:
            removed = [key] if key in self._kv else []
        for k in removed:
            del self._kv[k]
        for k in removed:
            await self._notify_key(k)
        return True

    async def health_checks(self, service: str) -> list[HealthCheck]:
        self._maybe_fail("health_checks")
        return [
            HealthCheck(
                node=_NODE_NAME,
                check_id=reg.check.id,
                name=reg.check.id,
                status=CheckState.PASSING.value,
                service_id=reg.instance_id,
                service_name=reg.name,
            )
            for reg in self._services.values()
            if reg.name == service and reg.check is not None
        ]

    async def catalog_nodes(self, service: str) -> list[CatalogNode]:
        self._maybe_fail("catalog_nodes")
        return [
            CatalogNode(
                node=_NODE_NAME,
                address=_NODE_ADDRESS,
                service_id=reg.instance_id,
                service_name=reg.name,
                service_address=reg.address,
                service_port=reg.port,
                service_tags=sorted(reg.tags),
            )
            for reg in self._services.values()
            if reg.name == service
        ]

    async def status_leader(self) -> str:
        return f"{_NODE_ADDRESS}:8300"

    async def status_peers(self) -> list[str]:
        return [f"{_NODE_ADDRESS}:8300"]

    def watch(self, method: WatchMethod, **options: Any) -> "InMemoryWatch":
        return InMemoryWatch(self, WatchMethod(method), options)

    def _maybe_fail(self, operation: str) -> None:
        if self._failures <= 0:
            return
        self._failures -= 1
        raise self._failure or RegistryConnectionError(message=f"{operation} failed: registry unavailable")

    async def _notify_service(self, service: str) -> None:
        for watch in list(self._watches):
            if watch.method != WatchMethod.KV_GET and watch.options.get("service") == service:
                await watch.refresh()

    async def _notify_key(self, key: str) -> None:
        for watch in list(self._watches):
            if watch.method != WatchMethod.KV_GET:
                continue
            watched = watch.options.get("key", "")
            if key == watched or (watch.options.get("recurse") and key.startswith(watched)):
                await watch.refresh()


class InMemoryWatch(Watch):
    """Watch delivering the current data on start and after every relevant mutation."""

    def __init__(self, client: InMemoryRegistryClient, method: WatchMethod, options: dict[str, Any]) -> None:
        super().__init__(method, options)
        self._client = client

    async def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._client._watches.append(self)
        await self.refresh()

    async def end(self) -> None:
        self._active = False
        if self in self._client._watches:
            self._client._watches.remove(self)

    async def refresh(self) -> None:
        if not self._active:
            return
        try:
            data = await self._client.read(self.method, **self.options)
        except Exception as exc:
            await self.fail(WatchError(message=f"Watch on {self.method} failed: {exc}", data=self.options, cause=exc))
            return
        await self._emit_change(data)

    async def fail(self, error: WatchError) -> None:
        await self.end()
        await self._emit_error(error)
