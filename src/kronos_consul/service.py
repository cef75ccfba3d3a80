"""Service bridging an owning process to the registry.

start() registers this process (with retries) and, once the first
registration went through, follows topology changes and exposes the health
route. The ``nodes``, ``kv`` and ``checks`` bridges are independent of that:
they subscribe only when asked to.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from kronos_consul.client.service_resolver import RoundRobinURLs, ServiceURLDirectory, URLResolver
from kronos_consul.config.models import ConsulConfig
from kronos_consul.discover.entities import CatalogNode, CheckDefinition, ServiceRegistration
from kronos_consul.discover.health.health_route import HealthCheckProvider, health_route
from kronos_consul.discover.registration import RegistrationClient
from kronos_consul.discover.registry.registry_client import RegistryClient
from kronos_consul.discover.registry.registry_factory import RegistryClientFactory
from kronos_consul.discover.tag_tracker import StepSource, TagTracker
from kronos_consul.discover.watch_bridge import ChangeWatchBridge, checks_resource, kv_resource, nodes_resource
from kronos_consul.observability.logging import LogContext
from kronos_consul.resilience.retry_policy import SleepFunc
from kronos_consul.utils.constant import DEFAULT_SERVICE_PORT
from kronos_consul.utils.id_utils import IdUtils
from kronos_consul.utils.net_utils import NetUtils
from kronos_consul.utils.time_utils import as_seconds

logger = logging.getLogger(__name__)


class RouteTable(Protocol):
    """Anything holding a mutable list of starlette routes (Router, Starlette)."""

    routes: list[Any]


class ConsulService:
    """Registers the owning process and exposes the registry to it.

    Args:
        config: Registry and registration settings.
        client: Registry client, owned by the caller.
        steps: The owning process's step registry, source of the tags.
        health: Health provider answering the registry's HTTP check.
        listener_url: Base URL of the HTTP listener serving the check route.
        router: Route table the health route is added to after registration.
        sleep: Awaitable sleep used between registration attempts.
    """

    def __init__(
        self,
        config: ConsulConfig,
        client: RegistryClient,
        steps: StepSource,
        *,
        health: HealthCheckProvider | None = None,
        listener_url: str | None = None,
        router: RouteTable | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        settings = config.registration
        self.config = config
        self.client = client
        self.instance_id = settings.instance_id or IdUtils.generate_instance_id(settings.service_name)
        self.listener_url = (listener_url or f"http://{NetUtils.get_local_ip()}:{DEFAULT_SERVICE_PORT}").rstrip("/")
        self._health = health
        self._router = router
        self._owns_client = False

        self.registration = RegistrationClient(
            client,
            self.service_definition,
            retry_policy=settings.retry,
            sleep=sleep,
        )
        self.tag_tracker = TagTracker(
            self.registration,
            steps,
            prefix=settings.tag_prefix,
            delay_ms=settings.update_delay_ms,
        )
        self.registration.on_registered(self._on_first_registration)

        self.nodes = ChangeWatchBridge(nodes_resource(client, settings.service_name))
        self.kv = ChangeWatchBridge(kv_resource(client))
        self.checks = ChangeWatchBridge(checks_resource(client, settings.service_name))
        self._resolver = URLResolver(client)
        self._directory = ServiceURLDirectory(client, self.instance_id)

    @classmethod
    def create(cls, config: ConsulConfig, steps: StepSource, *, registry_type: str = "consul", **kwargs: Any) -> ConsulService:
        """Build the service together with a registry client it owns and closes on stop()."""
        client = RegistryClientFactory.create(registry_type, config=config)
        service = cls(config, client, steps, **kwargs)
        service._owns_client = True
        return service

    @property
    def service_name(self) -> str:
        return self.config.registration.service_name

    def service_definition(self) -> ServiceRegistration:
        settings = self.config.registration
        host, port = NetUtils.split_url(self.listener_url)
        check_url = f"{self.listener_url}{settings.check_path}"
        return ServiceRegistration(
            name=settings.service_name,
            instance_id=self.instance_id,
            address=host,
            port=port or DEFAULT_SERVICE_PORT,
            tags=self.tag_tracker.tags,
            check=CheckDefinition(
                id=check_url,
                http=check_url,
                interval=as_seconds(settings.check_interval),
                timeout=as_seconds(settings.check_timeout),
            ),
        )

    async def start(self) -> None:
        with LogContext(service=self.service_name, instance_id=self.instance_id):
            self.tag_tracker.refresh()
            logger.info("Starting registration", extra={"listener_url": self.listener_url})
            await self.registration.start()

    async def stop(self) -> None:
        with LogContext(service=self.service_name, instance_id=self.instance_id):
            self.tag_tracker.detach()
            for bridge in (self.nodes, self.kv, self.checks):
                await bridge.close()
            try:
                await self.registration.stop()
            finally:
                if self._owns_client:
                    await self.client.aclose()

    async def __aenter__(self) -> ConsulService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def kronos_nodes(self) -> list[CatalogNode]:
        """Catalog nodes currently providing this service."""
        return await self.client.catalog_nodes(self.service_name)

    def service_urls(self, name: str) -> RoundRobinURLs:
        return self._resolver.resolve(name)

    async def register_service_url(self, name: str, url: str) -> None:
        await self._directory.register_url(name, url)

    async def unregister_service_url(self, name: str) -> None:
        await self._directory.unregister(name)

    async def _on_first_registration(self) -> None:
        self.tag_tracker.attach()
        if self._router is not None and self._health is not None:
            self._router.routes.append(health_route(self._health, self.config.registration.check_path))
            logger.info("Health route wired at %s", self.config.registration.check_path)
        await self._log_cluster()

    async def _log_cluster(self) -> None:
        try:
            leader = await self.client.status_leader()
            peers = await self.client.status_peers()
        except Exception as exc:
            logger.warning("Could not read cluster status: %s", exc)
            return
        logger.info("Consul raft leader is %s, peers are %s", leader, ",".join(peers))
