"""Registration of this process and access to the registry's catalog.

Example:
    from kronos_consul.discover import InMemoryRegistryClient, RegistrationClient

    client = InMemoryRegistryClient()
    registration = RegistrationClient(client, definition)
    await registration.start()
"""

from __future__ import annotations

from kronos_consul.discover.entities import (
    CatalogNode,
    CheckDefinition,
    HealthCheck,
    KVEntry,
    ServiceRegistration,
)
from kronos_consul.discover.health import HealthCheckProvider, HealthStatus, health_route
from kronos_consul.discover.registration import RegistrationClient
from kronos_consul.discover.registry import (
    ConsulRegistryClient,
    InMemoryRegistryClient,
    RegistryClient,
    RegistryClientFactory,
    Watch,
)
from kronos_consul.discover.tag_tracker import StepSource, TagTracker
from kronos_consul.discover.watch_bridge import (
    ChangeWatchBridge,
    WatchRequest,
    WatchResource,
    checks_resource,
    kv_resource,
    nodes_resource,
)

__all__ = [
    "CatalogNode",
    "ChangeWatchBridge",
    "CheckDefinition",
    "ConsulRegistryClient",
    "HealthCheck",
    "HealthCheckProvider",
    "HealthStatus",
    "InMemoryRegistryClient",
    "KVEntry",
    "RegistrationClient",
    "RegistryClient",
    "RegistryClientFactory",
    "ServiceRegistration",
    "StepSource",
    "TagTracker",
    "Watch",
    "WatchRequest",
    "WatchResource",
    "checks_resource",
    "health_route",
    "kv_resource",
    "nodes_resource",
]
