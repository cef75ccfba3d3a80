from kronos_consul.client import RoundRobinURLs, ServiceURLDirectory, URLResolver
from kronos_consul.config import ConsulConfig, RegistrationConfig, load_config
from kronos_consul.discover import (
    ChangeWatchBridge,
    ConsulRegistryClient,
    InMemoryRegistryClient,
    RegistrationClient,
    RegistryClient,
    ServiceRegistration,
    TagTracker,
)
from kronos_consul.exceptions import (
    EmptyResultError,
    InvalidRegistrationError,
    RegistryConnectionError,
    RegistryException,
    WatchError,
)
from kronos_consul.service import ConsulService

__version__ = "0.1.0"

__all__ = [
    "ChangeWatchBridge",
    "ConsulConfig",
    "ConsulRegistryClient",
    "ConsulService",
    "EmptyResultError",
    "InMemoryRegistryClient",
    "InvalidRegistrationError",
    "RegistrationClient",
    "RegistrationConfig",
    "RegistryClient",
    "RegistryConnectionError",
    "RegistryException",
    "RoundRobinURLs",
    "ServiceRegistration",
    "ServiceURLDirectory",
    "TagTracker",
    "URLResolver",
    "WatchError",
    "load_config",
]
