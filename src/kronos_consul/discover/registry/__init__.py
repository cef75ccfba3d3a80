from .registry_client import RegistryClient, Watch
from .registry_factory import RegistryClientFactory, registry
from .in_memory import InMemoryRegistryClient, InMemoryWatch
from .consul import ConsulRegistryClient, ConsulWatch

__all__ = [
    "ConsulRegistryClient",
    "ConsulWatch",
    "InMemoryRegistryClient",
    "InMemoryWatch",
    "RegistryClient",
    "RegistryClientFactory",
    "Watch",
    "registry",
]
