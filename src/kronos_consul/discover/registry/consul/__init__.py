from .client import ConsulRegistryClient, ConsulWatch

__all__ = ["ConsulRegistryClient", "ConsulWatch"]
